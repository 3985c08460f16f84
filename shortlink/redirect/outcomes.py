"""Typed results of the redirect resolution.

Expected branches (missing link, disabled link, expiry, password prompts)
are returned as values. Only infrastructure problems are raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union


class GateScope(str, Enum):
    LINK = "link"
    SCHEDULE = "schedule"


# Access gate decisions
@dataclass(frozen=True)
class Granted:
    pass


@dataclass(frozen=True)
class DeniedNeedsCredential:
    scope: GateScope


@dataclass(frozen=True)
class DeniedInvalidCredential:
    scope: GateScope


GateDecision = Union[Granted, DeniedNeedsCredential, DeniedInvalidCredential]


# Resolver outcomes
@dataclass(frozen=True)
class Redirect:
    target_url: str
    status: ClassVar[str] = "redirect"


@dataclass(frozen=True)
class NotFound:
    status: ClassVar[str] = "not_found"


@dataclass(frozen=True)
class Inactive:
    status: ClassVar[str] = "inactive"


@dataclass(frozen=True)
class Expired:
    status: ClassVar[str] = "expired"


@dataclass(frozen=True)
class NeedsCredential:
    scope: GateScope
    status: ClassVar[str] = "needs_credential"


@dataclass(frozen=True)
class InvalidCredential:
    scope: GateScope
    status: ClassVar[str] = "invalid_credential"


RedirectOutcome = Union[Redirect, NotFound, Inactive, Expired, NeedsCredential, InvalidCredential]


class ShortlinkError(Exception):
    """Base class for unexpected failures of the shortlink service."""


class ResolutionFailure(ShortlinkError):
    """Storage or infrastructure error while resolving a code.

    Never equivalent to NotFound: callers must answer with a server error.
    """

    def __init__(self, code: str, message: str = "resolution failed") -> None:
        super().__init__(f"{message}: {code}")
        self.code = code
