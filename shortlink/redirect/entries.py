from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class AccessContext:
    """Request facts the HTTP layer hands to the resolver."""
    ip_address: str = "unknown"
    user_agent: Optional[str] = None
    referer: Optional[str] = None


@dataclass(frozen=True)
class AccessLogEntry:
    shortlink_id: int
    ip_address: str
    user_agent: Optional[str]
    referer: Optional[str]
    device_type: str
    browser: str
    os: str
    country: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    timezone: Optional[str] = None
    # forward-compatible metadata; everything known goes in the fields above
    extra: Mapping[str, Any] = field(default_factory=dict)
