import logging
from typing import Callable, Optional

from fastapi.concurrency import run_in_threadpool

from shortlink.links.models import ShortLink, Schedule
from shortlink.redirect.outcomes import (GateDecision, GateScope, Granted,
                                         DeniedNeedsCredential, DeniedInvalidCredential)
from shortlink.redirect.passwords import verify_password

logger = logging.getLogger(__name__)

Verifier = Callable[[str, Optional[str]], bool]


class AccessGate:
    """Password gates of a link and of its currently selected schedule.

    The schedule gate is checked first, then the link gate. Both are tested
    with the same supplied credential.
    """

    def __init__(self, verifier: Verifier = verify_password):
        self._verifier = verifier

    async def evaluate(self,
                       link: ShortLink,
                       schedule: Optional[Schedule],
                       credential: Optional[str]) -> GateDecision:
        # An empty form field counts as no credential at all
        credential = credential or None

        if schedule is not None and schedule.is_password_protected:
            decision = await self._check(GateScope.SCHEDULE, schedule.password, credential)
            if decision is not None:
                return decision

        if link.is_password_protected:
            decision = await self._check(GateScope.LINK, link.password, credential)
            if decision is not None:
                return decision

        return Granted()

    async def _check(self,
                     scope: GateScope,
                     hashed: Optional[str],
                     credential: Optional[str]) -> Optional[GateDecision]:
        if credential is None:
            return DeniedNeedsCredential(scope)
        # bcrypt is CPU bound, keep it off the event loop
        if not await run_in_threadpool(self._verifier, credential, hashed):
            logger.info(f"Gate: invalid credential for {scope.value} gate")
            return DeniedInvalidCredential(scope)
        return None
