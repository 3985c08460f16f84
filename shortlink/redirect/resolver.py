import logging
from datetime import datetime
from typing import Optional

from shortlink.redirect.access_gate import AccessGate
from shortlink.redirect.entries import AccessContext
from shortlink.redirect.outcomes import (RedirectOutcome, Redirect, NotFound, Inactive, Expired,
                                         NeedsCredential, InvalidCredential,
                                         DeniedNeedsCredential, DeniedInvalidCredential,
                                         ResolutionFailure)
from shortlink.redirect.recorder import AccessRecorder
from shortlink.redirect.repository import RedirectRepository
from shortlink.redirect.schedule_selector import select_schedule
from shortlink.utils import Clock, as_utc, utc_now

logger = logging.getLogger(__name__)


class RedirectResolver:
    """Turns a short code, an optional password and an instant into a RedirectOutcome.

    The link and its schedules are read once per call. Recording the access
    and counting the click happen only for a successful redirect and are
    best effort: their failures are logged and never change the outcome.
    """

    def __init__(self,
                 repository: RedirectRepository,
                 recorder: AccessRecorder,
                 gate: Optional[AccessGate] = None,
                 clock: Clock = utc_now):
        self.repository = repository
        self.recorder = recorder
        self.gate = gate or AccessGate()
        self.clock = clock

    async def resolve(self,
                      code: str,
                      credential: Optional[str] = None,
                      now: Optional[datetime] = None,
                      *,
                      context: Optional[AccessContext] = None) -> RedirectOutcome:
        now = as_utc(now or self.clock())
        context = context or AccessContext()

        try:
            link = await self.repository.get_short_link_by_code(code)
        except Exception as e:
            logger.exception(f"Redirect: lookup of {code} failed")
            raise ResolutionFailure(code) from e

        if link is None:
            logger.info(f"Redirect: link {code} not found")
            return NotFound()

        if not link.is_active:
            logger.info(f"Redirect: link {code} is inactive")
            return Inactive()

        if link.is_time_restricted and link.expires_at is not None and as_utc(link.expires_at) <= now:
            logger.info(f"Redirect: link {code} expired at {link.expires_at}")
            return Expired()

        try:
            schedules = await self.repository.get_active_schedules(link.id)
        except Exception as e:
            logger.exception(f"Redirect: schedules of {code} could not be read")
            raise ResolutionFailure(code) from e

        schedule = select_schedule(schedules, now)

        decision = await self.gate.evaluate(link, schedule, credential)
        if isinstance(decision, DeniedNeedsCredential):
            logger.info(f"Redirect: {code} needs a {decision.scope.value} password")
            return NeedsCredential(decision.scope)
        if isinstance(decision, DeniedInvalidCredential):
            logger.info(f"Redirect: invalid {decision.scope.value} password for {code}")
            return InvalidCredential(decision.scope)

        target_url = schedule.target_url if schedule is not None else link.target_url

        try:
            self.recorder.dispatch(link.id, context.ip_address, context.user_agent, context.referer)
        except Exception:
            logger.exception(f"Redirect: could not dispatch access recording for {code}")

        try:
            await self.repository.increment_clicks(link.id, 1)
        except Exception:
            logger.exception(f"Redirect: click counter of {code} not incremented")

        if schedule is not None:
            logger.info(f"Redirect: {code} -> {target_url} (schedule {schedule.id})")
        else:
            logger.info(f"Redirect: {code} -> {target_url}")
        return Redirect(target_url)
