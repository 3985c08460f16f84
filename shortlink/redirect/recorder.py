import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from typing import Callable, Optional, Set

from shortlink.redirect.entries import AccessLogEntry
from shortlink.redirect.geo import GeoInfo, GeoLookup, NullGeoLookup
from shortlink.redirect.repository import RedirectRepository, repository_scope
from shortlink.redirect.user_agent import detect_browser, detect_device_type, detect_os

logger = logging.getLogger(__name__)

USER_AGENT_MAX_LENGTH = 512
REFERER_MAX_LENGTH = 2048

RepositoryScope = Callable[[], AbstractAsyncContextManager[RedirectRepository]]


class AccessRecorder:
    """Writes one access log entry per resolved redirect.

    `dispatch` is what the resolver calls: it starts `record` as a tracked
    background task and returns at once. Failures end in the log, never in
    the caller.
    """

    def __init__(self,
                 scope: RepositoryScope = repository_scope,
                 geo: Optional[GeoLookup] = None):
        self._scope = scope
        self._geo = geo or NullGeoLookup()
        self._tasks: Set[asyncio.Task] = set()

    def build_entry(self,
                    shortlink_id: int,
                    ip_address: str,
                    raw_user_agent: Optional[str],
                    referer: Optional[str]) -> AccessLogEntry:
        geo = self._lookup_geo(ip_address) or GeoInfo()
        user_agent = raw_user_agent[:USER_AGENT_MAX_LENGTH] if raw_user_agent else None
        return AccessLogEntry(
            shortlink_id=shortlink_id,
            ip_address=ip_address,
            user_agent=user_agent,
            referer=referer[:REFERER_MAX_LENGTH] if referer else None,
            device_type=detect_device_type(raw_user_agent),
            browser=detect_browser(raw_user_agent),
            os=detect_os(raw_user_agent),
            country=geo.country,
            city=geo.city,
            region=geo.region,
            timezone=geo.timezone,
        )

    async def record(self,
                     shortlink_id: int,
                     ip_address: str,
                     raw_user_agent: Optional[str],
                     referer: Optional[str]) -> None:
        entry = self.build_entry(shortlink_id, ip_address, raw_user_agent, referer)
        async with self._scope() as repository:
            await repository.create_access_log_entry(entry)
        logger.info(f"Analytics: access of link {shortlink_id} recorded "
                    f"({entry.device_type}/{entry.browser}/{entry.os})")

    def dispatch(self,
                 shortlink_id: int,
                 ip_address: str,
                 raw_user_agent: Optional[str],
                 referer: Optional[str]) -> asyncio.Task:
        task = asyncio.create_task(self._record_safely(shortlink_id, ip_address, raw_user_agent, referer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Waits for every dispatched recording to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def _record_safely(self, *args) -> None:
        try:
            await self.record(*args)
        except Exception:
            logger.exception(f"Analytics: failed to record access of link {args[0]}")

    def _lookup_geo(self, ip_address: str) -> Optional[GeoInfo]:
        try:
            return self._geo.lookup(ip_address)
        except Exception:
            logger.exception(f"Analytics: geo lookup failed for {ip_address}")
            return None
