import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import AsyncIterator, List, Optional, Protocol

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.database.database import async_session_maker
from shortlink.links.models import ShortLink, Schedule, AccessLog
from shortlink.redirect.entries import AccessLogEntry

logger = logging.getLogger(__name__)


class RedirectRepository(Protocol):
    async def get_short_link_by_code(self, code: str) -> Optional[ShortLink]:
        ...

    async def get_active_schedules(self, shortlink_id: int) -> List[Schedule]:
        ...

    async def increment_clicks(self, shortlink_id: int, delta: int = 1) -> None:
        ...

    async def create_access_log_entry(self, entry: AccessLogEntry) -> None:
        ...

    async def delete_short_link(self, shortlink_id: int) -> bool:
        ...


class SQLAlchemyRedirectRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_short_link_by_code(self, code: str) -> Optional[ShortLink]:
        query = select(ShortLink).where(ShortLink.code == code)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_active_schedules(self, shortlink_id: int) -> List[Schedule]:
        query = (
            select(Schedule)
            .where(Schedule.shortlink_id == shortlink_id, Schedule.is_active.is_(True))
            .order_by(Schedule.start_time, Schedule.id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def increment_clicks(self, shortlink_id: int, delta: int = 1) -> None:
        """Single UPDATE clicks = clicks + delta, no read-modify-write"""
        query = (
            update(ShortLink)
            .where(ShortLink.id == shortlink_id)
            .values(clicks=ShortLink.clicks + delta)
            .execution_options(synchronize_session=False)
        )
        try:
            await self.session.execute(query)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def create_access_log_entry(self, entry: AccessLogEntry) -> None:
        data = asdict(entry)
        data["extra"] = dict(entry.extra)
        self.session.add(AccessLog(**data))
        await self.session.commit()

    async def delete_short_link(self, shortlink_id: int) -> bool:
        """Removes the link with its schedules and access logs in one transaction"""
        try:
            await self.session.execute(delete(AccessLog).where(AccessLog.shortlink_id == shortlink_id))
            await self.session.execute(delete(Schedule).where(Schedule.shortlink_id == shortlink_id))
            result = await self.session.execute(delete(ShortLink).where(ShortLink.id == shortlink_id))
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.error(f"DB: Cascade delete of link {shortlink_id} rolled back")
            raise
        return result.rowcount > 0


@asynccontextmanager
async def repository_scope(
        session_maker: async_sessionmaker = async_session_maker
) -> AsyncIterator[SQLAlchemyRedirectRepository]:
    """Repository on a session of its own, for work that outlives a request"""
    async with session_maker() as session:
        yield SQLAlchemyRedirectRepository(session)
