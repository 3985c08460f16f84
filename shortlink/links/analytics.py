import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from shortlink.auth.db import User
from shortlink.links.models import AccessLog
from shortlink.links.schemas import AnalyticsOverviewResponse, DailyStatsResponse
from shortlink.links.service import get_owned_link
from shortlink.utils import as_utc, utc_now

logger = logging.getLogger(__name__)

RECENT_DAYS = 7


async def _count_by(session: AsyncSession, column, shortlink_id: int) -> Dict[str, int]:
    query = (
        select(column, func.count(AccessLog.id))
        .where(AccessLog.shortlink_id == shortlink_id)
        .group_by(column)
    )
    result = await session.execute(query)
    return {(value or "unknown"): count for value, count in result.all()}


async def get_overview(link_id: int,
                       session: AsyncSession,
                       user: User,
                       now: Optional[datetime] = None
                       ) -> AnalyticsOverviewResponse:
    """Totals plus device, browser, OS and country breakdowns of a link"""
    link = await get_owned_link(link_id, session, user)
    now = now or utc_now()

    totals = await session.execute(
        select(func.count(AccessLog.id), func.count(func.distinct(AccessLog.ip_address)))
        .where(AccessLog.shortlink_id == link_id)
    )
    logged_accesses, unique_visitors = totals.one()

    recent = await session.execute(
        select(func.count(AccessLog.id))
        .where(AccessLog.shortlink_id == link_id,
               AccessLog.created_at >= now - timedelta(days=RECENT_DAYS))
    )

    logger.info(f"Analytics: overview of link {link.code} requested by user {user.id}")
    return AnalyticsOverviewResponse(
        clicks=link.clicks,
        logged_accesses=logged_accesses,
        unique_visitors=unique_visitors,
        recent_accesses=recent.scalar_one(),
        device_stats=await _count_by(session, AccessLog.device_type, link_id),
        browser_stats=await _count_by(session, AccessLog.browser, link_id),
        os_stats=await _count_by(session, AccessLog.os, link_id),
        country_stats=await _count_by(session, AccessLog.country, link_id),
    )


async def get_daily_stats(link_id: int,
                          days: int,
                          session: AsyncSession,
                          user: User,
                          now: Optional[datetime] = None
                          ) -> DailyStatsResponse:
    """Accesses per UTC day over the last `days` days"""
    await get_owned_link(link_id, session, user)
    since = (now or utc_now()) - timedelta(days=days)

    result = await session.execute(
        select(AccessLog.created_at)
        .where(AccessLog.shortlink_id == link_id, AccessLog.created_at >= since)
    )
    # one bucket per UTC calendar day
    counter = Counter(as_utc(created_at).date().isoformat() for created_at in result.scalars().all())

    return DailyStatsResponse(days=dict(sorted(counter.items())))
