from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from shortlink.auth.users import current_active_user
from shortlink.auth.db import User
from shortlink.database.database import get_async_session
from shortlink.links import analytics, service
from shortlink.links.schemas import (
    ShortLinkCreateRequest, ShortLinkUpdateRequest,
    ShortLinkResponse, ShortLinksResponse,
    ScheduleCreateRequest, ScheduleUpdateRequest,
    ScheduleResponse, SchedulesResponse,
    AnalyticsOverviewResponse, DailyStatsResponse
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/links", tags=["Links"])

@router.post("", response_model=ShortLinkResponse, status_code=201)
async def create_link(
        data: ShortLinkCreateRequest,
        session: AsyncSession = Depends(get_async_session),
        user: User = Depends(current_active_user)
):
    logger.info(f"Creating new link for user {user.id}")
    return await service.create_short_link(data, session, user)

@router.get("/my", response_model=ShortLinksResponse)
async def get_my_links(
        session: AsyncSession = Depends(get_async_session),
        user: User = Depends(current_active_user)
):
    logger.info(f"Getting all links for user {user.id}")
    return await service.get_users_links(session, user)

@router.get("/{link_id}", response_model=ShortLinkResponse)
async def get_link(
        link_id: int,
        session: AsyncSession = Depends(get_async_session),
        user: User = Depends(current_active_user)
):
    return ShortLinkResponse.model_validate(await service.get_owned_link(link_id, session, user))

@router.patch("/{link_id}", response_model=ShortLinkResponse)
async def update_link(
        link_id: int,
        data: ShortLinkUpdateRequest,
        session: AsyncSession = Depends(get_async_session),
        user: User = Depends(current_active_user)
):
    logger.info(f"Updating link {link_id} by user {user.id}")
    return await service.update_short_link(link_id, data, session, user)

@router.delete("/{link_id}")
async def delete_link(
        link_id: int,
        session: AsyncSession = Depends(get_async_session),
        user: User = Depends(current_active_user)
):
    logger.info(f"Deleting link {link_id} by user {user.id}")
    await service.delete_short_link(link_id, session, user)
    return {"message": "Link deleted"}

@router.post("/{link_id}/schedules", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
        link_id: int,
        data: ScheduleCreateRequest,
        session: AsyncSession = Depends(get_async_session),
        user: User = Depends(current_active_user)
):
    logger.info(f"Creating schedule for link {link_id} by user {user.id}")
    return await service.create_schedule(link_id, data, session, user)

@router.get("/{link_id}/schedules", response_model=SchedulesResponse)
async def list_schedules(
        link_id: int,
        session: AsyncSession = Depends(get_async_session),
        user: User = Depends(current_active_user)
):
    return await service.list_schedules(link_id, session, user)

@router.patch("/{link_id}/schedules/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
        link_id: int,
        schedule_id: int,
        data: ScheduleUpdateRequest,
        session: AsyncSession = Depends(get_async_session),
        user: User = Depends(current_active_user)
):
    logger.info(f"Updating schedule {schedule_id} of link {link_id} by user {user.id}")
    return await service.update_schedule(link_id, schedule_id, data, session, user)

@router.delete("/{link_id}/schedules/{schedule_id}")
async def delete_schedule(
        link_id: int,
        schedule_id: int,
        session: AsyncSession = Depends(get_async_session),
        user: User = Depends(current_active_user)
):
    logger.info(f"Deleting schedule {schedule_id} of link {link_id} by user {user.id}")
    await service.delete_schedule(link_id, schedule_id, session, user)
    return {"message": "Schedule deleted"}

@router.get("/{link_id}/analytics", response_model=AnalyticsOverviewResponse)
async def get_analytics(
        link_id: int,
        session: AsyncSession = Depends(get_async_session),
        user: User = Depends(current_active_user)
):
    return await analytics.get_overview(link_id, session, user)

@router.get("/{link_id}/analytics/daily", response_model=DailyStatsResponse)
async def get_daily_analytics(
        link_id: int,
        days: int = Query(30, ge=1, le=365),
        session: AsyncSession = Depends(get_async_session),
        user: User = Depends(current_active_user)
):
    return await analytics.get_daily_stats(link_id, days, session, user)
