import logging
from datetime import datetime
from typing import List, Optional

from fastapi import HTTPException
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shortlink.auth.db import User
from shortlink.config import SHORT_CODE_LENGTH
from shortlink.links.models import ShortLink, Schedule
from shortlink.links.schemas import (ShortLinkCreateRequest, ShortLinkUpdateRequest,
                                     ShortLinkResponse, ShortLinksResponse,
                                     ScheduleCreateRequest, ScheduleUpdateRequest,
                                     ScheduleResponse, SchedulesResponse)
from shortlink.redirect.passwords import hash_password
from shortlink.redirect.repository import SQLAlchemyRedirectRepository
from shortlink.utils import as_utc, generate_code

logger = logging.getLogger(__name__)


async def get_unique_code(session: AsyncSession,
                          length: int = SHORT_CODE_LENGTH
                          ) -> str:
    """Random code that no link uses yet"""
    while True:
        code = generate_code(length)
        result = await session.execute(select(ShortLink.id).where(ShortLink.code == code))

        if result.scalar_one_or_none() is None:
            logger.info(f"Generated unique code: {code}")
            return code


async def get_owned_link(link_id: int,
                         session: AsyncSession,
                         user: User
                         ) -> ShortLink:
    link = await session.get(ShortLink, link_id)

    if not link:
        logger.error(f"Link {link_id} not found")
        raise HTTPException(status_code=404, detail="Link not found.")

    if link.owner_id != user.id:
        logger.error(f"User {user.id} has no access to link {link_id}")
        raise HTTPException(status_code=403, detail="No access to this link.")

    return link


# Short links
async def create_short_link(data: ShortLinkCreateRequest,
                            session: AsyncSession,
                            user: User
                            ) -> ShortLinkResponse:
    """Creates a short link owned by the user"""
    if data.code:
        result = await session.execute(select(ShortLink.id).where(ShortLink.code == data.code))
        if result.scalar_one_or_none() is not None:
            raise HTTPException(status_code=400, detail="Code already exists, choose another one.")
        code = data.code
    else:
        code = await get_unique_code(session)

    link = ShortLink(
        code=code,
        target_url=str(data.target_url),
        owner_id=user.id,
        is_password_protected=data.password is not None,
        password=await run_in_threadpool(hash_password, data.password) if data.password else None,
        is_time_restricted=data.expires_at is not None,
        expires_at=as_utc(data.expires_at) if data.expires_at else None,
    )

    session.add(link)
    await session.commit()
    await session.refresh(link)
    logger.info(f"Link {code} created by user {user.id}")

    return ShortLinkResponse.model_validate(link)


async def get_users_links(session: AsyncSession,
                          user: User
                          ) -> ShortLinksResponse:
    query = select(ShortLink).where(ShortLink.owner_id == user.id).order_by(ShortLink.created_at.desc())
    result = await session.execute(query)
    links: List[ShortLink] = list(result.scalars().all())
    logger.info(f"Found {len(links)} links for user {user.id}")

    return ShortLinksResponse(links=[ShortLinkResponse.model_validate(link) for link in links])


async def update_short_link(link_id: int,
                            data: ShortLinkUpdateRequest,
                            session: AsyncSession,
                            user: User
                            ) -> ShortLinkResponse:
    """Updates target, activity and protection flags of a link"""
    link = await get_owned_link(link_id, session, user)

    if data.target_url is not None:
        link.target_url = str(data.target_url)
    if data.is_active is not None:
        link.is_active = data.is_active

    if data.password is not None:
        link.password = await run_in_threadpool(hash_password, data.password)
        link.is_password_protected = True
    if data.is_password_protected is not None:
        if data.is_password_protected and not link.password:
            raise HTTPException(status_code=400, detail="Password protection requires a password.")
        link.is_password_protected = data.is_password_protected
        if not data.is_password_protected:
            link.password = None

    if data.expires_at is not None:
        link.expires_at = as_utc(data.expires_at)
        link.is_time_restricted = True
    if data.is_time_restricted is not None:
        if data.is_time_restricted and link.expires_at is None:
            raise HTTPException(status_code=400, detail="Time restriction requires expires_at.")
        link.is_time_restricted = data.is_time_restricted

    await session.commit()
    await session.refresh(link)
    logger.info(f"Link {link.code} updated by user {user.id}")

    return ShortLinkResponse.model_validate(link)


async def delete_short_link(link_id: int,
                            session: AsyncSession,
                            user: User
                            ) -> None:
    """Deletes the link together with its schedules and access logs"""
    link = await get_owned_link(link_id, session, user)
    code = link.code

    await SQLAlchemyRedirectRepository(session).delete_short_link(link_id)
    logger.info(f"Link {code} deleted by user {user.id}")


# Schedules
async def check_schedule_window(session: AsyncSession,
                                shortlink_id: int,
                                start_time: datetime,
                                end_time: datetime,
                                exclude_id: Optional[int] = None
                                ) -> None:
    """Rejects empty windows and overlaps with other active schedules of the link"""
    if start_time >= end_time:
        raise HTTPException(status_code=400, detail="Start time must be before end time.")

    query = select(Schedule).where(
        Schedule.shortlink_id == shortlink_id,
        Schedule.is_active.is_(True),
    )
    if exclude_id is not None:
        query = query.where(Schedule.id != exclude_id)
    result = await session.execute(query)

    for other in result.scalars().all():
        if as_utc(other.start_time) < end_time and start_time < as_utc(other.end_time):
            logger.error(f"Schedule window overlaps schedule {other.id} of link {shortlink_id}")
            raise HTTPException(status_code=400, detail="Schedule overlaps an existing schedule.")


async def get_owned_schedule(link_id: int,
                             schedule_id: int,
                             session: AsyncSession,
                             user: User
                             ) -> Schedule:
    await get_owned_link(link_id, session, user)
    schedule = await session.get(Schedule, schedule_id)

    if not schedule or schedule.shortlink_id != link_id:
        raise HTTPException(status_code=404, detail="Schedule not found.")

    return schedule


async def create_schedule(link_id: int,
                          data: ScheduleCreateRequest,
                          session: AsyncSession,
                          user: User
                          ) -> ScheduleResponse:
    await get_owned_link(link_id, session, user)
    start_time, end_time = as_utc(data.start_time), as_utc(data.end_time)

    if data.is_active:
        await check_schedule_window(session, link_id, start_time, end_time)
    elif start_time >= end_time:
        raise HTTPException(status_code=400, detail="Start time must be before end time.")

    schedule = Schedule(
        shortlink_id=link_id,
        target_url=str(data.target_url),
        start_time=start_time,
        end_time=end_time,
        is_password_protected=data.password is not None,
        password=await run_in_threadpool(hash_password, data.password) if data.password else None,
        is_active=data.is_active,
    )

    session.add(schedule)
    await session.commit()
    await session.refresh(schedule)
    logger.info(f"Schedule {schedule.id} created for link {link_id}")

    return ScheduleResponse.model_validate(schedule)


async def list_schedules(link_id: int,
                         session: AsyncSession,
                         user: User
                         ) -> SchedulesResponse:
    await get_owned_link(link_id, session, user)
    query = select(Schedule).where(Schedule.shortlink_id == link_id).order_by(Schedule.start_time, Schedule.id)
    result = await session.execute(query)

    return SchedulesResponse(schedules=[ScheduleResponse.model_validate(s) for s in result.scalars().all()])


async def update_schedule(link_id: int,
                          schedule_id: int,
                          data: ScheduleUpdateRequest,
                          session: AsyncSession,
                          user: User
                          ) -> ScheduleResponse:
    schedule = await get_owned_schedule(link_id, schedule_id, session, user)

    start_time = as_utc(data.start_time) if data.start_time else as_utc(schedule.start_time)
    end_time = as_utc(data.end_time) if data.end_time else as_utc(schedule.end_time)
    is_active = data.is_active if data.is_active is not None else schedule.is_active

    if is_active:
        await check_schedule_window(session, link_id, start_time, end_time, exclude_id=schedule_id)
    elif start_time >= end_time:
        raise HTTPException(status_code=400, detail="Start time must be before end time.")

    schedule.start_time = start_time
    schedule.end_time = end_time
    schedule.is_active = is_active
    if data.target_url is not None:
        schedule.target_url = str(data.target_url)

    if data.password is not None:
        schedule.password = await run_in_threadpool(hash_password, data.password)
        schedule.is_password_protected = True
    if data.is_password_protected is not None:
        if data.is_password_protected and not schedule.password:
            raise HTTPException(status_code=400, detail="Password protection requires a password.")
        schedule.is_password_protected = data.is_password_protected
        if not data.is_password_protected:
            schedule.password = None

    await session.commit()
    await session.refresh(schedule)
    logger.info(f"Schedule {schedule_id} of link {link_id} updated")

    return ScheduleResponse.model_validate(schedule)


async def delete_schedule(link_id: int,
                          schedule_id: int,
                          session: AsyncSession,
                          user: User
                          ) -> None:
    schedule = await get_owned_schedule(link_id, schedule_id, session, user)

    await session.delete(schedule)
    await session.commit()
    logger.info(f"Schedule {schedule_id} of link {link_id} deleted")
