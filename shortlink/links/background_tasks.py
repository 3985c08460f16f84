import asyncio
import logging
from contextlib import asynccontextmanager

from redis import asyncio as aioredis

from shortlink.auth.db import create_db_and_tables
from shortlink.config import (REDIS_URL, RATE_LIMIT_ATTEMPTS, RATE_LIMIT_WINDOW_SECONDS,
                              RATE_LIMIT_MAX_KEYS, RATE_LIMIT_SWEEP_SECONDS)
from shortlink.rate_limit import InMemoryRateLimiter, RateLimiter, RedisRateLimiter
from shortlink.redirect.recorder import AccessRecorder

logger = logging.getLogger(__name__)


def build_rate_limiter(redis_client=None) -> RateLimiter:
    if redis_client is not None:
        logger.info("Rate limiting invalid passwords through redis")
        return RedisRateLimiter(redis_client, RATE_LIMIT_ATTEMPTS, RATE_LIMIT_WINDOW_SECONDS)
    logger.info("Rate limiting invalid passwords in process memory")
    return InMemoryRateLimiter(RATE_LIMIT_ATTEMPTS, RATE_LIMIT_WINDOW_SECONDS, RATE_LIMIT_MAX_KEYS)


async def sweep_rate_limits(limiter: RateLimiter, interval: int = RATE_LIMIT_SWEEP_SECONDS):
    """Drops expired rate limit windows every `interval` seconds"""
    logger.info("Starting rate limit sweep task")
    while True:
        await asyncio.sleep(interval)
        try:
            limiter.tick()
        except Exception:
            logger.exception("Rate limit sweep failed")


@asynccontextmanager
async def lifespan(app):
    """Creates tables, shared components and background tasks"""
    logger.info("Creating database tables")
    await create_db_and_tables()

    redis_client = aioredis.from_url(REDIS_URL, decode_responses=True) if REDIS_URL else None
    app.state.rate_limiter = build_rate_limiter(redis_client)
    app.state.recorder = AccessRecorder()

    logger.info("Starting background tasks")
    sweep_task = asyncio.create_task(sweep_rate_limits(app.state.rate_limiter))
    yield
    logger.info("Stopping background tasks")
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        logger.info("Sweep task cancelled successfully")

    await app.state.recorder.drain()
    if redis_client is not None:
        await redis_client.aclose()
