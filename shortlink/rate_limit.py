"""Fixed-window rate limiting for repeated redirect password failures."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

from redis import asyncio as aioredis

from shortlink.utils import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: Optional[datetime]


class RateLimiter(Protocol):
    async def hit(self, key: str) -> RateLimitResult:
        ...

    async def is_limited(self, key: str) -> bool:
        ...

    def tick(self) -> int:
        ...


@dataclass
class _Window:
    count: int
    reset_at: datetime


class InMemoryRateLimiter:
    """Per-process limiter owned by the application.

    Holds at most `max_keys` windows; the least recently used key is evicted
    first. `tick` drops windows that have already reset.
    """

    def __init__(self,
                 limit: int,
                 window_seconds: int,
                 max_keys: int = 10000,
                 clock: Clock = utc_now):
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)
        self.max_keys = max_keys
        self.clock = clock
        self._windows: OrderedDict[str, _Window] = OrderedDict()

    def __len__(self) -> int:
        return len(self._windows)

    async def hit(self, key: str) -> RateLimitResult:
        now = self.clock()
        window = self._windows.get(key)
        if window is None or now >= window.reset_at:
            window = _Window(count=0, reset_at=now + self.window)
            self._windows[key] = window
        window.count += 1
        self._windows.move_to_end(key)

        while len(self._windows) > self.max_keys:
            evicted, _ = self._windows.popitem(last=False)
            logger.debug(f"Rate limit: evicted window {evicted}")

        return RateLimitResult(
            allowed=window.count <= self.limit,
            remaining=max(self.limit - window.count, 0),
            reset_at=window.reset_at,
        )

    async def is_limited(self, key: str) -> bool:
        window = self._windows.get(key)
        if window is None or self.clock() >= window.reset_at:
            return False
        return window.count >= self.limit

    def tick(self) -> int:
        now = self.clock()
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.info(f"Rate limit: swept {len(expired)} expired windows")
        return len(expired)


class RedisRateLimiter:
    """Limiter shared between workers through redis INCR/EXPIRE counters."""

    def __init__(self,
                 redis: aioredis.Redis,
                 limit: int,
                 window_seconds: int,
                 prefix: str = "ratelimit"):
        self.redis = redis
        self.limit = limit
        self.window_seconds = window_seconds
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def hit(self, key: str) -> RateLimitResult:
        redis_key = self._key(key)
        pipeline = self.redis.pipeline()
        pipeline.incr(redis_key)
        # only the first hit of a window sets the expiry
        pipeline.expire(redis_key, self.window_seconds, nx=True)
        pipeline.ttl(redis_key)
        count, _, ttl = await pipeline.execute()
        if ttl is None or ttl < 0:
            ttl = self.window_seconds
        count = int(count)
        return RateLimitResult(
            allowed=count <= self.limit,
            remaining=max(self.limit - count, 0),
            reset_at=utc_now() + timedelta(seconds=int(ttl)),
        )

    async def is_limited(self, key: str) -> bool:
        count = await self.redis.get(self._key(key))
        return count is not None and int(count) >= self.limit

    def tick(self) -> int:
        # redis expires keys itself
        return 0
