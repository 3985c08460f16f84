import asyncio
from datetime import timedelta

from conftest import NOW
from shortlink.rate_limit import InMemoryRateLimiter, RedisRateLimiter


class ManualClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def test_limit_is_reached_after_configured_failures():
    limiter = InMemoryRateLimiter(limit=3, window_seconds=60, clock=ManualClock())

    async def run():
        results = [await limiter.hit("redirect:abc:1.2.3.4") for _ in range(4)]
        return results, await limiter.is_limited("redirect:abc:1.2.3.4")

    results, limited = asyncio.run(run())

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert limited


def test_window_resets_after_expiry():
    clock = ManualClock()
    limiter = InMemoryRateLimiter(limit=1, window_seconds=60, clock=clock)

    asyncio.run(limiter.hit("k"))
    assert asyncio.run(limiter.is_limited("k"))

    clock.advance(60)
    assert not asyncio.run(limiter.is_limited("k"))
    assert asyncio.run(limiter.hit("k")).allowed


def test_keys_are_independent():
    limiter = InMemoryRateLimiter(limit=1, window_seconds=60, clock=ManualClock())

    asyncio.run(limiter.hit("a"))

    assert asyncio.run(limiter.is_limited("a"))
    assert not asyncio.run(limiter.is_limited("b"))


def test_least_recently_used_key_is_evicted_when_full():
    limiter = InMemoryRateLimiter(limit=5, window_seconds=60, max_keys=2, clock=ManualClock())

    async def run():
        await limiter.hit("a")
        await limiter.hit("b")
        await limiter.hit("a")
        await limiter.hit("c")

    asyncio.run(run())

    assert len(limiter) == 2
    assert "b" not in limiter._windows
    assert set(limiter._windows) == {"a", "c"}


def test_tick_sweeps_only_expired_windows():
    clock = ManualClock()
    limiter = InMemoryRateLimiter(limit=5, window_seconds=60, clock=clock)

    asyncio.run(limiter.hit("old"))
    clock.advance(30)
    asyncio.run(limiter.hit("new"))
    clock.advance(31)

    assert limiter.tick() == 1
    assert set(limiter._windows) == {"new"}
    assert limiter.tick() == 0


class FakePipeline:
    def __init__(self, store):
        self.store = store
        self.commands = []

    def incr(self, key):
        self.commands.append(("incr", key, None))

    def expire(self, key, seconds, nx=False):
        self.commands.append(("expire", key, (seconds, nx)))

    def ttl(self, key):
        self.commands.append(("ttl", key, None))

    async def execute(self):
        self.store.executed.append([command for command, _, _ in self.commands])
        results = []
        for command, key, args in self.commands:
            if command == "incr":
                self.store.counts[key] = self.store.counts.get(key, 0) + 1
                results.append(self.store.counts[key])
            elif command == "expire":
                seconds, nx = args
                if nx and key in self.store.ttls:
                    results.append(False)
                else:
                    self.store.ttls[key] = seconds
                    results.append(True)
            else:
                results.append(self.store.ttls.get(key, -1))
        return results


class FakeRedis:
    def __init__(self):
        self.counts = {}
        self.ttls = {}
        self.executed = []

    def pipeline(self):
        return FakePipeline(self)

    async def get(self, key):
        value = self.counts.get(key)
        return None if value is None else str(value)


def test_redis_limiter_counts_with_expiring_keys():
    redis = FakeRedis()
    limiter = RedisRateLimiter(redis, limit=2, window_seconds=90)

    async def run():
        first = await limiter.hit("redirect:abc:1.2.3.4")
        limited_after_one = await limiter.is_limited("redirect:abc:1.2.3.4")
        redis.ttls["ratelimit:redirect:abc:1.2.3.4"] = 45
        second = await limiter.hit("redirect:abc:1.2.3.4")
        third = await limiter.hit("redirect:abc:1.2.3.4")
        return first, limited_after_one, second, third, await limiter.is_limited("redirect:abc:1.2.3.4")

    first, limited_after_one, second, third, limited = asyncio.run(run())

    # later hits keep the expiry set by the first one
    assert redis.ttls == {"ratelimit:redirect:abc:1.2.3.4": 45}
    assert first.allowed and second.allowed and not third.allowed
    assert not limited_after_one
    assert limited
    assert limiter.tick() == 0


def test_redis_limiter_sets_expiry_in_the_same_pipeline_as_the_count():
    redis = FakeRedis()
    limiter = RedisRateLimiter(redis, limit=2, window_seconds=90)

    asyncio.run(limiter.hit("k"))

    assert redis.executed == [["incr", "expire", "ttl"]]
    assert redis.ttls == {"ratelimit:k": 90}
