"""
Tests for the TTL result cache.
"""

import asyncio

from cache import TTLCache, get_cached_or_compute


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestTTLCache:
    """Test expiry, eviction and key normalization."""

    def test_fresh_entry_is_returned(self):
        cache = TTLCache(max_size=10, default_ttl=60, clock=FakeClock())

        async def run():
            await cache.set("example.com", {"score": 42})
            return await cache.get("example.com")

        assert asyncio.run(run()) == {"score": 42}

    def test_stale_entry_is_dropped(self):
        clock = FakeClock()
        cache = TTLCache(max_size=10, default_ttl=60, clock=clock)

        async def run():
            await cache.set("example.com", "value")
            clock.now += 61
            return await cache.get("example.com")

        assert asyncio.run(run()) is None
        assert len(cache) == 0

    def test_per_entry_ttl(self):
        clock = FakeClock()
        cache = TTLCache(max_size=10, default_ttl=60, clock=clock)

        async def run():
            await cache.set("short.com", "a", ttl=5)
            await cache.set("long.com", "b")
            clock.now += 10
            return await cache.get("short.com"), await cache.get("long.com")

        assert asyncio.run(run()) == (None, "b")

    def test_keys_are_normalized(self):
        cache = TTLCache(max_size=10, default_ttl=60)

        async def run():
            await cache.set("  Example.COM ", "value")
            return await cache.get("example.com")

        assert asyncio.run(run()) == "value"

    def test_least_recently_used_entry_is_evicted(self):
        cache = TTLCache(max_size=2, default_ttl=60)

        async def run():
            await cache.set("a.com", 1)
            await cache.set("b.com", 2)
            await cache.get("a.com")
            await cache.set("c.com", 3)
            return await cache.get("a.com"), await cache.get("b.com"), await cache.get("c.com")

        assert asyncio.run(run()) == (1, None, 3)

    def test_cleanup_expired(self):
        clock = FakeClock()
        cache = TTLCache(max_size=10, default_ttl=60, clock=clock)

        async def run():
            await cache.set("old.com", 1, ttl=1)
            await cache.set("new.com", 2)
            clock.now += 5
            return await cache.cleanup_expired()

        assert asyncio.run(run()) == 1
        assert len(cache) == 1

    def test_stats(self):
        cache = TTLCache(max_size=10, default_ttl=60)

        async def run():
            await cache.set("a.com", 1)
            await cache.get("a.com")
            await cache.get("missing.com")

        asyncio.run(run())

        assert cache.stats["hits"] == 1
        assert cache.stats["misses"] == 1
        assert cache.stats["hit_rate"] == 50.0
        assert cache.stats["ttl"] == 60

    def test_delete_and_clear(self):
        cache = TTLCache(max_size=10, default_ttl=60)

        async def run():
            await cache.set("a.com", 1)
            await cache.set("b.com", 2)
            deleted = await cache.delete("A.com")
            missing = await cache.delete("a.com")
            await cache.clear()
            return deleted, missing

        assert asyncio.run(run()) == (True, False)
        assert len(cache) == 0


class TestGetCachedOrCompute:
    """Test the compute-once helper."""

    def test_computes_once(self):
        cache = TTLCache(max_size=10, default_ttl=60)
        calls = []

        async def compute():
            calls.append(1)
            return "computed"

        async def run():
            first = await get_cached_or_compute(cache, "example.com", compute)
            second = await get_cached_or_compute(cache, "example.com", compute)
            return first, second

        assert asyncio.run(run()) == ("computed", "computed")
        assert len(calls) == 1
