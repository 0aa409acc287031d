"""Tests for the TTL cache."""

import pytest

from agentflow.domain.context.memory.cache_memory_store import CacheMemoryStore


@pytest.fixture
def cache(clock):
    return CacheMemoryStore(default_ttl=60, clock=clock)


class TestCacheMemoryStore:

    @pytest.mark.asyncio
    async def test_get_before_and_after_expiry(self, cache, clock):
        await cache.set("k", "v")

        assert await cache.get("k") == "v"
        clock.advance(60)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_custom_ttl(self, cache, clock):
        await cache.set("short", 1, ttl=5)
        await cache.set("long", 2)
        clock.advance(10)

        assert await cache.get("short") is None
        assert await cache.get("long") == 2

    @pytest.mark.asyncio
    async def test_stats(self, cache):
        await cache.set("k", "v")
        await cache.get("k")
        await cache.get("missing")

        stats = await cache.get_stats()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["active_keys"] == 1

    @pytest.mark.asyncio
    async def test_empty_stats(self, cache):
        assert (await cache.get_stats())["hit_rate"] == 0.0

    @pytest.mark.asyncio
    async def test_clear_expired(self, cache, clock):
        await cache.set("a", 1, ttl=5)
        await cache.set("b", 2, ttl=5)
        await cache.set("c", 3)
        clock.advance(10)

        assert (await cache.get_stats())["expired_keys"] == 2
        assert await cache.clear_expired() == 2
        assert (await cache.get_stats())["total_keys"] == 1

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, cache):
        await cache.set("a", 1)
        await cache.set("b", 2)

        assert await cache.delete("a") is True
        assert await cache.delete("a") is False

        await cache.clear()
        assert await cache.get("b") is None

    @pytest.mark.asyncio
    async def test_least_recently_used_evicted(self, clock):
        cache = CacheMemoryStore(max_entries=2, clock=clock)
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.get("a")

        await cache.set("c", 3)

        assert await cache.get("b") is None
        assert await cache.get("a") == 1
        assert await cache.get("c") == 3
        assert (await cache.get_stats())["evictions"] == 1
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_invalidate_prefix(self, cache):
        await cache.set("context:a", 1)
        await cache.set("context:b", 2)
        await cache.set("prompt:a", 3)

        assert await cache.invalidate("context:") == 2
        assert await cache.get("prompt:a") == 3
