"""Tests for the dictionary-backed memory source."""

from datetime import timedelta

import pytest

from agentflow.domain.context.memory.in_memory_store import InMemoryMemorySource
from agentflow.domain.models.context import MemoryFilter, PriorityRange, TimeRange


@pytest.fixture
def store(clock):
    return InMemoryMemorySource(memory_type="semantic", clock=clock)


class TestStoreAndRetrieve:

    @pytest.mark.asyncio
    async def test_store_sets_metadata(self, store, clock):
        item = await store.store("fact", {"text": "x"}, {"category": "docs", "priority": 4})

        assert item.metadata.type == "semantic"
        assert item.metadata.category == "docs"
        assert item.metadata.priority == 4
        assert item.metadata.created_at == clock.now()
        assert store.size() == 1

    @pytest.mark.asyncio
    async def test_retrieve_tracks_access(self, store, clock):
        await store.store("fact", "x")
        clock.advance(10)

        item = await store.retrieve("fact")
        again = await store.retrieve("fact")

        assert item.metadata.access_count == 1
        assert again.metadata.access_count == 2
        assert again.metadata.accessed_at == clock.now()

    @pytest.mark.asyncio
    async def test_retrieve_missing(self, store):
        assert await store.retrieve("nope") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["", None, 5])
    async def test_invalid_key(self, store, key):
        with pytest.raises(ValueError):
            await store.store(key, "x")

    @pytest.mark.asyncio
    async def test_update_merges_metadata(self, store, clock):
        await store.store("fact", "old", {"category": "docs", "tags": ["a"]})
        clock.advance(5)

        updated = await store.update("fact", "new", {"priority": 7})

        assert updated.data == "new"
        assert updated.metadata.category == "docs"
        assert updated.metadata.priority == 7
        assert updated.metadata.modified_at == clock.now()
        assert await store.update("missing", "x") is None

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, store):
        await store.store("a", 1)
        await store.store("b", 2)

        assert await store.delete("a") is True
        assert await store.delete("a") is False

        await store.clear()
        assert store.size() == 0


class TestQuery:

    @pytest.mark.asyncio
    async def test_tags_match_any(self, store):
        await store.store("a", 1, {"tags": ["red"]})
        await store.store("b", 2, {"tags": ["blue", "green"]})
        await store.store("c", 3, {"tags": ["yellow"]})

        items = await store.query(MemoryFilter(tags=["green", "red"]))

        assert sorted(item.key for item in items) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_category_and_priority_range(self, store):
        await store.store("low", 1, {"category": "docs", "priority": 2})
        await store.store("high", 2, {"category": "docs", "priority": 8})
        await store.store("other", 3, {"category": "code", "priority": 8})

        items = await store.query(MemoryFilter(category="docs", priority_range=PriorityRange(min=5)))

        assert [item.key for item in items] == ["high"]

    @pytest.mark.asyncio
    async def test_date_range(self, store, clock):
        start = clock.now()
        await store.store("old", 1)
        clock.advance(3600)
        await store.store("new", 2)

        recent = await store.query(MemoryFilter(date_range=TimeRange(start=start + timedelta(minutes=30))))
        early = await store.query(MemoryFilter(date_range=TimeRange(end=start)))

        assert [item.key for item in recent] == ["new"]
        assert [item.key for item in early] == ["old"]

    @pytest.mark.asyncio
    async def test_sort_and_paginate(self, store, clock):
        for key in ("a", "b", "c", "d"):
            await store.store(key, key)
            clock.advance(1)

        newest = await store.query(MemoryFilter(limit=2))
        oldest = await store.query(MemoryFilter(sort_order="asc", offset=1, limit=2))

        assert [item.key for item in newest] == ["d", "c"]
        assert [item.key for item in oldest] == ["b", "c"]

    @pytest.mark.asyncio
    async def test_sort_by_priority(self, store):
        await store.store("a", 1, {"priority": 3})
        await store.store("b", 2, {"priority": 9})
        await store.store("c", 3, {"priority": 1})

        items = await store.query(MemoryFilter(sort_by="priority"))

        assert [item.key for item in items] == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_results_are_copies(self, store):
        await store.store("a", {"value": 1})

        items = await store.query(MemoryFilter())
        items[0].data["value"] = 2

        assert (await store.retrieve("a")).data == {"value": 1}


class TestEviction:

    @pytest.mark.asyncio
    async def test_least_recently_accessed_evicted(self, clock):
        store = InMemoryMemorySource(max_items=2, clock=clock)
        await store.store("a", 1)
        clock.advance(1)
        await store.store("b", 2)
        clock.advance(1)
        await store.retrieve("a")
        clock.advance(1)

        await store.store("c", 3)

        assert store.size() == 2
        assert await store.retrieve("b") is None
        assert await store.retrieve("a") is not None

    @pytest.mark.asyncio
    async def test_overwrite_does_not_evict(self, clock):
        store = InMemoryMemorySource(max_items=2, clock=clock)
        await store.store("a", 1)
        await store.store("b", 2)

        await store.store("a", 3)

        assert store.size() == 2
        assert (await store.retrieve("b")).data == 2
