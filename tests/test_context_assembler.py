"""Tests for context assembly."""

import pytest

from agentflow.domain.context.context_assembler import ContextAssembler
from agentflow.domain.context.context_optimizer import items_payload_size
from agentflow.domain.context.memory.in_memory_store import InMemoryMemorySource
from agentflow.domain.errors import ValidationError
from agentflow.domain.models.context import ContextRequest, SourceKind
from tests.helpers import CountingSource, FailingSource


@pytest.fixture
def working(clock):
    return CountingSource(memory_type="working", clock=clock)


@pytest.fixture
def notes(clock):
    return CountingSource(memory_type="notes", clock=clock)


@pytest.fixture
def assembler(clock, working, notes):
    assembler = ContextAssembler(clock=clock)
    assembler.register_source("working", working)
    assembler.register_source("notes", notes)
    return assembler


class TestAssembly:
    """Ranking, merging and summaries."""

    @pytest.mark.asyncio
    async def test_higher_weight_source_first(self, assembler, working, notes):
        await notes.store("note", "deploy checklist")
        await working.store("current", "deploy checklist")

        context = await assembler.assemble_context({"type": "task", "keywords": ["deploy"]})

        assert [item.source for item in context.items] == ["working", "notes"]
        assert context.items[0].source_kind == SourceKind.WORKING
        assert context.items[1].source_kind == SourceKind.GENERIC
        assert context.summary.item_count == 2
        assert context.summary.source_breakdown == {"working": 1, "notes": 1}
        assert context.summary.top_relevance_scores[0].key == "current"
        assert context.metadata.error is False

    @pytest.mark.asyncio
    async def test_ties_keep_registration_order(self, clock):
        first = InMemoryMemorySource(clock=clock)
        second = InMemoryMemorySource(clock=clock)
        tied = ContextAssembler(clock=clock)
        tied.register_source("alpha", first, kind="generic")
        tied.register_source("beta", second, kind="generic")
        await second.store("b", "same")
        await first.store("a", "same")

        context = await tied.assemble_context(ContextRequest(type="task"))

        assert [item.key for item in context.items] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_empty_sources(self, assembler):
        context = await assembler.assemble_context({"type": "task"})

        assert context.items == []
        assert context.metadata.final_size == 0
        assert context.summary.average_relevance == 0.0
        assert context.summary.error is None

    @pytest.mark.asyncio
    async def test_source_failure_isolated(self, clock, notes):
        assembler = ContextAssembler(clock=clock)
        assembler.register_source("broken", FailingSource(clock=clock))
        assembler.register_source("notes", notes)
        await notes.store("note", "still here")

        context = await assembler.assemble_context({"type": "task"})

        assert [item.key for item in context.items] == ["note"]
        assert context.sources["broken"].item_count == 0
        assert "unavailable" in context.sources["broken"].error
        assert context.summary.error is None


class TestBudget:
    """Byte budget and compression."""

    @pytest.mark.asyncio
    async def test_budget_never_exceeded(self, assembler, notes):
        for i in range(20):
            await notes.store(f"note{i}", {"description": "x" * 300, "index": i})

        context = await assembler.assemble_context({"type": "task", "maxSize": 2000})

        assert 0 < len(context.items) < 20
        assert items_payload_size(context.items) <= 2000
        assert context.metadata.final_size == items_payload_size(context.items)
        assert context.metadata.original_item_count == 20
        assert context.summary.item_count == 20

    @pytest.mark.asyncio
    async def test_oversized_items_compressed(self, assembler, notes):
        await notes.store("big", {"description": "short", "payload": "y" * 5000})

        context = await assembler.assemble_context({"type": "task", "maxSize": 1500})

        assert len(context.items) == 1
        item = context.items[0]
        assert item.compressed is True
        assert item.data == {"description": "short"}
        assert context.metadata.compressed_item_count == 1

    @pytest.mark.asyncio
    async def test_all_oversized_yields_empty(self, assembler, notes):
        for i in range(3):
            await notes.store(f"big{i}", "z" * 1000)

        context = await assembler.assemble_context({"type": "task", "maxSize": 50})

        assert context.items == []
        assert context.metadata.final_size == 0
        assert context.summary.item_count == 3
        assert context.metadata.error is False

    @pytest.mark.asyncio
    async def test_budget_alias_spellings(self, assembler, notes):
        for i in range(20):
            await notes.store(f"note{i}", {"description": "x" * 300, "index": i})

        long_form = await assembler.assemble_context({"type": "task", "maxSizeBytes": 2000})
        await assembler.clear_cache()
        short_form = await assembler.assemble_context({"type": "task", "maxSize": 2000})

        assert 0 < len(long_form.items) < 20
        assert items_payload_size(long_form.items) <= 2000
        assert [item.key for item in long_form.items] == [item.key for item in short_form.items]


class TestCaching:
    """Results are cached by request fingerprint."""

    @pytest.mark.asyncio
    async def test_repeat_request_served_from_cache(self, assembler, notes):
        await notes.store("note", "data")
        request = {"type": "task", "keywords": ["b", "a"]}

        first = await assembler.assemble_context(request)
        queries = notes.query_count
        second = await assembler.assemble_context({"type": "task", "keywords": ["a", "b"]})

        assert notes.query_count == queries
        assert second.model_dump() == first.model_dump()
        assert assembler.get_metrics()["cache_hits"] == 1

    @pytest.mark.asyncio
    async def test_cached_copy_isolated(self, assembler, notes):
        await notes.store("note", {"value": 1})

        first = await assembler.assemble_context({"type": "task"})
        first.items[0].data["value"] = 99
        second = await assembler.assemble_context({"type": "task"})

        assert second.items[0].data == {"value": 1}

    @pytest.mark.asyncio
    async def test_cache_expires(self, assembler, notes, clock):
        await notes.store("note", "data")

        await assembler.assemble_context({"type": "task"})
        queries = notes.query_count
        clock.advance(301)
        await assembler.assemble_context({"type": "task"})

        assert notes.query_count > queries

    @pytest.mark.asyncio
    async def test_clear_cache(self, assembler, notes):
        await assembler.assemble_context({"type": "task"})
        queries = notes.query_count

        await assembler.clear_cache()
        await assembler.assemble_context({"type": "task"})

        assert notes.query_count > queries


class TestFailures:
    """Invalid requests degrade to a minimal context."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_value", [
        {"type": ""},
        {"type": "task", "keywords": "deploy"},
        {"type": "task", "maxSize": 0},
        {"target": "planner"},
        "task",
    ])
    async def test_invalid_request(self, assembler, working, request_value):
        context = await assembler.assemble_context(request_value)

        assert context.items == []
        assert context.summary.error == "Failed to assemble context"
        assert context.metadata.error is True
        assert working.query_count == 0
        assert assembler.get_metrics()["failures"] == 1


class TestConfiguration:
    """Source registration and weights."""

    def test_duplicate_source_rejected(self, assembler, clock):
        with pytest.raises(ValidationError):
            assembler.register_source("working", InMemoryMemorySource(clock=clock))

    def test_get_source(self, assembler, working):
        assert assembler.get_source("working") is working
        assert assembler.get_source("missing") is None

    def test_update_weights(self, assembler):
        assembler.update_relevance_weights({"episodic": 0.9})
        assert assembler.get_metrics()["relevance_weights"]["episodic"] == 0.9

    @pytest.mark.parametrize("weights", [{"episodic": 1.5}, {"episodic": -0.1}, {"unknown": 0.5}, {"working": "high"}])
    def test_invalid_weights(self, assembler, weights):
        with pytest.raises(ValidationError):
            assembler.update_relevance_weights(weights)
