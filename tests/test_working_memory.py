"""Tests for session-scoped working memory and agent state tracking."""

import pytest

from agentflow.domain.context.memory.working_memory import WorkingMemory
from agentflow.domain.context.state.state_manager import StateManager
from agentflow.domain.models.context import MemoryFilter


@pytest.fixture
def memory(clock):
    return WorkingMemory(session_id="s1", clock=clock)


class TestContextValues:

    @pytest.mark.asyncio
    async def test_set_and_get(self, memory):
        await memory.set_context("goal", "ship it")

        assert await memory.get_context("goal") == "ship it"
        assert await memory.get_context("missing") is None
        assert await memory.get_all_context() == {"goal": "ship it"}

    @pytest.mark.asyncio
    async def test_all_context_scoped_to_session(self, memory):
        await memory.set_context("goal", "ship it")
        await memory.switch_session("s2")
        await memory.set_context("owner", "ops")

        assert await memory.get_all_context() == {"owner": "ops"}

    @pytest.mark.asyncio
    async def test_clear_context_keeps_other_items(self, memory):
        await memory.set_context("goal", "ship it")
        await memory.set_task_state({"step": 1})

        await memory.clear_context()

        assert await memory.get_all_context() == {}
        assert await memory.get_task_state() == {"step": 1}

    @pytest.mark.asyncio
    async def test_session_filter(self, memory):
        await memory.set_context("goal", "ship it")
        await memory.switch_session("s2")
        await memory.set_task_state({"step": 2})

        first = await memory.query(MemoryFilter(session_id="s1"))
        second = await memory.snapshot()

        assert [item.key for item in first] == ["context:goal"]
        assert [item.key for item in second] == ["current_task"]


class TestAgentStates:

    @pytest.mark.asyncio
    async def test_state_merged_and_mirrored(self, memory):
        await memory.set_agent_state("planner", {"status": "working"})
        merged = await memory.set_agent_state("planner", {"last_result": "done"})

        assert merged["status"] == "working"
        assert merged["last_result"] == "done"
        assert merged["type"] == "planner"

        items = await memory.query(MemoryFilter(category="agent", tags=["planner"]))
        assert [item.key for item in items] == ["agent_planner"]
        assert items[0].metadata.agent_type == "planner"
        assert items[0].data["last_result"] == "done"

    @pytest.mark.asyncio
    async def test_shared_state_manager(self, clock):
        states = StateManager(clock=clock)
        memory = WorkingMemory(state_manager=states, clock=clock)

        await memory.set_agent_state("coder", {"status": "idle"})

        assert (await states.get_agent_state("coder"))["status"] == "idle"
        assert await memory.get_all_agent_states() == await states.get_all_agent_states()


class TestStateManager:

    @pytest.mark.asyncio
    async def test_returns_copies(self, clock):
        states = StateManager(clock=clock)
        await states.set_agent_state("coder", {"status": "idle"})

        state = await states.get_agent_state("coder")
        state["status"] = "tampered"

        assert (await states.get_agent_state("coder"))["status"] == "idle"

    @pytest.mark.asyncio
    async def test_clear_state(self, clock):
        states = StateManager(clock=clock)
        await states.set_agent_state("coder", {"status": "idle"})

        await states.clear_state("coder")
        await states.clear_state("never-set")

        assert await states.get_agent_state("coder") is None
