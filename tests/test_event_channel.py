"""Tests for lifecycle event fan-out."""

import pytest

from agentflow.domain.streaming import (
    AgentCompleteEvent,
    AgentStartEvent,
    EventChannel,
    EventType,
)
from agentflow.infrastructure.observability.error_reporter import ErrorReporter


@pytest.fixture
def reporter():
    return ErrorReporter()


@pytest.fixture
def channel(reporter):
    return EventChannel(error_reporter=reporter)


def start_event():
    return AgentStartEvent(execution_id="exec_1", agent_type="planner", request={"description": "x"})


class TestEventChannel:

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self, channel):
        received = []

        def on_sync(event):
            received.append(("sync", event.execution_id))

        async def on_async(event):
            received.append(("async", event.execution_id))

        channel.add_event_listener(EventType.AGENT_START, on_sync)
        channel.add_event_listener("agent_start", on_async)

        await channel.emit(start_event())

        assert received == [("sync", "exec_1"), ("async", "exec_1")]
        assert channel.listener_count("agent_start") == 2

    @pytest.mark.asyncio
    async def test_only_matching_type_delivered(self, channel):
        received = []
        channel.add_event_listener(EventType.AGENT_COMPLETE, received.append)

        await channel.emit(start_event())
        await channel.emit(AgentCompleteEvent(execution_id="exec_1", agent_type="planner"))

        assert [event.type for event in received] == [EventType.AGENT_COMPLETE]

    @pytest.mark.asyncio
    async def test_failing_handler_isolated(self, channel, reporter):
        received = []

        def broken(event):
            raise RuntimeError("listener exploded")

        channel.add_event_listener(EventType.AGENT_START, broken)
        channel.add_event_listener(EventType.AGENT_START, received.append)

        await channel.emit(start_event())

        assert len(received) == 1
        stats = reporter.get_error_stats()
        assert stats["total_errors"] == 1
        assert stats["by_operation"] == {"emit": 1}
        assert reporter.recent_errors()[0]["component"] == "EventChannel"

    @pytest.mark.asyncio
    async def test_remove_listener(self, channel):
        received = []
        channel.add_event_listener(EventType.AGENT_START, received.append)

        assert channel.remove_event_listener(EventType.AGENT_START, received.append) is True
        assert channel.remove_event_listener(EventType.AGENT_START, received.append) is False

        await channel.emit(start_event())
        assert received == []

    def test_unknown_event_type(self, channel):
        with pytest.raises(ValueError):
            channel.add_event_listener("agent_exploded", print)

    def test_clear(self, channel):
        channel.add_event_listener(EventType.AGENT_ERROR, print)
        channel.clear()
        assert channel.listener_count(EventType.AGENT_ERROR) == 0
