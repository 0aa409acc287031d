from .events import (
    AgentCancelledEvent,
    AgentCompleteEvent,
    AgentErrorEvent,
    AgentEvent,
    AgentStartEvent,
    BaseEvent,
    EventType,
)
from .event_channel import EventChannel, EventHandler

__all__ = [
    "AgentCancelledEvent",
    "AgentCompleteEvent",
    "AgentErrorEvent",
    "AgentEvent",
    "AgentStartEvent",
    "BaseEvent",
    "EventChannel",
    "EventHandler",
    "EventType",
]
