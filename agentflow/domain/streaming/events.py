from typing import Dict, Any, Optional, Literal, Union
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventType(str, Enum):
    """Lifecycle events emitted by the orchestrator"""
    AGENT_START = "agent_start"
    AGENT_COMPLETE = "agent_complete"
    AGENT_ERROR = "agent_error"
    AGENT_CANCELLED = "agent_cancelled"


class BaseEvent(BaseModel):
    """Base event model for all lifecycle notifications"""
    type: EventType
    timestamp: datetime = Field(default_factory=_utcnow)
    execution_id: str
    agent_type: str


class AgentStartEvent(BaseEvent):
    """An execution was admitted and is about to run"""
    type: Literal[EventType.AGENT_START] = EventType.AGENT_START
    request: Dict[str, Any] = Field(default_factory=dict)


class AgentCompleteEvent(BaseEvent):
    """An execution finished successfully"""
    type: Literal[EventType.AGENT_COMPLETE] = EventType.AGENT_COMPLETE
    result: Optional[Dict[str, Any]] = None
    execution_time: float = 0.0


class AgentErrorEvent(BaseEvent):
    """An execution failed after exhausting its attempts"""
    type: Literal[EventType.AGENT_ERROR] = EventType.AGENT_ERROR
    error: str
    error_kind: Optional[str] = None
    execution_time: float = 0.0
    retry_count: int = 0


class AgentCancelledEvent(BaseEvent):
    """An execution was cancelled by the caller"""
    type: Literal[EventType.AGENT_CANCELLED] = EventType.AGENT_CANCELLED


AgentEvent = Union[AgentStartEvent, AgentCompleteEvent, AgentErrorEvent, AgentCancelledEvent]
