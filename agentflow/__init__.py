from agentflow.domain.context import ContextAssembler
from agentflow.domain.context.memory import (
    CacheMemoryStore,
    InMemoryMemorySource,
    MemorySource,
    WorkingMemory,
)
from agentflow.domain.context.state import StateManager
from agentflow.domain.errors import (
    AgentFlowError,
    ExecutionCancelledError,
    InternalError,
    SchemaError,
    TransientError,
    ValidationError,
)
from agentflow.domain.llm import CompletionRequest, CompletionResponse, ModelGateway
from agentflow.domain.models import (
    AgentDefinition,
    AssembledContext,
    ContextRequest,
    ExecutionOptions,
    ExecutionResult,
    MemoryFilter,
    MemoryItem,
    WorkflowResult,
    WorkflowStep,
)
from agentflow.domain.orchestration import ResponseProcessor, WorkflowOrchestrator
from agentflow.domain.streaming import EventType
from agentflow.infrastructure.config import EngineSettings
from agentflow.infrastructure.llm import LangChainModelGateway
from agentflow.infrastructure.observability import setup_logging

__version__ = "0.1.0"

__all__ = [
    "AgentDefinition",
    "AgentFlowError",
    "AssembledContext",
    "CacheMemoryStore",
    "CompletionRequest",
    "CompletionResponse",
    "ContextAssembler",
    "ContextRequest",
    "EngineSettings",
    "EventType",
    "ExecutionCancelledError",
    "ExecutionOptions",
    "ExecutionResult",
    "InMemoryMemorySource",
    "InternalError",
    "LangChainModelGateway",
    "MemoryFilter",
    "MemoryItem",
    "MemorySource",
    "ModelGateway",
    "ResponseProcessor",
    "SchemaError",
    "StateManager",
    "TransientError",
    "ValidationError",
    "WorkflowOrchestrator",
    "WorkflowResult",
    "WorkflowStep",
    "WorkingMemory",
    "setup_logging",
]
