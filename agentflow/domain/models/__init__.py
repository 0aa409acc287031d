from .context import (
    AssembledContext,
    ContextRequest,
    ContextSummary,
    MemoryFilter,
    MemoryItem,
    MemoryMetadata,
    PriorityRange,
    RelevanceScore,
    ScoredItem,
    SourceBreakdown,
    SourceKind,
    TimeRange,
)
from .agent_state import (
    AgentDefinition,
    AgentStatus,
    ExecutionContext,
    ExecutionOptions,
    ExecutionResult,
    ExecutionState,
    ExecutionStats,
    WorkflowContext,
    WorkflowResult,
    WorkflowState,
    WorkflowStep,
)
