from .orchestrator import WorkflowOrchestrator, apply_output_mapping
from .agent_graph import AgentAttemptGraph, AttemptOutcome, AttemptStatus
from .prompt_builder import PromptBuilder, extract_keywords, format_context
from .retry import RetryPolicy
from .scheduler import ExecutionScheduler, QueuedExecution

__all__ = [
    "WorkflowOrchestrator",
    "apply_output_mapping",
    "AgentAttemptGraph",
    "AttemptOutcome",
    "AttemptStatus",
    "PromptBuilder",
    "extract_keywords",
    "format_context",
    "RetryPolicy",
    "ExecutionScheduler",
    "QueuedExecution",
]
