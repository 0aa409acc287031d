from .core import WorkflowOrchestrator
from .subagent import ResponseProcessor

__all__ = ["WorkflowOrchestrator", "ResponseProcessor"]
