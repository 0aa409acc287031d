from typing import Any, Deque, Dict, List, Optional
from collections import deque
from datetime import datetime, timezone
import structlog

from agentflow.domain.errors import (
    AgentFlowError,
    SchemaError,
    ValidationError,
    is_retryable_error,
)

logger = structlog.get_logger(__name__)


class ErrorReporter:
    """Classifies, logs and counts errors raised anywhere in the engine.

    Reporting is fire-and-observe: a failure while reporting is logged and
    dropped so the caller's own error path is never disturbed.
    """

    def __init__(self, history_size: int = 100):
        self.history: Deque[Dict[str, Any]] = deque(maxlen=history_size)
        self.stats: Dict[str, Any] = {
            "total_errors": 0,
            "by_category": {},
            "by_operation": {},
        }

    def classify(self, error: BaseException) -> Dict[str, Any]:
        """Classify an error into category, severity and recoverability"""

        message = str(error).lower()
        name = type(error).__name__.lower()

        if isinstance(error, (ValidationError, SchemaError)) or "validation" in name:
            return {"category": "validation", "severity": "low", "recoverable": False}

        if is_retryable_error(error):
            if "timeout" in name or "timeout" in message:
                return {"category": "network", "severity": "medium", "recoverable": True}
            return {"category": "external", "severity": "medium", "recoverable": True}

        if any(word in message for word in ("connection", "network", "fetch")):
            return {"category": "network", "severity": "medium", "recoverable": True}

        if isinstance(error, (AttributeError, TypeError, KeyError, LookupError)):
            return {"category": "system", "severity": "high", "recoverable": False}

        if isinstance(error, AgentFlowError):
            return {"category": "system", "severity": "medium", "recoverable": False}

        return {"category": "user", "severity": "low", "recoverable": False}

    def report(
        self,
        error: BaseException,
        operation: str,
        component: str,
        **metadata: Any
    ) -> Optional[Dict[str, Any]]:
        """Record an error; returns the stored entry or None if reporting failed"""

        try:
            classification = self.classify(error)
            entry = {
                "error": str(error),
                "error_type": type(error).__name__,
                "operation": operation,
                "component": component,
                "classification": classification,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "metadata": metadata,
            }

            log = logger.warning if classification["severity"] == "low" else logger.error
            log(
                f"{classification['category']} error in {operation}",
                component=component,
                error=str(error),
                error_type=type(error).__name__,
                **metadata
            )

            self.stats["total_errors"] += 1
            by_category = self.stats["by_category"]
            by_category[classification["category"]] = by_category.get(classification["category"], 0) + 1
            by_operation = self.stats["by_operation"]
            by_operation[operation] = by_operation.get(operation, 0) + 1

            self.history.append(entry)
            return entry

        except Exception as reporting_error:
            logger.error("Error reporter failure", error=str(reporting_error), operation=operation)
            return None

    def get_error_stats(self) -> Dict[str, Any]:
        """Snapshot of error counters"""

        return {
            "total_errors": self.stats["total_errors"],
            "by_category": dict(self.stats["by_category"]),
            "by_operation": dict(self.stats["by_operation"]),
            "recent": len(self.history),
        }

    def recent_errors(self, limit: int = 10) -> List[Dict[str, Any]]:
        return list(self.history)[-limit:]
