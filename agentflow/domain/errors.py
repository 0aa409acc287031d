from typing import Any, Dict, Optional
import asyncio


class AgentFlowError(Exception):
    """Base class for all engine errors"""

    kind = "internal"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AgentFlowError):
    """Malformed agent definition, request or workflow. Never retried."""

    kind = "validation"


class TransientError(AgentFlowError):
    """Timeout, rate limit or server-side failure. Retried with backoff."""

    kind = "transient"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.status_code = status_code


class SchemaError(AgentFlowError):
    """Generated result failed the response schema check"""

    kind = "schema"


class InternalError(AgentFlowError):
    """Unexpected fault inside the engine itself"""

    kind = "internal"


class ExecutionCancelledError(AgentFlowError):
    """Raised inside an attempt once its execution has been cancelled"""

    kind = "cancelled"


def is_retryable_error(error: BaseException) -> bool:
    """Whether an error should trigger another attempt"""

    if isinstance(error, TransientError):
        return True
    if isinstance(error, AgentFlowError):
        return False

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return True

    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if isinstance(status, int) and (status >= 500 or status == 429):
        return True

    message = str(error).lower()
    if "rate limit" in message or "rate_limit" in message:
        return True

    return False


def error_kind(error: BaseException) -> str:
    """Short tag for an error, used in structured results"""

    if isinstance(error, AgentFlowError):
        return error.kind
    if is_retryable_error(error):
        return TransientError.kind
    return InternalError.kind
