from .logging import AgentLogger, MetricsCollector, agent_logger, setup_logging
from .error_reporter import ErrorReporter

__all__ = [
    "AgentLogger",
    "MetricsCollector",
    "agent_logger",
    "setup_logging",
    "ErrorReporter",
]
