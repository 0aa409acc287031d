import structlog
import logging
import sys
from typing import Any, Deque, Dict, Optional
from collections import deque
from datetime import datetime, timezone
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "agentflow"
) -> None:
    """Setup structured logging configuration"""

    # Configure Python logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_execution_context,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
        version=os.getenv("SERVICE_VERSION", "unknown")
    )


def add_execution_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach execution and workflow ids bound in the current task"""

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

    bound = structlog.contextvars.get_contextvars()
    for key in ("execution_id", "workflow_id"):
        if bound.get(key) and key not in event_dict:
            event_dict[key] = bound[key]

    return event_dict


class AgentLogger:
    """Specialized logger for agent operations"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_agent_event(
        self,
        event_type: str,
        agent_type: str,
        execution_id: str,
        data: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """Log agent lifecycle events"""

        self.logger.info(
            "agent_event",
            event_type=event_type,
            agent_type=agent_type,
            execution_id=execution_id,
            data=data or {},
            **kwargs
        )

    def log_workflow_transition(
        self,
        workflow_id: str,
        step_index: int,
        agent_type: str,
        status: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log workflow step transitions"""

        self.logger.info(
            "workflow_transition",
            workflow_id=workflow_id,
            step_index=step_index,
            agent_type=agent_type,
            status=status,
            details=details or {}
        )

    def log_context_update(
        self,
        context_type: str,
        action: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log context assembly and cache updates"""

        self.logger.debug(
            "context_update",
            context_type=context_type,
            action=action,
            details=details or {}
        )


# Global logger instance
agent_logger = AgentLogger("agentflow")


def metric_key(name: str, tags: Optional[Dict[str, str]] = None) -> str:
    """`name{k=v,...}` with tags sorted; plain name when untagged"""

    if not tags:
        return name
    rendered = ",".join(f"{k}={tags[k]}" for k in sorted(tags))
    return f"{name}{{{rendered}}}"


class MetricsCollector:
    """In-process latency, counter and gauge series keyed by name and tags"""

    def __init__(self, sample_size: int = 500):
        self.latencies: Dict[str, Deque[float]] = {}
        self.latency_totals: Dict[str, Dict[str, float]] = {}
        self.counters: Dict[str, int] = {}
        self.gauges: Dict[str, float] = {}
        self.sample_size = sample_size

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        key = metric_key(f"latency.{operation}", tags)
        totals = self.latency_totals.setdefault(key, {"count": 0, "sum": 0.0, "min": duration_ms, "max": duration_ms})
        totals["count"] += 1
        totals["sum"] += duration_ms
        totals["min"] = min(totals["min"], duration_ms)
        totals["max"] = max(totals["max"], duration_ms)
        self.latencies.setdefault(key, deque(maxlen=self.sample_size)).append(duration_ms)

        agent_logger.logger.debug("metric", metric_type="latency", key=key, duration_ms=duration_ms)

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        key = metric_key(name, tags)
        self.counters[key] = self.counters.get(key, 0) + value

        agent_logger.logger.debug("metric", metric_type="counter", key=key, value=value)

    def set_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        key = metric_key(name, tags)
        self.gauges[key] = value

        agent_logger.logger.debug("metric", metric_type="gauge", key=key, value=value)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Latency aggregates (count, avg, min, max, p95), counters and gauges"""

        summary: Dict[str, Any] = {}
        for key, totals in self.latency_totals.items():
            samples = sorted(self.latencies[key])
            p95 = samples[min(len(samples) - 1, int(len(samples) * 0.95))]
            summary[key] = {
                "count": int(totals["count"]),
                "avg": totals["sum"] / totals["count"],
                "min": totals["min"],
                "max": totals["max"],
                "p95": p95,
            }
        summary.update(self.counters)
        summary.update(self.gauges)
        return summary

    def reset(self):
        self.latencies.clear()
        self.latency_totals.clear()
        self.counters.clear()
        self.gauges.clear()
