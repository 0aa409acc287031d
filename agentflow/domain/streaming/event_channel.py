from typing import Awaitable, Callable, Dict, List, Optional, Union
import inspect
import structlog

from agentflow.domain.errors import InternalError
from agentflow.infrastructure.observability.error_reporter import ErrorReporter
from .events import AgentEvent, EventType

logger = structlog.get_logger(__name__)

EventHandler = Callable[[AgentEvent], Union[None, Awaitable[None]]]


class EventChannel:
    """Fans lifecycle events out to registered listeners"""

    def __init__(self, error_reporter: Optional[ErrorReporter] = None):
        self.error_reporter = error_reporter or ErrorReporter()
        self.event_handlers: Dict[EventType, List[EventHandler]] = {}

    def add_event_listener(self, event_type: Union[EventType, str], handler: EventHandler):
        """Register a sync or async handler for one event type"""

        event_type = EventType(event_type)
        self.event_handlers.setdefault(event_type, []).append(handler)
        logger.debug("Event listener added", event_type=event_type.value)

    def remove_event_listener(self, event_type: Union[EventType, str], handler: EventHandler) -> bool:
        """Unregister a handler; returns False if it was not registered"""

        handlers = self.event_handlers.get(EventType(event_type), [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def listener_count(self, event_type: Union[EventType, str]) -> int:
        return len(self.event_handlers.get(EventType(event_type), []))

    def clear(self):
        self.event_handlers.clear()

    async def emit(self, event: AgentEvent):
        """Deliver an event to each handler in registration order.

        A failing handler is reported and skipped; the remaining handlers
        still run and the emitter never sees the failure.
        """

        for handler in list(self.event_handlers.get(event.type, [])):
            try:
                outcome = handler(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                self.error_reporter.report(
                    InternalError(f"Event handler failed: {e}", details={"event_type": event.type.value}),
                    operation="emit",
                    component="EventChannel",
                    execution_id=event.execution_id,
                    handler=getattr(handler, "__name__", repr(handler))
                )
