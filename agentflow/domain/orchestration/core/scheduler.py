from typing import Any, Callable, Deque, Dict, List, NamedTuple
from collections import deque
import asyncio
import structlog

from agentflow.domain.models.agent_state import AgentDefinition, ExecutionOptions

logger = structlog.get_logger(__name__)


class QueuedExecution(NamedTuple):
    definition: AgentDefinition
    request: Dict[str, Any]
    options: ExecutionOptions
    future: "asyncio.Future[Any]"


class ExecutionScheduler:
    """FIFO queue of executions waiting for a concurrency slot.

    Wake-on-enqueue: `drain` is called whenever capacity may have changed
    (on enqueue, when an execution finishes, on cancellation) and dispatches
    queued entries for as long as `has_capacity` allows. Dispatch happens
    synchronously, so a freed slot is claimed before any other coroutine runs.
    """

    def __init__(
        self,
        has_capacity: Callable[[], bool],
        dispatch: Callable[[QueuedExecution], None]
    ):
        self.has_capacity = has_capacity
        self.dispatch = dispatch
        self.pending: Deque[QueuedExecution] = deque()

    def __len__(self) -> int:
        return len(self.pending)

    def enqueue(self, entry: QueuedExecution):
        self.pending.append(entry)
        logger.debug("Execution queued", agent_type=entry.definition.type, queue_length=len(self.pending))
        self.drain()

    def drain(self):
        """Dispatch queued executions while there is capacity"""

        while self.pending and self.has_capacity():
            entry = self.pending.popleft()
            if entry.future.done():
                # Caller stopped waiting
                continue
            self.dispatch(entry)

    def take_all(self) -> List[QueuedExecution]:
        """Remove and return everything still waiting"""

        entries = list(self.pending)
        self.pending.clear()
        return entries
