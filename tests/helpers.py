"""Fakes shared by the test modules."""

import asyncio
import random
from datetime import datetime, timedelta, timezone

from agentflow.domain.context.context_assembler import ContextAssembler
from agentflow.domain.context.memory.in_memory_store import InMemoryMemorySource
from agentflow.domain.context.memory.working_memory import WorkingMemory
from agentflow.domain.llm.model_gateway import CompletionResponse, ModelGateway
from agentflow.domain.orchestration.core.orchestrator import WorkflowOrchestrator
from agentflow.infrastructure.config.settings import EngineSettings
from agentflow.infrastructure.runtime.clock import Clock


class FakeClock(Clock):
    """Deterministic clock; sleeping advances time instead of waiting."""

    def __init__(self, start=None):
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.elapsed = 0.0
        self.sleeps = []

    def now(self):
        return self.current

    def monotonic(self):
        return self.elapsed

    def advance(self, seconds):
        self.current += timedelta(seconds=seconds)
        self.elapsed += seconds

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


class ScriptedGateway(ModelGateway):
    """Replays a script of contents or exceptions, then a default content.

    When a gate is given every call waits on it, which lets tests hold
    executions in flight.
    """

    def __init__(self, script=None, default="ok", gate=None):
        self.script = list(script or [])
        self.default = default
        self.gate = gate
        self.requests = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate_completion(self, request):
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)

            outcome = self.script.pop(0) if self.script else self.default
            if isinstance(outcome, BaseException):
                raise outcome
            return CompletionResponse(content=outcome, model="fake-model", usage={"total_tokens": 10})
        finally:
            self.in_flight -= 1


class CountingSource(InMemoryMemorySource):
    """In-memory source that counts queries."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.query_count = 0

    async def query(self, filter):
        self.query_count += 1
        return await super().query(filter)


class FailingSource(InMemoryMemorySource):
    """Source whose queries always fail."""

    async def query(self, filter):
        raise ConnectionError("source unavailable")


async def wait_until(predicate, timeout=2.0):
    """Yield to the loop until predicate() holds."""

    async def poll():
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), timeout)


def build_orchestrator(gateway, clock, **settings_overrides):
    """Wire an orchestrator with working and episodic memory."""

    settings_overrides.setdefault("retry_base_delay_ms", 100)
    settings = EngineSettings(**settings_overrides)
    working = WorkingMemory(clock=clock)
    episodic = InMemoryMemorySource(memory_type="episodic", clock=clock)
    assembler = ContextAssembler(
        sources={"working": working, "episodic": episodic},
        settings=settings,
        clock=clock
    )
    return WorkflowOrchestrator(
        context_assembler=assembler,
        model_gateway=gateway,
        working_memory=working,
        result_store=episodic,
        settings=settings,
        clock=clock,
        rng=random.Random(7)
    )


PLANNER = {
    "type": "planner",
    "promptTemplate": "Plan: {{description}} for {{agent_type}}",
}
