from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import asyncio
import functools
import random
import structlog

from pydantic import ValidationError as PydanticValidationError

from agentflow.domain.context.context_assembler import ContextAssembler
from agentflow.domain.context.memory.memory_source import MemorySource
from agentflow.domain.context.memory.working_memory import WorkingMemory
from agentflow.domain.context.state.state_manager import StateManager
from agentflow.domain.errors import (
    AgentFlowError,
    ExecutionCancelledError,
    InternalError,
    ValidationError,
    error_kind,
)
from agentflow.domain.llm.model_gateway import ModelGateway
from agentflow.domain.models.agent_state import (
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
from agentflow.domain.orchestration.subagent.response_processor import ResponseProcessor
from agentflow.domain.streaming.event_channel import EventChannel, EventHandler
from agentflow.domain.streaming.events import (
    AgentCancelledEvent,
    AgentCompleteEvent,
    AgentErrorEvent,
    AgentStartEvent,
    EventType,
)
from agentflow.infrastructure.config.settings import EngineSettings
from agentflow.infrastructure.observability.error_reporter import ErrorReporter
from agentflow.infrastructure.observability.logging import MetricsCollector, agent_logger
from agentflow.infrastructure.runtime.clock import Clock, IdGenerator, SystemClock
from .agent_graph import AgentAttemptGraph, AttemptOutcome, AttemptStatus, first_set
from .prompt_builder import PromptBuilder
from .retry import RetryPolicy
from .scheduler import ExecutionScheduler, QueuedExecution

logger = structlog.get_logger(__name__)

DefinitionInput = Union[AgentDefinition, Mapping[str, Any]]
OptionsInput = Optional[Union[ExecutionOptions, Mapping[str, Any]]]


def _describe_validation_error(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "value"
    return f"{location}: {first.get('msg', 'invalid value')}"


def _value_at_path(data: Any, path: str) -> Any:
    current = data
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def apply_output_mapping(result: Mapping[str, Any], mapping: Mapping[str, str]) -> Dict[str, Any]:
    """Build {new_key: value at dot path}; missing paths are skipped"""

    mapped: Dict[str, Any] = {}
    for key, path in mapping.items():
        value = _value_at_path(result, path)
        if value is not None:
            mapped[key] = value
    return mapped


class WorkflowOrchestrator:
    """Runs agents and sequential agent workflows under a concurrency bound"""

    def __init__(
        self,
        context_assembler: ContextAssembler,
        model_gateway: ModelGateway,
        state_manager: Optional[StateManager] = None,
        working_memory: Optional[WorkingMemory] = None,
        result_store: Optional[MemorySource] = None,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        error_reporter: Optional[ErrorReporter] = None,
        metrics: Optional[MetricsCollector] = None,
        event_channel: Optional[EventChannel] = None
    ):
        self.settings = settings or EngineSettings()
        self.clock = clock or SystemClock()
        self.ids = IdGenerator(clock=self.clock, rng=rng)
        self.error_reporter = error_reporter or ErrorReporter()
        self.metrics = metrics or MetricsCollector()
        self.events = event_channel or EventChannel(error_reporter=self.error_reporter)

        self.context_assembler = context_assembler
        self.model_gateway = model_gateway
        self.working_memory = working_memory
        self.result_store = result_store
        if state_manager is None:
            state_manager = working_memory.state_manager if working_memory else StateManager(clock=self.clock)
        self.state_manager = state_manager

        self.retry_policy = RetryPolicy(
            base_delay_ms=self.settings.retry_base_delay_ms,
            max_delay_ms=self.settings.retry_max_delay_ms
        )
        self.response_processors: Dict[str, ResponseProcessor] = {}
        self.attempt_graph = AgentAttemptGraph(
            context_assembler=context_assembler,
            model_gateway=model_gateway,
            prompt_builder=PromptBuilder(self.settings.default_system_prompt),
            response_processors=self.response_processors,
            settings=self.settings,
            clock=self.clock,
            working_memory=working_memory,
            result_store=result_store
        )

        self.active_agents: Dict[str, ExecutionContext] = {}
        self.workflows: Dict[str, WorkflowContext] = {}
        self.stats = ExecutionStats()
        self.scheduler = ExecutionScheduler(self._has_capacity, self._dispatch)
        self._tasks = set()
        self._closed = False

        logger.info(
            "Workflow orchestrator initialized",
            max_concurrent_agents=self.settings.max_concurrent_agents,
            default_timeout_ms=self.settings.default_timeout_ms,
            default_max_retries=self.settings.default_max_retries
        )

    # Agent execution

    async def execute_agent(
        self,
        definition: DefinitionInput,
        request: Mapping[str, Any],
        options: OptionsInput = None
    ) -> ExecutionResult:
        """Run one agent to completion; failures come back as results"""

        try:
            parsed_definition, parsed_request, parsed_options = self.validate_execution(definition, request, options)
        except ValidationError as e:
            return self._validation_failure(e, definition)

        if self._closed:
            return self._shutdown_result(parsed_definition.type)

        if self.scheduler.pending or not self._has_capacity():
            return await self._enqueue(parsed_definition, parsed_request, parsed_options)

        execution = self._admit(parsed_definition, parsed_request, parsed_options)
        return await self._drive(execution)

    async def queue_execution(
        self,
        definition: DefinitionInput,
        request: Mapping[str, Any],
        options: OptionsInput = None
    ) -> ExecutionResult:
        """Queue an execution behind any waiting ones (FIFO dispatch)"""

        try:
            parsed_definition, parsed_request, parsed_options = self.validate_execution(definition, request, options)
        except ValidationError as e:
            return self._validation_failure(e, definition)

        if self._closed:
            return self._shutdown_result(parsed_definition.type)

        return await self._enqueue(parsed_definition, parsed_request, parsed_options)

    async def cancel_execution(self, execution_id: str) -> bool:
        """Cancel an active execution; its eventual result is discarded"""

        execution = self.active_agents.pop(execution_id, None)
        if execution is None:
            return False

        execution.transition(ExecutionState.CANCELLED)
        self.stats.cancelled_executions += 1
        self.metrics.set_gauge("active_agents", len(self.active_agents))
        self.scheduler.drain()

        agent_logger.log_agent_event("cancelled", execution.agent_definition.type, execution_id)
        await self.events.emit(AgentCancelledEvent(
            execution_id=execution_id,
            agent_type=execution.agent_definition.type,
            timestamp=self.clock.now()
        ))
        return True

    def validate_execution(
        self,
        definition: Any,
        request: Any,
        options: Any = None
    ) -> Tuple[AgentDefinition, Dict[str, Any], ExecutionOptions]:
        """Parse the inputs of an execution or raise ValidationError"""

        parsed_definition = self.validate_agent_definition(definition)

        if not isinstance(request, Mapping):
            raise ValidationError("Execution request must be an object")

        return parsed_definition, dict(request), self.validate_options(options)

    def validate_options(self, options: Any) -> ExecutionOptions:
        if options is None:
            return ExecutionOptions()
        if isinstance(options, ExecutionOptions):
            return options
        if not isinstance(options, Mapping):
            raise ValidationError("Execution options must be an object")
        try:
            return ExecutionOptions.model_validate(dict(options))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid execution options: {_describe_validation_error(e)}") from e

    def validate_agent_definition(self, definition: Any) -> AgentDefinition:
        if isinstance(definition, AgentDefinition):
            return definition
        if not isinstance(definition, Mapping):
            raise ValidationError("Agent definition must be an object")
        try:
            return AgentDefinition.model_validate(dict(definition))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid agent definition: {_describe_validation_error(e)}") from e

    def _has_capacity(self) -> bool:
        return len(self.active_agents) < self.settings.max_concurrent_agents

    def _admit(
        self,
        definition: AgentDefinition,
        request: Dict[str, Any],
        options: ExecutionOptions
    ) -> ExecutionContext:
        """Create and register an execution; runs without yielding to the loop"""

        execution = ExecutionContext(
            id=self.ids.new_id("exec"),
            agent_definition=definition,
            request=request,
            options=options,
            start_time=self.clock.monotonic(),
            started_at=self.clock.now(),
            timeout=first_set(options.timeout, definition.timeout, self.settings.default_timeout_ms),
            max_retries=first_set(options.max_retries, definition.max_retries, self.settings.default_max_retries)
        )
        self.active_agents[execution.id] = execution
        self.metrics.set_gauge("active_agents", len(self.active_agents))
        return execution

    async def _enqueue(
        self,
        definition: AgentDefinition,
        request: Dict[str, Any],
        options: ExecutionOptions
    ) -> ExecutionResult:
        future = asyncio.get_running_loop().create_future()
        self.scheduler.enqueue(QueuedExecution(definition, request, options, future))
        return await future

    def _dispatch(self, entry: QueuedExecution):
        execution = self._admit(entry.definition, entry.request, entry.options)
        task = asyncio.create_task(self._drive(execution))
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._resolve, entry.future))

    def _resolve(self, future: "asyncio.Future[ExecutionResult]", task: "asyncio.Task[ExecutionResult]"):
        self._tasks.discard(task)
        if future.done():
            return
        if task.cancelled():
            future.cancel()
        elif task.exception() is not None:
            future.set_exception(task.exception())
        else:
            future.set_result(task.result())

    def _release(self, execution: ExecutionContext):
        self.active_agents.pop(execution.id, None)
        self.metrics.set_gauge("active_agents", len(self.active_agents))
        self.scheduler.drain()

    async def _drive(self, execution: ExecutionContext) -> ExecutionResult:
        """Run an admitted execution through its attempts and finish it"""

        definition = execution.agent_definition

        with structlog.contextvars.bound_contextvars(execution_id=execution.id):
            try:
                if not execution.is_cancelled:
                    agent_logger.log_agent_event("start", definition.type, execution.id)
                    await self.events.emit(AgentStartEvent(
                        execution_id=execution.id,
                        agent_type=definition.type,
                        request=execution.request,
                        timestamp=self.clock.now()
                    ))

                try:
                    outcome = await self._run_attempts(execution)
                except Exception as e:
                    self.error_reporter.report(
                        e,
                        operation="execute_agent",
                        component="WorkflowOrchestrator",
                        execution_id=execution.id,
                        agent_type=definition.type
                    )
                    outcome = AttemptOutcome(
                        AttemptStatus.FATAL,
                        error=InternalError(f"Unexpected engine failure: {e}")
                    )
            finally:
                self._release(execution)

            if execution.is_cancelled:
                return self._cancelled_result(execution)

            return await self._finish(execution, outcome)

    async def _run_attempts(self, execution: ExecutionContext) -> AttemptOutcome:
        """Initial attempt plus at most max_retries retries"""

        definition = execution.agent_definition
        outcome = AttemptOutcome(AttemptStatus.FATAL, error=InternalError("No attempt was made"))

        for _ in range(execution.max_retries + 1):
            if execution.is_cancelled:
                return AttemptOutcome(
                    AttemptStatus.FATAL,
                    error=ExecutionCancelledError(f"Execution {execution.id} was cancelled")
                )

            outcome = await self.attempt_graph.run(execution)
            if outcome.status != AttemptStatus.RETRYABLE:
                return outcome
            if not self.retry_policy.should_retry(outcome.error, execution.retry_count, execution.max_retries):
                return outcome

            execution.retry_count += 1
            delay = self.retry_policy.backoff_delay(execution.retry_count)
            execution.error = str(outcome.error)
            execution.transition(ExecutionState.ERROR)

            logger.warning(
                "Agent execution failed, retrying",
                agent_type=definition.type,
                retry_count=execution.retry_count,
                max_retries=execution.max_retries,
                delay_ms=delay * 1000,
                error=str(outcome.error)
            )
            self.metrics.increment_counter("agent_retries", tags={"agent_type": definition.type})
            await self.clock.sleep(delay)

        return outcome

    async def _finish(self, execution: ExecutionContext, outcome: AttemptOutcome) -> ExecutionResult:
        definition = execution.agent_definition
        execution_time = (self.clock.monotonic() - execution.start_time) * 1000
        success = outcome.status == AttemptStatus.SUCCEEDED

        self.stats.record_execution(definition.type, execution_time, success)
        self.metrics.record_latency(
            "agent_execution",
            execution_time,
            tags={"agent_type": definition.type, "success": str(success).lower()}
        )

        metadata = {
            "agent_type": definition.type,
            "retry_count": execution.retry_count,
            "timestamp": self.clock.now().isoformat(),
        }
        if execution.assembled_context is not None:
            metadata["context_items"] = len(execution.assembled_context.items)
            metadata["context_size"] = execution.assembled_context.metadata.final_size

        if success:
            execution.transition(ExecutionState.COMPLETED)
            agent_logger.log_agent_event(
                "complete", definition.type, execution.id, execution_time=execution_time
            )
            await self.events.emit(AgentCompleteEvent(
                execution_id=execution.id,
                agent_type=definition.type,
                result=outcome.result,
                execution_time=execution_time,
                timestamp=self.clock.now()
            ))
            return ExecutionResult(
                success=True,
                result=outcome.result,
                execution_id=execution.id,
                execution_time=execution_time,
                metadata=metadata
            )

        error = outcome.error
        message = error.message if isinstance(error, AgentFlowError) else str(error)
        kind = error_kind(error)
        execution.error = message
        execution.transition(ExecutionState.ERROR)

        logger.error(
            "Agent execution failed",
            agent_type=definition.type,
            error=message,
            error_kind=kind,
            retry_count=execution.retry_count
        )
        await self.events.emit(AgentErrorEvent(
            execution_id=execution.id,
            agent_type=definition.type,
            error=message,
            error_kind=kind,
            execution_time=execution_time,
            retry_count=execution.retry_count,
            timestamp=self.clock.now()
        ))
        return ExecutionResult(
            success=False,
            error=message,
            error_kind=kind,
            execution_id=execution.id,
            execution_time=execution_time,
            metadata=metadata
        )

    def _cancelled_result(self, execution: ExecutionContext) -> ExecutionResult:
        logger.info("Discarding result of cancelled execution", agent_type=execution.agent_definition.type)
        return ExecutionResult(
            success=False,
            error="Execution was cancelled",
            error_kind=ExecutionCancelledError.kind,
            execution_id=execution.id,
            execution_time=(self.clock.monotonic() - execution.start_time) * 1000,
            metadata={
                "agent_type": execution.agent_definition.type,
                "retry_count": execution.retry_count,
            }
        )

    def _validation_failure(self, error: ValidationError, definition: Any) -> ExecutionResult:
        agent_type = definition.get("type") if isinstance(definition, Mapping) else getattr(definition, "type", None)
        logger.warning("Agent execution rejected", error=error.message, agent_type=agent_type)
        return ExecutionResult(
            success=False,
            error=error.message,
            error_kind=ValidationError.kind,
            execution_id=self.ids.new_id("exec"),
            metadata={"agent_type": agent_type if isinstance(agent_type, str) else None}
        )

    def _shutdown_result(self, agent_type: str) -> ExecutionResult:
        return ExecutionResult(
            success=False,
            error="Orchestrator is shut down",
            error_kind=InternalError.kind,
            execution_id=self.ids.new_id("exec"),
            metadata={"agent_type": agent_type}
        )

    # Workflows

    async def execute_workflow(
        self,
        steps: Sequence[Union[WorkflowStep, Mapping[str, Any]]],
        initial_request: Mapping[str, Any],
        options: OptionsInput = None
    ) -> WorkflowResult:
        """Run steps strictly in order, feeding each output to the next step"""

        workflow_id = self.ids.new_id("wf")
        start = self.clock.monotonic()

        try:
            parsed_steps = self.validate_workflow(steps)
            if not isinstance(initial_request, Mapping):
                raise ValidationError("Workflow request must be an object")
            parsed_options = self.validate_options(options)
        except ValidationError as e:
            logger.warning("Workflow rejected", workflow_id=workflow_id, error=e.message)
            return WorkflowResult(
                success=False,
                workflow_id=workflow_id,
                state=WorkflowState.FAILED,
                error=e.message,
                error_kind=ValidationError.kind,
                execution_time=(self.clock.monotonic() - start) * 1000
            )

        workflow = WorkflowContext(id=workflow_id, steps=parsed_steps, start_time=start)
        self.workflows[workflow_id] = workflow

        with structlog.contextvars.bound_contextvars(workflow_id=workflow_id):
            try:
                result = await self._run_workflow(workflow, dict(initial_request), parsed_options)
            except Exception as e:
                self.error_reporter.report(
                    e,
                    operation="execute_workflow",
                    component="WorkflowOrchestrator",
                    workflow_id=workflow_id
                )
                workflow.state = WorkflowState.FAILED
                result = WorkflowResult(
                    success=False,
                    workflow_id=workflow_id,
                    state=WorkflowState.FAILED,
                    results=list(workflow.results),
                    error=f"Unexpected engine failure: {e}",
                    error_kind=InternalError.kind,
                    failed_step=workflow.current_step_index,
                    execution_time=(self.clock.monotonic() - start) * 1000
                )
            finally:
                self.workflows.pop(workflow_id, None)

        self.stats.workflow_stats.record(result.execution_time, result.success)
        return result

    def validate_workflow(self, steps: Any) -> List[WorkflowStep]:
        if not isinstance(steps, (list, tuple)):
            raise ValidationError("Workflow must be a list of steps")
        if not steps:
            raise ValidationError("Workflow must contain at least one step")

        parsed: List[WorkflowStep] = []
        for index, step in enumerate(steps):
            if isinstance(step, WorkflowStep):
                parsed.append(step)
                continue
            if not isinstance(step, Mapping):
                raise ValidationError(f"Workflow step {index} must be an object")
            if step.get("agent_definition", step.get("agentDefinition")) is None:
                raise ValidationError(f"Workflow step {index} missing agent definition")
            try:
                parsed.append(WorkflowStep.model_validate(dict(step)))
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Workflow step {index} is invalid: {_describe_validation_error(e)}"
                ) from e
        return parsed

    async def _run_workflow(
        self,
        workflow: WorkflowContext,
        initial_request: Dict[str, Any],
        options: ExecutionOptions
    ) -> WorkflowResult:
        total = len(workflow.steps)
        current_request = initial_request

        for index, step in enumerate(workflow.steps):
            workflow.current_step_index = index
            definition = step.agent_definition

            step_request = {
                **current_request,
                "previous_results": [result.model_dump(mode="json") for result in workflow.results],
                "workflow_context": {"id": workflow.id, "step": index, "total": total},
            }
            step_options = options
            if step.timeout is not None:
                step_options = options.model_copy(update={"timeout": step.timeout})

            await self._publish_agent_state(definition.type, {
                "status": AgentStatus.WORKING.value,
                "current_operation": step.operation,
                "workflow_id": workflow.id,
                "step_index": index,
            })
            agent_logger.log_workflow_transition(workflow.id, index, definition.type, "started")

            result = await self.execute_agent(definition, step_request, step_options)
            workflow.results.append(result)

            if result.success:
                output = result.result or {}
                if step.output_mapping:
                    output = apply_output_mapping(output, step.output_mapping)
                current_request = dict(output)

                await self._publish_agent_state(definition.type, {
                    "status": AgentStatus.IDLE.value,
                    "current_operation": None,
                    "last_result": result.result,
                })
                agent_logger.log_workflow_transition(workflow.id, index, definition.type, "completed")
                continue

            await self._publish_agent_state(definition.type, {
                "status": AgentStatus.ERROR.value,
                "current_operation": None,
                "last_error": result.error,
            })
            agent_logger.log_workflow_transition(
                workflow.id, index, definition.type, "failed", {"error": result.error}
            )

            if step.continue_on_error:
                # Next step keeps the last successful output
                continue

            workflow.state = WorkflowState.FAILED
            workflow.error = result.error
            return WorkflowResult(
                success=False,
                workflow_id=workflow.id,
                state=WorkflowState.FAILED,
                results=list(workflow.results),
                error=f"Workflow step {index} ({definition.type}) failed: {result.error}",
                error_kind=result.error_kind,
                failed_step=index,
                execution_time=(self.clock.monotonic() - workflow.start_time) * 1000,
                metadata={"step_count": total}
            )

        workflow.state = WorkflowState.COMPLETED
        return WorkflowResult(
            success=True,
            workflow_id=workflow.id,
            state=WorkflowState.COMPLETED,
            results=list(workflow.results),
            execution_time=(self.clock.monotonic() - workflow.start_time) * 1000,
            metadata={
                "step_count": total,
                "failed_steps": [i for i, result in enumerate(workflow.results) if not result.success],
            }
        )

    async def _publish_agent_state(self, agent_type: str, updates: Dict[str, Any]):
        try:
            if self.working_memory is not None:
                await self.working_memory.set_agent_state(agent_type, updates)
            else:
                await self.state_manager.set_agent_state(agent_type, updates)
        except Exception as e:
            logger.warning("Failed to publish agent state", agent_type=agent_type, error=str(e))

    # Listeners, stats, lifecycle

    def add_event_listener(self, event_type: Union[EventType, str], handler: EventHandler):
        self.events.add_event_listener(event_type, handler)

    def remove_event_listener(self, event_type: Union[EventType, str], handler: EventHandler) -> bool:
        return self.events.remove_event_listener(event_type, handler)

    def register_response_processor(self, agent_type: str, processor: ResponseProcessor):
        """Attach post-processing for results of one agent type"""

        if not isinstance(processor, ResponseProcessor):
            raise ValidationError("Response processor must be a ResponseProcessor")
        self.response_processors[agent_type] = processor
        logger.info("Response processor registered", agent_type=agent_type, processor=processor.name)

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats.model_dump(),
            "success_rate": self.stats.success_rate,
            "active_agents": len(self.active_agents),
            "queue_length": len(self.scheduler),
            "active_workflows": len(self.workflows),
            "max_concurrent_agents": self.settings.max_concurrent_agents,
            "metrics": self.metrics.get_metrics_summary(),
        }

    def get_active_agents(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": execution.id,
                "agent_type": execution.agent_definition.type,
                "state": execution.state.value,
                "start_time": execution.start_time,
                "started_at": execution.started_at.isoformat(),
                "timeout": execution.timeout,
                "retry_count": execution.retry_count,
            }
            for execution in self.active_agents.values()
        ]

    async def shutdown(self):
        """Fail queued executions and drop listeners; running ones finish on their own"""

        self._closed = True
        waiting = self.scheduler.take_all()
        for entry in waiting:
            if entry.future.done():
                continue
            entry.future.set_result(ExecutionResult(
                success=False,
                error="Orchestrator shut down before execution started",
                error_kind=InternalError.kind,
                execution_id=self.ids.new_id("exec"),
                metadata={"agent_type": entry.definition.type}
            ))

        self.events.clear()
        logger.info(
            "Workflow orchestrator shut down",
            failed_queued=len(waiting),
            active_agents=len(self.active_agents)
        )
