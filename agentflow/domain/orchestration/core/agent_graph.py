from typing import TypedDict, Dict, Any, Mapping, NamedTuple, Optional, Literal
from enum import Enum
from langgraph.graph import StateGraph, END
import structlog

from agentflow.domain.context.context_assembler import ContextAssembler
from agentflow.domain.context.memory.memory_source import MemorySource
from agentflow.domain.context.memory.working_memory import WorkingMemory
from agentflow.domain.errors import ExecutionCancelledError, is_retryable_error
from agentflow.domain.llm.model_gateway import CompletionRequest, CompletionResponse, ModelGateway
from agentflow.domain.models.agent_state import ExecutionContext, ExecutionState
from agentflow.domain.models.context import ContextRequest
from agentflow.domain.orchestration.subagent.response_processor import (
    ResponseProcessor,
    validate_response_schema,
)
from agentflow.infrastructure.config.settings import EngineSettings
from agentflow.infrastructure.runtime.clock import Clock
from .prompt_builder import PromptBuilder, extract_keywords

logger = structlog.get_logger(__name__)


class AttemptState(TypedDict):
    """State for the per-attempt graph"""
    execution: ExecutionContext
    prompt: Optional[Dict[str, str]]
    response: Optional[CompletionResponse]
    result: Optional[Dict[str, Any]]
    error: Optional[BaseException]


class AttemptStatus(str, Enum):
    SUCCEEDED = "succeeded"
    RETRYABLE = "retryable"
    FATAL = "fatal"


class AttemptOutcome(NamedTuple):
    status: AttemptStatus
    result: Optional[Dict[str, Any]] = None
    error: Optional[BaseException] = None


def sanitize_request(request: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of a request with bulky payloads replaced by placeholders"""

    sanitized = dict(request)
    if isinstance(sanitized.get("data"), (dict, list)):
        sanitized["data"] = "[Object]"
    if isinstance(sanitized.get("context"), (dict, list)):
        sanitized["context"] = "[Context]"
    return sanitized


class AgentAttemptGraph:
    """One attempt of an agent execution: preparing -> executing -> processing.

    Each node catches its own failure and records it under "error"; the
    conditional edges then route straight to END. The caller turns the final
    state into a tagged AttemptOutcome.
    """

    def __init__(
        self,
        context_assembler: ContextAssembler,
        model_gateway: ModelGateway,
        prompt_builder: PromptBuilder,
        response_processors: Dict[str, ResponseProcessor],
        settings: EngineSettings,
        clock: Clock,
        working_memory: Optional[WorkingMemory] = None,
        result_store: Optional[MemorySource] = None
    ):
        self.context_assembler = context_assembler
        self.model_gateway = model_gateway
        self.prompt_builder = prompt_builder
        self.response_processors = response_processors
        self.settings = settings
        self.clock = clock
        self.working_memory = working_memory
        self.result_store = result_store
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        workflow = StateGraph(AttemptState)

        workflow.add_node("prepare", self.prepare_node)
        workflow.add_node("execute", self.execute_node)
        workflow.add_node("process", self.process_node)

        workflow.set_entry_point("prepare")

        workflow.add_conditional_edges(
            "prepare",
            self.check_node_result,
            {"continue": "execute", "error": END}
        )
        workflow.add_conditional_edges(
            "execute",
            self.check_node_result,
            {"continue": "process", "error": END}
        )
        workflow.add_edge("process", END)

        return workflow.compile()

    async def run(self, execution: ExecutionContext) -> AttemptOutcome:
        """Run a single attempt and classify how it ended"""

        initial_state: AttemptState = {
            "execution": execution,
            "prompt": None,
            "response": None,
            "result": None,
            "error": None,
        }

        final_state = await self.workflow.ainvoke(initial_state)

        error = final_state.get("error")
        if error is None and execution.is_cancelled:
            error = ExecutionCancelledError(f"Execution {execution.id} was cancelled")

        if error is not None:
            if not isinstance(error, ExecutionCancelledError) and is_retryable_error(error):
                return AttemptOutcome(AttemptStatus.RETRYABLE, error=error)
            return AttemptOutcome(AttemptStatus.FATAL, error=error)

        return AttemptOutcome(AttemptStatus.SUCCEEDED, result=final_state["result"])

    def check_node_result(self, state: AttemptState) -> Literal["continue", "error"]:
        if state.get("error") is not None:
            return "error"
        return "continue"

    def _ensure_active(self, execution: ExecutionContext, state: ExecutionState):
        if not execution.transition(state):
            raise ExecutionCancelledError(f"Execution {execution.id} was cancelled")

    async def prepare_node(self, state: AttemptState) -> Dict[str, Any]:
        """Assemble context and render the prompt"""

        execution = state["execution"]
        try:
            self._ensure_active(execution, ExecutionState.PREPARING)
            definition = execution.agent_definition

            context_request = ContextRequest(
                type="agent",
                target=definition.type,
                keywords=frozenset(extract_keywords(execution.request)),
                filters=dict(definition.context_filters),
                max_size_bytes=execution.options.max_context_size or self.settings.default_max_context_size,
                session_id=execution.options.session_id
            )
            execution.assembled_context = await self.context_assembler.assemble_context(context_request)

            prompt = self.prompt_builder.build(
                definition, execution.request, execution.assembled_context, self.clock.now()
            )
            logger.debug(
                "Prompt prepared",
                execution_id=execution.id,
                context_items=len(execution.assembled_context.items),
                prompt_length=len(prompt["content"])
            )
            return {"prompt": prompt}

        except Exception as e:
            return {"error": e}

    async def execute_node(self, state: AttemptState) -> Dict[str, Any]:
        """Call the model gateway"""

        execution = state["execution"]
        try:
            self._ensure_active(execution, ExecutionState.EXECUTING)
            definition = execution.agent_definition
            options = execution.options
            prompt = state["prompt"]

            completion_request = CompletionRequest(
                prompt=prompt["content"],
                system_prompt=prompt["system"],
                model=definition.preferred_model or options.model,
                max_tokens=first_set(definition.max_tokens, options.max_tokens, self.settings.default_max_tokens),
                temperature=first_set(definition.temperature, options.temperature, self.settings.default_temperature),
                timeout_ms=execution.timeout,
                use_cache=options.use_cache
            )
            response = await self.model_gateway.generate_completion(completion_request)
            return {"response": response}

        except Exception as e:
            return {"error": e}

    async def process_node(self, state: AttemptState) -> Dict[str, Any]:
        """Shape, post-process, validate and persist the result"""

        execution = state["execution"]
        try:
            self._ensure_active(execution, ExecutionState.PROCESSING)
            definition = execution.agent_definition
            response = state["response"]

            result: Dict[str, Any] = {
                "content": response.content,
                "raw_response": response.model_dump(),
                "metadata": {
                    "agent_type": definition.type,
                    "model": response.model,
                    "usage": response.usage,
                    "timestamp": self.clock.now().isoformat(),
                },
            }

            processor = self.response_processors.get(definition.type)
            if processor is not None:
                try:
                    result = await processor(result, execution.request, definition)
                except Exception as e:
                    logger.warning(
                        "Response processing failed",
                        agent_type=definition.type,
                        processor=processor.name,
                        error=str(e)
                    )

            validate_response_schema(result, definition.response_schema)

            if execution.is_cancelled:
                raise ExecutionCancelledError(f"Execution {execution.id} was cancelled")

            if definition.store_results:
                await self.store_result(execution, result)

            return {"result": result}

        except Exception as e:
            return {"error": e}

    async def store_result(self, execution: ExecutionContext, result: Dict[str, Any]):
        """Persist into working and episodic memory; failures are logged only"""

        definition = execution.agent_definition
        try:
            if self.working_memory is not None:
                await self.working_memory.set_context(f"last_{definition.type}_result", result)

            if self.result_store is not None:
                await self.result_store.store(
                    f"execution:{execution.id}",
                    {
                        "agent_type": definition.type,
                        "request": sanitize_request(execution.request),
                        "result": result,
                        "execution_time": (self.clock.monotonic() - execution.start_time) * 1000,
                        "success": True,
                    },
                    {
                        "type": "execution",
                        "category": "agent_result",
                        "agent_type": definition.type,
                        "tags": ["execution", "result", definition.type],
                        "priority": 5,
                    }
                )
        except Exception as e:
            logger.warning(
                "Failed to store agent result",
                execution_id=execution.id,
                agent_type=definition.type,
                error=str(e)
            )


def first_set(*values):
    for value in values:
        if value is not None:
            return value
    return None
