from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, StrictStr
from datetime import datetime, timezone
from enum import Enum

from agentflow.domain.models.context import AssembledContext


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionState(str, Enum):
    """Lifecycle of a single agent execution"""
    INITIALIZED = "initialized"
    PREPARING = "preparing"
    EXECUTING = "executing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionState.COMPLETED, ExecutionState.CANCELLED)


class WorkflowState(str, Enum):
    """Workflow execution status"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class AgentStatus(str, Enum):
    """Agent status published on the state side channel"""
    IDLE = "idle"
    WORKING = "working"
    ERROR = "error"


class AgentDefinition(BaseModel):
    """Immutable description of an agent supplied by the caller"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: StrictStr = Field(min_length=1, description="Agent type, e.g. planner")
    prompt_template: StrictStr = Field(min_length=1, alias="promptTemplate")
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")
    preferred_model: Optional[str] = Field(None, alias="preferredModel")
    max_tokens: Optional[int] = Field(None, alias="maxTokens", gt=0)
    temperature: Optional[float] = Field(None, ge=0.0)
    context_filters: Dict[str, Any] = Field(default_factory=dict, alias="contextFilters")
    response_schema: Optional[Dict[str, Any]] = Field(None, alias="responseSchema")
    store_results: bool = Field(True, alias="storeResults")
    timeout: Optional[int] = Field(None, gt=0, description="Advisory timeout in milliseconds")
    max_retries: Optional[int] = Field(None, alias="maxRetries", ge=0)


class ExecutionOptions(BaseModel):
    """Per-call overrides for an agent execution"""
    model_config = ConfigDict(populate_by_name=True)

    timeout: Optional[int] = Field(None, gt=0)
    max_retries: Optional[int] = Field(None, alias="maxRetries", ge=0)
    max_context_size: Optional[int] = Field(None, alias="maxContextSize", gt=0)
    model: Optional[str] = None
    max_tokens: Optional[int] = Field(None, alias="maxTokens", gt=0)
    temperature: Optional[float] = Field(None, ge=0.0)
    use_cache: bool = Field(True, alias="useCache")
    session_id: Optional[str] = Field(None, alias="sessionId")


class ExecutionContext(BaseModel):
    """State of one agent run, owned by the orchestrator"""
    id: str
    agent_definition: AgentDefinition
    request: Dict[str, Any] = Field(default_factory=dict)
    options: ExecutionOptions = Field(default_factory=ExecutionOptions)
    assembled_context: Optional[AssembledContext] = None
    state: ExecutionState = ExecutionState.INITIALIZED
    start_time: float = Field(description="Monotonic start time in seconds")
    started_at: datetime = Field(default_factory=_utcnow)
    timeout: int
    retry_count: int = 0
    max_retries: int = 0
    error: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self.state == ExecutionState.CANCELLED

    def transition(self, state: ExecutionState) -> bool:
        """Move to a new state unless the execution was cancelled"""
        if self.is_cancelled:
            return False
        self.state = state
        return True


class ExecutionResult(BaseModel):
    """Structured outcome of execute_agent; failures never raise"""
    success: bool
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    execution_id: str
    execution_time: float = Field(0.0, description="Milliseconds")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WorkflowStep(BaseModel):
    """One agent invocation inside a sequential workflow"""
    model_config = ConfigDict(populate_by_name=True)

    agent_definition: AgentDefinition = Field(alias="agentDefinition")
    operation: Optional[str] = None
    output_mapping: Optional[Dict[str, str]] = Field(None, alias="outputMapping")
    continue_on_error: bool = Field(False, alias="continueOnError")
    timeout: Optional[int] = Field(None, gt=0)


class WorkflowContext(BaseModel):
    """State of one workflow run"""
    id: str
    steps: List[WorkflowStep]
    current_step_index: int = 0
    results: List[ExecutionResult] = Field(default_factory=list)
    state: WorkflowState = WorkflowState.RUNNING
    start_time: float
    error: Optional[str] = None


class WorkflowResult(BaseModel):
    """Structured outcome of execute_workflow"""
    success: bool
    workflow_id: str
    state: WorkflowState
    results: List[ExecutionResult] = Field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[str] = None
    failed_step: Optional[int] = None
    execution_time: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AgentUsage(BaseModel):
    """Rolling per-agent-type statistics"""
    executions: int = 0
    successes: int = 0
    failures: int = 0
    average_time: float = 0.0

    def record(self, execution_time: float, success: bool):
        self.executions += 1
        if success:
            self.successes += 1
        else:
            self.failures += 1
        self.average_time += (execution_time - self.average_time) / self.executions


class ExecutionStats(BaseModel):
    """Rolling engine statistics"""
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    cancelled_executions: int = 0
    average_execution_time: float = 0.0
    agent_usage: Dict[str, AgentUsage] = Field(default_factory=dict)
    workflow_stats: AgentUsage = Field(default_factory=AgentUsage)

    def record_execution(self, agent_type: str, execution_time: float, success: bool):
        """Update totals and the incremental mean latency"""
        self.total_executions += 1
        if success:
            self.successful_executions += 1
        else:
            self.failed_executions += 1
        self.average_execution_time += (
            execution_time - self.average_execution_time
        ) / self.total_executions

        usage = self.agent_usage.setdefault(agent_type, AgentUsage())
        usage.record(execution_time, success)

    @property
    def success_rate(self) -> float:
        if self.total_executions == 0:
            return 0.0
        return self.successful_executions / self.total_executions
