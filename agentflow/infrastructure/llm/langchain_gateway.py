from typing import Any, Dict, List, Optional
import asyncio
import structlog

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from agentflow.domain.errors import TransientError
from agentflow.domain.llm.model_gateway import CompletionRequest, CompletionResponse, ModelGateway

logger = structlog.get_logger(__name__)


class LangChainModelGateway(ModelGateway):
    """Model gateway backed by any LangChain chat model"""

    def __init__(self, chat_model: BaseChatModel, model_name: Optional[str] = None):
        self.chat_model = chat_model
        self.model_name = model_name

    async def generate_completion(self, request: CompletionRequest) -> CompletionResponse:
        messages = self._build_messages(request)
        runnable = self._bind_parameters(request)

        timeout = request.timeout_ms / 1000 if request.timeout_ms else None

        try:
            response = await asyncio.wait_for(runnable.ainvoke(messages), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning("Model call timed out", model=request.model or self.model_name, timeout_ms=request.timeout_ms)
            raise TransientError(
                f"Model call timed out after {request.timeout_ms}ms",
                details={"timeout_ms": request.timeout_ms}
            ) from e

        response_metadata = getattr(response, "response_metadata", None) or {}
        usage = getattr(response, "usage_metadata", None)

        return CompletionResponse(
            content=self._text_content(response.content),
            usage=dict(usage) if usage else response_metadata.get("token_usage"),
            model=response_metadata.get("model_name") or request.model or self.model_name
        )

    def _build_messages(self, request: CompletionRequest) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        if request.system_prompt:
            messages.append(SystemMessage(content=request.system_prompt))
        messages.append(HumanMessage(content=request.prompt))
        return messages

    def _bind_parameters(self, request: CompletionRequest):
        params: Dict[str, Any] = {}
        if request.max_tokens is not None:
            params["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.model and request.model != self.model_name:
            params["model"] = request.model

        if not params:
            return self.chat_model
        return self.chat_model.bind(**params)

    @staticmethod
    def _text_content(content: Any) -> str:
        if isinstance(content, str):
            return content

        # Content blocks, e.g. [{"type": "text", "text": "..."}]
        parts = []
        for block in content or []:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
