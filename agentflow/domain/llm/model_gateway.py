from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class CompletionRequest(BaseModel):
    """Single completion call sent to a language model"""
    prompt: str
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    max_tokens: Optional[int] = Field(None, gt=0)
    temperature: Optional[float] = Field(None, ge=0.0)
    timeout_ms: Optional[int] = Field(None, gt=0, description="Advisory; the gateway may ignore it")
    use_cache: bool = True


class CompletionResponse(BaseModel):
    """Text returned by the model plus optional usage accounting"""
    content: str
    usage: Optional[Dict[str, Any]] = None
    model: Optional[str] = None


class ModelGateway(ABC):
    """Port to whatever produces completions"""

    @abstractmethod
    async def generate_completion(self, request: CompletionRequest) -> CompletionResponse:
        """Generate a completion.

        Implementations raise TransientError (or an error carrying a 5xx / 429
        status) for failures worth retrying; anything else is treated as fatal.
        """
        pass
