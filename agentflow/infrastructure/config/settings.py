from typing import Any, Callable, Dict, Optional
import os

from pydantic import BaseModel, Field


ENV_PREFIX = "AGENTFLOW_"


class EngineSettings(BaseModel):
    """Tunables for the orchestrator and the context assembler"""

    max_concurrent_agents: int = Field(default=3, ge=1)
    default_timeout_ms: int = Field(default=30000, gt=0)
    default_max_retries: int = Field(default=2, ge=0)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    retry_max_delay_ms: Optional[int] = Field(default=None, gt=0, description="Upper bound on a single backoff")
    default_max_context_size: int = Field(default=50000, gt=0, description="Byte budget per agent execution")
    assembler_max_context_size: int = Field(default=100000, gt=0, description="Byte budget when a request sets none")
    context_cache_ttl_seconds: int = Field(default=300, ge=0)
    default_max_tokens: int = Field(default=4000, gt=0)
    default_temperature: float = Field(default=0.7, ge=0.0)
    default_system_prompt: str = "You are a helpful AI assistant specialized in software development tasks."
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "agentflow"

    @classmethod
    def from_env(cls, **overrides: Any) -> "EngineSettings":
        """Build settings from AGENTFLOW_* environment variables"""

        values: Dict[str, Any] = {}
        for name, field in cls.model_fields.items():
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            values[name] = _coerce(field.annotation, raw)

        values.update(overrides)
        return cls(**values)


def _coerce(annotation: Any, raw: str) -> Any:
    converters: Dict[Any, Callable[[str], Any]] = {
        int: int,
        float: float,
        bool: lambda value: value.strip().lower() in ("1", "true", "yes", "on"),
    }
    converter = converters.get(annotation)
    return converter(raw) if converter else raw
