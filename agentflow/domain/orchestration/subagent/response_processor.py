from abc import ABC, abstractmethod
from typing import Dict, Any, List, Mapping, Optional
from datetime import datetime, timezone

from agentflow.domain.errors import SchemaError
from agentflow.domain.models.agent_state import AgentDefinition


class ResponseProcessor(ABC):
    """Agent-type specific post-processing of a generated result"""

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self.created_at = datetime.now(timezone.utc)
        self.last_active: Optional[datetime] = None
        self.processed_count = 0

    @abstractmethod
    async def process(
        self,
        result: Dict[str, Any],
        request: Mapping[str, Any],
        definition: AgentDefinition
    ) -> Dict[str, Any]:
        """Return the processed result"""
        pass

    async def __call__(
        self,
        result: Dict[str, Any],
        request: Mapping[str, Any],
        definition: AgentDefinition
    ) -> Dict[str, Any]:
        processed = await self.process(result, request, definition)
        self.update_activity()
        return processed

    def update_activity(self):
        """Update last activity timestamp"""
        self.last_active = datetime.now(timezone.utc)
        self.processed_count += 1

    def get_info(self) -> Dict[str, Any]:
        """Get processor information"""
        return {
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
            "last_active": self.last_active.isoformat() if self.last_active else None,
            "processed_count": self.processed_count
        }


def schema_violations(result: Mapping[str, Any], schema: Mapping[str, Any]) -> List[str]:
    """Missing-field messages for a schema's `required` list"""

    required = schema.get("required")
    if not isinstance(required, (list, tuple)):
        return []
    return [f"Missing required field: {field}" for field in required if field not in result]


def validate_response_schema(result: Mapping[str, Any], schema: Optional[Mapping[str, Any]]):
    """Raise SchemaError when a required field is absent"""

    if not schema:
        return
    errors = schema_violations(result, schema)
    if errors:
        raise SchemaError(
            f"Response validation failed: {', '.join(errors)}",
            details={"errors": errors}
        )
