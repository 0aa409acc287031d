from typing import Dict, Any, List, Optional

from agentflow.domain.models.context import MemoryFilter, MemoryItem
from agentflow.domain.context.state.state_manager import StateManager
from agentflow.infrastructure.runtime.clock import Clock
from .in_memory_store import InMemoryMemorySource


class WorkingMemory(InMemoryMemorySource):
    """Session-scoped memory: current context values, task state and agent states.

    Everything is stored as regular items so the assembler can reach it
    through the plain ``query`` contract:

    - context values: key ``context:<name>``, category ``context``
    - task state: key ``current_task``, category ``task``
    - agent states: key ``agent_<type>``, category ``agent``, tagged with the type
    """

    def __init__(
        self,
        session_id: str = "default",
        state_manager: Optional[StateManager] = None,
        max_items: int = 500,
        clock: Optional[Clock] = None
    ):
        super().__init__(memory_type="working", max_items=max_items, clock=clock)
        self.session_id = session_id
        self.state_manager = state_manager or StateManager(clock=self.clock)

    async def set_context(self, name: str, value: Any) -> MemoryItem:
        """Set a session context value"""

        return await self.store(
            f"context:{name}",
            value,
            {"category": "context", "tags": [name], "session_id": self.session_id}
        )

    async def get_context(self, name: str) -> Optional[Any]:
        item = await self.retrieve(f"context:{name}")
        return item.data if item else None

    async def get_all_context(self) -> Dict[str, Any]:
        """All context values of the current session"""

        items = await self.query(self._session_filter(category="context"))
        return {item.key.split(":", 1)[1]: item.data for item in items}

    async def clear_context(self):
        """Remove every context value of the current session"""

        items = await self.query(self._session_filter(category="context"))
        for item in items:
            await self.delete(item.key)

    async def set_task_state(self, state: Dict[str, Any]) -> MemoryItem:
        return await self.store(
            "current_task",
            state,
            {"category": "task", "tags": ["task"], "session_id": self.session_id}
        )

    async def get_task_state(self) -> Optional[Dict[str, Any]]:
        item = await self.retrieve("current_task")
        return item.data if item else None

    async def set_agent_state(self, agent_type: str, state: Dict[str, Any]) -> Dict[str, Any]:
        """Publish an agent state and mirror it as a queryable item"""

        merged = await self.state_manager.set_agent_state(agent_type, state)
        await self.store(
            f"agent_{agent_type}",
            merged,
            {
                "category": "agent",
                "tags": [agent_type],
                "agent_type": agent_type,
                "session_id": self.session_id
            }
        )
        return merged

    async def get_agent_state(self, agent_type: str) -> Optional[Dict[str, Any]]:
        return await self.state_manager.get_agent_state(agent_type)

    async def get_all_agent_states(self) -> Dict[str, Dict[str, Any]]:
        return await self.state_manager.get_all_agent_states()

    async def switch_session(self, session_id: str):
        """Point subsequent writes and session queries at another session"""
        self.session_id = session_id

    def _matches(self, item: MemoryItem, filter: MemoryFilter) -> bool:
        session_id = (filter.model_extra or {}).get("session_id")
        if session_id and item.metadata.model_extra.get("session_id") != session_id:
            return False
        return super()._matches(item, filter)

    async def snapshot(self) -> List[MemoryItem]:
        """Every item of the current session, newest first"""
        return await self.query(self._session_filter())

    def _session_filter(self, **fields) -> MemoryFilter:
        return MemoryFilter(session_id=self.session_id, limit=self.max_items, **fields)
