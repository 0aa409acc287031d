from typing import Dict, Any, Optional
import asyncio

from agentflow.infrastructure.runtime.clock import Clock, SystemClock


class StateManager:
    """Tracks the latest published state of every agent type"""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self.states: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def get_agent_state(self, agent_type: str) -> Optional[Dict[str, Any]]:
        """Get current state for an agent type"""

        async with self._lock:
            state = self.states.get(agent_type)
            return dict(state) if state is not None else None

    async def set_agent_state(self, agent_type: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Merge updates into an agent's state"""

        async with self._lock:
            if agent_type not in self.states:
                self.states[agent_type] = {
                    "type": agent_type,
                    "created_at": self.clock.now().isoformat()
                }

            self.states[agent_type].update(updates)
            self.states[agent_type]["last_update"] = self.clock.now().isoformat()
            return dict(self.states[agent_type])

    async def clear_state(self, agent_type: str):
        """Clear state for an agent type"""

        async with self._lock:
            self.states.pop(agent_type, None)

    async def get_all_agent_states(self) -> Dict[str, Dict[str, Any]]:
        """Get all tracked agent states"""

        async with self._lock:
            return {agent_type: dict(state) for agent_type, state in self.states.items()}
