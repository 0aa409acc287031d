from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from agentflow.domain.models.context import MemoryFilter, MemoryItem


class MemorySource(ABC):
    """Contract every knowledge store implements for the context assembler.

    The assembler only reads through ``query``; ``store``, ``update`` and
    ``delete`` are used by result persistence.
    """

    memory_type: str = "generic"

    @abstractmethod
    async def query(self, filter: MemoryFilter) -> List[MemoryItem]:
        """Return items matching the filter, sorted and paginated"""
        pass

    @abstractmethod
    async def store(self, key: str, data: Any, metadata: Optional[Dict[str, Any]] = None) -> MemoryItem:
        """Create or replace an item"""
        pass

    @abstractmethod
    async def retrieve(self, key: str) -> Optional[MemoryItem]:
        pass

    @abstractmethod
    async def update(self, key: str, data: Any, metadata: Optional[Dict[str, Any]] = None) -> Optional[MemoryItem]:
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass
