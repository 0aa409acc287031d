from typing import Dict, List, Any, Optional
from datetime import datetime, timezone
import asyncio
import structlog

from agentflow.domain.models.context import MemoryFilter, MemoryItem, MemoryMetadata
from agentflow.infrastructure.runtime.clock import Clock, SystemClock
from .memory_source import MemorySource

logger = structlog.get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class InMemoryMemorySource(MemorySource):
    """Dictionary-backed memory source with capacity-bounded eviction"""

    def __init__(
        self,
        memory_type: str = "generic",
        max_items: int = 1000,
        clock: Optional[Clock] = None
    ):
        self.memory_type = memory_type
        self.max_items = max_items
        self.clock = clock or SystemClock()
        self.items: Dict[str, MemoryItem] = {}
        self._lock = asyncio.Lock()

    async def store(self, key: str, data: Any, metadata: Optional[Dict[str, Any]] = None) -> MemoryItem:
        """Store an item, evicting the oldest entries when full"""

        if not key or not isinstance(key, str):
            raise ValueError("Key must be a non-empty string")

        async with self._lock:
            now = self.clock.now()
            fields = {
                "type": self.memory_type,
                "created_at": now,
                "modified_at": now,
                "accessed_at": now,
            }
            fields.update(metadata or {})
            item = MemoryItem(key=key, data=data, metadata=MemoryMetadata(**fields))

            if key not in self.items and len(self.items) >= self.max_items:
                self._evict_oldest(len(self.items) - self.max_items + 1)

            self.items[key] = item

        logger.debug("Memory item stored", memory_type=self.memory_type, key=key[:50])
        return item

    async def retrieve(self, key: str) -> Optional[MemoryItem]:
        """Get an item and record the access"""

        async with self._lock:
            item = self.items.get(key)
            if item is None:
                return None

            item.metadata.accessed_at = self.clock.now()
            item.metadata.access_count += 1
            return item.model_copy(deep=True)

    async def update(self, key: str, data: Any, metadata: Optional[Dict[str, Any]] = None) -> Optional[MemoryItem]:
        """Replace an item's data and merge its metadata"""

        async with self._lock:
            item = self.items.get(key)
            if item is None:
                return None

            merged = item.metadata.model_dump()
            merged.update(metadata or {})
            merged["modified_at"] = self.clock.now()
            updated = MemoryItem(key=key, data=data, metadata=MemoryMetadata(**merged))
            self.items[key] = updated
            return updated

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self.items.pop(key, None) is not None

    async def query(self, filter: MemoryFilter) -> List[MemoryItem]:
        """Filter, sort and paginate stored items"""

        async with self._lock:
            matches = [
                item for item in self.items.values()
                if self._matches(item, filter)
            ]

        reverse = filter.sort_order != "asc"
        matches.sort(key=lambda item: self._sort_value(item, filter.sort_by), reverse=reverse)

        page = matches[filter.offset:filter.offset + filter.limit]
        return [item.model_copy(deep=True) for item in page]

    async def clear(self):
        async with self._lock:
            self.items.clear()

    def size(self) -> int:
        return len(self.items)

    def _matches(self, item: MemoryItem, filter: MemoryFilter) -> bool:
        metadata = item.metadata

        if filter.type and metadata.type != filter.type:
            return False

        if filter.category and metadata.category != filter.category:
            return False

        if filter.tags:
            if not any(tag in metadata.tags for tag in filter.tags):
                return False

        if filter.date_range:
            value = _aware(getattr(metadata, filter.date_range.field, None) or metadata.created_at)
            start = _aware(filter.date_range.start)
            end = _aware(filter.date_range.end)
            if start and value < start:
                return False
            if end and value > end:
                return False

        if filter.priority_range:
            if filter.priority_range.min is not None and metadata.priority < filter.priority_range.min:
                return False
            if filter.priority_range.max is not None and metadata.priority > filter.priority_range.max:
                return False

        return True

    def _sort_value(self, item: MemoryItem, sort_by: str) -> Any:
        metadata = item.metadata

        if sort_by in ("created_at", "modified_at", "accessed_at"):
            return _aware(getattr(metadata, sort_by)) or _EPOCH
        if sort_by in ("priority", "access_count", "confidence"):
            return getattr(metadata, sort_by)
        if sort_by == "key":
            return item.key

        value = getattr(metadata, sort_by, None)
        return value if isinstance(value, (int, float)) else 0

    def _evict_oldest(self, count: int):
        oldest = sorted(
            self.items.values(),
            key=lambda item: _aware(item.metadata.accessed_at) or _EPOCH
        )[:count]
        for item in oldest:
            del self.items[item.key]
        logger.debug("Evicted memory items", memory_type=self.memory_type, count=len(oldest))
