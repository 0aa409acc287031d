from typing import Dict, Any, NamedTuple, Optional
from collections import OrderedDict
from datetime import datetime, timedelta
import asyncio
import structlog

from agentflow.infrastructure.runtime.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)


class CacheEntry(NamedTuple):
    value: Any
    expires_at: datetime


class CacheMemoryStore:
    """TTL cache with a size bound; the least recently used entry goes first"""

    def __init__(self, default_ttl: int = 300, max_entries: int = 1000, clock: Optional[Clock] = None):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self.clock = clock or SystemClock()
        self.entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self._lock = asyncio.Lock()

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        seconds = self.default_ttl if ttl is None else ttl

        async with self._lock:
            self.entries[key] = CacheEntry(value, self.clock.now() + timedelta(seconds=seconds))
            self.entries.move_to_end(key)

            while len(self.entries) > self.max_entries:
                evicted, _ = self.entries.popitem(last=False)
                self.evictions += 1
                logger.debug("Cache entry evicted", key=evicted[:50])

    async def get(self, key: str) -> Optional[Any]:
        """Value for key, or None when missing or expired"""

        async with self._lock:
            entry = self.entries.get(key)
            if entry is None or self._expired(entry):
                self.entries.pop(key, None)
                self.misses += 1
                return None

            self.entries.move_to_end(key)
            self.hits += 1
            return entry.value

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self.entries.pop(key, None) is not None

    async def invalidate(self, prefix: str) -> int:
        """Drop every key starting with prefix"""

        async with self._lock:
            keys = [key for key in self.entries if key.startswith(prefix)]
            for key in keys:
                del self.entries[key]
            return len(keys)

    async def clear(self) -> None:
        async with self._lock:
            self.entries.clear()

    async def clear_expired(self) -> int:
        async with self._lock:
            expired = [key for key, entry in self.entries.items() if self._expired(entry)]
            for key in expired:
                del self.entries[key]
            return len(expired)

    async def get_stats(self) -> Dict[str, Any]:
        async with self._lock:
            active = sum(1 for entry in self.entries.values() if not self._expired(entry))
            lookups = self.hits + self.misses

            return {
                "total_keys": len(self.entries),
                "active_keys": active,
                "expired_keys": len(self.entries) - active,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "hit_rate": self.hits / lookups if lookups else 0.0
            }

    def __len__(self) -> int:
        return len(self.entries)

    def _expired(self, entry: CacheEntry) -> bool:
        return self.clock.now() >= entry.expires_at
