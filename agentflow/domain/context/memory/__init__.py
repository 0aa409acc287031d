from .memory_source import MemorySource
from .in_memory_store import InMemoryMemorySource
from .working_memory import WorkingMemory
from .cache_memory_store import CacheMemoryStore

__all__ = [
    "MemorySource",
    "InMemoryMemorySource",
    "WorkingMemory",
    "CacheMemoryStore",
]
