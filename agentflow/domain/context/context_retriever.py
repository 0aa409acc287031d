from typing import Any, Dict, List, NamedTuple, Optional
from datetime import timedelta
import asyncio
import structlog

from agentflow.domain.models.context import (
    ContextRequest,
    MemoryFilter,
    MemoryItem,
    SourceKind,
    TimeRange,
)
from agentflow.infrastructure.runtime.clock import Clock, SystemClock
from .memory.memory_source import MemorySource

logger = structlog.get_logger(__name__)


class RegisteredSource(NamedTuple):
    name: str
    kind: SourceKind
    source: MemorySource


class SourceResult(NamedTuple):
    registered: RegisteredSource
    items: List[MemoryItem]
    error: Optional[str] = None


class ContextRetriever:
    """Shapes per-source queries and fans them out concurrently"""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()

    async def retrieve_all(
        self,
        sources: List[RegisteredSource],
        request: ContextRequest
    ) -> List[SourceResult]:
        """Query every source at once; results come back in registration order"""

        return list(await asyncio.gather(
            *(self._retrieve_from(registered, request) for registered in sources)
        ))

    async def _retrieve_from(self, registered: RegisteredSource, request: ContextRequest) -> SourceResult:
        try:
            filters = self.build_queries(registered.kind, request)
            items: List[MemoryItem] = []
            for memory_filter in filters:
                items.extend(await registered.source.query(memory_filter))
            return SourceResult(registered, self._dedupe(items))

        except Exception as e:
            logger.warning(
                "Memory source query failed",
                source=registered.name,
                kind=registered.kind.value,
                error=str(e)
            )
            return SourceResult(registered, [], str(e))

    def build_queries(self, kind: SourceKind, request: ContextRequest) -> List[MemoryFilter]:
        """Translate a context request into the filters sent to one source"""

        base = self._base_filter(kind, request)

        if kind == SourceKind.WORKING:
            return self._working_queries(base, request)
        if kind == SourceKind.SEMANTIC:
            return self._semantic_queries(base, request)
        if kind == SourceKind.EPISODIC:
            return self._episodic_queries(base, request)
        if kind == SourceKind.PROCEDURAL:
            return self._procedural_queries(base, request)

        return [MemoryFilter(**base)]

    def _base_filter(self, kind: SourceKind, request: ContextRequest) -> Dict[str, Any]:
        base: Dict[str, Any] = dict(request.filters)

        if kind == SourceKind.WORKING and request.session_id:
            base["session_id"] = request.session_id
        elif kind == SourceKind.SEMANTIC and request.keywords and "tags" not in base:
            base["tags"] = sorted(request.keywords)
        elif kind == SourceKind.EPISODIC and request.time_range:
            base["date_range"] = request.time_range

        return base

    def _working_queries(self, base: Dict[str, Any], request: ContextRequest) -> List[MemoryFilter]:
        # Current session context is always included
        queries = [MemoryFilter(**{**base, "category": "context"})]

        if request.type in ("task", "agent"):
            queries.append(MemoryFilter(**{**base, "category": "task", "limit": 1}))

        if request.type == "agent" and request.target:
            queries.append(MemoryFilter(**{**base, "category": "agent", "tags": [request.target], "limit": 1}))

        queries.append(MemoryFilter(**base))
        return queries

    def _semantic_queries(self, base: Dict[str, Any], request: ContextRequest) -> List[MemoryFilter]:
        queries = [
            MemoryFilter(**{**base, "tags": [keyword], "limit": 10})
            for keyword in sorted(request.keywords)
        ]

        if request.type and request.target:
            queries.append(MemoryFilter(**{
                **base,
                "category": request.type,
                "tags": [request.target],
                "limit": 15
            }))

        queries.append(MemoryFilter(**{**base, "limit": 20}))
        return queries

    def _episodic_queries(self, base: Dict[str, Any], request: ContextRequest) -> List[MemoryFilter]:
        now = self.clock.now()
        recent = TimeRange(field="created_at", start=now - timedelta(hours=24), end=now)
        queries = [MemoryFilter(**{**base, "date_range": recent, "limit": 10})]

        type_tags = [tag for tag in (request.type, request.target) if tag]
        if type_tags:
            queries.append(MemoryFilter(**{**base, "tags": type_tags, "limit": 15}))

        queries.append(MemoryFilter(**{**base, "tags": ["success", "completed"], "limit": 10}))
        return queries

    def _procedural_queries(self, base: Dict[str, Any], request: ContextRequest) -> List[MemoryFilter]:
        queries = []

        if request.target:
            queries.append(MemoryFilter(**{
                **base, "category": "workflow", "tags": [request.target], "limit": 5
            }))

        if request.type in ("prompt", "agent"):
            queries.append(MemoryFilter(**{
                **base, "category": "prompt", "tags": [request.target or request.type], "limit": 10
            }))

        practice_tags = [tag for tag in (request.type, request.target) if tag]
        queries.append(MemoryFilter(**{
            **base, "category": "practice", "tags": practice_tags, "limit": 10
        }))
        queries.append(MemoryFilter(**{**base, "category": "configuration", "limit": 5}))
        return queries

    @staticmethod
    def _dedupe(items: List[MemoryItem]) -> List[MemoryItem]:
        seen = set()
        unique = []
        for item in items:
            if item.key in seen:
                continue
            seen.add(item.key)
            unique.append(item)
        return unique
