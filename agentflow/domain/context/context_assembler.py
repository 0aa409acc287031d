from typing import Any, Dict, List, Mapping, Optional, Union
import hashlib
import json
import structlog

from pydantic import ValidationError as PydanticValidationError

from agentflow.domain.errors import ValidationError
from agentflow.domain.models.context import (
    AssembledContext,
    AssemblyMetadata,
    ContextRequest,
    ContextSummary,
    ScoredItem,
    SourceBreakdown,
    SourceKind,
    TopScore,
)
from agentflow.infrastructure.config.settings import EngineSettings
from agentflow.infrastructure.observability.error_reporter import ErrorReporter
from agentflow.infrastructure.observability.logging import MetricsCollector, agent_logger
from agentflow.infrastructure.runtime.clock import Clock, SystemClock
from .context_optimizer import ContextOptimizer
from .context_ranker import ContextRanker
from .context_retriever import ContextRetriever, RegisteredSource, SourceResult
from .memory.cache_memory_store import CacheMemoryStore
from .memory.memory_source import MemorySource

logger = structlog.get_logger(__name__)


class ContextAssembler:
    """Assembles ranked, size-bounded context from registered memory sources"""

    def __init__(
        self,
        sources: Optional[Mapping[str, MemorySource]] = None,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Clock] = None,
        cache: Optional[CacheMemoryStore] = None,
        ranker: Optional[ContextRanker] = None,
        error_reporter: Optional[ErrorReporter] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.settings = settings or EngineSettings()
        self.clock = clock or SystemClock()
        self.cache = cache or CacheMemoryStore(
            default_ttl=self.settings.context_cache_ttl_seconds,
            clock=self.clock
        )
        self.ranker = ranker or ContextRanker(clock=self.clock)
        self.retriever = ContextRetriever(clock=self.clock)
        self.optimizer = ContextOptimizer()
        self.error_reporter = error_reporter or ErrorReporter()
        self.metrics = metrics or MetricsCollector()
        self.max_context_size = self.settings.assembler_max_context_size

        self.sources: List[RegisteredSource] = []
        self.assembly_metrics: Dict[str, Any] = {
            "total_assemblies": 0,
            "cache_hits": 0,
            "failures": 0,
            "average_assembly_time": 0.0,
            "average_context_size": 0.0,
        }

        for name, source in (sources or {}).items():
            self.register_source(name, source)

    def register_source(
        self,
        name: str,
        source: MemorySource,
        kind: Optional[Union[SourceKind, str]] = None
    ):
        """Register a memory source; registration order breaks score ties"""

        if any(registered.name == name for registered in self.sources):
            raise ValidationError(f"Memory source already registered: {name}")

        if kind is None:
            kind = name
        try:
            source_kind = SourceKind(kind)
        except ValueError:
            source_kind = SourceKind.GENERIC

        self.sources.append(RegisteredSource(name, source_kind, source))
        logger.info("Memory source registered", source=name, kind=source_kind.value)

    def get_source(self, name: str) -> Optional[MemorySource]:
        for registered in self.sources:
            if registered.name == name:
                return registered.source
        return None

    async def assemble_context(self, request: Union[ContextRequest, Mapping[str, Any]]) -> AssembledContext:
        """Build context for a request; never raises, degrades to an empty context"""

        start = self.clock.monotonic()
        parsed: Optional[ContextRequest] = None

        try:
            parsed = self.validate_request(request)

            cache_key = self.generate_cache_key(parsed)
            cached = await self.cache.get(cache_key)
            if cached is not None:
                self._update_metrics(start, cache_hit=True, size=cached.metadata.final_size)
                agent_logger.log_context_update("assembled", "cache_hit", {"cache_key": cache_key})
                return cached.model_copy(deep=True)

            results = await self.retriever.retrieve_all(list(self.sources), parsed)
            context = self._build(parsed, results, cache_key)

            await self.cache.set(cache_key, context.model_copy(deep=True))

            self._update_metrics(start, cache_hit=False, size=context.metadata.final_size)
            logger.debug(
                "Context assembled",
                type=parsed.type,
                target=parsed.target,
                sources=len(results),
                items=len(context.items),
                final_size=context.metadata.final_size
            )
            return context

        except Exception as e:
            self.assembly_metrics["failures"] += 1
            self.error_reporter.report(
                e,
                operation="assemble_context",
                component="ContextAssembler",
                request_type=getattr(parsed, "type", None)
            )
            return self.minimal_context(parsed or request)

    def validate_request(self, request: Union[ContextRequest, Mapping[str, Any]]) -> ContextRequest:
        """Coerce and validate an incoming request"""

        if isinstance(request, ContextRequest):
            return request
        if not isinstance(request, Mapping):
            raise ValidationError("Context request must be an object")

        try:
            return ContextRequest.model_validate(dict(request))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid context request: {e}") from e

    def generate_cache_key(self, request: ContextRequest) -> str:
        """Fingerprint of (type, target, sorted keywords, filters, max size)"""

        components = [
            request.type,
            request.target or "",
            sorted(request.keywords),
            request.filters,
            request.max_size_bytes or self.max_context_size,
            request.session_id or "",
            request.time_range.model_dump(mode="json") if request.time_range else None,
        ]
        digest = hashlib.sha256(
            json.dumps(components, sort_keys=True, default=str).encode("utf-8")
        ).hexdigest()
        return f"context:{digest}"

    def _build(self, request: ContextRequest, results: List[SourceResult], cache_key: str) -> AssembledContext:
        sources: Dict[str, SourceBreakdown] = {}
        merged: List[ScoredItem] = []

        for result in results:
            registered = result.registered
            scored = self.ranker.rank(result.items, request, registered.name, registered.kind)
            total_relevance = sum(item.score.total for item in scored)

            sources[registered.name] = SourceBreakdown(
                item_count=len(scored),
                total_relevance=total_relevance,
                average_relevance=total_relevance / len(scored) if scored else 0.0,
                error=result.error
            )
            merged.extend(scored)

        # Stable sort: equal scores keep registration order
        merged.sort(key=lambda item: item.score.total, reverse=True)

        max_size = request.max_size_bytes or self.max_context_size
        kept, final_size, compressed_count = self.optimizer.fit(merged, max_size)

        return AssembledContext(
            summary=self.generate_summary(request, merged, sources),
            items=kept,
            sources=sources,
            metadata=AssemblyMetadata(
                timestamp=self.clock.now(),
                cache_key=cache_key,
                original_item_count=len(merged),
                final_item_count=len(kept),
                final_size=final_size,
                max_size=max_size,
                compressed_item_count=compressed_count,
                compression_ratio=len(kept) / len(merged) if merged else 0.0
            )
        )

    def generate_summary(
        self,
        request: ContextRequest,
        ranked: List[ScoredItem],
        sources: Dict[str, SourceBreakdown]
    ) -> ContextSummary:
        """Counts per source, top five scores and mean relevance"""

        average = sum(item.score.total for item in ranked) / len(ranked) if ranked else 0.0

        return ContextSummary(
            type=request.type,
            target=request.target,
            item_count=len(ranked),
            source_breakdown={name: breakdown.item_count for name, breakdown in sources.items()},
            top_relevance_scores=[
                TopScore(key=item.key, score=item.score.total, source=item.source)
                for item in ranked[:5]
            ],
            average_relevance=average
        )

    def minimal_context(self, request: Union[ContextRequest, Mapping[str, Any], Any]) -> AssembledContext:
        """Empty but valid context returned when assembly fails"""

        if isinstance(request, ContextRequest):
            request_type, target = request.type, request.target
        elif isinstance(request, Mapping):
            request_type, target = request.get("type"), request.get("target")
        else:
            request_type, target = None, None

        return AssembledContext(
            summary=ContextSummary(
                type=request_type if isinstance(request_type, str) else None,
                target=target if isinstance(target, str) else None,
                error="Failed to assemble context"
            ),
            metadata=AssemblyMetadata(timestamp=self.clock.now(), error=True)
        )

    def _update_metrics(self, start: float, cache_hit: bool, size: int):
        elapsed_ms = (self.clock.monotonic() - start) * 1000
        stats = self.assembly_metrics

        stats["total_assemblies"] += 1
        if cache_hit:
            stats["cache_hits"] += 1
        count = stats["total_assemblies"]
        stats["average_assembly_time"] += (elapsed_ms - stats["average_assembly_time"]) / count
        stats["average_context_size"] += (size - stats["average_context_size"]) / count

        self.metrics.record_latency("context_assembly", elapsed_ms, tags={"cache_hit": str(cache_hit).lower()})

    def get_metrics(self) -> Dict[str, Any]:
        """Assembly counters, cache hit rate and relevance weights"""

        total = self.assembly_metrics["total_assemblies"]
        return {
            **self.assembly_metrics,
            "cache_hit_rate": self.assembly_metrics["cache_hits"] / total if total else 0.0,
            "cache_size": len(self.cache),
            "memory_sources": [registered.name for registered in self.sources],
            "relevance_weights": {kind.value: weight for kind, weight in self.ranker.weights.items()},
        }

    async def clear_cache(self):
        await self.cache.clear()
        logger.info("Context cache cleared")

    def update_relevance_weights(self, weights: Mapping[str, float]):
        """Replace base weights per source kind; each must lie in [0, 1]"""

        parsed: Dict[SourceKind, float] = {}
        for kind, weight in weights.items():
            try:
                source_kind = SourceKind(kind)
            except ValueError as e:
                raise ValidationError(f"Unknown source kind: {kind}") from e
            if isinstance(weight, bool) or not isinstance(weight, (int, float)) or not 0 <= weight <= 1:
                raise ValidationError(f"Invalid weight for {kind}: must be number between 0 and 1")
            parsed[source_kind] = float(weight)

        self.ranker.weights.update(parsed)
        logger.info("Relevance weights updated", weights={k.value: v for k, v in self.ranker.weights.items()})
