from typing import Dict, Iterable, List, Optional
from datetime import timezone
import json

from agentflow.domain.models.context import (
    ContextRequest,
    MemoryItem,
    RelevanceScore,
    ScoredItem,
    SourceKind,
)
from agentflow.infrastructure.runtime.clock import Clock, SystemClock


# working > procedural > semantic > episodic
DEFAULT_RELEVANCE_WEIGHTS: Dict[SourceKind, float] = {
    SourceKind.WORKING: 1.0,
    SourceKind.PROCEDURAL: 0.8,
    SourceKind.SEMANTIC: 0.6,
    SourceKind.EPISODIC: 0.4,
    SourceKind.GENERIC: 0.5,
}

MAX_SCORE = 10.0
QUALITY_TAGS = ("success", "verified", "important")


def serialize_item(item: MemoryItem) -> str:
    """Canonical text form used for keyword matching"""
    return json.dumps(item.model_dump(mode="python"), default=str, sort_keys=True, ensure_ascii=False)


class ContextRanker:
    """Scores memory items against a context request.

    total = min(10, base * (1 + keyword) * (1 + type) * (1 + recency) * (1 + quality))
    """

    def __init__(
        self,
        weights: Optional[Dict[SourceKind, float]] = None,
        clock: Optional[Clock] = None
    ):
        self.weights = dict(DEFAULT_RELEVANCE_WEIGHTS)
        if weights:
            self.weights.update(weights)
        self.clock = clock or SystemClock()

    def base_weight(self, kind: SourceKind) -> float:
        return self.weights.get(kind, self.weights[SourceKind.GENERIC])

    def score(self, item: MemoryItem, request: ContextRequest, kind: SourceKind) -> RelevanceScore:
        """Compute the full relevance breakdown for one item"""

        base = self.base_weight(kind)
        keyword = self.calculate_keyword_score(item, request.keywords)
        type_score = self.calculate_type_score(item, request)
        recency = self.calculate_time_score(item)
        quality = self.calculate_quality_score(item)

        total = base * (1 + keyword) * (1 + type_score) * (1 + recency) * (1 + quality)

        return RelevanceScore(
            base=base,
            keyword_component=keyword,
            type_component=type_score,
            recency_component=recency,
            quality_component=quality,
            total=min(total, MAX_SCORE)
        )

    def rank(
        self,
        items: Iterable[MemoryItem],
        request: ContextRequest,
        source: str,
        kind: SourceKind
    ) -> List[ScoredItem]:
        """Score a source's items, keeping the source's order"""

        return [
            ScoredItem(
                key=item.key,
                data=item.data,
                metadata=item.metadata.model_dump(mode="json"),
                source=source,
                source_kind=kind,
                score=self.score(item, request, kind)
            )
            for item in items
        ]

    def calculate_keyword_score(self, item: MemoryItem, keywords: Iterable[str]) -> float:
        """Fraction of keywords found in the item's serialized form"""

        keywords = list(keywords)
        if not keywords:
            return 0.0

        item_text = serialize_item(item).lower()
        matches = [keyword for keyword in keywords if keyword.lower() in item_text]

        return len(matches) / len(keywords)

    def calculate_type_score(self, item: MemoryItem, request: ContextRequest) -> float:
        """Reward metadata matching the request type and target, in [0, 1]"""

        metadata = item.metadata
        score = 0.0

        if request.type:
            if metadata.type == request.type:
                score += 0.5
            if metadata.category == request.type:
                score += 0.3
            if request.type in metadata.tags:
                score += 0.2

        if request.target:
            if metadata.agent_type == request.target:
                score += 0.5
            if metadata.target == request.target:
                score += 0.5
            if request.target in metadata.tags:
                score += 0.3

        return min(score, 1.0)

    def calculate_time_score(self, item: MemoryItem) -> float:
        """Recent items score higher: <1h 0.5, <24h 0.3, <1 week 0.1, else 0.05"""

        created_at = item.metadata.created_at
        if created_at is None:
            return 0.0
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        age_hours = (self.clock.now() - created_at).total_seconds() / 3600

        if age_hours < 1:
            return 0.5
        if age_hours < 24:
            return 0.3
        if age_hours < 168:
            return 0.1
        return 0.05

    def calculate_quality_score(self, item: MemoryItem) -> float:
        """Priority and quality tags, capped at 0.3"""

        metadata = item.metadata
        score = 0.0

        if metadata.priority:
            score += min(metadata.priority / 10, 0.2)

        for tag in QUALITY_TAGS:
            if tag in metadata.tags:
                score += 0.1

        return min(score, 0.3)
