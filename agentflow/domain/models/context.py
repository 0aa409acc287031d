from typing import Any, Dict, FrozenSet, List, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictStr, field_validator
from datetime import datetime, timezone
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceKind(str, Enum):
    """Kinds of memory source the assembler knows how to query"""
    WORKING = "working"
    PROCEDURAL = "procedural"
    SEMANTIC = "semantic"
    EPISODIC = "episodic"
    GENERIC = "generic"


class TimeRange(BaseModel):
    """Closed interval over one of the metadata timestamps"""
    field: str = "created_at"
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class PriorityRange(BaseModel):
    min: Optional[int] = None
    max: Optional[int] = None


class MemoryMetadata(BaseModel):
    """Metadata kept by a memory source next to each item"""
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    category: str = "general"
    tags: List[str] = Field(default_factory=list)
    priority: int = Field(1, ge=1, le=10)
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    source: str = "user"
    agent_type: Optional[str] = None
    target: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    modified_at: datetime = Field(default_factory=_utcnow)
    accessed_at: datetime = Field(default_factory=_utcnow)
    access_count: int = 0

    @field_validator("tags", mode="before")
    @classmethod
    def _dedupe_tags(cls, value: Any) -> Any:
        if isinstance(value, (set, frozenset, tuple, list)):
            return list(dict.fromkeys(value))
        return value


class MemoryItem(BaseModel):
    """A keyed entry returned by a memory source"""
    key: str
    data: Any = None
    metadata: MemoryMetadata = Field(default_factory=MemoryMetadata)


class MemoryFilter(BaseModel):
    """Query filter understood by every memory source.

    Unknown keys are kept so sources can honor their own extensions
    (for example ``session_id`` on working memory).
    """
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    date_range: Optional[TimeRange] = None
    priority_range: Optional[PriorityRange] = None
    limit: int = Field(100, ge=0)
    offset: int = Field(0, ge=0)
    sort_by: str = "created_at"
    sort_order: str = "desc"


class ContextRequest(BaseModel):
    """What an assembly call is looking for"""
    model_config = ConfigDict(populate_by_name=True)

    type: StrictStr = Field(min_length=1)
    target: Optional[str] = None
    keywords: FrozenSet[StrictStr] = Field(default_factory=frozenset)
    filters: Dict[str, Any] = Field(default_factory=dict)
    max_size_bytes: Optional[int] = Field(
        None,
        gt=0,
        validation_alias=AliasChoices("max_size_bytes", "maxSizeBytes", "maxSize")
    )
    time_range: Optional[TimeRange] = Field(None, alias="timeRange")
    session_id: Optional[str] = Field(None, alias="sessionId")

    @field_validator("keywords", mode="before")
    @classmethod
    def _keywords_collection(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        if isinstance(value, str):
            raise ValueError("keywords must be a collection of strings, not a string")
        return value


class RelevanceScore(BaseModel):
    """Breakdown of one item's relevance; recomputed on every assembly"""
    base: float
    keyword_component: float = 0.0
    type_component: float = 0.0
    recency_component: float = 0.0
    quality_component: float = 0.0
    total: float = Field(0.0, le=10.0)


class ScoredItem(BaseModel):
    """A memory item snapshot ranked for a particular request"""
    key: str
    data: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    source: str
    source_kind: SourceKind
    score: RelevanceScore
    compressed: bool = False


class SourceBreakdown(BaseModel):
    item_count: int = 0
    total_relevance: float = 0.0
    average_relevance: float = 0.0
    error: Optional[str] = None


class TopScore(BaseModel):
    key: str
    score: float
    source: str


class ContextSummary(BaseModel):
    type: Optional[str] = None
    target: Optional[str] = None
    item_count: int = 0
    source_breakdown: Dict[str, int] = Field(default_factory=dict)
    top_relevance_scores: List[TopScore] = Field(default_factory=list)
    average_relevance: float = 0.0
    error: Optional[str] = None


class AssemblyMetadata(BaseModel):
    timestamp: datetime = Field(default_factory=_utcnow)
    cache_key: Optional[str] = None
    original_item_count: int = 0
    final_item_count: int = 0
    final_size: int = 0
    max_size: int = 0
    compressed_item_count: int = 0
    compression_ratio: float = 0.0
    error: bool = False


class AssembledContext(BaseModel):
    """Ranked, size-bounded context handed to an agent"""
    summary: ContextSummary = Field(default_factory=ContextSummary)
    items: List[ScoredItem] = Field(default_factory=list)
    sources: Dict[str, SourceBreakdown] = Field(default_factory=dict)
    metadata: AssemblyMetadata = Field(default_factory=AssemblyMetadata)
