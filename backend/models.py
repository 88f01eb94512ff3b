"""Shared backend models for the context search engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class Importance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SortField(str, Enum):
    RELEVANCE = "relevance"
    DATE = "date"
    TITLE = "title"
    TOKEN_COUNT = "token_count"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class ContextDocument:
    """A stored context as handed over by the snapshot provider."""

    id: str
    title: str
    content: str = ""
    type: str = "general"
    tags: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    owner_id: str = ""
    token_count: Optional[int] = None
    importance: Optional[Importance] = None
    interactions: int = 0


@dataclass(frozen=True)
class EntryMetadata:
    type: str
    tags: Tuple[str, ...]
    created_at: datetime
    updated_at: datetime
    token_count: int
    owner_id: str
    importance: Optional[Importance] = None
    interactions: int = 0


@dataclass(frozen=True)
class IndexEntry:
    """Searchable in-memory representation of one context."""

    id: str
    title: str
    content: str
    tokens: Tuple[str, ...]
    metadata: EntryMetadata
    embedding: Optional[Tuple[float, ...]] = None
    token_set: FrozenSet[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "token_set", frozenset(self.tokens))

    def to_document(self) -> ContextDocument:
        meta = self.metadata
        return ContextDocument(
            id=self.id,
            title=self.title,
            content=self.content,
            type=meta.type,
            tags=list(meta.tags),
            created_at=meta.created_at,
            updated_at=meta.updated_at,
            owner_id=meta.owner_id,
            token_count=meta.token_count,
            importance=meta.importance,
            interactions=meta.interactions,
        )


@dataclass
class Highlight:
    field: str
    fragments: List[str] = field(default_factory=list)
    positions: List[int] = field(default_factory=list)


@dataclass
class SearchResult:
    document: ContextDocument
    score: float
    lexical_score: Optional[float] = None
    semantic_score: Optional[float] = None
    matched_fields: List[str] = field(default_factory=list)
    highlights: List[Highlight] = field(default_factory=list)
    explanation: Optional[str] = None


@dataclass
class FacetValue:
    value: str
    count: int = 0
    selected: bool = False


@dataclass
class FacetResult:
    field: str
    values: List[FacetValue] = field(default_factory=list)


@dataclass
class SearchResponse:
    results: List[SearchResult]
    total_count: int
    facets: List[FacetResult]
    execution_time: float
    suggestions: List[str] = field(default_factory=list)
    search_type: str = "text"


# Request payloads


class DateRange(BaseModel):
    start: datetime
    end: datetime


class NamedDateRange(DateRange):
    name: str


class TokenRange(BaseModel):
    name: str
    min: int = 0
    max: int


class SearchFilters(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Optional[str] = None
    tags: Optional[List[str]] = None
    owner_id: Optional[str] = Field(default=None, alias="ownerId")
    date_range: Optional[DateRange] = Field(default=None, alias="dateRange")
    importance: Optional[List[Importance]] = None


class FacetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    types: Optional[List[str]] = None
    importance: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    owners: Optional[List[str]] = None
    date_ranges: Optional[List[NamedDateRange]] = Field(default=None, alias="dateRanges")
    token_ranges: Optional[List[TokenRange]] = Field(default=None, alias="tokenRanges")


_SORT_ALIASES = {"tokencount": SortField.TOKEN_COUNT, "updated": SortField.DATE, "score": SortField.RELEVANCE}


class SearchOptions(BaseModel):
    """Per-query knobs. Malformed values fall back to defaults instead of failing."""

    model_config = ConfigDict(populate_by_name=True)

    fuzzy_match: bool = Field(default=True, alias="fuzzyMatch")
    semantic_search: bool = Field(default=True, alias="semanticSearch")
    hybrid_search: bool = Field(default=True, alias="hybridSearch")
    threshold: Optional[float] = None
    highlight_matches: bool = Field(default=True, alias="highlightMatches")
    rerank: bool = False
    sort_by: SortField = Field(default=SortField.RELEVANCE, alias="sortBy")
    sort_order: SortOrder = Field(default=SortOrder.DESC, alias="sortOrder")
    limit: Optional[int] = None
    offset: int = 0

    @field_validator("limit", mode="before")
    @classmethod
    def _coerce_limit(cls, value: Any) -> Optional[int]:
        if value is None:
            return None
        try:
            limit = int(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed limit %r", value)
            return None
        if limit < 0:
            logger.warning("Ignoring negative limit %s", limit)
            return None
        return limit

    @field_validator("offset", mode="before")
    @classmethod
    def _coerce_offset(cls, value: Any) -> int:
        if value is None:
            return 0
        try:
            offset = int(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed offset %r", value)
            return 0
        if offset < 0:
            logger.warning("Ignoring negative offset %s", offset)
            return 0
        return offset

    @field_validator("threshold", mode="before")
    @classmethod
    def _coerce_threshold(cls, value: Any) -> Optional[float]:
        if value is None:
            return None
        try:
            threshold = float(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed threshold %r", value)
            return None
        if not 0.0 <= threshold <= 1.0:
            logger.warning("Ignoring out-of-range threshold %s", threshold)
            return None
        return threshold

    @field_validator("sort_by", mode="before")
    @classmethod
    def _coerce_sort_by(cls, value: Any) -> SortField:
        if isinstance(value, SortField):
            return value
        key = str(value or "").strip().lower()
        try:
            return SortField(key)
        except ValueError:
            pass
        if key in _SORT_ALIASES:
            return _SORT_ALIASES[key]
        logger.warning("Unknown sort field %r; sorting by relevance", value)
        return SortField.RELEVANCE

    @field_validator("sort_order", mode="before")
    @classmethod
    def _coerce_sort_order(cls, value: Any) -> SortOrder:
        if isinstance(value, SortOrder):
            return value
        try:
            return SortOrder(str(value or "").strip().lower())
        except ValueError:
            logger.warning("Unknown sort order %r; using descending", value)
            return SortOrder.DESC

    @field_validator("fuzzy_match", "semantic_search", "hybrid_search", "highlight_matches", "rerank", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any, info) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("1", "true", "yes", "on", "0", "false", "no", "off"):
            return value.strip().lower() in ("1", "true", "yes", "on")
        if isinstance(value, int):
            return bool(value)
        default = cls.model_fields[info.field_name].default
        logger.warning("Ignoring malformed %s=%r", info.field_name, value)
        return default


class SearchRequest(BaseModel):
    query: str = ""
    filters: Optional[SearchFilters] = None
    facets: Optional[FacetRequest] = None
    options: Optional[SearchOptions] = None


# API payloads


class ContextPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    content: str = ""
    type: str = "general"
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")
    owner_id: str = Field(default="", alias="ownerId")
    token_count: Optional[int] = Field(default=None, alias="tokenCount")
    importance: Optional[Importance] = None
    interactions: int = 0

    def to_document(self) -> ContextDocument:
        return ContextDocument(
            id=self.id,
            title=self.title,
            content=self.content,
            type=self.type,
            tags=list(self.tags),
            created_at=self.created_at,
            updated_at=self.updated_at,
            owner_id=self.owner_id,
            token_count=self.token_count,
            importance=self.importance,
            interactions=self.interactions,
        )

    @classmethod
    def from_document(cls, document: ContextDocument) -> "ContextPayload":
        return cls(
            id=document.id,
            title=document.title,
            content=document.content,
            type=document.type,
            tags=list(document.tags),
            created_at=document.created_at,
            updated_at=document.updated_at,
            owner_id=document.owner_id,
            token_count=document.token_count,
            importance=document.importance,
            interactions=document.interactions,
        )


class HighlightPayload(BaseModel):
    field: str
    fragments: List[str] = Field(default_factory=list)
    positions: List[int] = Field(default_factory=list)


class SearchHitPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    context: ContextPayload
    score: float
    lexical_score: Optional[float] = Field(default=None, alias="lexicalScore")
    semantic_score: Optional[float] = Field(default=None, alias="semanticScore")
    matched_fields: List[str] = Field(default_factory=list, alias="matchedFields")
    highlights: List[HighlightPayload] = Field(default_factory=list)
    explanation: Optional[str] = None


class FacetValuePayload(BaseModel):
    value: str
    count: int
    selected: bool = False


class FacetPayload(BaseModel):
    field: str
    values: List[FacetValuePayload] = Field(default_factory=list)


class SearchResponsePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    results: List[SearchHitPayload] = Field(default_factory=list)
    total_count: int = Field(default=0, alias="totalCount")
    facets: List[FacetPayload] = Field(default_factory=list)
    execution_time: float = Field(default=0.0, alias="executionTime")
    suggestions: List[str] = Field(default_factory=list)
    search_type: str = Field(default="text", alias="searchType")

    @classmethod
    def from_response(cls, response: SearchResponse) -> "SearchResponsePayload":
        return cls(
            results=[
                SearchHitPayload(
                    context=ContextPayload.from_document(r.document),
                    score=r.score,
                    lexical_score=r.lexical_score,
                    semantic_score=r.semantic_score,
                    matched_fields=list(r.matched_fields),
                    highlights=[
                        HighlightPayload(field=h.field, fragments=h.fragments, positions=h.positions)
                        for h in r.highlights
                    ],
                    explanation=r.explanation,
                )
                for r in response.results
            ],
            total_count=response.total_count,
            facets=[
                FacetPayload(
                    field=f.field,
                    values=[FacetValuePayload(value=v.value, count=v.count, selected=v.selected) for v in f.values],
                )
                for f in response.facets
            ],
            execution_time=response.execution_time,
            suggestions=list(response.suggestions),
            search_type=response.search_type,
        )


class StatsPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entry_count: int = Field(alias="entryCount")
    total_tokens: int = Field(alias="totalTokens")
    avg_tokens_per_entry: float = Field(alias="avgTokensPerEntry")
    last_rebuild_time: Optional[datetime] = Field(default=None, alias="lastRebuildTime")
    rebuilding: bool = False


class SuggestResponsePayload(BaseModel):
    suggestions: List[str] = Field(default_factory=list)


class RebuildResponsePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    executed: bool = True
    entry_count: int = Field(default=0, alias="entryCount")


def stats_payload(stats: Dict[str, Any]) -> StatsPayload:
    return StatsPayload(**stats)
