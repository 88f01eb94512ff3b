"""Result assembly: reranking, sorting, pagination, highlights, facets, suggestions."""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from models import (
    FacetRequest,
    FacetResult,
    FacetValue,
    Highlight,
    Importance,
    IndexEntry,
    SearchResult,
    SortField,
    SortOrder,
    as_utc,
    utcnow,
)
from tokenizer import extract_concepts

RECENT_WEEK_BOOST = 1.2
RECENT_MONTH_BOOST = 1.1
CRITICAL_BOOST = 1.3
HIGH_BOOST = 1.2
FREQUENT_BOOST = 1.1
FREQUENT_INTERACTIONS = 10

DEFAULT_CONCEPT_GROUPS = (
    ("python", "programming", "code", "development"),
    ("javascript", "programming", "web", "frontend"),
    ("database", "data", "storage", "query"),
    ("ai", "machine learning", "neural network", "algorithm"),
    ("api", "endpoint", "service", "integration"),
)

# Per document; co-occurrence links grow quadratically with this.
MAX_LEARNED_CONCEPTS = 20

SUGGESTION_TEMPLATES = ("{query} examples", "{query} tutorial", "how to {query}")


def rerank_boost(result: SearchResult, now: Optional[datetime] = None) -> float:
    """Multiplicative recency, importance and frequency boost for one result."""
    now = as_utc(now or utcnow())
    document = result.document
    boost = 1.0

    age = now - as_utc(document.updated_at)
    if age < timedelta(days=7):
        boost *= RECENT_WEEK_BOOST
    elif age < timedelta(days=30):
        boost *= RECENT_MONTH_BOOST

    if document.importance == Importance.CRITICAL:
        boost *= CRITICAL_BOOST
    elif document.importance == Importance.HIGH:
        boost *= HIGH_BOOST

    if (document.interactions or 0) > FREQUENT_INTERACTIONS:
        boost *= FREQUENT_BOOST
    return boost


def rerank(results: List[SearchResult], now: Optional[datetime] = None) -> List[SearchResult]:
    for result in results:
        result.score *= rerank_boost(result, now)
    return results


def _sort_key(sort_by: SortField):
    if sort_by == SortField.DATE:
        return lambda r: as_utc(r.document.updated_at)
    if sort_by == SortField.TITLE:
        return lambda r: r.document.title.lower()
    if sort_by == SortField.TOKEN_COUNT:
        return lambda r: r.document.token_count or 0
    return lambda r: r.score


def sort_results(
    results: Sequence[SearchResult],
    sort_by: SortField = SortField.RELEVANCE,
    sort_order: SortOrder = SortOrder.DESC,
) -> List[SearchResult]:
    """Stable sort; ties keep their incoming order in both directions."""
    return sorted(results, key=_sort_key(sort_by), reverse=sort_order == SortOrder.DESC)


def paginate(results: Sequence[SearchResult], offset: int = 0, limit: int = 50) -> List[SearchResult]:
    offset = max(0, int(offset))
    limit = max(0, int(limit))
    return list(results[offset : offset + limit])


def find_fragments(text: str, needles: Iterable[str], window: int = 75) -> Highlight:
    """Word-bounded, case-insensitive occurrences with surrounding context."""
    highlight = Highlight(field="")
    if not text:
        return highlight
    for needle in needles:
        if not needle:
            continue
        pattern = re.compile(rf"(?<!\w){re.escape(needle)}(?!\w)", re.IGNORECASE)
        for match in pattern.finditer(text):
            start = max(0, match.start() - window)
            end = min(len(text), match.end() + window)
            fragment = text[start:end]
            if start > 0:
                fragment = "..." + fragment
            if end < len(text):
                fragment = fragment + "..."
            highlight.fragments.append(fragment)
            highlight.positions.append(match.start())
    return highlight


def highlight_result(result: SearchResult, needles: Sequence[str], window: int = 75) -> List[Highlight]:
    highlights: List[Highlight] = []
    for name, text in (("title", result.document.title), ("content", result.document.content)):
        found = find_fragments(text, needles, window)
        if found.fragments:
            found.field = name
            highlights.append(found)
    return highlights


def _counted(counts: Dict[str, int], selected: Optional[Sequence[str]], top: Optional[int] = None) -> List[FacetValue]:
    chosen = set(selected or [])
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    if top is not None:
        ordered = ordered[:top]
    return [FacetValue(value=value, count=count, selected=value in chosen) for value, count in ordered]


def compute_facets(
    candidates: Iterable[IndexEntry],
    request: Optional[FacetRequest] = None,
    max_tags: int = 20,
) -> List[FacetResult]:
    """Facet counts over the filtered candidate population."""
    candidates = list(candidates)
    request = request or FacetRequest()

    type_counts: Dict[str, int] = {}
    importance_counts: Dict[str, int] = {}
    tag_counts: Dict[str, int] = {}
    owner_counts: Dict[str, int] = {}
    for entry in candidates:
        meta = entry.metadata
        type_counts[meta.type] = type_counts.get(meta.type, 0) + 1
        if meta.importance is not None:
            level = Importance(meta.importance).value
            importance_counts[level] = importance_counts.get(level, 0) + 1
        for tag in set(meta.tags):
            tag_counts[tag] = tag_counts.get(tag, 0) + 1
        owner_counts[meta.owner_id] = owner_counts.get(meta.owner_id, 0) + 1

    facets = [
        FacetResult(field="type", values=_counted(type_counts, request.types)),
        FacetResult(field="importance", values=_counted(importance_counts, request.importance)),
        FacetResult(field="tags", values=_counted(tag_counts, request.tags, top=max_tags)),
    ]

    if request.owners is not None:
        facets.append(FacetResult(field="owner", values=_counted(owner_counts, request.owners)))

    if request.date_ranges:
        values = []
        for bucket in request.date_ranges:
            start, end = as_utc(bucket.start), as_utc(bucket.end)
            count = sum(1 for e in candidates if start <= as_utc(e.metadata.created_at) <= end)
            values.append(FacetValue(value=bucket.name, count=count))
        facets.append(FacetResult(field="dateRange", values=values))

    if request.token_ranges:
        values = []
        for bucket in request.token_ranges:
            count = sum(1 for e in candidates if bucket.min <= e.metadata.token_count <= bucket.max)
            values.append(FacetValue(value=bucket.name, count=count))
        facets.append(FacetResult(field="tokenRange", values=values))

    return facets


class ConceptGraph:
    """Symmetric association table between related concepts."""

    def __init__(self, groups: Iterable[Sequence[str]] = DEFAULT_CONCEPT_GROUPS):
        self._related: Dict[str, Dict[str, None]] = {}
        for group in groups:
            self.add_group(group)

    def add_group(self, group: Sequence[str]) -> None:
        for concept in group:
            related = self._related.setdefault(concept, {})
            for other in group:
                if other != concept:
                    related.setdefault(other, None)

    def learn(self, text: str) -> List[str]:
        """Associate the concepts that co-occur in one piece of indexed text."""
        concepts = extract_concepts(text)[:MAX_LEARNED_CONCEPTS]
        if concepts:
            self.add_group(concepts)
        return concepts

    def related(self, concept: str) -> List[str]:
        return list(self._related.get(concept, []))

    def __len__(self) -> int:
        return len(self._related)


def generate_suggestions(
    query: str,
    keys: Sequence[str],
    graph: ConceptGraph,
    limit: int = 5,
) -> List[str]:
    """Related concepts for the query keys, then templated query variations."""
    suggestions: List[str] = []
    key_set = set(keys)
    for key in keys:
        for related in graph.related(key):
            if related not in suggestions and related not in key_set:
                suggestions.append(related)

    trimmed = (query or "").strip()
    if len(trimmed) > 3:
        for template in SUGGESTION_TEMPLATES:
            candidate = template.format(query=trimmed)
            if candidate not in suggestions:
                suggestions.append(candidate)
    return suggestions[:limit]
