"""Service layer coordinating the index, scorers and result assembly."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, List, Optional

from config import SearchSettings
from errors import EmbeddingDimensionError
from index_store import IndexStore, embedding_text, filter_entries
from lexical_scorer import LexicalMatch, LexicalScorer
from lifecycle import IndexLifecycleManager, LifecycleEvent, LifecycleEventKind, SnapshotProvider
from models import (
    ContextDocument,
    FacetRequest,
    IndexEntry,
    SearchFilters,
    SearchOptions,
    SearchResponse,
    SearchResult,
    SortField,
)
from query_parser import ParsedQuery, parse
from result_assembler import (
    ConceptGraph,
    compute_facets,
    generate_suggestions,
    highlight_result,
    paginate,
    rerank,
    sort_results,
)
from semantic_scorer import EmbeddingProvider, SemanticScorer, combine_scores
from tokenizer import extract_concepts

logger = logging.getLogger(__name__)


class SearchService:
    """In-memory context search: lexical, semantic and hybrid."""

    def __init__(
        self,
        provider: SnapshotProvider,
        embedder: EmbeddingProvider | None = None,
        settings: SearchSettings | None = None,
        store: IndexStore | None = None,
        concepts: ConceptGraph | None = None,
    ):
        self.settings = settings or SearchSettings()
        self.store = store or IndexStore()
        self.embedder = embedder
        self.concepts = concepts or ConceptGraph()
        self.lexical = LexicalScorer(
            weights=self.settings.field_weights,
            fuzzy_threshold=self.settings.fuzzy_threshold,
        )
        self.semantic = (
            SemanticScorer(embedder, threshold=self.settings.semantic_threshold) if embedder is not None else None
        )
        self.lifecycle = IndexLifecycleManager(
            self.store,
            provider,
            embedder=embedder,
            stale_interval=self.settings.stale_interval,
            refresh_interval=self.settings.refresh_interval,
        )
        if self.settings.learn_concepts:
            self.lifecycle.subscribe(self._learn_from_index)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------
    async def search(
        self,
        query: str = "",
        filters: Optional[SearchFilters] = None,
        facets: Optional[FacetRequest] = None,
        options: Optional[SearchOptions] = None,
    ) -> SearchResponse:
        started = time.perf_counter()
        options = options or SearchOptions()
        logger.info("Performing search: %r", query)

        await self.lifecycle.ensure_fresh()

        parsed = parse(query, normalize_terms=self.settings.normalize_query_terms)
        entries = self.store.entries()
        candidates = filter_entries(entries.values(), filters)

        semantic_hits = await self._semantic_hits(parsed, candidates, options)
        results = self._score(parsed, candidates, options, semantic_hits)

        if options.rerank and results:
            rerank(results)

        sort_by = options.sort_by if "sort_by" in options.model_fields_set else SortField(self.settings.default_sort)
        ordered = sort_results(results, sort_by, options.sort_order)
        limit = options.limit or self.settings.default_limit
        page = paginate(ordered, options.offset, limit)

        if options.highlight_matches and not parsed.is_empty:
            for result in page:
                result.highlights = highlight_result(result, parsed.all_terms, self.settings.highlight_window)

        keys = list(dict.fromkeys(parsed.all_terms + extract_concepts(query)))
        response = SearchResponse(
            results=page,
            total_count=len(ordered),
            facets=compute_facets(candidates, facets, max_tags=self.settings.max_tag_facets),
            execution_time=(time.perf_counter() - started) * 1000,
            suggestions=generate_suggestions(query, keys, self.concepts, limit=self.settings.max_suggestions),
            search_type=_search_type(semantic_hits, options),
        )
        logger.info(
            "Search completed: %d/%d results in %.1fms",
            len(response.results),
            response.total_count,
            response.execution_time,
        )
        return response

    async def _semantic_hits(
        self,
        parsed: ParsedQuery,
        candidates: List[IndexEntry],
        options: SearchOptions,
    ) -> Optional[Dict[str, float]]:
        """Semantic similarities, or None when semantic scoring is unavailable."""
        if self.semantic is None or not options.semantic_search or parsed.is_empty:
            return None
        text = " ".join(parsed.all_terms)
        try:
            query_embedding = await asyncio.to_thread(self.semantic.embed_query, text)
        except EmbeddingDimensionError:
            raise
        except Exception as exc:
            logger.warning("Semantic scoring unavailable, falling back to lexical search: %s", exc)
            return None
        return self.semantic.matches(query_embedding, candidates, threshold=options.threshold)

    def _score(
        self,
        parsed: ParsedQuery,
        candidates: List[IndexEntry],
        options: SearchOptions,
        semantic_hits: Optional[Dict[str, float]],
    ) -> List[SearchResult]:
        if parsed.is_empty:
            return [
                SearchResult(
                    document=entry.to_document(),
                    score=0.0,
                    explanation="No query terms; every candidate matches",
                )
                for entry in candidates
            ]

        if semantic_hits is not None and not options.hybrid_search:
            return [
                SearchResult(
                    document=entry.to_document(),
                    score=semantic_hits[entry.id],
                    semantic_score=semantic_hits[entry.id],
                    matched_fields=["semantic"],
                    explanation=f"Semantic similarity: {round(semantic_hits[entry.id] * 100)}%",
                )
                for entry in candidates
                if entry.id in semantic_hits
            ]

        lexical: Dict[str, LexicalMatch] = {}
        for entry in candidates:
            match = self.lexical.score(entry, parsed.terms, parsed.phrases, fuzzy=options.fuzzy_match)
            if match.score > 0:
                lexical[entry.id] = match

        results: List[SearchResult] = []
        if semantic_hits is None:
            for entry in candidates:
                match = lexical.get(entry.id)
                if match is None:
                    continue
                results.append(
                    SearchResult(
                        document=entry.to_document(),
                        score=match.score,
                        lexical_score=match.score,
                        matched_fields=list(match.matched_fields),
                        explanation=f"Text match score: {match.score:.3f}",
                    )
                )
            return results

        combined = combine_scores(
            {doc_id: m.score for doc_id, m in lexical.items()},
            semantic_hits,
            lexical_weight=self.settings.lexical_weight,
            semantic_weight=self.settings.semantic_weight,
        )
        for entry in candidates:
            hybrid = combined.get(entry.id)
            if hybrid is None:
                continue
            fields = list(lexical[entry.id].matched_fields) if entry.id in lexical else []
            if hybrid.semantic is not None:
                fields.append("semantic")
            results.append(
                SearchResult(
                    document=entry.to_document(),
                    score=hybrid.combined,
                    lexical_score=hybrid.lexical,
                    semantic_score=hybrid.semantic,
                    matched_fields=fields,
                    explanation=_explain(hybrid.lexical, hybrid.semantic),
                )
            )
        return results

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------
    async def rebuild_index(self) -> bool:
        """Rebuild from the snapshot provider; False if a rebuild was already running."""
        return await self.lifecycle.rebuild(reason="explicit")

    async def index_document(self, document: ContextDocument) -> None:
        embedding = None
        if self.embedder is not None:
            embedding = await asyncio.to_thread(self.embedder.embed, embedding_text(document))
        self.store.index_one(document, embedding)
        if self.settings.learn_concepts:
            self.concepts.learn(document.content)

    def remove_document(self, context_id: str) -> bool:
        return self.store.remove(context_id)

    def get_stats(self) -> Dict[str, object]:
        stats = self.store.stats()
        stats["rebuilding"] = self.lifecycle.rebuilding
        return stats

    def suggest(self, partial_query: str, limit: int = 5) -> List[str]:
        """Titles and tags containing the partial query."""
        partial = (partial_query or "").strip().lower()
        if len(partial) < 2 or limit <= 0:
            return []

        suggestions: List[str] = []
        for entry in self.store.entries().values():
            if partial in entry.title.lower() and entry.title not in suggestions:
                suggestions.append(entry.title)
            for tag in entry.metadata.tags:
                if partial in tag.lower() and tag not in suggestions:
                    suggestions.append(tag)
            if len(suggestions) >= limit:
                break
        return suggestions[:limit]

    def _learn_from_index(self, event: LifecycleEvent) -> None:
        if event.kind != LifecycleEventKind.BUILD_COMPLETED:
            return
        for entry in self.store.entries().values():
            self.concepts.learn(entry.content)

    def start(self) -> None:
        self.lifecycle.start()

    async def stop(self) -> None:
        await self.lifecycle.stop()


def _search_type(semantic_hits: Optional[Dict[str, float]], options: SearchOptions) -> str:
    if semantic_hits is None:
        return "text"
    return "hybrid" if options.hybrid_search else "semantic"


def _explain(lexical: Optional[float], semantic: Optional[float]) -> str:
    parts = []
    if lexical is not None:
        parts.append(f"text {lexical:.3f}")
    if semantic is not None:
        parts.append(f"semantic {round(semantic * 100)}%")
    return "Hybrid match: " + ", ".join(parts)
