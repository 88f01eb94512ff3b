"""Embedding similarity scoring and hybrid score combination."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import numpy as np

from errors import EmbeddingDimensionError
from models import IndexEntry

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> List[float]: ...

    def embed_batch(self, texts: List[str]) -> List[List[float]]: ...

    def dimensions(self) -> int: ...


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    Args:
        vec1: First embedding vector
        vec2: Second embedding vector

    Returns:
        Cosine similarity score between -1 and 1, or 0 for a zero-norm vector
    """
    if len(vec1) != len(vec2):
        raise EmbeddingDimensionError(len(vec1), len(vec2))

    v1 = np.asarray(vec1, dtype=np.float64)
    v2 = np.asarray(vec2, dtype=np.float64)
    norm1 = np.linalg.norm(v1)
    norm2 = np.linalg.norm(v2)
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return float(np.dot(v1, v2) / (norm1 * norm2))


class SemanticScorer:
    """Scores entries by cosine similarity to a query embedding."""

    def __init__(self, provider: EmbeddingProvider, threshold: float = 0.3):
        self.provider = provider
        self.threshold = threshold

    def embed_query(self, text: str) -> List[float]:
        return list(self.provider.embed(text))

    def score(self, query_embedding: Sequence[float], entry: IndexEntry) -> float:
        if entry.embedding is None:
            return 0.0
        return cosine_similarity(query_embedding, entry.embedding)

    def matches(
        self,
        query_embedding: Sequence[float],
        entries: Iterable[IndexEntry],
        threshold: Optional[float] = None,
    ) -> Dict[str, float]:
        """Similarity for every entry at or above the threshold (the scorer default unless given)."""
        threshold = self.threshold if threshold is None else threshold
        hits: Dict[str, float] = {}
        for entry in entries:
            if entry.embedding is None:
                continue
            value = self.score(query_embedding, entry)
            if value >= threshold:
                hits[entry.id] = value
        logger.debug("Semantic matches: %d at or above %.2f", len(hits), threshold)
        return hits


@dataclass
class HybridScore:
    combined: float
    lexical: Optional[float] = None
    semantic: Optional[float] = None


def combine_scores(
    lexical: Dict[str, float],
    semantic: Dict[str, float],
    lexical_weight: float = 0.4,
    semantic_weight: float = 0.6,
) -> Dict[str, HybridScore]:
    """Merge lexical and semantic hits.

    A document found by both methods gets ``lexical*lw + semantic*sw``; a
    document found by one method keeps that method's weighted score.
    Iteration order is lexical hits first, then semantic-only hits.
    """
    combined: Dict[str, HybridScore] = {}
    for doc_id, lex in lexical.items():
        sem = semantic.get(doc_id)
        total = lex * lexical_weight + (sem * semantic_weight if sem is not None else 0.0)
        combined[doc_id] = HybridScore(combined=total, lexical=lex, semantic=sem)
    for doc_id, sem in semantic.items():
        if doc_id not in combined:
            combined[doc_id] = HybridScore(combined=sem * semantic_weight, semantic=sem)
    return combined
