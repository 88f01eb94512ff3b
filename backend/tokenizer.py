"""Text normalization shared by indexing and query parsing."""

from __future__ import annotations

import re
from typing import List

STOP_WORDS = frozenset(
    {
        "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
        "is", "are", "was", "were", "be", "been", "have", "has", "had", "will", "would",
        "can", "could", "should", "may", "might", "must", "shall", "this", "that", "these", "those",
    }
)

# Concept extraction uses its own, smaller stop list over longer words.
CONCEPT_STOP_WORDS = frozenset(
    {"this", "that", "with", "have", "will", "from", "they", "know", "want", "been", "good", "much", "some", "time"}
)

_NON_WORD_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def tokenize(text: str) -> List[str]:
    """Lower-case, strip punctuation, and drop short tokens and stop words."""
    if not text:
        return []
    cleaned = _NON_WORD_RE.sub(" ", text.lower())
    return [token for token in cleaned.split() if len(token) > 2 and token not in STOP_WORDS]


def normalize_query(query: str) -> str:
    return _WHITESPACE_RE.sub(" ", (query or "").lower().strip())


def extract_concepts(text: str) -> List[str]:
    """Unique lower-cased words longer than three characters, in first-seen order."""
    cleaned = _NON_WORD_RE.sub(" ", (text or "").lower())
    seen = {}
    for word in cleaned.split():
        if len(word) > 3 and word not in CONCEPT_STOP_WORDS:
            seen.setdefault(word, None)
    return list(seen)
