"""Exact and fuzzy text-match scoring over index entries."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from models import IndexEntry

DEFAULT_WEIGHTS: Dict[str, float] = {
    "title": 3.0,
    "content": 1.0,
    "tag": 2.0,
    "token": 0.5,
    "title_fuzzy": 2.0,
    "content_fuzzy": 0.5,
    "tag_fuzzy": 1.0,
}


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance with a two-row table."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(current[j - 1] + 1, previous[j] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(text: str, pattern: str) -> float:
    """Normalized Levenshtein similarity in [0, 1]."""
    if not pattern:
        return 1.0
    if not text:
        return 0.0
    longest = max(len(text), len(pattern))
    return 1.0 - levenshtein_distance(text, pattern) / longest


def fuzzy_match(text: str, pattern: str, threshold: float = 0.7) -> bool:
    if not pattern:
        return True
    if not text:
        return False
    # The distance is at least the length difference; skip hopeless pairs.
    longest = max(len(text), len(pattern))
    if 1.0 - abs(len(text) - len(pattern)) / longest < threshold:
        return False
    return similarity(text, pattern) >= threshold


@dataclass
class LexicalMatch:
    score: float = 0.0
    matched_fields: List[str] = field(default_factory=list)

    def _mark(self, name: str) -> None:
        if name not in self.matched_fields:
            self.matched_fields.append(name)


class LexicalScorer:
    """Scores an entry against query terms and phrases.

    Terms are matched case-insensitively as raw substrings of the title,
    content and tags, plus membership in the entry's token set. Fuzzy credit is
    only given to a field that had no substring hit for the term, and never
    to phrases.
    """

    def __init__(self, weights: Optional[Dict[str, float]] = None, fuzzy_threshold: float = 0.7):
        self.weights = dict(DEFAULT_WEIGHTS)
        if weights:
            self.weights.update(weights)
        self.fuzzy_threshold = fuzzy_threshold

    def score(
        self,
        entry: IndexEntry,
        terms: Sequence[str],
        phrases: Sequence[str] = (),
        fuzzy: bool = True,
    ) -> LexicalMatch:
        match = LexicalMatch()
        if not terms and not phrases:
            return match

        title = entry.title.lower()
        content = entry.content.lower()
        tags = [tag.lower() for tag in entry.metadata.tags]
        w = self.weights
        raw = 0.0

        queries = [(p.lower(), False) for p in phrases if p] + [(t.lower(), fuzzy) for t in terms if t]
        for needle, allow_fuzzy in queries:
            if needle in title:
                raw += w["title"]
                match._mark("title")
            elif allow_fuzzy and fuzzy_match(title, needle, self.fuzzy_threshold):
                raw += w["title_fuzzy"]
                match._mark("title")

            if needle in content:
                raw += w["content"]
                match._mark("content")
            elif allow_fuzzy and fuzzy_match(content, needle, self.fuzzy_threshold):
                raw += w["content_fuzzy"]
                match._mark("content")

            for tag in tags:
                if needle in tag:
                    raw += w["tag"]
                    match._mark("tags")
                elif allow_fuzzy and fuzzy_match(tag, needle, self.fuzzy_threshold):
                    raw += w["tag_fuzzy"]
                    match._mark("tags")

            if needle in entry.token_set:
                raw += w["token"]

        if raw <= 0:
            return match
        # An empty body would give ln(1) == 0; leave the raw score unscaled.
        norm = math.log(len(entry.content) + 1)
        match.score = raw / norm if norm > 0 else raw
        return match
