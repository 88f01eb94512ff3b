"""Query parsing: quoted phrases and free terms."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List

from tokenizer import normalize_query, tokenize

_PHRASE_RE = re.compile(r'"([^"]+)"')


@dataclass(frozen=True)
class ParsedQuery:
    raw: str
    phrases: List[str] = field(default_factory=list)
    terms: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.phrases and not self.terms

    @property
    def all_terms(self) -> List[str]:
        """Phrases first, then terms, as used for highlighting."""
        return list(self.phrases) + list(self.terms)


def parse(query: str, normalize_terms: bool = False) -> ParsedQuery:
    """Split a raw query into quoted phrases and whitespace-separated terms.

    With ``normalize_terms`` the free terms go through the index tokenizer, so
    stop words and tokens of two characters or less are dropped on the query
    side too. Phrases are always kept verbatim (lower-cased).
    """
    normalized = normalize_query(query)
    phrases = [p.strip() for p in _PHRASE_RE.findall(normalized) if p.strip()]
    remainder = _PHRASE_RE.sub(" ", normalized).replace('"', " ")
    if normalize_terms:
        terms = tokenize(remainder)
    else:
        terms = [term for term in remainder.split() if term]
    return ParsedQuery(raw=query or "", phrases=phrases, terms=terms)
