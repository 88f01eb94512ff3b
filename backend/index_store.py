"""
Index store for the context search engine.

Holds the id -> IndexEntry mapping. Every mutation builds a new mapping and
swaps it in, so a reader that captured ``entries()`` keeps a complete,
unchanging view for the duration of its query.
"""

from __future__ import annotations

import logging
from datetime import datetime
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from errors import EmbeddingDimensionError
from models import ContextDocument, EntryMetadata, IndexEntry, SearchFilters, as_utc, utcnow
from tokenizer import tokenize

logger = logging.getLogger(__name__)

MAX_EMBED_CHARS = 8000


def embedding_text(document: ContextDocument) -> str:
    """Text handed to the embedding provider for a document."""
    parts = [document.title, document.content, " ".join(document.tags)]
    return " ".join(p for p in parts if p)[:MAX_EMBED_CHARS]


def build_entry(document: ContextDocument, embedding: Optional[Sequence[float]] = None) -> IndexEntry:
    tokens = tokenize(f"{document.title} {document.content}")
    token_count = document.token_count if document.token_count is not None else len(tokens)
    return IndexEntry(
        id=document.id,
        title=document.title,
        content=document.content,
        tokens=tuple(tokens),
        metadata=EntryMetadata(
            type=document.type,
            tags=tuple(document.tags),
            created_at=document.created_at,
            updated_at=document.updated_at,
            token_count=int(token_count),
            owner_id=document.owner_id,
            importance=document.importance,
            interactions=int(document.interactions or 0),
        ),
        embedding=tuple(float(x) for x in embedding) if embedding is not None else None,
    )


class IndexStore:
    """Owns the in-memory index; never persisted, rebuilt from a snapshot."""

    def __init__(self):
        self._entries: Mapping[str, IndexEntry] = MappingProxyType({})
        self._dimensions: Optional[int] = None
        # Single-entry changes made while a rebuild is in flight; replayed onto it.
        self._journal: Optional[List[Tuple[str, str, Optional[IndexEntry]]]] = None
        self.last_rebuild_time: Optional[datetime] = None

    @property
    def dimensions(self) -> Optional[int]:
        """Embedding length shared by all entries, once any entry carries one."""
        return self._dimensions

    def entries(self) -> Mapping[str, IndexEntry]:
        """Point-in-time, read-only view of the index."""
        return self._entries

    def get(self, entry_id: str) -> Optional[IndexEntry]:
        return self._entries.get(entry_id)

    def size(self) -> int:
        return len(self._entries)

    def rebuild(
        self,
        documents: Iterable[ContextDocument],
        embeddings: Optional[Sequence[Optional[Sequence[float]]]] = None,
    ) -> int:
        """Replace the whole index with entries built from ``documents``.

        Args:
            documents: Full snapshot of context documents
            embeddings: Optional vectors aligned with ``documents``

        Returns:
            Number of entries in the new index
        """
        documents = list(documents)
        if embeddings is not None and len(embeddings) != len(documents):
            raise ValueError(
                f"Got {len(embeddings)} embeddings for {len(documents)} documents"
            )

        fresh: Dict[str, IndexEntry] = {}
        dimensions: Optional[int] = None
        for position, document in enumerate(documents):
            vector = embeddings[position] if embeddings is not None else None
            if vector is not None:
                if dimensions is None:
                    dimensions = len(vector)
                elif len(vector) != dimensions:
                    raise EmbeddingDimensionError(dimensions, len(vector))
            fresh[document.id] = build_entry(document, vector)

        journal, self._journal = self._journal or [], None
        for op, entry_id, entry in journal:
            if op == "remove":
                fresh.pop(entry_id, None)
                continue
            if entry.embedding is not None:
                if dimensions is None:
                    dimensions = len(entry.embedding)
                elif len(entry.embedding) != dimensions:
                    raise EmbeddingDimensionError(dimensions, len(entry.embedding))
            fresh[entry_id] = entry
        if journal:
            logger.debug("Replayed %d index changes made during the rebuild", len(journal))
        if not any(e.embedding is not None for e in fresh.values()):
            dimensions = None

        self._entries = MappingProxyType(fresh)
        self._dimensions = dimensions
        self.last_rebuild_time = utcnow()
        logger.debug("Index rebuilt with %d entries", len(fresh))
        return len(fresh)

    def begin_rebuild(self) -> None:
        """Start recording index_one/remove calls for replay onto the next rebuild."""
        self._journal = []

    def abort_rebuild(self) -> None:
        self._journal = None

    def index_one(self, document: ContextDocument, embedding: Optional[Sequence[float]] = None) -> IndexEntry:
        """Insert or replace a single entry."""
        if embedding is not None:
            self._check_dimensions(len(embedding), replacing=document.id)
        entry = build_entry(document, embedding)
        updated = dict(self._entries)
        updated[entry.id] = entry
        self._entries = MappingProxyType(updated)
        if entry.embedding is not None and self._dimensions is None:
            self._dimensions = len(entry.embedding)
        if self._journal is not None:
            self._journal.append(("index", entry.id, entry))
        logger.debug("Context indexed: %s", entry.id)
        return entry

    def remove(self, entry_id: str) -> bool:
        if self._journal is not None:
            self._journal.append(("remove", entry_id, None))
        if entry_id not in self._entries:
            return False
        updated = dict(self._entries)
        del updated[entry_id]
        self._entries = MappingProxyType(updated)
        if not any(e.embedding is not None for e in updated.values()):
            self._dimensions = None
        logger.debug("Context removed from index: %s", entry_id)
        return True

    def stats(self) -> Dict[str, object]:
        entries = self._entries
        total_tokens = sum(e.metadata.token_count for e in entries.values())
        return {
            "entry_count": len(entries),
            "total_tokens": total_tokens,
            "avg_tokens_per_entry": (total_tokens / len(entries)) if entries else 0.0,
            "last_rebuild_time": self.last_rebuild_time,
        }

    def _check_dimensions(self, length: int, replacing: str) -> None:
        if self._dimensions is None or length == self._dimensions:
            return
        # A lone vector-bearing entry may be replaced by one of a new length.
        others = [e for eid, e in self._entries.items() if eid != replacing and e.embedding is not None]
        if others:
            raise EmbeddingDimensionError(self._dimensions, length)
        self._dimensions = length


def filter_entries(entries: Iterable[IndexEntry], filters: Optional[SearchFilters] = None) -> List[IndexEntry]:
    """Candidate pre-filtering on type, tags, owner, creation date and importance."""
    entries = list(entries)
    if filters is None:
        return entries

    start = as_utc(filters.date_range.start) if filters.date_range else None
    end = as_utc(filters.date_range.end) if filters.date_range else None
    importance = set(filters.importance or [])

    kept: List[IndexEntry] = []
    for entry in entries:
        meta = entry.metadata
        if filters.type and meta.type != filters.type:
            continue
        if filters.tags and not any(tag in meta.tags for tag in filters.tags):
            continue
        if filters.owner_id and meta.owner_id != filters.owner_id:
            continue
        if start is not None and not (start <= as_utc(meta.created_at) <= end):
            continue
        if importance and meta.importance not in importance:
            continue
        kept.append(entry)
    return kept
