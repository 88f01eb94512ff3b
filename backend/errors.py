"""Error taxonomy for the context search backend."""

from __future__ import annotations


class SearchError(Exception):
    """Base class for search engine errors."""


class ConfigurationError(SearchError):
    """Raised for misconfiguration; fatal to the call that observes it."""


class EmbeddingDimensionError(ConfigurationError, ValueError):
    """Raised when two embedding vectors of different length meet."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Vector dimensions don't match: {expected} vs {actual}")
        self.expected = expected
        self.actual = actual


class SnapshotUnavailableError(SearchError, RuntimeError):
    """Raised when the document snapshot cannot be fetched for a rebuild."""
