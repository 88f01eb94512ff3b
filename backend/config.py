"""Environment-driven settings for the context search backend."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from errors import ConfigurationError
from lexical_scorer import DEFAULT_WEIGHTS

logger = logging.getLogger(__name__)

ENV_PREFIX = "CONTEXT_SEARCH_"

SORT_KEYS = ("relevance", "date", "title", "token_count")


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s%s=%r; using %s", ENV_PREFIX, name, raw, default)
        return default


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s%s=%r; using %s", ENV_PREFIX, name, raw, default)
        return default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


@dataclass
class SearchSettings:
    """Tunable parameters for indexing, scoring and index freshness."""

    stale_interval: float = 300.0
    refresh_interval: float = 300.0
    fuzzy_threshold: float = 0.7
    default_limit: int = 50
    highlight_window: int = 75
    semantic_threshold: float = 0.3
    lexical_weight: float = 0.4
    semantic_weight: float = 0.6
    default_sort: str = "relevance"
    normalize_query_terms: bool = False
    max_suggestions: int = 5
    max_tag_facets: int = 20
    learn_concepts: bool = True
    embed_model: Optional[str] = None
    storage_dir: Optional[str] = None
    log_level: str = "INFO"
    field_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))

    def __post_init__(self):
        if self.default_sort not in SORT_KEYS:
            raise ConfigurationError(
                f"Unsupported default sort key {self.default_sort!r}; expected one of {SORT_KEYS}"
            )
        if not 0.0 <= self.fuzzy_threshold <= 1.0:
            raise ConfigurationError(f"fuzzy_threshold must be within [0, 1], got {self.fuzzy_threshold}")
        if self.default_limit < 1:
            raise ConfigurationError(f"default_limit must be positive, got {self.default_limit}")
        if self.stale_interval <= 0 or self.refresh_interval <= 0:
            raise ConfigurationError("stale_interval and refresh_interval must be positive")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SearchSettings":
        env = os.environ if env is None else env
        return cls(
            stale_interval=_env_float(env, "STALE_INTERVAL", 300.0),
            refresh_interval=_env_float(env, "REFRESH_INTERVAL", 300.0),
            fuzzy_threshold=_env_float(env, "FUZZY_THRESHOLD", 0.7),
            default_limit=_env_int(env, "DEFAULT_LIMIT", 50),
            highlight_window=_env_int(env, "HIGHLIGHT_WINDOW", 75),
            semantic_threshold=_env_float(env, "SEMANTIC_THRESHOLD", 0.3),
            lexical_weight=_env_float(env, "LEXICAL_WEIGHT", 0.4),
            semantic_weight=_env_float(env, "SEMANTIC_WEIGHT", 0.6),
            default_sort=(env.get(ENV_PREFIX + "DEFAULT_SORT") or "relevance").strip(),
            normalize_query_terms=_env_bool(env, "NORMALIZE_QUERY_TERMS", False),
            learn_concepts=_env_bool(env, "LEARN_CONCEPTS", True),
            embed_model=env.get(ENV_PREFIX + "EMBED_MODEL") or None,
            storage_dir=env.get(ENV_PREFIX + "STORAGE_DIR") or None,
            log_level=(env.get(ENV_PREFIX + "LOG_LEVEL") or "INFO").strip().upper(),
        )
