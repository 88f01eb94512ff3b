"""
Embedding provider for context search.

Uses sentence-transformers to convert context text into vector embeddings.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "BAAI/bge-small-en-v1.5"


def _resolve_hf_snapshot(model_name_or_path: str) -> str:
    """Resolve a HF model id to a local snapshot path (no network).

    If the model is not present locally, this raises.
    """
    name = (model_name_or_path or "").strip()
    if not name:
        raise ValueError("Model name is empty.")
    if os.path.exists(name):
        return name
    try:
        from huggingface_hub import snapshot_download
    except ImportError as exc:
        raise RuntimeError(f"huggingface_hub is required to load '{name}': {exc}") from exc
    try:
        return snapshot_download(repo_id=name, local_files_only=True)
    except Exception as exc:
        raise RuntimeError(
            f"Model '{name}' is not available in the local HF cache. "
            "Download it (with network access) before running."
        ) from exc


class Embedder:
    """Handles text embedding using sentence-transformers."""

    def __init__(self, model_name: Optional[str] = None):
        """
        Initialize the embedder.

        Args:
            model_name: Name of the sentence-transformers model to use.
                       Defaults to `CONTEXT_SEARCH_EMBED_MODEL` or `BAAI/bge-small-en-v1.5`.
        """
        self.model_name = model_name or os.environ.get("CONTEXT_SEARCH_EMBED_MODEL") or DEFAULT_MODEL
        self.model = None
        self.embedding_dim = 384  # bge-small; refined after load

    def load_model(self):
        """Lazy load the sentence-transformers model."""
        if self.model is not None:
            return
        try:
            logger.info("Loading sentence-transformers model: %s", self.model_name)
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise RuntimeError(
                "sentence-transformers is required for embeddings. "
                f"Install it and ensure model '{self.model_name}' is available. Reason: {e}"
            ) from e

        try:
            self.model = SentenceTransformer(_resolve_hf_snapshot(self.model_name))
            test_embedding = self.model.encode(["test"], convert_to_numpy=True)
            self.embedding_dim = int(test_embedding.shape[1])
            logger.info("Model loaded. Embedding dimension: %d", self.embedding_dim)
        except Exception as e:
            self.model = None
            raise RuntimeError(
                f"Failed to load sentence-transformers model '{self.model_name}': {e}"
            ) from e

    def embed(self, text: str) -> List[float]:
        """
        Convert text to embedding vector.

        Args:
            text: Text to embed

        Returns:
            List of floats representing the embedding vector
        """
        self.load_model()

        if not text or not text.strip():
            return [0.0] * self.embedding_dim

        try:
            embedding = self.model.encode([text], convert_to_numpy=True)
            return np.asarray(embedding[0], dtype=np.float32).tolist()
        except Exception as e:
            raise RuntimeError(f"Embedding failed: {e}") from e

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Convert multiple texts to embedding vectors.

        Blank texts map to zero vectors so the output stays aligned with the input.
        """
        self.load_model()

        if not texts:
            return []

        valid_texts = [text for text in texts if text and text.strip()]
        if not valid_texts:
            return [[0.0] * self.embedding_dim for _ in texts]

        try:
            embeddings = self.model.encode(valid_texts, convert_to_numpy=True)
        except Exception as e:
            raise RuntimeError(f"Batch embedding failed: {e}") from e

        result = []
        text_idx = 0
        for text in texts:
            if text and text.strip():
                result.append(np.asarray(embeddings[text_idx], dtype=np.float32).tolist())
                text_idx += 1
            else:
                result.append([0.0] * self.embedding_dim)
        return result

    def dimensions(self) -> int:
        """Get the dimension of embedding vectors."""
        self.load_model()
        return self.embedding_dim
