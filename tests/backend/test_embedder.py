"""
Unit tests for the Embedder module.
"""

import os
import sys
from unittest.mock import Mock, patch

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../backend"))

from embedder import DEFAULT_MODEL, Embedder, _resolve_hf_snapshot


class TestEmbedder:
    """Test suite for the Embedder class."""

    def setup_method(self):
        """Set up test fixtures with a stand-in model."""
        self.embedder = Embedder(model_name="test-model")
        self.embedder.model = Mock()
        self.embedder.embedding_dim = 3

    def test_embedder_initialization(self):
        embedder = Embedder(model_name="test-model")
        assert embedder.model_name == "test-model"
        assert embedder.model is None
        assert embedder.embedding_dim == 384

    def test_model_name_from_environment(self):
        with patch.dict(os.environ, {"CONTEXT_SEARCH_EMBED_MODEL": "local/model"}):
            assert Embedder().model_name == "local/model"
        with patch.dict(os.environ, {}, clear=True):
            assert Embedder().model_name == DEFAULT_MODEL

    def test_embed_single_text(self):
        self.embedder.model.encode.return_value = np.array([[0.1, 0.2, 0.3]])

        result = self.embedder.embed("hello world")

        assert result == pytest.approx([0.1, 0.2, 0.3])
        self.embedder.model.encode.assert_called_once_with(["hello world"], convert_to_numpy=True)

    def test_embed_blank_text_returns_zero_vector(self):
        assert self.embedder.embed("   ") == [0.0, 0.0, 0.0]
        self.embedder.model.encode.assert_not_called()

    def test_embed_failure_is_wrapped(self):
        self.embedder.model.encode.side_effect = ValueError("bad input")
        with pytest.raises(RuntimeError, match="Embedding failed"):
            self.embedder.embed("hello")

    def test_embed_batch_keeps_alignment(self):
        self.embedder.model.encode.return_value = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])

        result = self.embedder.embed_batch(["first", "", "second"])

        assert len(result) == 3
        assert result[0] == pytest.approx([1.0, 0.0, 0.0])
        assert result[1] == [0.0, 0.0, 0.0]
        assert result[2] == pytest.approx([0.0, 1.0, 0.0])
        self.embedder.model.encode.assert_called_once_with(["first", "second"], convert_to_numpy=True)

    def test_embed_batch_edge_cases(self):
        assert self.embedder.embed_batch([]) == []
        assert self.embedder.embed_batch(["", " "]) == [[0.0] * 3, [0.0] * 3]

    def test_dimensions(self):
        assert self.embedder.dimensions() == 3

    def test_missing_library_raises(self):
        embedder = Embedder(model_name="test-model")
        with patch.dict(sys.modules, {"sentence_transformers": None}):
            with pytest.raises(RuntimeError, match="sentence-transformers is required"):
                embedder.load_model()
        assert embedder.model is None


@pytest.mark.unit
def test_resolve_hf_snapshot_accepts_local_path(tmp_path):
    assert _resolve_hf_snapshot(str(tmp_path)) == str(tmp_path)


@pytest.mark.unit
def test_resolve_hf_snapshot_rejects_empty_name():
    with pytest.raises(ValueError):
        _resolve_hf_snapshot("  ")
