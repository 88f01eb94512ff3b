"""
Unit tests for the lexical and semantic scorers.
"""

import math
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../backend"))

from errors import ConfigurationError, EmbeddingDimensionError
from index_store import build_entry
from lexical_scorer import LexicalScorer, fuzzy_match, levenshtein_distance, similarity
from models import ContextDocument
from semantic_scorer import SemanticScorer, combine_scores, cosine_similarity


def make_entry(doc_id, title, content="", tags=(), embedding=None):
    doc = ContextDocument(id=doc_id, title=title, content=content, tags=list(tags))
    return build_entry(doc, embedding)


@pytest.mark.unit
def test_levenshtein_distance():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("same", "same") == 0


@pytest.mark.unit
def test_similarity_bounds():
    assert similarity("abc", "abc") == 1.0
    assert similarity("", "a") == 0.0
    assert similarity("a", "") == 1.0
    assert similarity("learning", "learnin") == pytest.approx(0.875)


@pytest.mark.unit
def test_fuzzy_match_threshold():
    assert fuzzy_match("learning", "learnin")
    assert not fuzzy_match("database", "cat")
    assert not fuzzy_match("learning", "learnin", threshold=0.9)


class TestLexicalScorer:
    """Test suite for the LexicalScorer class."""

    def setup_method(self):
        self.scorer = LexicalScorer()
        self.entry = make_entry(
            "1",
            "Machine Learning",
            "Neural networks learn patterns from data.",
            tags=["ai"],
        )

    def test_title_hit_with_token_bonus(self):
        match = self.scorer.score(self.entry, ["machine"])
        expected = (3.0 + 0.5) / math.log(len(self.entry.content) + 1)
        assert match.score == pytest.approx(expected)
        assert match.matched_fields == ["title"]

    def test_matching_is_case_insensitive(self):
        assert self.scorer.score(self.entry, ["MACHINE"]).score == pytest.approx(
            self.scorer.score(self.entry, ["machine"]).score
        )

    def test_each_field_contributes(self):
        match = self.scorer.score(self.entry, ["learn", "ai"])
        assert set(match.matched_fields) == {"title", "content", "tags"}

    def test_tag_substring(self):
        entry = make_entry("2", "Notes", "misc", tags=["machine-learning"])
        assert self.scorer.score(entry, ["learning"]).matched_fields == ["tags"]

    def test_fuzzy_term_scores_reduced_weight(self):
        match = self.scorer.score(self.entry, ["machin learning"])
        assert match.score == pytest.approx(2.0 / math.log(len(self.entry.content) + 1))
        assert match.matched_fields == ["title"]

    def test_phrases_are_never_fuzzy(self):
        assert self.scorer.score(self.entry, [], phrases=["machin learning"]).score == 0.0
        assert self.scorer.score(self.entry, [], phrases=["machine learning"]).score > 0

    def test_fuzzy_can_be_disabled(self):
        assert self.scorer.score(self.entry, ["machin learning"], fuzzy=False).score == 0.0

    def test_no_terms_scores_zero(self):
        match = self.scorer.score(self.entry, [])
        assert match.score == 0.0
        assert match.matched_fields == []

    def test_empty_content_keeps_raw_score(self):
        entry = make_entry("3", "Python")
        assert self.scorer.score(entry, ["python"]).score == pytest.approx(3.5)

    def test_custom_weights_override_defaults(self):
        scorer = LexicalScorer(weights={"title": 10.0})
        entry = make_entry("3", "Python")
        assert scorer.score(entry, ["python"]).score == pytest.approx(10.5)


@pytest.mark.unit
def test_cosine_similarity():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


@pytest.mark.unit
def test_cosine_similarity_dimension_mismatch():
    with pytest.raises(EmbeddingDimensionError) as exc_info:
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])
    assert isinstance(exc_info.value, ConfigurationError)
    assert isinstance(exc_info.value, ValueError)


class TestSemanticScorer:
    """Test suite for the SemanticScorer class."""

    def setup_method(self):
        self.entries = [
            make_entry("a", "A", embedding=[1.0, 0.0]),
            make_entry("b", "B", embedding=[0.0, 1.0]),
            make_entry("c", "C", embedding=[0.8, 0.6]),
            make_entry("d", "D"),
        ]
        self.scorer = SemanticScorer(provider=None, threshold=0.3)

    def test_matches_respect_threshold(self):
        hits = self.scorer.matches([1.0, 0.0], self.entries)
        assert set(hits) == {"a", "c"}
        assert hits["a"] == pytest.approx(1.0)
        assert hits["c"] == pytest.approx(0.8)

    def test_entry_without_embedding_scores_zero(self):
        assert self.scorer.score([1.0, 0.0], self.entries[3]) == 0.0

    def test_mismatched_query_raises(self):
        with pytest.raises(EmbeddingDimensionError):
            self.scorer.matches([1.0, 0.0, 0.0], self.entries)


@pytest.mark.unit
def test_combine_scores_weights_and_order():
    combined = combine_scores({"a": 2.0, "b": 1.0}, {"a": 0.5, "c": 0.9})

    assert list(combined) == ["a", "b", "c"]
    assert combined["a"].combined == pytest.approx(2.0 * 0.4 + 0.5 * 0.6)
    assert combined["b"].combined == pytest.approx(0.4)
    assert combined["b"].semantic is None
    assert combined["c"].combined == pytest.approx(0.54)
    assert combined["c"].lexical is None
