"""
Tests for cosine ranking, lexical reranking and the cached search engine.
"""

import numpy as np
import pytest
from unittest.mock import MagicMock

from ragstore.core.exceptions import InvalidFilterError
from ragstore.vector import LocalVectorStore, SimilaritySearchEngine
from ragstore.vector.similarity import (
    apply_diversity_filter,
    cosine_similarity,
    rerank_results,
)
from ragstore.vector.types import QueryResult


@pytest.fixture
def store():
    store = LocalVectorStore()
    store.insert([1.0, 0.0], {"text": "alpha release notes"})
    store.insert([0.0, 1.0], {"text": "beta roadmap"})
    store.insert([0.9, 0.1], {"text": "cats and dogs"})
    return store


def test_cosine_similarity_basics():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


def test_self_similarity_is_top_hit(store):
    for record in store.get_all():
        results = store.search(record.vector, top_k=1)
        assert results[0].id == record.id
        assert results[0].score == pytest.approx(1.0)


def test_rerank_blends_lexical_overlap():
    results = [
        QueryResult(id="a", score=1.0, text="alpha release notes"),
        QueryResult(id="c", score=0.99, text="cats and dogs"),
    ]

    reranked = rerank_results(results, "cats", (0.7, 0.3))

    assert [r.id for r in reranked] == ["c", "a"]
    # Order follows the blend, scores stay cosine
    assert reranked[0].score == pytest.approx(0.99)
    assert reranked[0].lexical_score == pytest.approx(1.0)
    assert reranked[1].score == pytest.approx(1.0)
    assert reranked[1].lexical_score == 0.0


def test_diversity_filter_drops_near_duplicates():
    results = [
        QueryResult(id="a", score=0.9, text="the quick brown fox"),
        QueryResult(id="b", score=0.8, text="the quick brown fox"),
        QueryResult(id="c", score=0.7, text="something else entirely"),
    ]

    assert [r.id for r in apply_diversity_filter(results, 0.8)] == ["a", "c"]


class TestSimilaritySearchEngine:
    """Cached search over a store."""

    def test_plain_search_matches_store_order(self, store):
        engine = SimilaritySearchEngine(store)

        results = engine.search("query", [1.0, 0.0], top_k=2, rerank=False)

        assert [r.text for r in results] == ["alpha release notes", "cats and dogs"]

    def test_rerank_changes_order(self, store):
        engine = SimilaritySearchEngine(store)

        results = engine.search("cats", [1.0, 0.0], top_k=2)

        assert [r.text for r in results] == ["cats and dogs", "alpha release notes"]
        assert results[0].score == pytest.approx(0.9 / np.sqrt(0.82))
        assert results[1].score == pytest.approx(1.0)

    def test_reranked_hit_keeps_cosine_score(self):
        store = LocalVectorStore()
        store.insert([1.0, 0.0], {"text": "alpha"})
        engine = SimilaritySearchEngine(store)

        result = engine.search("zebra", [1.0, 0.0], top_k=1)[0]

        assert result.score == pytest.approx(1.0)
        assert result.lexical_score == 0.0
        assert result.to_dict()["semanticRelevance"] == 0.0

    def test_cache_hit_skips_embedding(self, store):
        engine = SimilaritySearchEngine(store)
        embed = MagicMock(return_value=[1.0, 0.0])

        first = engine.search("alpha", None, top_k=2, embed_query=embed)
        second = engine.search("alpha", None, top_k=2, embed_query=embed)

        assert embed.call_count == 1
        assert [r.id for r in first] == [r.id for r in second]
        assert engine.cache.hits == 1

    def test_skip_cache_recomputes(self, store):
        engine = SimilaritySearchEngine(store)
        embed = MagicMock(return_value=[1.0, 0.0])

        engine.search("alpha", None, embed_query=embed)
        engine.search("alpha", None, embed_query=embed, skip_cache=True)

        assert embed.call_count == 2

    def test_different_top_k_is_a_different_entry(self, store):
        engine = SimilaritySearchEngine(store)

        assert len(engine.search("alpha", [1.0, 0.0], top_k=1)) == 1
        assert len(engine.search("alpha", [1.0, 0.0], top_k=3)) == 3

    def test_invalidate_clears_results(self, store):
        engine = SimilaritySearchEngine(store)
        engine.search("alpha", [1.0, 0.0])

        engine.invalidate()
        assert len(engine.cache) == 0

    def test_non_positive_top_k_returns_empty(self, store):
        engine = SimilaritySearchEngine(store)
        assert engine.search("alpha", [1.0, 0.0], top_k=0) == []

    def test_invalid_filters_raise(self, store):
        engine = SimilaritySearchEngine(store)
        with pytest.raises(InvalidFilterError):
            engine.search("alpha", [1.0, 0.0], filters="source=docs")
