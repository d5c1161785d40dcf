"""
Test cases for FaissVectorStore implementation.
"""

import pytest
import numpy as np

faiss = pytest.importorskip("faiss")

from ragstore.core.exceptions import DimensionMismatchError
from ragstore.vector import FaissVectorStore, VectorRecord


@pytest.fixture
def store():
    return FaissVectorStore(capacity=10)


def test_faiss_store_initialization(store):
    """Index is created lazily by the first insert."""
    assert store.index is None
    assert store.dimension == 0

    store.insert([1.0, 0.0, 0.0])
    assert store.dimension == 3
    assert store.index.ntotal == 1


def test_faiss_store_dimension_mismatch(store):
    store.insert([1.0, 0.0])
    with pytest.raises(DimensionMismatchError):
        store.insert([1.0, 0.0, 0.0])


def test_faiss_search_matches_cosine_ranking(store):
    a = store.insert([1.0, 0.0], {"text": "A"})
    store.insert([0.0, 1.0], {"text": "B"})
    c = store.insert([0.9, 0.1], {"text": "C"})

    results = store.search([1.0, 0.0], top_k=2)

    assert [r.id for r in results] == [a, c]
    assert results[0].score == pytest.approx(1.0, abs=1e-5)
    assert results[1].score == pytest.approx(0.9 / np.sqrt(0.82), abs=1e-5)


def test_faiss_search_with_filters(store):
    store.insert([1.0, 0.0], {"source": "docs"})
    chat = store.insert([0.5, 0.5], {"source": "chat"})

    results = store.search([1.0, 0.0], top_k=1, filters={"source": "chat"})
    assert [r.id for r in results] == [chat]


def test_faiss_delete_and_upsert(store):
    store.upsert(VectorRecord(id="a", vector=np.array([1.0, 0.0]), metadata={"v": 1}))
    store.upsert(VectorRecord(id="b", vector=np.array([0.0, 1.0])))
    store.upsert(VectorRecord(id="a", vector=np.array([0.0, 1.0]), metadata={"v": 2}))

    assert store.index.ntotal == 2
    assert store.get("a").metadata == {"v": 2}
    assert [r.id for r in store.get_all()] == ["a", "b"]

    assert store.delete("a") is True
    assert store.delete("a") is False
    assert store.index.ntotal == 1
    assert [r.id for r in store.search([0.0, 1.0])] == ["b"]


def test_faiss_stats_report_fullness(store):
    for i in range(4):
        store.insert([1.0, float(i)])

    assert store.stats() == {"count": 4, "dimension": 2, "approxFullness": pytest.approx(0.4)}


def test_faiss_clear(store):
    store.insert([1.0, 0.0])
    store.clear()

    assert store.dimension == 0
    assert store.search([1.0, 0.0]) == []
    store.insert([1.0, 0.0, 0.0])
    assert store.dimension == 3


def test_faiss_results_are_copies(store):
    record_id = store.insert([1.0, 0.0], {"cat": "a"})

    store.search([1.0, 0.0])[0].metadata["cat"] = "b"
    store.get(record_id).metadata["cat"] = "c"

    assert store.get(record_id).metadata == {"cat": "a"}
