"""
Test cases for the local vector store and its JSON snapshot.
"""

import json
import os
import pytest
import numpy as np

from ragstore.core.exceptions import DimensionMismatchError, InvalidFilterError
from ragstore.vector import LocalVectorStore, VectorRecord


@pytest.fixture
def store():
    return LocalVectorStore()


def test_dimension_established_by_first_insert(store):
    assert store.dimension == 0

    store.insert([1.0, 0.0, 0.0])
    assert store.dimension == 3

    with pytest.raises(DimensionMismatchError) as exc_info:
        store.insert([1.0, 0.0])
    assert exc_info.value.expected == 3
    assert exc_info.value.actual == 2
    assert len(store) == 1


def test_dimension_resets_when_store_empties(store):
    record_id = store.insert([1.0, 0.0])
    store.delete(record_id)

    assert store.dimension == 0
    store.insert([1.0, 0.0, 0.0, 0.0])
    assert store.dimension == 4


def test_upsert_replaces_by_id(store):
    store.upsert(VectorRecord(id="a", vector=np.array([1.0, 0.0]), metadata={"v": 1}))
    store.upsert(VectorRecord(id="b", vector=np.array([0.0, 1.0])))
    store.upsert(VectorRecord(id="a", vector=np.array([0.5, 0.5]), metadata={"v": 2}))

    assert len(store) == 2
    assert store.get("a").metadata == {"v": 2}
    # Replacing keeps the original insertion position
    assert [r.id for r in store.get_all()] == ["a", "b"]


def test_empty_vector_rejected(store):
    with pytest.raises(ValueError):
        store.insert([])


def test_delete_is_idempotent(store):
    record_id = store.insert([1.0, 0.0])

    assert store.delete(record_id) is True
    assert store.delete(record_id) is False
    assert store.get(record_id) is None


def test_get_all_with_filters(store):
    store.insert([1.0, 0.0], {"source": "docs", "type": "faq"})
    store.insert([0.0, 1.0], {"source": "docs", "type": "guide"})
    store.insert([0.5, 0.5], {"source": "chat"})

    assert len(store.get_all()) == 3
    assert len(store.get_all({"source": "docs"})) == 2
    assert len(store.get_all({"source": "docs", "type": "faq"})) == 1
    assert store.get_all({"source": "nowhere"}) == []


@pytest.mark.parametrize("filters", [["source"], {"source": {"$eq": "docs"}}, {1: "docs"}])
def test_invalid_filters_rejected(store, filters):
    store.insert([1.0, 0.0])
    with pytest.raises(InvalidFilterError):
        store.get_all(filters)


def test_search_ranks_by_cosine(store):
    a = store.insert([1.0, 0.0], {"text": "A"})
    store.insert([0.0, 1.0], {"text": "B"})
    c = store.insert([0.9, 0.1], {"text": "C"})

    results = store.search([1.0, 0.0], top_k=2)

    assert [r.id for r in results] == [a, c]
    assert results[0].score == pytest.approx(1.0)
    assert results[1].score == pytest.approx(0.9 / np.sqrt(0.82))
    assert results[0].text == "A"


def test_search_ties_keep_insertion_order(store):
    first = store.insert([1.0, 0.0])
    second = store.insert([1.0, 0.0])

    results = store.search([1.0, 0.0], top_k=2)
    assert [r.id for r in results] == [first, second]


def test_search_edge_cases(store):
    assert store.search([1.0, 0.0]) == []

    store.insert([1.0, 0.0])
    assert store.search([1.0, 0.0], top_k=0) == []
    # Zero query vector scores 0 against everything
    assert store.search([0.0, 0.0])[0].score == 0.0
    with pytest.raises(DimensionMismatchError):
        store.search([1.0, 0.0, 0.0])


def test_search_with_filters(store):
    store.insert([1.0, 0.0], {"source": "docs"})
    chat = store.insert([0.9, 0.1], {"source": "chat"})

    results = store.search([1.0, 0.0], top_k=5, filters={"source": "chat"})
    assert [r.id for r in results] == [chat]


def test_stats(store):
    assert store.stats() == {"count": 0, "dimension": 0, "approxFullness": 0.0}

    store.insert([1.0, 0.0, 0.0])
    store.insert([0.0, 1.0, 0.0])
    assert store.stats() == {"count": 2, "dimension": 3, "approxFullness": 0.0}


class TestSnapshot:
    """JSON snapshot persistence."""

    def test_synchronous_snapshot_round_trip(self, tmp_path):
        path = str(tmp_path / "vectors.json")
        store = LocalVectorStore(snapshot_path=path, debounce_sec=0)
        first = store.insert([1.0, 0.0], {"text": "first"})
        second = store.insert([0.0, 1.0], {"text": "second"})

        with open(path) as f:
            data = json.load(f)
        assert data[first] == {"id": first, "values": [1.0, 0.0], "metadata": {"text": "first"}}

        restored = LocalVectorStore(snapshot_path=path)
        restored.load()
        assert [r.id for r in restored.get_all()] == [first, second]
        assert restored.dimension == 2
        assert restored.get(second).metadata == {"text": "second"}

    def test_debounced_write_happens_on_close(self, tmp_path):
        path = str(tmp_path / "vectors.json")
        store = LocalVectorStore(snapshot_path=path, debounce_sec=60)
        store.insert([1.0, 0.0])

        assert not os.path.exists(path)
        store.close()
        assert os.path.exists(path)

    def test_missing_snapshot_leaves_store_empty(self, tmp_path):
        store = LocalVectorStore(snapshot_path=str(tmp_path / "missing.json"))
        store.load()
        assert len(store) == 0

    def test_corrupt_snapshot_leaves_store_empty(self, tmp_path):
        path = tmp_path / "vectors.json"
        path.write_text("not json")

        store = LocalVectorStore(snapshot_path=str(path))
        store.load()

        assert len(store) == 0

    def test_delete_is_persisted(self, tmp_path):
        path = str(tmp_path / "vectors.json")
        store = LocalVectorStore(snapshot_path=path, debounce_sec=0)
        record_id = store.insert([1.0, 0.0])
        store.delete(record_id)

        restored = LocalVectorStore(snapshot_path=path)
        restored.load()
        assert len(restored) == 0

    def test_unreadable_snapshot_is_moved_aside_before_writes(self, tmp_path):
        path = tmp_path / "vectors.json"
        damaged = '{"keep": {"id": "keep", "values": [1.0, 0.0]'
        path.write_text(damaged)

        store = LocalVectorStore(snapshot_path=str(path), debounce_sec=0)
        store.load()
        new_id = store.insert([0.0, 1.0])

        assert (tmp_path / "vectors.json.corrupt").read_text() == damaged
        with open(path) as f:
            assert list(json.load(f)) == [new_id]


def test_scenario_search_with_cat_metadata(store):
    a = store.insert([1.0, 0.0], {"cat": "a"})
    b = store.insert([0.0, 1.0], {"cat": "b"})
    c = store.insert([0.9, 0.1], {"cat": "a"})

    results = store.search([1.0, 0.0], top_k=2, filters={})

    assert [r.id for r in results] == [a, c]
    assert results[0].score == pytest.approx(1.0, abs=1e-6)
    assert results[1].score == pytest.approx(0.994, abs=1e-3)
    assert results[0].score >= results[1].score

    filtered = store.search([1.0, 0.0], top_k=2, filters={"cat": "b"})
    assert [r.id for r in filtered] == [b]
    assert filtered[0].score == pytest.approx(0.0)


def test_results_and_records_are_copies(store):
    record_id = store.insert([1.0, 0.0], {"cat": "a"})

    store.search([1.0, 0.0])[0].metadata["cat"] = "b"
    store.get(record_id).metadata["cat"] = "c"
    store.get_all()[0].metadata["cat"] = "d"
    store.get(record_id).vector[0] = 5.0

    record = store.get(record_id)
    assert record.metadata == {"cat": "a"}
    assert record.vector.tolist() == [1.0, 0.0]
    assert store.get_all({"cat": "a"})[0].id == record_id


def test_boolean_filters_do_not_match_numbers(store):
    flagged = store.insert([1.0, 0.0], {"flag": True})
    counted = store.insert([0.0, 1.0], {"flag": 1})

    assert [r.id for r in store.get_all({"flag": True})] == [flagged]
    assert [r.id for r in store.get_all({"flag": 1})] == [counted]
