"""
Tests for the vector store HTTP adapter.
"""

import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient

from ragstore.api import main
from ragstore.vector import EmbeddingChain, LocalVectorStore, VectorDatabaseService


@pytest.fixture
def service():
    service = VectorDatabaseService(LocalVectorStore(), EmbeddingChain([]), batch_size=10)
    yield service
    service.close()


@pytest.fixture
def client(service):
    """Create test client with the service dependency overridden."""
    main.app.dependency_overrides[main.get_service] = lambda: service
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["backend"] == "LocalVectorStore"
    assert data["vector_count"] == 0


def test_embed_and_search(client):
    response = client.post("/vectors", json={"text": "cats are wonderful pets", "metadata": {"source": "docs"}})
    assert response.status_code == 200
    record = response.json()
    assert len(record["vector"]) == 300
    assert record["metadata"]["source"] == "docs"

    response = client.post("/vectors/search", json={"query": "cats pets", "top_k": 3})
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["results"][0]["id"] == record["id"]
    assert data["results"][0]["text"] == "cats are wonderful pets"


def test_multilingual_search_option(client):
    client.post("/vectors", json={"text": "café recipe with milk"})

    response = client.post("/vectors/search", json={"query": "café", "options": {"multilingual": True}})

    assert response.status_code == 200
    assert "languageMatch" in response.json()["results"][0]


def test_empty_text_rejected(client):
    assert client.post("/vectors", json={"text": "   "}).status_code == 422
    assert client.post("/vectors/search", json={"query": ""}).status_code == 422


def test_list_vectors_with_query_filters(client):
    client.post("/vectors", json={"text": "first document", "metadata": {"source": "docs"}})
    client.post("/vectors", json={"text": "second document", "metadata": {"source": "chat"}})

    response = client.get("/vectors", params={"source": "chat"})

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["vectors"][0]["metadata"]["text"] == "second document"


def test_delete_vector(client):
    record_id = client.post("/vectors", json={"text": "to be deleted"}).json()["id"]

    response = client.delete(f"/vectors/{record_id}")
    assert response.status_code == 200
    assert response.json() == {"success": True, "id": record_id}

    response = client.delete(f"/vectors/{record_id}")
    assert response.status_code == 404


def test_stats_endpoints(client):
    client.post("/vectors", json={"text": "first document"})

    assert client.get("/vectors/stats").json() == {"totalVectors": 1, "dimension": 300, "indexFullness": 0.0}

    advanced = client.get("/vectors/stats/advanced").json()
    assert advanced["performance"]["totalInserts"] == 1
    assert "cacheMetrics" in advanced


def test_batch_enqueue(client, service):
    response = client.post("/vectors/batch", json={"documents": [{"text": "one"}, {"text": "two"}]})

    assert response.status_code == 200
    assert response.json() == {"queued": 2, "pending": 2}

    service.batch_queue.flush()
    assert service.stats()["totalVectors"] == 2


def test_cluster_endpoint(client, service):
    for vector in ([0.0, 0.1], [0.1, 0.0], [10.0, 10.0], [10.0, 11.0]):
        service.store.insert(vector)

    response = client.post("/vectors/cluster", json={"algorithm": "kmeans", "k": 2, "seed": 7})
    assert response.status_code == 200
    clusters = response.json()["clusters"]
    assert len(clusters) == 2
    assert sum(c["size"] for c in clusters) == 4

    response = client.post("/vectors/cluster", json={"algorithm": "hierarchical", "threshold": 0.99})
    assert response.status_code == 200
    assert response.json()["algorithm"] == "hierarchical"

    assert client.post("/vectors/cluster", json={"algorithm": "dbscan"}).status_code == 422


def test_vocabulary_update(client, service):
    response = client.post("/vocabulary", json={"texts": ["cats and dogs", "cats and birds"]})

    assert response.status_code == 200
    assert service.embedder.local.document_count == 2


def test_dimension_mismatch_maps_to_400(client, service):
    service.store.insert([1.0, 0.0])

    response = client.post("/vectors", json={"text": "does not fit"})

    assert response.status_code == 400
    assert response.json()["expected"] == 2


def test_disabled_api_returns_404(client):
    with patch('ragstore.core.config.SEARCH_API_ENABLED', False):
        response = client.post("/vectors/search", json={"query": "anything"})
    assert response.status_code == 404
