"""
Tests for k-means and agglomerative clustering.
"""

import pytest

from ragstore.vector.clustering import (
    analyze_similarity_patterns,
    cluster_distribution,
    hierarchical,
    kmeans,
)

TWO_GROUPS = [[0.0, 0.0], [0.0, 1.0], [10.0, 10.0], [10.0, 11.0]]


def test_kmeans_separates_well_separated_groups():
    result = kmeans(TWO_GROUPS, k=2, seed=7)

    labels = result.labels
    assert labels[0] == labels[1]
    assert labels[2] == labels[3]
    assert labels[0] != labels[2]
    assert all(0 <= label < 2 for label in labels)
    assert len(result.centroids) == 2
    assert 1 <= result.iterations <= 100


def test_kmeans_is_reproducible_with_seed():
    assert kmeans(TWO_GROUPS, k=3, seed=1).labels == kmeans(TWO_GROUPS, k=3, seed=1).labels


def test_kmeans_fewer_vectors_than_k():
    result = kmeans([[1.0, 0.0], [0.0, 1.0]], k=5)

    assert result.labels == [0, 1]
    assert len(result.centroids) == 2


def test_kmeans_edge_cases():
    assert kmeans([], k=3).labels == []
    with pytest.raises(ValueError):
        kmeans(TWO_GROUPS, k=0)


def test_kmeans_clusters_carry_member_ids():
    result = kmeans(TWO_GROUPS, k=2, seed=7)
    clusters = result.to_clusters(["a", "b", "c", "d"])

    member_sets = sorted(sorted(c.members) for c in clusters)
    assert member_sets == [["a", "b"], ["c", "d"]]


def test_hierarchical_merges_similar_vectors():
    clusters = hierarchical([[1.0, 0.0], [0.99, 0.01], [0.0, 1.0]], 0.9, ids=["x", "y", "z"])

    assert len(clusters) == 2
    merged = next(c for c in clusters if len(c.members) == 2)
    assert merged.label == "0_1"
    assert merged.members == ["x", "y"]
    assert merged.centroid.tolist() == pytest.approx([0.995, 0.005])


def test_hierarchical_threshold_above_one_keeps_singletons():
    clusters = hierarchical([[1.0, 0.0], [1.0, 0.0]], 1.1)

    assert [c.label for c in clusters] == [0, 1]


def test_hierarchical_empty():
    assert hierarchical([]) == []


def test_cluster_distribution():
    assert cluster_distribution([0, 1, 1, 1]) == {"0": 1, "1": 3}


def test_similarity_patterns():
    assert "error" in analyze_similarity_patterns([[1.0, 0.0]])

    report = analyze_similarity_patterns([[1.0, 0.0], [0.0, 1.0], [1.0, 0.0]])
    assert report["totalComparisons"] == 3
    assert report["maxSimilarity"] == pytest.approx(1.0)
    assert report["minSimilarity"] == pytest.approx(0.0)


@pytest.mark.parametrize("max_iterations", [0, 1, 2])
def test_kmeans_respects_iteration_bound(max_iterations):
    # Centroids seeded from one group keep moving for several passes
    vectors = [[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [20.0, 20.0], [20.0, 21.0], [21.0, 20.0],
               [40.0, 40.0], [40.0, 41.0]]

    result = kmeans(vectors, k=3, max_iterations=max_iterations, seed=3)

    assert result.iterations <= max_iterations
    assert len(result.labels) == len(vectors)
    assert all(0 <= label < 3 for label in result.labels)
