"""
K-means and agglomerative clustering over stored vectors.
Used for grouping and analytics only; retrieval never depends on it.
Both algorithms are O(n^2) per round, so callers cap the input size.
"""

from collections import Counter
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from .similarity import cosine_similarity
from .types import Cluster


@dataclass
class KMeansResult:
    """Cluster index per input vector, final centroids and iterations run."""

    labels: List[int]
    centroids: List[np.ndarray] = field(default_factory=list)
    iterations: int = 0

    def to_clusters(self, ids: Optional[Sequence[str]] = None) -> List[Cluster]:
        ids = list(ids) if ids is not None else [str(i) for i in range(len(self.labels))]
        clusters = []
        for label, centroid in enumerate(self.centroids):
            members = [ids[i] for i, assigned in enumerate(self.labels) if assigned == label]
            clusters.append(Cluster(label=label, centroid=centroid, members=members))
        return clusters


def _as_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    return np.vstack([np.asarray(v, dtype=np.float64).reshape(-1) for v in vectors])


def kmeans(vectors: Sequence[Sequence[float]], k: int = 5, max_iterations: int = 100,
           seed: Optional[int] = None) -> KMeansResult:
    """Lloyd's k-means with Euclidean distance.

    Centroids start as k distinct input vectors sampled uniformly. Each pass
    assigns every vector to its nearest centroid (lowest index wins ties) and
    moves each centroid to the mean of its members; a centroid with no members
    stays put. Stops after a pass with no assignment change or after
    ``max_iterations`` passes.

    With fewer vectors than k every vector becomes its own cluster.
    """
    if k < 1:
        raise ValueError(f"k must be >= 1: {k}")
    n = len(vectors)
    if n == 0:
        return KMeansResult(labels=[])

    data = _as_matrix(vectors)
    if n < k:
        return KMeansResult(labels=list(range(n)), centroids=[row.copy() for row in data])

    rng = np.random.default_rng(seed)
    centroids = data[rng.choice(n, size=k, replace=False)].copy()
    labels = np.full(n, -1, dtype=np.int64)

    def assign() -> np.ndarray:
        distances = np.linalg.norm(data[:, None, :] - centroids[None, :, :], axis=2)
        # argmin returns the first (lowest) index on ties
        return np.argmin(distances, axis=1)

    iterations = 0
    for _ in range(max(0, max_iterations)):
        iterations += 1
        assignments = assign()
        if np.array_equal(assignments, labels):
            break
        labels = assignments
        for j in range(k):
            members = data[labels == j]
            if len(members):
                centroids[j] = members.mean(axis=0)

    if (labels < 0).any():
        labels = assign()

    return KMeansResult(labels=[int(l) for l in labels], centroids=[c for c in centroids],
                        iterations=iterations)


def hierarchical(vectors: Sequence[Sequence[float]], similarity_threshold: float = 0.7,
                 ids: Optional[Sequence[str]] = None) -> List[Cluster]:
    """Agglomerative clustering by centroid cosine similarity.

    Starts from singletons and repeatedly merges the most similar pair of
    clusters (earliest pair on ties) while that similarity is at least the
    threshold. A merged cluster's centroid is the mean of all its member
    vectors and its label joins the two labels with ``_``.
    """
    n = len(vectors)
    if n == 0:
        return []

    data = _as_matrix(vectors)
    ids = list(ids) if ids is not None else [str(i) for i in range(n)]

    labels: List[Union[int, str]] = list(range(n))
    members: List[List[int]] = [[i] for i in range(n)]
    centroids: List[np.ndarray] = [row.copy() for row in data]

    while len(centroids) > 1:
        best, best_pair = -np.inf, (0, 1)
        for i, j in combinations(range(len(centroids)), 2):
            similarity = cosine_similarity(centroids[i], centroids[j])
            if similarity > best:
                best, best_pair = similarity, (i, j)

        if best < similarity_threshold:
            break

        i, j = best_pair
        merged_members = members[i] + members[j]
        merged_label = f"{labels[i]}_{labels[j]}"
        merged_centroid = data[merged_members].mean(axis=0)

        for index in (j, i):
            del labels[index]
            del members[index]
            del centroids[index]
        labels.append(merged_label)
        members.append(merged_members)
        centroids.append(merged_centroid)

    return [
        Cluster(label=label, centroid=centroid, members=[ids[m] for m in member_list])
        for label, member_list, centroid in zip(labels, members, centroids)
    ]


def cluster_distribution(labels: Sequence[Union[int, str]]) -> Dict[str, int]:
    """Member count per cluster label."""
    return {str(label): count for label, count in sorted(Counter(labels).items(), key=lambda kv: str(kv[0]))}


def analyze_similarity_patterns(vectors: Sequence[Sequence[float]]) -> Dict[str, object]:
    """Summary of pairwise cosine similarity across a sample of vectors."""
    if len(vectors) < 2:
        return {"error": "Insufficient vectors for analysis"}

    similarities = [cosine_similarity(a, b) for a, b in combinations(vectors, 2)]
    return {
        "sampleSize": len(vectors),
        "avgSimilarity": round(float(np.mean(similarities)), 3),
        "maxSimilarity": round(float(np.max(similarities)), 3),
        "minSimilarity": round(float(np.min(similarities)), 3),
        "totalComparisons": len(similarities),
    }
