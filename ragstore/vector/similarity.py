"""
Cosine similarity ranking, lexical reranking and the cached search engine.
"""

import time
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..core.exceptions import DimensionMismatchError
from ..util.logging import logger
from .cache import BoundedCache, content_hash
from .text import jaccard_similarity, lexical_overlap
from .types import QueryResult, VectorRecord, validate_filters


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|), or 0.0 when either norm is zero."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.clip(np.dot(a, b) / norm, -1.0, 1.0))


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    return float(np.linalg.norm(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)))


def cosine_scores(query_vector: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of one query against every row of matrix; zero-norm rows score 0."""
    query = np.asarray(query_vector, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / np.where(norms > 0, norms, 1.0), 0.0)
    return np.clip(scores, -1.0, 1.0)


def rank_records(query_vector: Sequence[float], records: List[VectorRecord],
                 top_k: int) -> List[QueryResult]:
    """Exhaustive cosine scan over records, which must be in insertion order.

    Results are sorted by descending score; equal scores keep insertion order.
    """
    if top_k <= 0 or not records:
        return []

    dimension = len(records[0].vector)
    if len(query_vector) != dimension:
        raise DimensionMismatchError(dimension, len(query_vector))

    matrix = np.vstack([np.asarray(r.vector, dtype=np.float64) for r in records])
    scores = cosine_scores(query_vector, matrix)

    # Stable sort on negated scores keeps earlier records first on ties
    order = sorted(range(len(records)), key=lambda i: -scores[i])
    return [
        QueryResult(id=records[i].id, score=float(scores[i]),
                    metadata=dict(records[i].metadata), text=records[i].text)
        for i in order[:top_k]
    ]


def rerank_results(results: List[QueryResult], query: str,
                   weights: Tuple[float, float] = (0.7, 0.3)) -> List[QueryResult]:
    """Reorder results by a blend of vector score and lexical overlap.

    ``score`` stays the cosine similarity; the lexical overlap is recorded in
    ``lexical_score``. The candidate set is unchanged.
    """
    vector_weight, lexical_weight = weights
    for result in results:
        result.lexical_score = lexical_overlap(query, result.text)
    # Stable: equal blends keep the vector ranking
    return sorted(results, key=lambda r: -(r.score * vector_weight + r.lexical_score * lexical_weight))


def apply_diversity_filter(results: List[QueryResult], threshold: float = 0.8) -> List[QueryResult]:
    """Drop results whose text is a near-duplicate of an earlier kept result."""
    diverse: List[QueryResult] = []
    for result in results:
        if all(jaccard_similarity(result.text, kept.text) <= threshold for kept in diverse):
            diverse.append(result)
    return diverse


class SimilaritySearchEngine:
    """Ranked retrieval over a vector store with an optional rerank and a result cache.

    Results are cached by (query text, filters, top_k, rerank, diversity);
    repeated identical queries are served from the cache until eviction or
    until :meth:`invalidate` is called.
    """

    def __init__(self, store, cache: Optional[BoundedCache] = None,
                 rerank_weights: Tuple[float, float] = (0.7, 0.3)):
        self.store = store
        self.cache = cache if cache is not None else BoundedCache()
        self.rerank_weights = rerank_weights

    def cache_key(self, query: str, top_k: int, filters: Mapping[str, Any],
                  rerank: bool, diversity: Optional[float]) -> str:
        return content_hash(query, dict(filters), top_k, rerank, diversity)

    def search(self, query: str, query_vector: Optional[Sequence[float]], top_k: int = 5,
               filters: Optional[Mapping[str, Any]] = None, rerank: bool = True,
               skip_cache: bool = False, diversity: Optional[float] = None,
               embed_query: Optional[Callable[[str], Sequence[float]]] = None) -> List[QueryResult]:
        """Rank stored records against a query.

        Args:
            query: Query text, used for the cache key and lexical rerank
            query_vector: Embedding of the query, or None to use embed_query
            top_k: Maximum number of results; <= 0 returns []
            filters: Exact-match metadata filters
            rerank: Blend in lexical overlap when True
            skip_cache: Recompute even if a cached result exists
            diversity: Optional Jaccard threshold for near-duplicate removal
            embed_query: Called with the query text on a cache miss when
                query_vector is None

        Returns:
            Ranked QueryResult list
        """
        filters = validate_filters(filters)
        if top_k <= 0:
            return []

        start = time.monotonic()
        key = self.cache_key(query, top_k, filters, rerank, diversity)
        if not skip_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.log_search(query, len(cached), (time.monotonic() - start) * 1000, cached=True)
                return list(cached)

        if query_vector is None:
            if embed_query is None:
                return []
            query_vector = embed_query(query)

        results = self.store.search(query_vector, top_k, filters)

        if rerank:
            results = rerank_results(results, query, self.rerank_weights)
        if diversity is not None:
            results = apply_diversity_filter(results, diversity)

        final = results[:top_k]
        self.cache.set(key, final)
        logger.log_search(query, len(final), (time.monotonic() - start) * 1000)
        return list(final)

    def invalidate(self) -> None:
        self.cache.clear()
