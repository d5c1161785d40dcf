"""
Vector database service: the single entry point used by route handlers,
memory and analytics collaborators.

Construct one per process, call init() before use and close() on shutdown.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..core.exceptions import ProviderUnavailableError
from ..util.logging import logger
from .batch import BatchQueue
from .cache import BoundedCache, content_hash
from .clustering import analyze_similarity_patterns, cluster_distribution, hierarchical, kmeans
from .embeddings import EmbeddingChain
from .index import IVectorStore
from .similarity import SimilaritySearchEngine
from .text import detect_language, extract_semantic_tags, normalize_text
from .types import Cluster, QueryResult, VectorRecord, validate_filters


@dataclass
class VectorAnalytics:
    """Running counters for queries, inserts and clustering."""

    total_queries: int = 0
    total_inserts: int = 0
    avg_response_time_ms: float = 0.0
    cluster_distribution: Dict[str, int] = field(default_factory=dict)

    def record_timing(self, duration_ms: float) -> None:
        if self.avg_response_time_ms == 0.0:
            self.avg_response_time_ms = duration_ms
        else:
            self.avg_response_time_ms = (self.avg_response_time_ms + duration_ms) / 2


class VectorDatabaseService:
    """Embedding, storage, retrieval and clustering over one vector store."""

    def __init__(self, store: IVectorStore, embedder: Optional[EmbeddingChain] = None,
                 cache_max_entries: int = 1000, cache_evict_fraction: float = 0.5,
                 rerank_weights: Tuple[float, float] = (0.7, 0.3),
                 batch_size: int = 10, batch_interval_sec: float = 5.0,
                 cluster_max_vectors: int = 500):
        self.store = store
        self.embedder = embedder if embedder is not None else EmbeddingChain([])
        self.embedding_cache: BoundedCache = BoundedCache(cache_max_entries, cache_evict_fraction)
        self.search_engine = SimilaritySearchEngine(
            store, BoundedCache(cache_max_entries, cache_evict_fraction), rerank_weights)
        self.batch_queue = BatchQueue(self.batch_insert, batch_size, batch_interval_sec)
        self.cluster_max_vectors = cluster_max_vectors
        self.analytics = VectorAnalytics()
        self._lock = threading.RLock()
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> "VectorDatabaseService":
        """Load the persisted snapshot and start the batch timer."""
        if self._initialized:
            return self
        self.store.load()
        self.batch_queue.start()
        self._initialized = True

        count = self._safe_stats()["count"]
        logger.log_operation("service.init", "success", {"records": count})
        if count > 100:
            self._refresh_cluster_distribution()
        return self

    def close(self) -> None:
        """Stop the timer, flush pending batches and write a final snapshot."""
        self.batch_queue.stop()
        self.batch_queue.flush()
        if len(self.batch_queue):
            logger.warning(f"{len(self.batch_queue)} queued documents were not persisted on close")
        self.store.close()
        self.embedder.close()
        self._initialized = False
        logger.log_operation("service.close", "success")

    def __enter__(self) -> "VectorDatabaseService":
        return self.init()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Embedding and insert
    # ------------------------------------------------------------------

    def _expected_dimension(self) -> Optional[int]:
        try:
            return self.store.dimension or None
        except ProviderUnavailableError as e:
            logger.warning(f"Could not read store dimension: {e.message}")
            return None

    def embed_text(self, text: str) -> Tuple[List[float], str]:
        """Embedding of text through the provider chain, memoised by content hash."""
        key = content_hash(text)
        cached = self.embedding_cache.get(key)
        if cached is not None:
            return cached

        vector, provider = self.embedder.embed(text, expected_dimension=self._expected_dimension())
        self.embedding_cache.set(key, (vector, provider))
        return vector, provider

    def update_vocabulary(self, texts: Iterable[str]) -> None:
        """Feed documents into the local TF-IDF vocabulary."""
        texts = list(texts)
        self.embedder.update_vocabulary(texts)
        # Local embeddings depend on the vocabulary
        self.embedding_cache.clear()
        logger.log_operation("vocabulary.update", "success", {"documents": len(texts)})

    def enrich_metadata(self, text: str, metadata: Optional[Mapping[str, Any]], provider: str,
                        dimension: int) -> Dict[str, Any]:
        enriched = {
            "originalText": text,
            "text": text,
            "normalizedText": normalize_text(text),
            "language": detect_language(text),
        }
        enriched.update(metadata or {})
        enriched.update({
            "provider": provider,
            "embeddingLength": dimension,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "semanticTags": extract_semantic_tags(text),
        })
        return enriched

    def embed(self, text: str, metadata: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Embed text, store it and return {id, vector, metadata}.

        Raises:
            DimensionMismatchError: the embedding does not fit the store
        """
        start = time.monotonic()
        vector, provider = self.embed_text(text)
        enriched = self.enrich_metadata(text, metadata, provider, len(vector))
        record_id = self.store.insert(vector, enriched)

        with self._lock:
            self.analytics.total_inserts += 1
            self.analytics.record_timing((time.monotonic() - start) * 1000)
        return {"id": record_id, "vector": list(vector), "metadata": enriched}

    def batch_insert(self, documents: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Embed and insert documents all-or-nothing.

        Every document is embedded before anything is stored; if an insert
        fails, the inserts already made for this batch are rolled back and the
        error is raised.
        """
        prepared = []
        for doc in documents:
            text = doc.get("text", "")
            vector, provider = self.embed_text(text)
            prepared.append((vector, self.enrich_metadata(text, doc.get("metadata"), provider, len(vector))))

        inserted: List[str] = []
        try:
            for vector, metadata in prepared:
                inserted.append(self.store.insert(vector, metadata))
        except Exception:
            for record_id in inserted:
                self.store.delete(record_id)
            raise

        with self._lock:
            self.analytics.total_inserts += len(inserted)
        logger.log_operation("batch.insert", "success", {"inserted": len(inserted)})
        return [{"id": record_id, "metadata": metadata}
                for record_id, (_, metadata) in zip(inserted, prepared)]

    def enqueue(self, text: str, metadata: Optional[Mapping[str, Any]] = None):
        """Queue a document for the next batch flush."""
        return self.batch_queue.enqueue(text, dict(metadata or {}))

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def search(self, query: str, top_k: int = 5, filters: Optional[Mapping[str, Any]] = None,
               options: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Semantic search over stored records.

        Args:
            query: Query text
            top_k: Maximum number of results
            filters: Exact-match metadata filters
            options: ``rerank`` (default True), ``skipCache`` (default False),
                ``diversity`` (optional Jaccard threshold)

        Returns:
            List of {id, score, text, metadata, semanticRelevance, vectorScore}
        """
        options = dict(options or {})
        start = time.monotonic()
        with self._lock:
            self.analytics.total_queries += 1

        results = self.search_engine.search(
            query,
            None,
            top_k=top_k,
            filters=filters,
            rerank=bool(options.get("rerank", True)),
            skip_cache=bool(options.get("skipCache", False)),
            diversity=options.get("diversity"),
            embed_query=lambda q: self.embed_text(q)[0],
        )

        with self._lock:
            self.analytics.record_timing((time.monotonic() - start) * 1000)
        return [r.to_dict() for r in results]

    def search_vector(self, query_vector: Sequence[float], top_k: int = 5,
                      filters: Optional[Mapping[str, Any]] = None) -> List[QueryResult]:
        """Raw cosine top-k against a query vector; no rerank, no cache."""
        return self.store.search(query_vector, top_k, validate_filters(filters))

    def multilingual_search(self, query: str, top_k: int = 5, filters: Optional[Mapping[str, Any]] = None,
                            options: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Search with the original and the diacritic-free query, keeping each id's best hit."""
        language = detect_language(query)
        variants = [query]
        normalized = normalize_text(query)
        if normalized != query:
            variants.append(normalized)

        collected: Dict[str, Dict[str, Any]] = {}
        for variant in variants:
            for hit in self.search(variant, top_k, filters, options):
                current = collected.get(hit["id"])
                if current is None or current["score"] < hit["score"]:
                    collected[hit["id"]] = hit

        ranked = sorted(collected.values(), key=lambda h: -h["score"])[:top_k]
        return [{**hit, "languageMatch": language} for hit in ranked]

    def get_all_vectors(self, filters: Optional[Mapping[str, Any]] = None) -> List[VectorRecord]:
        return self.store.get_all(filters)

    def delete_vector(self, record_id: str) -> bool:
        """Delete a record by id; False if it did not exist."""
        removed = self.store.delete(record_id)
        if removed:
            # Cached result lists may still name the deleted id
            self.search_engine.invalidate()
        return removed

    def _safe_stats(self) -> Dict[str, Any]:
        try:
            return self.store.stats()
        except ProviderUnavailableError as e:
            logger.error(f"Failed to get vector stats: {e.message}")
            return {"count": 0, "dimension": 0, "approxFullness": 0.0}

    def stats(self) -> Dict[str, Any]:
        stats = self._safe_stats()
        return {
            "totalVectors": stats["count"],
            "dimension": stats["dimension"],
            "indexFullness": stats["approxFullness"],
        }

    # ------------------------------------------------------------------
    # Clustering and analytics
    # ------------------------------------------------------------------

    def _capped_records(self, filters: Optional[Mapping[str, Any]] = None,
                        limit: Optional[int] = None) -> List[VectorRecord]:
        records = self.store.get_all(filters)
        cap = min(limit or self.cluster_max_vectors, self.cluster_max_vectors)
        if len(records) > cap:
            logger.warning(f"Clustering input capped at {cap} of {len(records)} vectors")
            records = records[:cap]
        return records

    def cluster_kmeans(self, k: int = 5, max_iterations: int = 100,
                       filters: Optional[Mapping[str, Any]] = None,
                       seed: Optional[int] = None) -> List[Cluster]:
        records = self._capped_records(filters)
        result = kmeans([r.vector for r in records], k, max_iterations, seed=seed)
        with self._lock:
            self.analytics.cluster_distribution = cluster_distribution(result.labels)
        logger.log_clustering("kmeans", len(records), len(result.centroids),
                              {"iterations": result.iterations})
        return result.to_clusters([r.id for r in records])

    def cluster_hierarchical(self, similarity_threshold: float = 0.7,
                             filters: Optional[Mapping[str, Any]] = None) -> List[Cluster]:
        records = self._capped_records(filters)
        clusters = hierarchical([r.vector for r in records], similarity_threshold, [r.id for r in records])
        logger.log_clustering("hierarchical", len(records), len(clusters),
                              {"threshold": similarity_threshold})
        return clusters

    def _refresh_cluster_distribution(self) -> None:
        count = len(self._capped_records())
        self.cluster_kmeans(k=max(1, min(10, count // 10)))

    def analyze_similarity_patterns(self, sample_size: int = 100) -> Dict[str, Any]:
        records = self._capped_records(limit=sample_size)
        return analyze_similarity_patterns([r.vector for r in records])

    def advanced_stats(self) -> Dict[str, Any]:
        """Basic stats plus cache, performance and cluster metrics."""
        with self._lock:
            analytics = self.analytics
            return {
                **self.stats(),
                "clusterDistribution": dict(analytics.cluster_distribution),
                "cacheMetrics": {
                    "vectorCacheSize": len(self.embedding_cache),
                    "semanticCacheSize": len(self.search_engine.cache),
                    "cacheHitRate": self.search_engine.cache.hit_rate,
                },
                "performance": {
                    "totalQueries": analytics.total_queries,
                    "totalInserts": analytics.total_inserts,
                    "avgResponseTime": round(analytics.avg_response_time_ms),
                    "batchQueueSize": len(self.batch_queue),
                    "isProcessingBatch": self.batch_queue.is_flushing,
                },
                "lastUpdated": datetime.now(timezone.utc).isoformat(),
            }

    def optimize(self) -> Dict[str, Any]:
        """Drop both caches and refresh the cluster distribution."""
        logger.info("Starting vector database optimization")
        self.embedding_cache.clear()
        self.search_engine.invalidate()
        if self._safe_stats()["count"] > 50:
            self._refresh_cluster_distribution()
        return {"success": True, "optimizedAt": datetime.now(timezone.utc).isoformat()}
