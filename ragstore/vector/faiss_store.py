"""
FAISS-backed vector store with a bounded capacity.
"""

from collections import OrderedDict
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from ..util.logging import logger
from .index import IVectorStore, as_vector, new_record_id
from .types import QueryResult, VectorRecord, matches_filters, validate_filters

# Fullness above which the store warns that it is approaching capacity
FULLNESS_WARNING = 0.8


class FaissVectorStore(IVectorStore):
    """FAISS-backed implementation of IVectorStore.

    Vectors are L2-normalised into an ``IndexIDMap2(IndexFlatIP)`` so inner
    product equals cosine similarity; zero vectors stay zero and score 0.
    Records (with their original, unnormalised vectors) are kept in a side
    table for metadata, filtering and full scans. The index is created on
    the first insert, which fixes the dimension.
    """

    def __init__(self, capacity: int = 100000):
        try:
            import faiss
            self.faiss = faiss
        except ImportError:
            raise ImportError("FAISS not installed. Please install faiss-cpu package.")

        self.capacity = capacity
        self.index = None
        self._records: "OrderedDict[str, VectorRecord]" = OrderedDict()
        self.id_to_vector_index: Dict[str, int] = {}
        self.vector_id_map: Dict[int, str] = {}  # Vector index -> record ID
        self.next_vector_index = 0
        self._lock = threading.RLock()

    @property
    def dimension(self) -> int:
        with self._lock:
            if not self._records:
                return 0
            return self.index.d

    def _ensure_index(self, dimension: int) -> None:
        if self.index is None or (not self.id_to_vector_index and self.index.d != dimension):
            self.index = self.faiss.IndexIDMap2(self.faiss.IndexFlatIP(dimension))

    @staticmethod
    def _normalized(vector: np.ndarray) -> np.ndarray:
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return np.asarray(vector, dtype=np.float32).reshape(1, -1)

    def insert(self, vector: Sequence[float], metadata: Optional[Mapping[str, Any]] = None) -> str:
        record = VectorRecord(id=new_record_id(), vector=as_vector(vector), metadata=dict(metadata or {}))
        return self.upsert(record)

    def upsert(self, record: VectorRecord) -> str:
        vector = as_vector(record.vector)
        with self._lock:
            existing = record.id in self._records
            # Replacing the only record may re-establish the dimension
            if existing and len(self._records) == 1:
                if len(vector) != self.index.d:
                    self.index = None
            else:
                self.check_dimension(vector)
            if existing:
                self._remove_vector(record.id)

            self._ensure_index(len(vector))
            vector_index = self.next_vector_index
            self.next_vector_index += 1
            self.index.add_with_ids(self._normalized(vector), np.array([vector_index], dtype=np.int64))
            self.id_to_vector_index[record.id] = vector_index
            self.vector_id_map[vector_index] = record.id
            self._records[record.id] = VectorRecord(id=record.id, vector=vector, metadata=dict(record.metadata))

            fullness = len(self._records) / self.capacity if self.capacity else 0.0
        if fullness > FULLNESS_WARNING:
            logger.warning(f"FAISS store approaching capacity ({fullness:.0%} full)")
        logger.log_vector_operation("upsert" if existing else "insert", record.id, {"dimension": len(vector)})
        return record.id

    def _remove_vector(self, record_id: str) -> None:
        vector_index = self.id_to_vector_index.pop(record_id)
        self.vector_id_map.pop(vector_index, None)
        if self.index is not None:
            self.index.remove_ids(np.array([vector_index], dtype=np.int64))

    def delete(self, record_id: str) -> bool:
        with self._lock:
            if record_id not in self._records:
                return False
            self._remove_vector(record_id)
            del self._records[record_id]
        logger.log_vector_operation("delete", record_id)
        return True

    def get(self, record_id: str) -> Optional[VectorRecord]:
        with self._lock:
            record = self._records.get(record_id)
        return record.copy() if record is not None else None

    def get_all(self, filters: Optional[Mapping[str, Any]] = None) -> List[VectorRecord]:
        filters = validate_filters(filters)
        with self._lock:
            records = [r.copy() for r in self._records.values()]
        return [r for r in records if matches_filters(r.metadata, filters)]

    def search(self, query_vector: Sequence[float], top_k: int = 5,
               filters: Optional[Mapping[str, Any]] = None) -> List[QueryResult]:
        """Search for similar vectors and return ranked results."""
        filters = validate_filters(filters)
        with self._lock:
            if top_k <= 0 or not self._records:
                return []
            query = as_vector(query_vector)
            self.check_dimension(query)

            # Filtering happens after the KNN pass, so fetch everything when filtered
            fetch_k = self.index.ntotal if filters else min(top_k, self.index.ntotal)
            scores, indices = self.index.search(self._normalized(query), fetch_k)
            order = {record_id: i for i, record_id in enumerate(self._records)}

            hits = []
            for score, vector_index in zip(scores[0], indices[0]):
                record_id = self.vector_id_map.get(int(vector_index))
                if record_id is None:
                    continue
                record = self._records[record_id]
                if filters and not matches_filters(record.metadata, filters):
                    continue
                hits.append((float(np.clip(score, -1.0, 1.0)), order[record_id], record))

        hits.sort(key=lambda h: (-h[0], h[1]))
        return [QueryResult(id=r.id, score=s, metadata=dict(r.metadata), text=r.text) for s, _, r in hits[:top_k]]

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            count = len(self._records)
            return {
                "count": count,
                "dimension": self.dimension,
                "approxFullness": min(1.0, count / self.capacity) if self.capacity else 0.0,
            }

    def clear(self) -> None:
        """Clear all records from the FAISS store."""
        with self._lock:
            self.index = None
            self._records.clear()
            self.id_to_vector_index.clear()
            self.vector_id_map.clear()
            self.next_vector_index = 0
