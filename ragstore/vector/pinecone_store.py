"""Pinecone-backed remote vector store."""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np

from ..core.exceptions import ProviderUnavailableError
from ..util.logging import logger
from .index import IVectorStore, as_vector, new_record_id
from .types import QueryResult, VectorRecord, matches_filters, validate_filters

# Pinecone fetch/delete accept at most this many ids per call
_FETCH_CHUNK = 100


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a Pinecone response object or plain dict."""
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _clean_metadata(metadata: Mapping[str, Any]) -> Dict[str, Any]:
    """Pinecone metadata values must be str, number, bool or a list of strings."""
    cleaned = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            cleaned[key] = value
        elif isinstance(value, (list, tuple)):
            cleaned[key] = [str(v) for v in value]
        else:
            cleaned[key] = str(value)
    return cleaned


class PineconeVectorStore(IVectorStore):
    """IVectorStore over a Pinecone index.

    Every remote call is bounded by ``timeout_sec``; a failure or timeout
    raises ProviderUnavailableError. Ranking and filtering happen on the
    server, so ties follow Pinecone's order rather than insertion order.
    """

    def __init__(self, index, timeout_sec: float = 10.0, dimension: Optional[int] = None):
        self.index = index
        self.timeout_sec = timeout_sec
        self._dimension = dimension
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="pinecone")

    @classmethod
    def from_api_key(cls, api_key: str, index_name: str, timeout_sec: float = 10.0) -> "PineconeVectorStore":
        from pinecone import Pinecone

        client = Pinecone(api_key=api_key)
        return cls(client.Index(index_name), timeout_sec=timeout_sec)

    def _call(self, operation: str, func: Callable, *args, **kwargs):
        future = self._executor.submit(func, *args, **kwargs)
        try:
            return future.result(timeout=self.timeout_sec)
        except FuturesTimeoutError:
            future.cancel()
            raise ProviderUnavailableError("pinecone", f"{operation} timed out after {self.timeout_sec}s")
        except Exception as e:
            raise ProviderUnavailableError("pinecone", f"{operation} failed: {e}") from e

    def _describe(self):
        return self._call("describe_index_stats", self.index.describe_index_stats)

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            stats = self._describe()
            if not _field(stats, "total_vector_count", 0):
                return 0
            self._dimension = int(_field(stats, "dimension", 0) or 0)
        return self._dimension

    def insert(self, vector: Sequence[float], metadata: Optional[Mapping[str, Any]] = None) -> str:
        record = VectorRecord(id=new_record_id(), vector=as_vector(vector), metadata=dict(metadata or {}))
        return self.upsert(record)

    def upsert(self, record: VectorRecord) -> str:
        vector = as_vector(record.vector)
        self.check_dimension(vector)
        payload = {
            "id": record.id,
            "values": [float(v) for v in vector],
            "metadata": _clean_metadata(record.metadata),
        }
        self._call("upsert", self.index.upsert, vectors=[payload])
        if self._dimension is None:
            self._dimension = len(vector)
        logger.log_vector_operation("upsert", record.id, {"dimension": len(vector), "backend": "pinecone"})
        return record.id

    def _fetch(self, ids: List[str]) -> List[VectorRecord]:
        records = []
        for start in range(0, len(ids), _FETCH_CHUNK):
            response = self._call("fetch", self.index.fetch, ids=ids[start:start + _FETCH_CHUNK])
            vectors = _field(response, "vectors", {}) or {}
            for record_id in ids[start:start + _FETCH_CHUNK]:
                if record_id in vectors:
                    item = vectors[record_id]
                    records.append(VectorRecord(
                        id=record_id,
                        vector=np.asarray(_field(item, "values", []) or [], dtype=np.float64),
                        metadata=dict(_field(item, "metadata", {}) or {}),
                    ))
        return records

    def get(self, record_id: str) -> Optional[VectorRecord]:
        records = self._fetch([record_id])
        return records[0] if records else None

    def delete(self, record_id: str) -> bool:
        if self.get(record_id) is None:
            return False
        self._call("delete", self.index.delete, ids=[record_id])
        logger.log_vector_operation("delete", record_id, {"backend": "pinecone"})
        return True

    def get_all(self, filters: Optional[Mapping[str, Any]] = None) -> List[VectorRecord]:
        filters = validate_filters(filters)
        ids: List[str] = []
        for page in self._call("list", lambda: list(self.index.list())):
            ids.extend(page)
        records = self._fetch(ids)
        return [r for r in records if matches_filters(r.metadata, filters)]

    def search(self, query_vector: Sequence[float], top_k: int = 5,
               filters: Optional[Mapping[str, Any]] = None) -> List[QueryResult]:
        filters = validate_filters(filters)
        if top_k <= 0 or self.dimension == 0:
            return []
        query = as_vector(query_vector)
        self.check_dimension(query)

        kwargs: Dict[str, Any] = {
            "vector": [float(v) for v in query],
            "top_k": top_k,
            "include_metadata": True,
        }
        if filters:
            kwargs["filter"] = {key: {"$eq": value} for key, value in filters.items()}
        response = self._call("query", self.index.query, **kwargs)

        results = []
        for match in _field(response, "matches", []) or []:
            metadata = dict(_field(match, "metadata", {}) or {})
            results.append(QueryResult(
                id=_field(match, "id"),
                score=float(np.clip(_field(match, "score", 0.0) or 0.0, -1.0, 1.0)),
                metadata=metadata,
                text=metadata.get("text") or metadata.get("originalText") or "",
            ))
        results.sort(key=lambda r: -r.score)
        return results[:top_k]

    def stats(self) -> Dict[str, Any]:
        stats = self._describe()
        count = int(_field(stats, "total_vector_count", 0) or 0)
        fullness = float(_field(stats, "index_fullness", 0.0) or 0.0)
        if fullness > 0.8:
            logger.warning("Vector database approaching capacity, consider scaling")
        return {
            "count": count,
            "dimension": int(_field(stats, "dimension", 0) or 0) if count else 0,
            "approxFullness": fullness,
        }

    def clear(self) -> None:
        self._call("delete_all", self.index.delete, delete_all=True)
        self._dimension = None

    def close(self) -> None:
        self._executor.shutdown(wait=False)
