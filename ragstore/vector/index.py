"""
Vector store contract and the local in-memory backend with JSON snapshots.
"""

from abc import ABC, abstractmethod
from collections import OrderedDict
import json
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from ..core.exceptions import DimensionMismatchError, PersistenceError
from ..util.logging import logger
from .similarity import rank_records
from .types import QueryResult, VectorRecord, matches_filters, validate_filters


def new_record_id() -> str:
    return str(uuid.uuid4())


def as_vector(vector: Sequence[float]) -> np.ndarray:
    array = np.asarray(vector, dtype=np.float64).reshape(-1)
    if array.size == 0:
        raise ValueError("Vector must not be empty")
    return array


class IVectorStore(ABC):
    """Abstract interface for vector storage operations."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Established vector dimension, 0 while the store is empty."""

    @abstractmethod
    def insert(self, vector: Sequence[float], metadata: Optional[Mapping[str, Any]] = None) -> str:
        """Store a vector under a fresh id and return the id."""

    @abstractmethod
    def upsert(self, record: VectorRecord) -> str:
        """Insert or replace a record by id."""

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        """Remove a record; False when it was not present."""

    @abstractmethod
    def get(self, record_id: str) -> Optional[VectorRecord]:
        """Look up one record by id."""

    @abstractmethod
    def get_all(self, filters: Optional[Mapping[str, Any]] = None) -> List[VectorRecord]:
        """All records matching every filter key exactly, in insertion order."""

    @abstractmethod
    def search(self, query_vector: Sequence[float], top_k: int = 5,
               filters: Optional[Mapping[str, Any]] = None) -> List[QueryResult]:
        """Top-k records by cosine similarity, descending, ties by insertion order."""

    @abstractmethod
    def stats(self) -> Dict[str, Any]:
        """{count, dimension, approxFullness}"""

    @abstractmethod
    def clear(self) -> None:
        """Clear all records from the store."""

    def load(self) -> None:
        """Restore durable state, if the backend has any."""

    def flush(self) -> None:
        """Persist pending state, if the backend has any."""

    def close(self) -> None:
        self.flush()

    def check_dimension(self, vector: np.ndarray) -> None:
        dimension = self.dimension
        if dimension and len(vector) != dimension:
            raise DimensionMismatchError(dimension, len(vector))


class LocalVectorStore(IVectorStore):
    """In-memory store, snapshotted to a single JSON file.

    Mutations apply to the in-memory map immediately; the snapshot write is
    debounced on a background timer. A failed write is logged and the store
    stays dirty, so the next mutation or :meth:`flush` retries it.
    """

    def __init__(self, snapshot_path: Optional[str] = None, debounce_sec: float = 1.0):
        self.snapshot_path = snapshot_path
        self.debounce_sec = debounce_sec
        self._records: "OrderedDict[str, VectorRecord]" = OrderedDict()
        self._lock = threading.RLock()
        self._dirty = False
        self._timer: Optional[threading.Timer] = None
        self._write_lock = threading.Lock()
        self._writes_disabled = False

    @property
    def dimension(self) -> int:
        with self._lock:
            if not self._records:
                return 0
            return len(next(iter(self._records.values())).vector)

    def insert(self, vector: Sequence[float], metadata: Optional[Mapping[str, Any]] = None) -> str:
        record = VectorRecord(id=new_record_id(), vector=as_vector(vector), metadata=dict(metadata or {}))
        return self.upsert(record)

    def upsert(self, record: VectorRecord) -> str:
        vector = as_vector(record.vector)
        with self._lock:
            existing = self._records.get(record.id)
            # Replacing the only record may re-establish the dimension
            if existing is None or len(self._records) > 1:
                self.check_dimension(vector)
            self._records[record.id] = VectorRecord(id=record.id, vector=vector,
                                                    metadata=dict(record.metadata))
        logger.log_vector_operation("upsert" if existing else "insert", record.id,
                                    {"dimension": len(vector)})
        self._schedule_snapshot()
        return record.id

    def delete(self, record_id: str) -> bool:
        with self._lock:
            removed = self._records.pop(record_id, None) is not None
        if removed:
            logger.log_vector_operation("delete", record_id)
            self._schedule_snapshot()
        return removed

    def get(self, record_id: str) -> Optional[VectorRecord]:
        with self._lock:
            record = self._records.get(record_id)
        return record.copy() if record is not None else None

    def get_all(self, filters: Optional[Mapping[str, Any]] = None) -> List[VectorRecord]:
        filters = validate_filters(filters)
        with self._lock:
            records = [r.copy() for r in self._records.values()]
        if not filters:
            return records
        return [r for r in records if matches_filters(r.metadata, filters)]

    def search(self, query_vector: Sequence[float], top_k: int = 5,
               filters: Optional[Mapping[str, Any]] = None) -> List[QueryResult]:
        candidates = self.get_all(filters)
        if top_k <= 0 or not candidates:
            return []
        return rank_records(query_vector, candidates, top_k)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {"count": len(self._records), "dimension": self.dimension, "approxFullness": 0.0}

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
        self._schedule_snapshot()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # ------------------------------------------------------------------
    # Snapshot persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Replace the in-memory map with the snapshot, if one exists.

        A missing snapshot leaves the store empty. An unreadable one is moved
        to ``<path>.corrupt`` so later writes cannot overwrite it; if it cannot
        be moved, snapshot writes stay disabled for this store.
        """
        if not self.snapshot_path or not os.path.exists(self.snapshot_path):
            return
        try:
            records = self._read_snapshot(self.snapshot_path)
        except PersistenceError as e:
            logger.log_persistence("load", self.snapshot_path, "failed", {"error": e.message})
            self._quarantine_snapshot()
            return

        with self._lock:
            self._records = OrderedDict((r.id, r) for r in records)
            self._dirty = False
        logger.log_persistence("load", self.snapshot_path, details={"records": len(records)})

    def _quarantine_snapshot(self) -> None:
        corrupt_path = f"{self.snapshot_path}.corrupt"
        try:
            os.replace(self.snapshot_path, corrupt_path)
            logger.log_persistence("quarantine", corrupt_path)
        except OSError as e:
            with self._lock:
                self._writes_disabled = True
            logger.log_persistence("quarantine", self.snapshot_path, "failed", {"error": str(e)})

    @staticmethod
    def _read_snapshot(path: str) -> List[VectorRecord]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return [VectorRecord.from_dict({"id": key, **value}) for key, value in data.items()]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise PersistenceError(path, str(e)) from e

    @staticmethod
    def _write_snapshot(path: str, records: List[VectorRecord]) -> None:
        data = {r.id: r.to_dict() for r in records}
        tmp_path = f"{path}.tmp"
        try:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(path, str(e)) from e

    def _schedule_snapshot(self) -> None:
        if not self.snapshot_path:
            return
        with self._lock:
            self._dirty = True
            if self.debounce_sec > 0:
                if self._timer is None:
                    self._timer = threading.Timer(self.debounce_sec, self._on_timer)
                    self._timer.daemon = True
                    self._timer.start()
                return
        self.flush()

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
        self.flush()

    def flush(self) -> None:
        """Write the snapshot now if anything changed since the last write."""
        if not self.snapshot_path or self._writes_disabled:
            return
        with self._write_lock:
            with self._lock:
                if not self._dirty:
                    return
                records = list(self._records.values())
                self._dirty = False

            try:
                self._write_snapshot(self.snapshot_path, records)
                logger.log_persistence("write", self.snapshot_path, details={"records": len(records)})
            except PersistenceError as e:
                with self._lock:
                    self._dirty = True
                logger.log_persistence("write", self.snapshot_path, "failed", {"error": e.message})

    def close(self) -> None:
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        self.flush()
