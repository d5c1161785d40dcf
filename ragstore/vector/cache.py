"""Bounded in-memory caches keyed by content hash."""

from collections import OrderedDict
import hashlib
import json
import threading
from typing import Any, Generic, Optional, TypeVar

T = TypeVar('T')  # Generic type for cached data


def content_hash(*parts: Any) -> str:
    """Stable hash of the given parts (strings as-is, everything else as sorted JSON)."""
    hasher = hashlib.md5()
    for part in parts:
        if isinstance(part, str):
            data = part
        else:
            data = json.dumps(part, sort_keys=True, default=str)
        hasher.update(data.encode("utf-8"))
        hasher.update(b"\x1f")
    return hasher.hexdigest()


class BoundedCache(Generic[T]):
    """Insertion-ordered cache that drops its oldest entries when over the bound.

    When the entry count exceeds ``max_entries`` the oldest
    ``evict_fraction`` of entries (by insertion order) are removed in one go.
    Reads do not refresh an entry's age.
    """

    def __init__(self, max_entries: int = 1000, evict_fraction: float = 0.5):
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1: {max_entries}")
        if not 0 < evict_fraction <= 1:
            raise ValueError(f"evict_fraction must be in (0, 1]: {evict_fraction}")
        self.max_entries = max_entries
        self.evict_fraction = evict_fraction
        self._entries: "OrderedDict[str, T]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            if key in self._entries:
                self.hits += 1
                return self._entries[key]
            self.misses += 1
            return None

    def set(self, key: str, value: T) -> None:
        with self._lock:
            self._entries[key] = value
            if len(self._entries) > self.max_entries:
                self._evict()

    def _evict(self) -> None:
        count = max(1, int(len(self._entries) * self.evict_fraction))
        for _ in range(count):
            self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
