"""Error taxonomy for the vector store core."""

from typing import Any, Dict, Optional


class VectorStoreError(Exception):
    """Base exception for vector store errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DimensionMismatchError(VectorStoreError):
    """Vector length does not match the store's established dimension."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension {actual} does not match expected dimension {expected}",
            {"expected": expected, "actual": actual},
        )


class ProviderUnavailableError(VectorStoreError):
    """An external embedding provider or remote index failed or timed out."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"Provider '{provider}' unavailable: {reason}",
                         {"provider": provider, "reason": reason})


class PersistenceError(VectorStoreError):
    """Snapshot read or write failed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Snapshot I/O failed for {path}: {reason}",
                         {"path": path, "reason": reason})


class InvalidFilterError(VectorStoreError):
    """Metadata filter argument is malformed."""


class NotFoundError(VectorStoreError):
    """Requested record does not exist."""
