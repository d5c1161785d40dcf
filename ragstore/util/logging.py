"""
Structured operation logging for the vector store.
"""

import logging
from typing import Any, Dict


def _truncate(value: Any, limit: int = 50) -> Any:
    if isinstance(value, str) and len(value) > limit:
        return value[:limit] + "..."
    return value


class StructuredLogger:
    """Structured logger for vector, search, batch and persistence operations."""

    def __init__(self, name: str = "ragstore"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_vector_operation(self, operation: str, record_id: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a vector operation."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update({k: _truncate(v) for k, v in details.items()})

        level = logging.INFO if status == "success" else logging.WARNING
        self.log_operation(f"vector.{operation}", status, log_details, level)

    def log_search(self, query: str, result_count: int, duration_ms: float, cached: bool = False):
        """Log a similarity search."""
        details = {
            "query": _truncate(query),
            "results": result_count,
            "duration_ms": round(duration_ms, 2),
            "cached": cached,
        }
        self.log_operation("search", "success", details)

    def log_batch(self, size: int, status: str = "success", details: Dict[str, Any] = None):
        """Log a batch flush."""
        log_details = {"size": size}
        if details:
            log_details.update(details)

        level = logging.INFO if status == "success" else logging.ERROR
        self.log_operation("batch.flush", status, log_details, level)

    def log_persistence(self, action: str, path: str, status: str = "success", details: Dict[str, Any] = None):
        """Log a snapshot load or write."""
        log_details = {"path": path}
        if details:
            log_details.update(details)

        level = logging.INFO if status == "success" else logging.ERROR
        self.log_operation(f"snapshot.{action}", status, log_details, level)

    def log_provider_fallback(self, provider: str, reason: str):
        """Log an embedding provider failure that moved the chain on."""
        self.log_operation("embed.fallback", "degraded",
                           {"provider": provider, "reason": _truncate(reason, 100)},
                           logging.WARNING)

    def log_clustering(self, algorithm: str, vectors: int, clusters: int, details: Dict[str, Any] = None):
        """Log a clustering run."""
        log_details = {"algorithm": algorithm, "vectors": vectors, "clusters": clusters}
        if details:
            log_details.update(details)

        self.log_operation(f"cluster.{algorithm}", "success", log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
