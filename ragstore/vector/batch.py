"""
Batch queue for pending inserts.
Flushes on a size threshold or a background timer; one flush at a time.
"""

import threading
import time
from collections import deque
from typing import Any, Callable, Dict, List, Optional

from ..util.logging import logger

Document = Dict[str, Any]  # {"text": str, "metadata": dict}


class BatchQueue:
    """FIFO queue of (text, metadata) documents awaiting embedding and insert.

    ``flush_func`` receives the whole batch. If it raises, every document of
    that batch goes back to the front of the queue, ahead of anything enqueued
    meanwhile, and is retried on the next trigger.
    """

    def __init__(self, flush_func: Callable[[List[Document]], Any], batch_size: int = 10,
                 interval_sec: float = 5.0):
        if not callable(flush_func):
            raise ValueError(f"Flush function must be callable: {flush_func}")
        if batch_size < 1:
            raise ValueError(f"Batch size must be >= 1: {batch_size}")
        if interval_sec <= 0:
            raise ValueError(f"Interval must be > 0 seconds: {interval_sec}")

        self.flush_func = flush_func
        self.batch_size = batch_size
        self.interval_sec = interval_sec
        self._queue: deque = deque()
        self._lock = threading.Lock()
        self._flushing = False
        self._shutdown_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self.last_flush_at: Optional[float] = None

    def enqueue(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """Queue one document; flushes inline once the size threshold is reached."""
        with self._lock:
            self._queue.append({"text": text, "metadata": dict(metadata or {})})
            size = len(self._queue)

        if size >= self.batch_size:
            return self.flush()
        return None

    def flush(self) -> Optional[Any]:
        """Flush everything queued. Returns None when empty or another flush is running."""
        with self._lock:
            if self._flushing or not self._queue:
                return None
            self._flushing = True
            batch = list(self._queue)
            self._queue.clear()

        start = time.monotonic()
        try:
            result = self.flush_func(batch)
            logger.log_batch(len(batch), details={
                "duration_ms": round((time.monotonic() - start) * 1000, 2)})
            self.last_flush_at = time.time()
            return result
        except Exception as e:
            with self._lock:
                self._queue.extendleft(reversed(batch))
            logger.log_batch(len(batch), status="failed", details={"error": str(e), "requeued": len(batch)})
            return None
        finally:
            with self._lock:
                self._flushing = False

    def start(self) -> None:
        """Start the background flush timer."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Batch timer already running")

        self._shutdown_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name="batch-flush", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._shutdown_event.wait(self.interval_sec):
            try:
                self.flush()
            except Exception as e:
                # Error isolation - keep the timer alive
                logger.error(f"Batch timer flush failed: {e}")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the background timer."""
        if self._shutdown_event is not None:
            self._shutdown_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._thread = None
        self._shutdown_event = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_flushing(self) -> bool:
        return self._flushing

    def pending(self) -> List[Document]:
        with self._lock:
            return list(self._queue)

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)
