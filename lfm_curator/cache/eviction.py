"""
Expired-entry eviction for the file cache

An expired read only *requests* removal of the stale files. The default
EvictionWorker queues the request for a single background thread so the read
path never waits on disk deletes; SyncEviction removes inline. Failures are
logged and counted in both cases, never raised back to the reader.
"""
import logging
import queue
import threading
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

EvictAction = Callable[[str], bool]

_STOP = object()


class EvictionWorker:
    """
    Bounded queue of eviction requests drained by one daemon thread

    Usage:
        worker = EvictionWorker(max_queue=256)
        worker.submit(key, storage.evict_if_expired)   # never blocks
        worker.join()                                  # wait for the queue to drain
    """

    def __init__(self, max_queue: int = 256):
        if max_queue < 1:
            raise ValueError("max_queue must be positive")
        self._queue: "queue.Queue" = queue.Queue(maxsize=max_queue)
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._closed = False
        self.submitted = 0
        self.evicted = 0
        self.failed = 0
        self.dropped = 0

    def _ensure_thread(self) -> None:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(
                    target=self._run, name="lfm-cache-eviction", daemon=True
                )
                self._thread.start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                key, action = item
                try:
                    if action(key):
                        self.evicted += 1
                        logger.debug(f"Evicted expired cache entry {key[:12]}...")
                except Exception as e:
                    self.failed += 1
                    logger.warning(f"Failed to evict cache entry {key[:12]}...: {e}")
            finally:
                self._queue.task_done()
            if self._stop.is_set():
                return

    def submit(self, key: str, action: EvictAction) -> bool:
        """
        Queue an eviction request without blocking

        Returns:
            True if queued, False if the worker is closed or the queue is full
        """
        if self._closed:
            return False
        self._ensure_thread()
        try:
            self._queue.put_nowait((key, action))
        except queue.Full:
            # A later cleanup_expired() pass removes the entry instead
            self.dropped += 1
            logger.debug(f"Eviction queue full, dropped request for {key[:12]}...")
            return False
        self.submitted += 1
        return True

    def join(self) -> None:
        """Block until every queued request has been processed"""
        if self._thread is not None and self._thread.is_alive():
            self._queue.join()

    def close(self, timeout: float = 1.0) -> None:
        """Stop the worker thread; requests still queued are discarded"""
        with self._lock:
            self._closed = True
            thread = self._thread
        if thread is None:
            return
        self._stop.set()
        try:
            self._queue.put_nowait(_STOP)
        except queue.Full:
            pass
        thread.join(timeout)

    def stats(self) -> Dict[str, int]:
        return {
            'submitted': self.submitted,
            'evicted': self.evicted,
            'failed': self.failed,
            'dropped': self.dropped,
            'pending': self._queue.qsize(),
        }


class SyncEviction:
    """Inline, best-effort eviction with the same interface as EvictionWorker"""

    def __init__(self):
        self.submitted = 0
        self.evicted = 0
        self.failed = 0
        self.dropped = 0

    def submit(self, key: str, action: EvictAction) -> bool:
        self.submitted += 1
        try:
            if action(key):
                self.evicted += 1
        except Exception as e:
            self.failed += 1
            logger.warning(f"Failed to evict cache entry {key[:12]}...: {e}")
        return True

    def join(self) -> None:
        pass

    def close(self, timeout: float = 1.0) -> None:
        pass

    def stats(self) -> Dict[str, int]:
        return {
            'submitted': self.submitted,
            'evicted': self.evicted,
            'failed': self.failed,
            'dropped': self.dropped,
            'pending': 0,
        }


def make_eviction(mode: str = 'deferred', max_queue: int = 256):
    """
    Build the eviction strategy named in config

    Args:
        mode: 'deferred' (background worker) or 'sync'
        max_queue: Queue bound for the deferred worker
    """
    mode = (mode or 'deferred').lower()
    if mode == 'sync':
        return SyncEviction()
    if mode == 'deferred':
        return EvictionWorker(max_queue=max_queue)
    raise ValueError(f"Unknown eviction mode: {mode}")
