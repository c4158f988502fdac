"""Fixed-size worker pool with a bounded submission queue."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

logger = logging.getLogger(__name__)

QUEUE_FACTOR = 4


class WorkerPool:
    """Run tasks on ``threads`` workers, blocking producers when saturated.

    At most ``threads * 4`` tasks are queued or running at any time;
    :meth:`submit` blocks until a slot frees up. :meth:`wait` closes the
    pool and returns once every submitted task has finished.

    Example:
        pool = WorkerPool(4)
        for item in items:
            pool.submit(process, item)
        pool.wait()
    """

    def __init__(self, threads: int) -> None:
        self.threads = max(1, threads)
        self._slots = threading.BoundedSemaphore(self.threads * QUEUE_FACTOR)
        self._executor = ThreadPoolExecutor(
            max_workers=self.threads, thread_name_prefix="redactyl-worker"
        )
        self._closed = False

    def submit(self, fn: Callable[..., None], *args: object) -> None:
        if self._closed:
            raise RuntimeError("WorkerPool is closed")
        self._slots.acquire()
        try:
            future = self._executor.submit(fn, *args)
        except BaseException:
            self._slots.release()
            raise
        future.add_done_callback(self._release)

    def _release(self, future: Future[None]) -> None:
        self._slots.release()
        exc = future.exception()
        if exc is not None:
            logger.debug("Worker task failed: %s", exc)

    def wait(self) -> None:
        """Close the pool and block until all submitted work is done."""
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.wait()
