"""Bounded worker pool for blocking upload work."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from threading import BoundedSemaphore
from typing import Any, Callable, TypeVar

T = TypeVar("T")


class WorkerPoolSaturatedError(RuntimeError):
    """Raised when the pool already holds its maximum number of jobs."""


class BoundedWorkerPool:
    """``ThreadPoolExecutor`` that rejects work beyond a fixed backlog.

    At most ``max_workers + queue_size`` jobs are running or queued at once;
    ``submit`` fails fast instead of growing the executor's unbounded queue.
    """

    def __init__(
        self, *, max_workers: int, queue_size: int, thread_name_prefix: str = "upload"
    ) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=thread_name_prefix
        )
        self._slots = BoundedSemaphore(max_workers + queue_size)

    def submit(self, fn: Callable[..., T], /, *args: Any, **kwargs: Any) -> Future[T]:
        if not self._slots.acquire(blocking=False):
            raise WorkerPoolSaturatedError("upload worker pool is saturated")

        def _run() -> T:
            try:
                return fn(*args, **kwargs)
            finally:
                self._slots.release()

        try:
            return self._executor.submit(_run)
        except RuntimeError:
            self._slots.release()
            raise

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
