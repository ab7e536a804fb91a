"""Thread-backed worker pool.

A fixed number of OS threads, created once, run every blocking filesystem
operation. The pool never waits on the caller and never blocks it: an
operation's outcome is handed to its ``on_done`` callback on the worker
thread, and the dispatcher takes it from there.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from ctxfs.kernel.config.models import (
    DEFAULT_MAX_WORKERS,
    DEFAULT_THREAD_NAME_PREFIX,
    WorkerPoolConfig,
)
from ctxfs.kernel.exceptions import WorkerPoolClosedError
from ctxfs.kernel.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger(__name__)


class ThreadWorkerPool:
    """Fixed-size pool of worker threads.

    Parameters
    ----------
    max_workers : int
        Number of worker threads (fixed for the pool's lifetime)
    thread_name_prefix : str
        Prefix for worker thread names

    Examples
    --------
    Example usage::

        with ThreadWorkerPool(max_workers=4) as pool:
            pool.submit(lambda: os.stat("/tmp"), lambda value, error: ...)
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_MAX_WORKERS,
        thread_name_prefix: str = DEFAULT_THREAD_NAME_PREFIX,
    ) -> None:
        # Validates max_workers / prefix the same way config files are validated
        config = WorkerPoolConfig(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        self._max_workers = config.max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix=config.thread_name_prefix
        )
        self._lock = threading.Lock()
        self._closed = False
        self._pending = 0
        logger.debug(
            "Started worker pool with {n} threads ({prefix})",
            n=config.max_workers,
            prefix=config.thread_name_prefix,
        )

    @classmethod
    def from_config(cls, config: WorkerPoolConfig) -> ThreadWorkerPool:
        return cls(max_workers=config.max_workers, thread_name_prefix=config.thread_name_prefix)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<ThreadWorkerPool workers={self._max_workers} pending={self._pending} {state}>"

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of operations submitted but not yet finished."""
        return self._pending

    def submit(
        self,
        operation: Callable[[], Any],
        on_done: Callable[[Any, BaseException | None], None],
    ) -> None:
        """Queue ``operation``; ``on_done`` receives its value or error on the worker.

        Raises
        ------
        WorkerPoolClosedError
            If the pool has been shut down
        """
        with self._lock:
            if self._closed:
                raise WorkerPoolClosedError("Cannot submit work: the worker pool is shut down")
            self._pending += 1
            try:
                self._executor.submit(self._run, operation, on_done)
            except RuntimeError as e:
                self._pending -= 1
                raise WorkerPoolClosedError(str(e)) from e

    def _run(
        self,
        operation: Callable[[], Any],
        on_done: Callable[[Any, BaseException | None], None],
    ) -> None:
        try:
            value, error = operation(), None
        except BaseException as e:  # noqa: BLE001
            value, error = None, e

        try:
            on_done(value, error)
        except Exception:
            logger.exception("Completion callback failed for a finished operation")
        finally:
            with self._lock:
                self._pending -= 1

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work. With ``wait`` block until queued operations finish."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        logger.debug("Shutting down worker pool ({n} pending)", n=self._pending)
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> ThreadWorkerPool:
        return self

    def __exit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        self.shutdown(wait=True)


__all__ = ["ThreadWorkerPool"]
