"""Port interface for background worker pools.

A worker pool runs blocking operations off the caller's thread. The
dispatcher is its only client: it submits an operation together with a
completion callback and never waits on the pool.

Drivers
-------
- ``ThreadWorkerPool``: fixed-size pool of OS threads.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable


@runtime_checkable
class WorkerPool(Protocol):
    """Fixed-size pool executing submitted blocking operations."""

    @property
    @abstractmethod
    def max_workers(self) -> int:
        """Number of worker threads, fixed at construction."""
        ...

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once :meth:`shutdown` has been called."""
        ...

    @abstractmethod
    def submit(
        self,
        operation: Callable[[], Any],
        on_done: Callable[[Any, BaseException | None], None],
    ) -> None:
        """Queue ``operation`` for execution on a worker.

        ``on_done(value, None)`` or ``on_done(None, error)`` is called from
        the worker thread once the operation finishes. An operation that
        raises never takes its worker down.

        Raises
        ------
        WorkerPoolClosedError
            If the pool has been shut down
        """
        ...

    @abstractmethod
    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; optionally wait for queued operations to finish."""
        ...


__all__ = ["WorkerPool"]
