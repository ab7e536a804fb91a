"""One-shot, context-bound completion slot.

A :class:`Completion` is created on the submitting context's event loop at
submission time. A worker *claims* it exactly once (with a value or an
error); the claimed outcome is then *settled* on the owning loop, where
awaiting coroutines and done-callbacks observe it.

A Completion is awaitable::

    value = await fs.read_file("/etc/hostname")

and also supports callback-style use::

    fs.exists(path).add_done_callback(lambda c: print(c.result()))
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

from ctxfs.kernel.exceptions import CompletionError
from ctxfs.kernel.logging import get_logger

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Callable, Generator

    from ctxfs.kernel.context import ContextId

logger = get_logger(__name__)


class Completion[T]:
    """Awaitable one-shot slot holding either a value or an error.

    Invariants
    ----------
    - Exactly one outcome is ever claimed; a second claim raises
      :class:`CompletionError`.
    - The outcome is only observable on the owning context's event loop.
    """

    __slots__ = ("_claimed", "_context_id", "_future", "_lock", "_name")

    def __init__(
        self, context_id: ContextId, loop: asyncio.AbstractEventLoop, name: str | None = None
    ) -> None:
        self._context_id = context_id
        self._future: asyncio.Future[T] = loop.create_future()
        self._lock = threading.Lock()
        self._claimed = False
        self._name = name

    def __repr__(self) -> str:
        state = "done" if self._future.done() else ("claimed" if self._claimed else "pending")
        return f"<Completion {self._name or 'operation'} context={self._context_id} {state}>"

    def __await__(self) -> Generator[Any, None, T]:
        return self._future.__await__()

    @property
    def context_id(self) -> ContextId:
        """The context this completion delivers to."""
        return self._context_id

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def claimed(self) -> bool:
        """True once an outcome has been claimed (it may not be settled yet)."""
        return self._claimed

    def claim(self) -> None:
        """Reserve this completion for its single outcome.

        Called on the worker thread before delivery is scheduled.

        Raises
        ------
        CompletionError
            If an outcome was already claimed
        """
        with self._lock:
            if self._claimed:
                raise CompletionError(f"{self!r} was already fulfilled")
            self._claimed = True

    def settle(self, value: T | None, error: BaseException | None) -> None:
        """Write the claimed outcome into the future. Runs on the owning loop."""
        if self._future.done():
            # The awaiting task was cancelled; the operation still ran to completion.
            logger.debug("Discarding outcome of {c}: awaiter was cancelled", c=self)
            return
        if error is not None:
            self._future.set_exception(error)
        else:
            self._future.set_result(value)  # type: ignore[arg-type]

    def done(self) -> bool:
        """Return True once the outcome has been settled on the owning loop."""
        return self._future.done()

    def cancelled(self) -> bool:
        return self._future.cancelled()

    def result(self) -> T:
        """Return the value, or raise the error. Only valid once :meth:`done`."""
        return self._future.result()

    def exception(self) -> BaseException | None:
        """Return the error, or None on success. Only valid once :meth:`done`."""
        return self._future.exception()

    def add_done_callback(self, callback: Callable[[Completion[T]], object]) -> None:
        """Call ``callback(self)`` on the owning loop once the outcome is settled."""
        self._future.add_done_callback(lambda _future: callback(self))


__all__ = ["Completion"]
