"""Execution contexts and the registry that routes outcomes back to them.

An *execution context* is the logical caller identity to which the outcome of
an asynchronous filesystem operation must be delivered. In ctxfs a context is
bound to exactly one asyncio event loop, and outcomes are always scheduled
onto that loop with ``call_soon_threadsafe``; they never run on the worker
thread that produced them.

The caller's context is resolved by the calling convention:

1. a context explicitly bound to the current task with
   :meth:`ContextRegistry.bind` (stored in a ``ContextVar``, so it follows the
   task and anything it spawns), otherwise
2. the default context of the running event loop, created on first use.

Examples
--------
Example usage::

    registry = ContextRegistry()

    async def main():
        ctx = registry.current()            # default context of this loop
        worker_ctx = registry.create_context(name="worker")
        with registry.bind(worker_ctx.id):
            assert registry.current() == worker_ctx.id
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NewType

from ctxfs.kernel.exceptions import NoContextError
from ctxfs.kernel.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = get_logger(__name__)

ContextId = NewType("ContextId", str)

# Context explicitly bound to the current task (async-safe)
_bound_context: ContextVar[ContextId | None] = ContextVar("ctxfs_bound_context", default=None)


def new_context_id() -> ContextId:
    """Generate a fresh, unique context identifier."""
    return ContextId(f"ctx-{uuid.uuid4().hex[:12]}")


@dataclass(frozen=True, slots=True)
class ExecutionContext:
    """A registered execution context.

    Attributes
    ----------
    id : ContextId
        Opaque identifier, compared by equality
    loop : asyncio.AbstractEventLoop
        The event loop on which this context's outcomes are delivered
    name : str | None
        Optional human-readable label used in logs
    """

    id: ContextId
    loop: asyncio.AbstractEventLoop
    name: str | None = None


class ContextRegistry:
    """Associates execution contexts with event loops and routes outcomes to them.

    The registry is a pure routing mechanism: it knows nothing about
    filesystem semantics. It is safe to call :meth:`deliver` from any
    thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._contexts: dict[ContextId, ExecutionContext] = {}
        self._loop_defaults: dict[asyncio.AbstractEventLoop, ContextId] = {}

    def __contains__(self, context_id: object) -> bool:
        return context_id in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)

    def create_context(
        self, loop: asyncio.AbstractEventLoop | None = None, name: str | None = None
    ) -> ExecutionContext:
        """Register a new execution context.

        Parameters
        ----------
        loop : asyncio.AbstractEventLoop | None
            Loop to deliver outcomes on; defaults to the running loop
        name : str | None
            Optional label for logs

        Raises
        ------
        NoContextError
            If no loop is given and none is running
        """
        if loop is None:
            loop = self._running_loop()
            if loop is None:
                raise NoContextError("Cannot create a context outside a running event loop")

        context = ExecutionContext(id=new_context_id(), loop=loop, name=name)
        with self._lock:
            self._contexts[context.id] = context
        logger.debug("Created execution context {ctx} ({name})", ctx=context.id, name=name)
        return context

    def get(self, context_id: ContextId) -> ExecutionContext:
        """Look up a registered context.

        Raises
        ------
        NoContextError
            If the context is unknown or was released
        """
        try:
            return self._contexts[context_id]
        except KeyError:
            raise NoContextError(f"Unknown execution context '{context_id}'") from None

    def current(self) -> ContextId:
        """Return the caller's context, resolved synchronously.

        Must be called at submission time, on the caller's own thread.

        Raises
        ------
        NoContextError
            If nothing is bound and no event loop is running, or if the bound
            context belongs to a different loop than the running one
        """
        running = self._running_loop()
        bound = _bound_context.get()

        if bound is not None and bound in self._contexts:
            context = self._contexts[bound]
            if running is not None and context.loop is not running:
                raise NoContextError(
                    f"Context '{bound}' is bound to a different event loop than the caller's"
                )
            return bound

        if running is None:
            raise NoContextError("No execution context: call from a running event loop")

        with self._lock:
            default = self._loop_defaults.get(running)
            if default is None:
                self._prune_closed_loops()
                default = new_context_id()
                self._contexts[default] = ExecutionContext(id=default, loop=running, name="default")
                self._loop_defaults[running] = default
                logger.debug("Created default execution context {ctx}", ctx=default)
        return default

    def bound(self) -> ContextId | None:
        """The context bound to the current task with :meth:`bind`, if any."""
        bound = _bound_context.get()
        return bound if bound is not None and bound in self._contexts else None

    @contextmanager
    def bind(self, context_id: ContextId) -> Iterator[ExecutionContext]:
        """Bind ``context_id`` as the current context for the enclosed block.

        The binding is stored in a ``ContextVar`` and is therefore local to
        the current task (and inherited by tasks created inside the block).
        """
        context = self.get(context_id)
        token = _bound_context.set(context.id)
        try:
            yield context
        finally:
            _bound_context.reset(token)

    def deliver(self, context_id: ContextId, callback: Callable[..., Any], *args: Any) -> None:
        """Schedule ``callback(*args)`` on the context's own event loop.

        Raises
        ------
        NoContextError
            If the context is unknown
        """
        context = self.get(context_id)
        try:
            context.loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # call_soon_threadsafe raises RuntimeError once the loop is closed
            logger.error(
                "Cannot deliver outcome to context {ctx}: its event loop is closed",
                ctx=context_id,
            )
            return
        logger.trace("Scheduled delivery to context {ctx}", ctx=context_id)

    def release(self, context_id: ContextId) -> None:
        """Forget a context. Outcomes still in flight for it are logged as undeliverable."""
        with self._lock:
            context = self._contexts.pop(context_id, None)
            if context is not None and self._loop_defaults.get(context.loop) == context_id:
                del self._loop_defaults[context.loop]
        if context is not None:
            logger.debug("Released execution context {ctx}", ctx=context_id)

    def _prune_closed_loops(self) -> None:
        """Forget contexts whose event loop is closed. Caller holds the lock."""
        stale = [ctx for ctx in self._contexts.values() if ctx.loop.is_closed()]
        for context in stale:
            del self._contexts[context.id]
            if self._loop_defaults.get(context.loop) == context.id:
                del self._loop_defaults[context.loop]
        if stale:
            logger.debug("Pruned {n} contexts of closed event loops", n=len(stale))

    @staticmethod
    def _running_loop() -> asyncio.AbstractEventLoop | None:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None


__all__ = ["ContextId", "ContextRegistry", "ExecutionContext", "new_context_id"]
