"""Run a blocking operation on the worker pool, deliver it on the caller's context.

Every filesystem entry point is built on the two shapes exposed here:

- :meth:`AsyncDispatcher.run_void` for operations whose value is discarded
- :meth:`AsyncDispatcher.run_with_result` for operations returning a value

Both capture the submitting :class:`ContextId`, submit the operation to the
:class:`WorkerPool` and, when it finishes, ask the :class:`ContextRegistry`
to settle the :class:`Completion` on that context's event loop. Domain
errors travel the same path as values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ctxfs.kernel.dispatch.completion import Completion
from ctxfs.kernel.exceptions import FileSystemError, from_os_error
from ctxfs.kernel.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from ctxfs.kernel.context import ContextId, ContextRegistry
    from ctxfs.kernel.ports.worker_pool import WorkerPool

logger = get_logger(__name__)


def _operation_name(operation: Callable[..., Any]) -> str:
    func = getattr(operation, "func", operation)  # functools.partial
    return getattr(func, "__name__", type(operation).__name__)


class AsyncDispatcher:
    """Context-affine bridge between callers and a worker pool.

    Guarantees
    ----------
    - The outcome of every submitted operation is delivered exactly once.
    - It is delivered only to the context captured at submission, on that
      context's event loop, never on the worker thread.
    - There is no cancellation: once submitted, an operation runs to
      completion or failure.
    """

    def __init__(self, pool: WorkerPool, registry: ContextRegistry) -> None:
        self._pool = pool
        self._registry = registry

    @property
    def registry(self) -> ContextRegistry:
        return self._registry

    @property
    def pool(self) -> WorkerPool:
        return self._pool

    def run_void(
        self, context_id: ContextId, operation: Callable[[], object], name: str | None = None
    ) -> Completion[None]:
        """Run ``operation`` in the background and deliver ``None`` or its error."""
        return self._submit(context_id, operation, name, discard_result=True)

    def run_with_result[T](
        self, context_id: ContextId, operation: Callable[[], T], name: str | None = None
    ) -> Completion[T]:
        """Run ``operation`` in the background and deliver its value or error."""
        return self._submit(context_id, operation, name, discard_result=False)

    def fail[T](
        self, context_id: ContextId, error: BaseException, name: str | None = None
    ) -> Completion[T]:
        """Return a Completion that delivers ``error`` without touching the pool."""
        completion: Completion[T] = self.pending(context_id, name)
        self.deliver(completion, None, error)
        return completion

    def pending[T](self, context_id: ContextId, name: str | None = None) -> Completion[T]:
        """Create an unfulfilled Completion for an operation submitted later.

        Hand it to :meth:`submit_to` (or :meth:`deliver`) exactly once.

        Raises
        ------
        NoContextError
            If the context is unknown
        """
        context = self._registry.get(context_id)
        return Completion(context_id, context.loop, name)

    def submit_to(
        self,
        completion: Completion[Any],
        operation: Callable[[], Any],
        *,
        discard_result: bool = True,
    ) -> None:
        """Run ``operation`` in the background and deliver its outcome into ``completion``."""
        name = completion.name or _operation_name(operation)

        def on_done(value: Any, error: BaseException | None) -> None:
            if error is not None:
                error = self._translate(error, name)
                value = None
            elif discard_result:
                value = None
            self.deliver(completion, value, error)

        logger.trace("Dispatching {op} for context {ctx}", op=name, ctx=completion.context_id)
        self._pool.submit(operation, on_done)

    def deliver(
        self, completion: Completion[Any], value: Any, error: BaseException | None
    ) -> None:
        """Claim ``completion`` and settle it on its context's loop. Callable from any thread."""
        completion.claim()
        self._registry.deliver(completion.context_id, completion.settle, value, error)

    def _submit(
        self,
        context_id: ContextId,
        operation: Callable[[], Any],
        name: str | None,
        *,
        discard_result: bool,
    ) -> Completion[Any]:
        completion: Completion[Any] = self.pending(context_id, name or _operation_name(operation))
        self.submit_to(completion, operation, discard_result=discard_result)
        return completion

    @staticmethod
    def _translate(error: BaseException, name: str) -> BaseException:
        if isinstance(error, FileSystemError):
            return error
        if isinstance(error, OSError):
            return from_os_error(error)
        logger.opt(exception=error).error(
            "Operation {op} raised an unexpected {kind}", op=name, kind=type(error).__name__
        )
        return error


__all__ = ["AsyncDispatcher"]
