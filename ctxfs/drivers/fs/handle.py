"""File handles bound to the execution context that opened them."""

from __future__ import annotations

import os
import weakref
from enum import StrEnum
from functools import partial
from typing import TYPE_CHECKING, Any

from ctxfs.drivers.fs import operations
from ctxfs.kernel.exceptions import (
    ContextViolationError,
    ErrorKind,
    FileSystemError,
    WorkerPoolClosedError,
    from_os_error,
)
from ctxfs.kernel.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Buffer, Callable

    from ctxfs.kernel.context import ContextId
    from ctxfs.kernel.dispatch import AsyncDispatcher, Completion

logger = get_logger(__name__)


class HandleState(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


def _close_leaked(fd: int, path: str) -> None:
    logger.warning(
        "File handle for {path} was never closed; closing descriptor {fd}", path=path, fd=fd
    )
    try:
        os.close(fd)
    except OSError as e:
        logger.debug("Closing leaked descriptor {fd} failed: {error}", fd=fd, error=e)


class FileHandle:
    """An open OS file descriptor owned by one execution context.

    Every operation checks, synchronously and before anything is
    dispatched, that the caller is the owning context; otherwise
    :class:`ContextViolationError` is raised at the call site. Once the
    handle is closed, operations fail with ``HANDLE_CLOSED`` through their
    Completion.

    Reads and writes are positioned (``pread``/``pwrite``), so several may
    be outstanding at once. :meth:`close` waits for them before releasing
    the descriptor.

    Handles are created by ``LocalFileSystem.open``; a handle dropped
    without being closed has its descriptor closed when it is garbage
    collected.
    """

    def __init__(
        self, fd: int, path: str, context_id: ContextId, dispatcher: AsyncDispatcher
    ) -> None:
        self._fd = fd
        self._path = path
        self._context_id = context_id
        self._dispatcher = dispatcher
        self._state = HandleState.OPEN
        self._outstanding = 0
        self._pending_close: Completion[None] | None = None
        self._finalizer = weakref.finalize(self, _close_leaked, fd, path)

    def __repr__(self) -> str:
        return f"<FileHandle {self._path!r} fd={self._fd} context={self._context_id} {self._state}>"

    @property
    def context_id(self) -> ContextId:
        return self._context_id

    @property
    def path(self) -> str:
        return self._path

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is HandleState.CLOSED

    @property
    def outstanding(self) -> int:
        """Operations submitted through this handle whose outcome is not yet delivered."""
        return self._outstanding

    def fileno(self) -> int:
        return self._fd

    def check_context(self, caller: ContextId | None = None) -> ContextId:
        """Return the caller's context, raising if it is not the owner.

        Raises
        ------
        ContextViolationError
            If ``caller`` (or the resolved current context) does not own this handle
        NoContextError
            If no caller is given and none can be resolved
        """
        if caller is None:
            caller = self._dispatcher.registry.current()
        if caller != self._context_id:
            raise ContextViolationError(self._context_id, caller)
        return caller

    def acting_context(self) -> ContextId:
        """Context to act as when working on the owner's behalf (streams, ``async with``).

        A context bound with ``ContextRegistry.bind`` wins, so a foreign binding
        is still rejected by :meth:`check_context`; otherwise the owner.
        """
        bound = self._dispatcher.registry.bound()
        return bound if bound is not None else self._context_id

    def read(
        self, position: int, length: int, *, context: ContextId | None = None
    ) -> Completion[bytes]:
        """Read ``length`` bytes at ``position``; fewer only at end of file."""
        caller = self.check_context(context)
        if self.closed:
            return self._closed_error(caller, "read")
        operation = partial(operations.read_at, self._fd, position, length)
        return self._track(caller, operation, "read", discard_result=False)

    def write(
        self, data: Buffer, position: int, *, context: ContextId | None = None
    ) -> Completion[None]:
        """Write the whole of ``data`` at ``position``."""
        caller = self.check_context(context)
        if self.closed:
            return self._closed_error(caller, "write")
        # Snapshot the caller's buffer; it may be reused before the worker runs.
        operation = partial(operations.write_at, self._fd, bytes(data), position)
        return self._track(caller, operation, "write")

    def sync(self, metadata: bool = False, *, context: ContextId | None = None) -> Completion[None]:
        caller = self.check_context(context)
        if self.closed:
            return self._closed_error(caller, "sync")
        operation = partial(operations.sync_descriptor, self._fd, metadata)
        return self._track(caller, operation, "sync")

    def close(self, *, context: ContextId | None = None) -> Completion[None]:
        """Close the handle.

        It is marked closed immediately. The descriptor itself is closed on a
        worker once every operation already submitted through this handle has
        finished, so none of them can run against a reused descriptor number.
        The returned Completion settles after that.
        """
        caller = self.check_context(context)
        if self.closed:
            return self._closed_error(caller, "close")

        self._state = HandleState.CLOSED
        self._finalizer.detach()
        completion: Completion[None] = self._dispatcher.pending(caller, "close")
        if self._outstanding:
            logger.debug(
                "Deferring close of {path} until {n} outstanding operations finish",
                path=self._path,
                n=self._outstanding,
            )
            self._pending_close = completion
        else:
            self._close_descriptor(completion)
        return completion

    async def __aenter__(self) -> FileHandle:
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        if not self.closed:
            await self.close(context=self.acting_context())

    def _closed_error[T](self, caller: ContextId, action: str) -> Completion[T]:
        error = FileSystemError(
            ErrorKind.HANDLE_CLOSED, f"Cannot {action}, file handle is closed", self._path
        )
        return self._dispatcher.fail(caller, error, name=action)

    def _track[T](
        self,
        caller: ContextId,
        operation: Callable[[], T],
        name: str,
        *,
        discard_result: bool = True,
    ) -> Completion[T]:
        # The worker reports back on the owning loop before the outcome is
        # settled, so the count drops even if the awaiting task was cancelled.
        def tracked() -> T:
            try:
                return operation()
            finally:
                self._dispatcher.registry.deliver(self._context_id, self._operation_finished)

        completion: Completion[T] = self._dispatcher.pending(caller, name)
        self._outstanding += 1
        try:
            self._dispatcher.submit_to(completion, tracked, discard_result=discard_result)
        except WorkerPoolClosedError:
            self._outstanding -= 1
            raise
        return completion

    def _operation_finished(self) -> None:
        self._outstanding -= 1
        if self._outstanding == 0 and self._pending_close is not None:
            completion, self._pending_close = self._pending_close, None
            self._close_descriptor(completion)

    def _close_descriptor(self, completion: Completion[None]) -> None:
        logger.debug("Closing {path} (fd {fd})", path=self._path, fd=self._fd)
        operation = partial(operations.close_descriptor, self._fd)
        try:
            self._dispatcher.submit_to(completion, operation)
        except WorkerPoolClosedError:
            logger.warning(
                "Worker pool is shut down; closing {path} (fd {fd}) on the caller's thread",
                path=self._path,
                fd=self._fd,
            )
            try:
                operation()
            except OSError as e:
                self._dispatcher.deliver(completion, None, from_os_error(e))
            else:
                self._dispatcher.deliver(completion, None, None)


__all__ = ["FileHandle", "HandleState"]
