"""Local OS filesystem driver.

Every public method is a plain function that captures its arguments into a
zero-argument operation, resolves the caller's execution context, and hands
the operation to the :class:`AsyncDispatcher`. It returns a
:class:`Completion` immediately; awaiting it yields the operation's value or
raises its :class:`FileSystemError` on the caller's own event loop.

Example
-------
.. code-block:: python

    async with LocalFileSystem() as fs:
        await fs.mkdir("/tmp/data", perms="rwxr-x---", create_parents=True)
        await fs.write_file("/tmp/data/hello.txt", "hello")
        handle = await fs.open("/tmp/data/hello.txt")
        head = await handle.read(0, 5)
        await handle.close()
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import asdict
from functools import partial
from typing import TYPE_CHECKING, Any

from ctxfs.drivers.executors.thread_pool import ThreadWorkerPool
from ctxfs.drivers.fs import operations
from ctxfs.drivers.fs.handle import FileHandle
from ctxfs.drivers.fs.streams import FileReadStream, FileWriteStream
from ctxfs.kernel.config import FileSystemConfig, load_config
from ctxfs.kernel.context import ContextRegistry
from ctxfs.kernel.dispatch import AsyncDispatcher
from ctxfs.kernel.exceptions import ErrorKind, FileSystemError
from ctxfs.kernel.logging import configure_logging, get_logger

if TYPE_CHECKING:
    from collections.abc import Buffer, Callable
    from pathlib import Path

    from ctxfs.kernel.context import ContextId
    from ctxfs.kernel.dispatch import Completion
    from ctxfs.kernel.domain import FileStats, FileSystemStats
    from ctxfs.kernel.ports.filesystem import OpenFile, StrPath
    from ctxfs.kernel.ports.worker_pool import WorkerPool

logger = get_logger(__name__)


class LocalFileSystem:
    """Non-blocking access to the local filesystem for asyncio callers.

    Parameters
    ----------
    pool : WorkerPool | None
        Worker pool to run operations on. When omitted a
        :class:`ThreadWorkerPool` is created from ``config`` and owned (shut
        down) by this instance.
    registry : ContextRegistry | None
        Registry resolving and routing execution contexts
    config : FileSystemConfig | None
        Defaults for permissions, worker pool size and stream chunk size
    """

    def __init__(
        self,
        pool: WorkerPool | None = None,
        registry: ContextRegistry | None = None,
        config: FileSystemConfig | None = None,
    ) -> None:
        self._config = config or FileSystemConfig()
        self._owns_pool = pool is None
        self._pool: WorkerPool = (
            pool if pool is not None else ThreadWorkerPool.from_config(self._config.worker_pool)
        )
        self._registry = registry if registry is not None else ContextRegistry()
        self._dispatcher = AsyncDispatcher(self._pool, self._registry)

    @classmethod
    def from_config(cls, path: str | Path | None = None) -> LocalFileSystem:
        """Build a filesystem (and configure logging) from a config file or defaults."""
        config = load_config(path)
        configure_logging(**asdict(config.logging))
        return cls(config=config)

    def __repr__(self) -> str:
        return f"<LocalFileSystem pool={self._pool!r} contexts={len(self._registry)}>"

    @property
    def config(self) -> FileSystemConfig:
        return self._config

    @property
    def registry(self) -> ContextRegistry:
        return self._registry

    @property
    def dispatcher(self) -> AsyncDispatcher:
        return self._dispatcher

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool if this instance created it."""
        if self._owns_pool:
            self._pool.shutdown(wait=wait)

    def __enter__(self) -> LocalFileSystem:
        return self

    def __exit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        self.shutdown()

    async def __aenter__(self) -> LocalFileSystem:
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        # Waiting for queued operations must not block the event loop.
        await asyncio.to_thread(self.shutdown)

    # ------------------------------------------------------------------
    # Tree operations
    # ------------------------------------------------------------------

    def copy(
        self,
        source: StrPath,
        target: StrPath,
        recursive: bool = False,
        *,
        context: ContextId | None = None,
    ) -> Completion[None]:
        """Copy a file, or with ``recursive`` a whole tree (no rollback on failure)."""
        return self._void(context, partial(operations.copy_path, source, target, recursive), "copy")

    def move(
        self, source: StrPath, target: StrPath, *, context: ContextId | None = None
    ) -> Completion[None]:
        return self._void(context, partial(operations.move_path, source, target), "move")

    def truncate(
        self, path: StrPath, length: int, *, context: ContextId | None = None
    ) -> Completion[None]:
        return self._void(context, partial(operations.truncate_file, path, length), "truncate")

    def chmod(
        self,
        path: StrPath,
        perms: str,
        dir_perms: str | None = None,
        *,
        context: ContextId | None = None,
    ) -> Completion[None]:
        """Set ``perms`` on ``path``; with ``dir_perms`` walk the tree.

        Directories receive ``dir_perms`` and files receive ``perms``.
        """
        return self._void(context, partial(operations.chmod_path, path, perms, dir_perms), "chmod")

    def stat(self, path: StrPath, *, context: ContextId | None = None) -> Completion[FileStats]:
        return self._result(context, partial(operations.stat_path, path, True), "stat")

    def lstat(self, path: StrPath, *, context: ContextId | None = None) -> Completion[FileStats]:
        """Like :meth:`stat`, but a final symbolic link describes itself."""
        return self._result(context, partial(operations.stat_path, path, False), "lstat")

    def link(
        self, link: StrPath, existing: StrPath, *, context: ContextId | None = None
    ) -> Completion[None]:
        """Create a hard link at ``link`` to ``existing``."""
        return self._void(context, partial(operations.make_link, link, existing, False), "link")

    def symlink(
        self, link: StrPath, existing: StrPath, *, context: ContextId | None = None
    ) -> Completion[None]:
        """Create a symbolic link at ``link`` pointing to ``existing``."""
        return self._void(context, partial(operations.make_link, link, existing, True), "symlink")

    def unlink(self, link: StrPath, *, context: ContextId | None = None) -> Completion[None]:
        return self.delete(link, context=context)

    def read_symlink(self, link: StrPath, *, context: ContextId | None = None) -> Completion[str]:
        return self._result(context, partial(operations.read_link, link), "read_symlink")

    def delete(
        self, path: StrPath, recursive: bool = False, *, context: ContextId | None = None
    ) -> Completion[None]:
        return self._void(context, partial(operations.delete_path, path, recursive), "delete")

    def mkdir(
        self,
        path: StrPath,
        perms: str | None = None,
        create_parents: bool = False,
        *,
        context: ContextId | None = None,
    ) -> Completion[None]:
        perms = perms if perms is not None else self._config.default_dir_perms
        operation = partial(operations.make_directory, path, perms, create_parents)
        return self._void(context, operation, "mkdir")

    def read_dir(
        self, path: StrPath, filter: str | None = None, *, context: ContextId | None = None
    ) -> Completion[list[str]]:
        """List the canonical paths of entries whose names fully match the ``filter`` regex."""
        return self._result(context, partial(operations.list_directory, path, filter), "read_dir")

    # ------------------------------------------------------------------
    # Handles
    # ------------------------------------------------------------------

    def open(
        self,
        path: StrPath,
        perms: str | None = None,
        read: bool = True,
        write: bool = True,
        create_new: bool = False,
        sync: bool = False,
        sync_meta: bool = False,
        *,
        context: ContextId | None = None,
    ) -> Completion[FileHandle]:
        """Open ``path``; the handle is bound to the calling context.

        ``perms`` only applies when ``create_new`` creates the file.
        """
        caller = self._context(context)
        perms = perms if perms is not None else self._config.default_file_perms
        operation = self._handle_opener(
            caller,
            path,
            partial(
                operations.open_descriptor,
                path,
                perms,
                read,
                write,
                create_new,
                sync,
                sync_meta,
            ),
            lambda handle: handle,
        )
        return self._dispatcher.run_with_result(caller, operation, name="open")

    def close(self, handle: OpenFile, *, context: ContextId | None = None) -> Completion[None]:
        return handle.close(context=context)

    def read(
        self,
        handle: OpenFile,
        position: int,
        length: int,
        *,
        context: ContextId | None = None,
    ) -> Completion[bytes]:
        return handle.read(position, length, context=context)

    def write(
        self,
        handle: OpenFile,
        data: Buffer,
        position: int,
        *,
        context: ContextId | None = None,
    ) -> Completion[None]:
        return handle.write(data, position, context=context)

    def sync(
        self, handle: OpenFile, metadata: bool = False, *, context: ContextId | None = None
    ) -> Completion[None]:
        return handle.sync(metadata, context=context)

    # ------------------------------------------------------------------
    # Whole files and volumes
    # ------------------------------------------------------------------

    def read_file(self, path: StrPath, *, context: ContextId | None = None) -> Completion[bytes]:
        return self._result(context, partial(operations.read_whole_file, path), "read_file")

    def write_file(
        self,
        path: StrPath,
        data: Buffer | str,
        encoding: str = "utf-8",
        *,
        context: ContextId | None = None,
    ) -> Completion[None]:
        """Create or truncate ``path`` and write ``data``; ``str`` data is encoded."""
        if not isinstance(data, str):
            data = bytes(data)
        operation = partial(operations.write_whole_file, path, data, encoding)
        return self._void(context, operation, "write_file")

    def create_file(
        self, path: StrPath, perms: str | None = None, *, context: ContextId | None = None
    ) -> Completion[None]:
        perms = perms if perms is not None else self._config.default_file_perms
        operation = partial(operations.create_empty_file, path, perms)
        return self._void(context, operation, "create_file")

    def exists(self, path: StrPath, *, context: ContextId | None = None) -> Completion[bool]:
        return self._result(context, partial(operations.path_exists, path), "exists")

    def get_fs_stats(
        self, path: StrPath, *, context: ContextId | None = None
    ) -> Completion[FileSystemStats]:
        return self._result(context, partial(operations.volume_stats, path), "get_fs_stats")

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def create_read_stream(
        self,
        path: StrPath,
        chunk_size: int | None = None,
        *,
        context: ContextId | None = None,
    ) -> Completion[FileReadStream]:
        """Open ``path`` read-only as an async iterator of byte chunks."""
        caller = self._context(context)
        size = chunk_size if chunk_size is not None else self._config.read_chunk_size
        if size < 1:
            error = FileSystemError(
                ErrorKind.INVALID_ARGUMENT, f"Chunk size must be at least 1 (got {size})"
            )
            return self._dispatcher.fail(caller, error, name="create_read_stream")

        operation = self._handle_opener(
            caller,
            path,
            partial(operations.open_descriptor, path, None, True, False),
            lambda handle: FileReadStream(handle, size),
        )
        return self._dispatcher.run_with_result(caller, operation, name="create_read_stream")

    def create_write_stream(
        self,
        path: StrPath,
        perms: str | None = None,
        sync: bool = False,
        *,
        context: ContextId | None = None,
    ) -> Completion[FileWriteStream]:
        """Create ``path`` (it must not exist) and open it as a sequential writer."""
        caller = self._context(context)
        perms = perms if perms is not None else self._config.default_file_perms
        operation = self._handle_opener(
            caller,
            path,
            partial(operations.open_descriptor, path, perms, False, True, True, sync),
            FileWriteStream,
        )
        return self._dispatcher.run_with_result(caller, operation, name="create_write_stream")

    # ------------------------------------------------------------------
    # Dispatch helpers
    # ------------------------------------------------------------------

    def _context(self, context: ContextId | None) -> ContextId:
        return context if context is not None else self._registry.current()

    def _void(
        self, context: ContextId | None, operation: Callable[[], object], name: str
    ) -> Completion[None]:
        return self._dispatcher.run_void(self._context(context), operation, name=name)

    def _result[T](
        self, context: ContextId | None, operation: Callable[[], T], name: str
    ) -> Completion[T]:
        return self._dispatcher.run_with_result(self._context(context), operation, name=name)

    def _handle_opener[T](
        self,
        caller: ContextId,
        path: StrPath,
        open_fd: Callable[[], int],
        wrap: Callable[[FileHandle], T],
    ) -> Callable[[], T]:
        path_str = os.fspath(path)
        dispatcher = self._dispatcher

        def open_handle() -> T:
            handle = FileHandle(open_fd(), path_str, caller, dispatcher)
            logger.debug("Opened {path} (fd {fd})", path=path_str, fd=handle.fileno())
            return wrap(handle)

        return open_handle


__all__ = ["LocalFileSystem"]
