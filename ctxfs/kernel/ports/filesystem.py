"""FileSystem port: non-blocking filesystem operations for asyncio callers.

Every operation returns a :class:`~ctxfs.kernel.dispatch.Completion`
immediately. The blocking work runs on a background worker and the outcome
is delivered back on the caller's own execution context. Domain failures
arrive as :class:`~ctxfs.kernel.exceptions.FileSystemError` when the
Completion is awaited; context faults are raised at the call site.

Every method accepts an optional keyword ``context``. When omitted, the
caller's context is resolved from the calling convention (see
:class:`~ctxfs.kernel.context.ContextRegistry`).

Drivers
-------
- ``LocalFileSystem``: OS filesystem via ``os``/``shutil`` on a thread pool.
"""

from __future__ import annotations

import os
from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Buffer

    from ctxfs.kernel.context import ContextId
    from ctxfs.kernel.dispatch import Completion
    from ctxfs.kernel.domain import FileStats, FileSystemStats

type StrPath = str | os.PathLike[str]


@runtime_checkable
class OpenFile(Protocol):
    """An open file bound to the context that opened it."""

    @property
    @abstractmethod
    def context_id(self) -> ContextId:
        """The owning context."""
        ...

    @property
    @abstractmethod
    def closed(self) -> bool: ...

    @abstractmethod
    def check_context(self, caller: ContextId | None = None) -> ContextId:
        """Raise ContextViolationError unless ``caller`` is the owning context."""
        ...

    @abstractmethod
    def read(
        self, position: int, length: int, *, context: ContextId | None = None
    ) -> Completion[bytes]: ...

    @abstractmethod
    def write(
        self, data: Buffer, position: int, *, context: ContextId | None = None
    ) -> Completion[None]: ...

    @abstractmethod
    def sync(
        self, metadata: bool = False, *, context: ContextId | None = None
    ) -> Completion[None]: ...

    @abstractmethod
    def close(self, *, context: ContextId | None = None) -> Completion[None]: ...


@runtime_checkable
class FileSystem(Protocol):
    """Port interface for the non-blocking filesystem surface."""

    # Tree operations

    @abstractmethod
    def copy(
        self,
        source: StrPath,
        target: StrPath,
        recursive: bool = False,
        *,
        context: ContextId | None = None,
    ) -> Completion[None]:
        """Copy a file, or a whole tree when ``recursive``.

        Fails with ``ALREADY_EXISTS`` on any destination file collision.
        A failed recursive copy is not rolled back.
        """
        ...

    @abstractmethod
    def move(
        self, source: StrPath, target: StrPath, *, context: ContextId | None = None
    ) -> Completion[None]:
        """Rename ``source`` to ``target``.

        Fails with ``ALREADY_EXISTS`` if the target exists and with
        ``NOT_SUPPORTED`` across filesystem boundaries.
        """
        ...

    @abstractmethod
    def truncate(
        self, path: StrPath, length: int, *, context: ContextId | None = None
    ) -> Completion[None]:
        """Truncate or extend ``path`` to ``length`` bytes."""
        ...

    @abstractmethod
    def chmod(
        self,
        path: StrPath,
        perms: str,
        dir_perms: str | None = None,
        *,
        context: ContextId | None = None,
    ) -> Completion[None]:
        """Change permissions.

        With ``dir_perms`` the whole tree is walked: directories receive
        ``dir_perms`` and files receive ``perms``.
        """
        ...

    @abstractmethod
    def stat(self, path: StrPath, *, context: ContextId | None = None) -> Completion[FileStats]:
        ...

    @abstractmethod
    def lstat(self, path: StrPath, *, context: ContextId | None = None) -> Completion[FileStats]:
        """Like :meth:`stat` but does not follow a final symbolic link."""
        ...

    @abstractmethod
    def link(
        self, link: StrPath, existing: StrPath, *, context: ContextId | None = None
    ) -> Completion[None]: ...

    @abstractmethod
    def symlink(
        self, link: StrPath, existing: StrPath, *, context: ContextId | None = None
    ) -> Completion[None]: ...

    @abstractmethod
    def unlink(self, link: StrPath, *, context: ContextId | None = None) -> Completion[None]: ...

    @abstractmethod
    def read_symlink(self, link: StrPath, *, context: ContextId | None = None) -> Completion[str]:
        ...

    @abstractmethod
    def delete(
        self, path: StrPath, recursive: bool = False, *, context: ContextId | None = None
    ) -> Completion[None]: ...

    @abstractmethod
    def mkdir(
        self,
        path: StrPath,
        perms: str | None = None,
        create_parents: bool = False,
        *,
        context: ContextId | None = None,
    ) -> Completion[None]: ...

    @abstractmethod
    def read_dir(
        self, path: StrPath, filter: str | None = None, *, context: ContextId | None = None
    ) -> Completion[list[str]]:
        """List canonical paths of the entries whose names fully match ``filter``."""
        ...

    # Handles

    @abstractmethod
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
    ) -> Completion[OpenFile]: ...

    @abstractmethod
    def close(self, handle: OpenFile, *, context: ContextId | None = None) -> Completion[None]:
        ...

    @abstractmethod
    def read(
        self,
        handle: OpenFile,
        position: int,
        length: int,
        *,
        context: ContextId | None = None,
    ) -> Completion[bytes]: ...

    @abstractmethod
    def write(
        self,
        handle: OpenFile,
        data: Buffer,
        position: int,
        *,
        context: ContextId | None = None,
    ) -> Completion[None]: ...

    @abstractmethod
    def sync(
        self, handle: OpenFile, metadata: bool = False, *, context: ContextId | None = None
    ) -> Completion[None]: ...

    # Whole files

    @abstractmethod
    def read_file(self, path: StrPath, *, context: ContextId | None = None) -> Completion[bytes]:
        ...

    @abstractmethod
    def write_file(
        self,
        path: StrPath,
        data: Buffer | str,
        encoding: str = "utf-8",
        *,
        context: ContextId | None = None,
    ) -> Completion[None]: ...

    @abstractmethod
    def create_file(
        self, path: StrPath, perms: str | None = None, *, context: ContextId | None = None
    ) -> Completion[None]: ...

    @abstractmethod
    def exists(self, path: StrPath, *, context: ContextId | None = None) -> Completion[bool]:
        """Never fails; resolves to whether ``path`` exists."""
        ...

    @abstractmethod
    def get_fs_stats(
        self, path: StrPath, *, context: ContextId | None = None
    ) -> Completion[FileSystemStats]: ...


__all__ = ["FileSystem", "OpenFile", "StrPath"]
