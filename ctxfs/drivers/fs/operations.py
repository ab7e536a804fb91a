"""Blocking filesystem primitives executed on worker threads.

Each function performs exactly one filesystem action against ``os`` /
``shutil`` and either returns its value or raises. Failures that need a
specific :class:`ErrorKind` or message are raised as
:class:`FileSystemError` here; any other :class:`OSError` is left to the
dispatcher, which translates it by ``errno``.

Nothing in this module knows about contexts, completions or event loops,
so every function can be called (and tested) directly.
"""

from __future__ import annotations

import errno
import os
import re
import shutil
import stat
from pathlib import Path
from typing import TYPE_CHECKING

from ctxfs.kernel.domain.permissions import parse_mode
from ctxfs.kernel.domain.stats import FileStats, FileSystemStats
from ctxfs.kernel.exceptions import ErrorKind, FileSystemError, from_os_error
from ctxfs.kernel.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Buffer

    from ctxfs.kernel.ports.filesystem import StrPath

logger = get_logger(__name__)

DEFAULT_FILE_MODE = 0o666
DEFAULT_DIR_MODE = 0o777

_fdatasync = getattr(os, "fdatasync", os.fsync)


def _reraise(error: OSError) -> None:
    raise error


# ============================================================================
# Tree operations
# ============================================================================


def copy_path(source: StrPath, target: StrPath, recursive: bool = False) -> None:
    """Copy a file, an (empty) directory, or with ``recursive`` a whole tree.

    Raises
    ------
    FileSystemError
        ``ALREADY_EXISTS`` when any destination file already exists
    """
    source, target = os.fspath(source), os.fspath(target)
    try:
        if os.path.isdir(source):
            if recursive:
                _copy_tree(source, target)
            else:
                _mirror_directory(source, target, tolerate_existing=False)
        else:
            _copy_file(source, target)
    except FileExistsError as e:
        raise from_os_error(e, "File already exists", kind=ErrorKind.ALREADY_EXISTS) from e


def _copy_file(source: str, target: str) -> None:
    with open(source, "rb") as src, open(target, "xb") as dst:
        shutil.copyfileobj(src, dst)
    shutil.copymode(source, target)


def _mirror_directory(source: str, target: str, *, tolerate_existing: bool) -> None:
    try:
        os.mkdir(target)
    except FileExistsError:
        if tolerate_existing and os.path.isdir(target):
            return
        raise
    shutil.copymode(source, target)


def _dir_key(path: str) -> tuple[int, int]:
    result = os.stat(path)
    return result.st_dev, result.st_ino


def _copy_tree(source: str, target: str) -> None:
    # Links are followed. Each directory maps to the (dev, ino) keys of its
    # ancestors; a child already in that chain is a link loop.
    chains: dict[str, frozenset[tuple[int, int]]] = {source: frozenset({_dir_key(source)})}

    for dirpath, dirnames, filenames in os.walk(source, followlinks=True, onerror=_reraise):
        chain = chains.pop(dirpath)
        relative = os.path.relpath(dirpath, source)
        destination = target if relative == os.curdir else os.path.join(target, relative)
        _mirror_directory(dirpath, destination, tolerate_existing=True)

        for name in dirnames:
            child = os.path.join(dirpath, name)
            key = _dir_key(child)
            if key in chain:
                raise FileSystemError(
                    ErrorKind.INVALID_ARGUMENT, "Cannot copy, symbolic link loop detected", child
                )
            chains[child] = chain | {key}

        for name in filenames:
            file_source = os.path.join(dirpath, name)
            if not os.path.isfile(file_source):
                logger.debug("Skipping non-regular file {path}", path=file_source)
                continue
            _copy_file(file_source, os.path.join(destination, name))


def move_path(source: StrPath, target: StrPath) -> None:
    """Rename ``source`` to ``target`` without replacing an existing target.

    Raises
    ------
    FileSystemError
        ``ALREADY_EXISTS`` if the target exists, ``NOT_SUPPORTED`` if the
        rename would cross a filesystem boundary
    """
    source, target = os.fspath(source), os.fspath(target)
    if os.path.lexists(target):
        raise FileSystemError(
            ErrorKind.ALREADY_EXISTS, f"Cannot move {source}, target already exists", target
        )
    try:
        os.rename(source, target)
    except OSError as e:
        if e.errno == errno.EXDEV:
            raise from_os_error(
                e,
                f"Cannot move {source} to {target} across filesystems",
                kind=ErrorKind.NOT_SUPPORTED,
            ) from e
        raise


def truncate_file(path: StrPath, length: int) -> None:
    """Truncate (or extend with zeros) ``path`` to ``length`` bytes."""
    path = os.fspath(path)
    if length < 0:
        raise FileSystemError(ErrorKind.INVALID_ARGUMENT, "Cannot truncate file to size < 0", path)
    if not os.path.exists(path):
        raise FileSystemError(ErrorKind.NOT_FOUND, "Cannot truncate file, it does not exist", path)

    try:
        fd = os.open(path, os.O_WRONLY)
    except (IsADirectoryError, PermissionError) as e:
        raise from_os_error(
            e, "Cannot open file for writing, it is a directory or not writable", path=path
        ) from e
    try:
        os.ftruncate(fd, length)
    finally:
        os.close(fd)


def chmod_path(path: StrPath, perms: str, dir_perms: str | None = None) -> None:
    """Set permissions on ``path``, or with ``dir_perms`` on its whole tree.

    Directories in the tree receive ``dir_perms`` and every other entry
    receives ``perms``.
    """
    path = os.fspath(path)
    mode = parse_mode(perms, DEFAULT_FILE_MODE)
    dir_mode = parse_mode(dir_perms, mode) if dir_perms is not None else None

    try:
        if dir_mode is None or not os.path.isdir(path):
            os.chmod(path, mode)
            return
        for dirpath, _dirnames, filenames in os.walk(path, onerror=_reraise):
            os.chmod(dirpath, dir_mode)
            for name in filenames:
                os.chmod(os.path.join(dirpath, name), mode)
    except PermissionError as e:
        raise from_os_error(e, "Access denied for chmod") from e


def stat_path(path: StrPath, follow_links: bool = True) -> FileStats:
    """Return metadata for ``path``; with ``follow_links=False`` a link describes itself."""
    return FileStats.from_stat_result(os.stat(path, follow_symlinks=follow_links))


def make_link(link: StrPath, existing: StrPath, symbolic: bool = False) -> None:
    """Create a hard or symbolic link at ``link`` pointing to ``existing``."""
    link, existing = os.fspath(link), os.fspath(existing)
    try:
        if symbolic:
            os.symlink(existing, link)
        else:
            os.link(existing, link)
    except FileExistsError as e:
        raise from_os_error(e, "Cannot create link, file already exists", path=link) from e


def read_link(link: StrPath) -> str:
    """Return the target of the symbolic link at ``link``."""
    try:
        return os.readlink(link)
    except OSError as e:
        if e.errno == errno.EINVAL:
            raise from_os_error(
                e, "Cannot read link, it is not a symbolic link", kind=ErrorKind.NOT_A_LINK
            ) from e
        raise


def delete_path(path: StrPath, recursive: bool = False) -> None:
    """Delete a file, link or empty directory; with ``recursive`` a whole tree.

    A recursive delete removes entries depth-first and stops at the first
    failure, leaving whatever was not yet removed in place.
    """
    path = os.fspath(path)
    if recursive:
        if stat.S_ISDIR(os.lstat(path).st_mode):
            shutil.rmtree(path)
        else:
            os.unlink(path)
        return

    try:
        if os.path.isdir(path) and not os.path.islink(path):
            os.rmdir(path)
        else:
            os.unlink(path)
    except FileNotFoundError as e:
        raise from_os_error(e, "Cannot delete file, it does not exist", path=path) from e
    except OSError as e:
        if e.errno in (errno.ENOTEMPTY, errno.EEXIST):
            raise from_os_error(
                e,
                "Cannot delete directory, it is not empty (use recursive delete)",
                kind=ErrorKind.NOT_EMPTY,
                path=path,
            ) from e
        raise


def make_directory(path: StrPath, perms: str | None = None, create_parents: bool = False) -> None:
    """Create a directory, and with ``create_parents`` any missing parents.

    Parents created along the way get the same permissions as the directory.
    """
    path = os.fspath(path)
    mode = parse_mode(perms, DEFAULT_DIR_MODE)
    if create_parents:
        _make_parents(path, mode)
    try:
        os.mkdir(path, mode)
    except FileExistsError as e:
        raise from_os_error(e, "Cannot create directory, it already exists", path=path) from e


def _make_parents(path: str, mode: int) -> None:
    missing = []
    parent = os.path.dirname(os.path.abspath(path))
    while not os.path.lexists(parent):
        missing.append(parent)
        parent = os.path.dirname(parent)
    for directory in reversed(missing):
        try:
            os.mkdir(directory, mode)
        except FileExistsError:
            # Created concurrently; only a directory will do.
            if not os.path.isdir(directory):
                raise


def list_directory(path: StrPath, pattern: str | None = None) -> list[str]:
    """Return sorted canonical paths of the entries whose names fully match ``pattern``."""
    path = os.fspath(path)
    if not os.path.exists(path):
        raise FileSystemError(ErrorKind.NOT_FOUND, "Cannot read directory, it does not exist", path)
    if not os.path.isdir(path):
        raise FileSystemError(
            ErrorKind.INVALID_ARGUMENT, "Cannot read directory, it is not a directory", path
        )

    matcher = None
    if pattern is not None:
        try:
            matcher = re.compile(pattern)
        except re.error as e:
            raise FileSystemError(
                ErrorKind.INVALID_ARGUMENT, f"Invalid filter {pattern!r} ({e})", path
            ) from e

    with os.scandir(path) as entries:
        names = [
            entry.name for entry in entries if matcher is None or matcher.fullmatch(entry.name)
        ]
    return sorted(os.path.realpath(os.path.join(path, name)) for name in names)


# ============================================================================
# Descriptor operations
# ============================================================================


def open_descriptor(
    path: StrPath,
    perms: str | None = None,
    read: bool = True,
    write: bool = True,
    create_new: bool = False,
    sync: bool = False,
    sync_meta: bool = False,
) -> int:
    """Open ``path`` and return the raw OS file descriptor."""
    path = os.fspath(path)
    if read and write:
        flags = os.O_RDWR
    elif read:
        flags = os.O_RDONLY
    elif write:
        flags = os.O_WRONLY
    else:
        raise FileSystemError(
            ErrorKind.INVALID_ARGUMENT, "Cannot open file for neither reading nor writing", path
        )

    if create_new:
        flags |= os.O_CREAT | os.O_EXCL
    if sync:
        flags |= getattr(os, "O_DSYNC", os.O_SYNC)
    if sync_meta:
        flags |= os.O_SYNC
    flags |= getattr(os, "O_CLOEXEC", 0)

    mode = parse_mode(perms, DEFAULT_FILE_MODE)
    try:
        return os.open(path, flags, mode)
    except FileExistsError as e:
        raise from_os_error(e, "Cannot open file, it already exists", path=path) from e


def read_at(fd: int, position: int, length: int) -> bytes:
    """Read up to ``length`` bytes at ``position``; fewer only at end of file."""
    if position < 0 or length < 0:
        raise FileSystemError(
            ErrorKind.INVALID_ARGUMENT,
            f"Position and length must not be negative (got {position}, {length})",
        )
    chunks: list[bytes] = []
    remaining = length
    while remaining > 0:
        chunk = os.pread(fd, remaining, position)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
        position += len(chunk)
    return b"".join(chunks)


def write_at(fd: int, data: Buffer, position: int) -> None:
    """Write all of ``data`` at ``position``."""
    if position < 0:
        raise FileSystemError(
            ErrorKind.INVALID_ARGUMENT, f"Position must not be negative (got {position})"
        )
    view = memoryview(data).cast("B")
    while view:
        written = os.pwrite(fd, view, position)
        view = view[written:]
        position += written


def sync_descriptor(fd: int, metadata: bool = False) -> None:
    """Flush written data, and with ``metadata`` the file's metadata too, to storage."""
    if metadata:
        os.fsync(fd)
    else:
        _fdatasync(fd)


def close_descriptor(fd: int) -> None:
    os.close(fd)


# ============================================================================
# Whole files and volumes
# ============================================================================


def read_whole_file(path: StrPath) -> bytes:
    return Path(path).read_bytes()


def write_whole_file(path: StrPath, data: Buffer | str, encoding: str = "utf-8") -> None:
    """Create or truncate ``path`` and write ``data`` (``str`` is encoded)."""
    if isinstance(data, str):
        data = data.encode(encoding)
    Path(path).write_bytes(data)


def create_empty_file(path: StrPath, perms: str | None = None) -> None:
    path = os.fspath(path)
    mode = parse_mode(perms, DEFAULT_FILE_MODE)
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    except FileExistsError as e:
        raise from_os_error(e, "Cannot create file, it already exists", path=path) from e
    os.close(fd)


def path_exists(path: StrPath) -> bool:
    return os.path.exists(path)


def volume_stats(path: StrPath) -> FileSystemStats:
    """Capacity of the volume holding ``path``."""
    return FileSystemStats.from_statvfs(os.statvfs(path))


__all__ = [
    "DEFAULT_DIR_MODE",
    "DEFAULT_FILE_MODE",
    "chmod_path",
    "close_descriptor",
    "copy_path",
    "create_empty_file",
    "delete_path",
    "list_directory",
    "make_directory",
    "make_link",
    "move_path",
    "open_descriptor",
    "path_exists",
    "read_at",
    "read_link",
    "read_whole_file",
    "stat_path",
    "sync_descriptor",
    "truncate_file",
    "volume_stats",
    "write_at",
    "write_whole_file",
]
