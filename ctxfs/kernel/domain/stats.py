"""Immutable metadata snapshots returned by ``stat``/``lstat`` and ``get_fs_stats``."""

from __future__ import annotations

import os
import stat as stat_module
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict

from ctxfs.kernel.domain.permissions import PermissionSet


def _timestamp(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=UTC)


class FileStats(BaseModel):
    """Metadata about a path, captured at stat time.

    Attributes
    ----------
    size : int
        Size in bytes.
    creation_time : datetime
        Birth time where the platform reports one, else the inode change time.
    last_access_time : datetime
        Last access time.
    last_modified_time : datetime
        Last content modification time.
    is_directory, is_regular_file, is_symbolic_link, is_other : bool
        File type flags; exactly one of them is true.
    permissions : PermissionSet
        Permission bits of the path.
    """

    model_config = ConfigDict(frozen=True)

    size: int
    creation_time: datetime
    last_access_time: datetime
    last_modified_time: datetime
    is_directory: bool
    is_regular_file: bool
    is_symbolic_link: bool
    is_other: bool
    permissions: PermissionSet

    @classmethod
    def from_stat_result(cls, result: os.stat_result) -> FileStats:
        """Build a snapshot from an :class:`os.stat_result`."""
        mode = result.st_mode
        is_directory = stat_module.S_ISDIR(mode)
        is_regular_file = stat_module.S_ISREG(mode)
        is_symbolic_link = stat_module.S_ISLNK(mode)
        birth = getattr(result, "st_birthtime", None)
        return cls(
            size=result.st_size,
            creation_time=_timestamp(birth if birth is not None else result.st_ctime),
            last_access_time=_timestamp(result.st_atime),
            last_modified_time=_timestamp(result.st_mtime),
            is_directory=is_directory,
            is_regular_file=is_regular_file,
            is_symbolic_link=is_symbolic_link,
            is_other=not (is_directory or is_regular_file or is_symbolic_link),
            permissions=PermissionSet.from_mode(mode),
        )


class FileSystemStats(BaseModel):
    """Capacity of the volume containing a path, in bytes."""

    model_config = ConfigDict(frozen=True)

    total_space: int
    unallocated_space: int
    usable_space: int

    @classmethod
    def from_statvfs(cls, result: os.statvfs_result) -> FileSystemStats:
        """Build a snapshot from an :class:`os.statvfs_result`."""
        return cls(
            total_space=result.f_blocks * result.f_frsize,
            unallocated_space=result.f_bfree * result.f_frsize,
            usable_space=result.f_bavail * result.f_frsize,
        )


__all__ = ["FileStats", "FileSystemStats"]
