"""Domain layer exports for ctxfs."""

from ctxfs.kernel.domain.permissions import Permission, PermissionSet
from ctxfs.kernel.domain.stats import FileStats, FileSystemStats

__all__ = [
    "FileStats",
    "FileSystemStats",
    "Permission",
    "PermissionSet",
]
