"""ctxfs kernel: domain models, ports, execution contexts and dispatch.

The kernel has no knowledge of any concrete worker pool or filesystem; those
live in :mod:`ctxfs.drivers`.
"""

from ctxfs.kernel.context import ContextId, ContextRegistry, ExecutionContext
from ctxfs.kernel.dispatch import AsyncDispatcher, Completion
from ctxfs.kernel.domain import FileStats, FileSystemStats, Permission, PermissionSet
from ctxfs.kernel.exceptions import (
    CompletionError,
    ContextError,
    ContextViolationError,
    CtxFSError,
    ErrorKind,
    FileSystemError,
    NoContextError,
    WorkerPoolClosedError,
)
from ctxfs.kernel.ports import FileSystem, OpenFile, WorkerPool

__all__ = [
    "AsyncDispatcher",
    "Completion",
    "CompletionError",
    "ContextError",
    "ContextId",
    "ContextRegistry",
    "ContextViolationError",
    "CtxFSError",
    "ErrorKind",
    "ExecutionContext",
    "FileStats",
    "FileSystem",
    "FileSystemError",
    "FileSystemStats",
    "NoContextError",
    "OpenFile",
    "Permission",
    "PermissionSet",
    "WorkerPool",
    "WorkerPoolClosedError",
]
