"""ctxfs - non-blocking, context-affine filesystem operations for asyncio.

Blocking filesystem calls run on a background worker pool; each outcome is
delivered exactly once, on the event loop of the context that asked for it.

Examples
--------
Example usage::

    from ctxfs import LocalFileSystem

    async with LocalFileSystem() as fs:
        await fs.write_file("/tmp/greeting.txt", "hello")
        assert await fs.read_file("/tmp/greeting.txt") == b"hello"
"""

from ctxfs.drivers import FileHandle, LocalFileSystem, ThreadWorkerPool
from ctxfs.drivers.fs import FileReadStream, FileWriteStream, HandleState
from ctxfs.kernel import (
    AsyncDispatcher,
    Completion,
    CompletionError,
    ContextError,
    ContextId,
    ContextRegistry,
    ContextViolationError,
    CtxFSError,
    ErrorKind,
    ExecutionContext,
    FileStats,
    FileSystem,
    FileSystemError,
    FileSystemStats,
    NoContextError,
    OpenFile,
    Permission,
    PermissionSet,
    WorkerPool,
    WorkerPoolClosedError,
)
from ctxfs.kernel.config import FileSystemConfig, load_config
from ctxfs.kernel.logging import configure_logging, get_logger

__version__ = "0.1.0"

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
    "FileHandle",
    "FileReadStream",
    "FileStats",
    "FileSystem",
    "FileSystemConfig",
    "FileSystemError",
    "FileSystemStats",
    "FileWriteStream",
    "HandleState",
    "LocalFileSystem",
    "NoContextError",
    "OpenFile",
    "Permission",
    "PermissionSet",
    "ThreadWorkerPool",
    "WorkerPool",
    "WorkerPoolClosedError",
    "configure_logging",
    "get_logger",
    "load_config",
]
