"""Port interfaces (protocols) implemented by ctxfs drivers."""

from ctxfs.kernel.ports.filesystem import FileSystem, OpenFile, StrPath
from ctxfs.kernel.ports.worker_pool import WorkerPool

__all__ = ["FileSystem", "OpenFile", "StrPath", "WorkerPool"]
