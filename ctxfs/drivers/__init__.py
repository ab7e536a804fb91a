"""Concrete implementations of the ctxfs ports."""

from ctxfs.drivers.executors import ThreadWorkerPool
from ctxfs.drivers.fs import FileHandle, LocalFileSystem

__all__ = ["FileHandle", "LocalFileSystem", "ThreadWorkerPool"]
