"""Local filesystem driver: handles, streams and the blocking primitives behind them."""

from ctxfs.drivers.fs.handle import FileHandle, HandleState
from ctxfs.drivers.fs.local import LocalFileSystem
from ctxfs.drivers.fs.streams import FileReadStream, FileWriteStream

__all__ = [
    "FileHandle",
    "FileReadStream",
    "FileWriteStream",
    "HandleState",
    "LocalFileSystem",
]
