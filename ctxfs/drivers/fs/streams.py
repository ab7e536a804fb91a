"""Sequential streams over a :class:`FileHandle`.

Streams keep their own position and issue positioned reads/writes through
the handle on behalf of the context that opened it, including one passed as
an explicit ``context=`` token. They keep its context affinity: using a
stream while a different context is bound with ``ContextRegistry.bind``
raises :class:`~ctxfs.kernel.exceptions.ContextViolationError`.

Example
-------
.. code-block:: python

    async with await fs.create_read_stream("/var/log/app.log") as stream:
        async for chunk in stream:
            process(chunk)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Buffer

    from ctxfs.drivers.fs.handle import FileHandle
    from ctxfs.kernel.dispatch import Completion


class FileReadStream:
    """Async iterator yielding a file's content in chunks of ``chunk_size`` bytes.

    The handle is closed once end of file is reached, or by :meth:`aclose`.
    """

    def __init__(self, handle: FileHandle, chunk_size: int) -> None:
        self._handle = handle
        self._chunk_size = chunk_size
        self._position = 0

    def __repr__(self) -> str:
        return f"<FileReadStream {self._handle.path!r} position={self._position}>"

    @property
    def handle(self) -> FileHandle:
        return self._handle

    @property
    def position(self) -> int:
        """Offset of the next chunk."""
        return self._position

    @property
    def closed(self) -> bool:
        return self._handle.closed

    def __aiter__(self) -> FileReadStream:
        return self

    async def __anext__(self) -> bytes:
        if self._handle.closed:
            raise StopAsyncIteration
        chunk = await self._handle.read(
            self._position, self._chunk_size, context=self._handle.acting_context()
        )
        if not chunk:
            await self.aclose()
            raise StopAsyncIteration
        self._position += len(chunk)
        return chunk

    async def read_all(self) -> bytes:
        """Read the remainder of the file and close the stream."""
        return b"".join([chunk async for chunk in self])

    async def aclose(self) -> None:
        if not self._handle.closed:
            await self._handle.close(context=self._handle.acting_context())

    async def __aenter__(self) -> FileReadStream:
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.aclose()


class FileWriteStream:
    """Appends written data at a running position, starting at offset 0."""

    def __init__(self, handle: FileHandle) -> None:
        self._handle = handle
        self._position = 0

    def __repr__(self) -> str:
        return f"<FileWriteStream {self._handle.path!r} position={self._position}>"

    @property
    def handle(self) -> FileHandle:
        return self._handle

    @property
    def position(self) -> int:
        """Offset at which the next write lands."""
        return self._position

    @property
    def closed(self) -> bool:
        return self._handle.closed

    def write(self, data: Buffer) -> Completion[None]:
        """Queue ``data`` after everything written so far.

        The position advances at submission, so writes issued back to back
        land one after another even while earlier ones are in flight.
        """
        payload = bytes(data)
        completion = self._handle.write(
            payload, self._position, context=self._handle.acting_context()
        )
        self._position += len(payload)
        return completion

    def sync(self, metadata: bool = False) -> Completion[None]:
        return self._handle.sync(metadata, context=self._handle.acting_context())

    async def aclose(self) -> None:
        if not self._handle.closed:
            await self._handle.close(context=self._handle.acting_context())

    async def __aenter__(self) -> FileWriteStream:
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.aclose()


__all__ = ["FileReadStream", "FileWriteStream"]
