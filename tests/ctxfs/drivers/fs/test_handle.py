"""Tests for FileHandle context affinity and lifecycle."""

from __future__ import annotations

import asyncio
import gc
from typing import TYPE_CHECKING, Any

import pytest

from ctxfs.drivers.fs import FileHandle, HandleState, LocalFileSystem
from ctxfs.kernel.exceptions import ContextViolationError, ErrorKind, FileSystemError
from ctxfs.kernel.ports import OpenFile

if TYPE_CHECKING:
    from pathlib import Path


async def _open(fs: LocalFileSystem, path: Path, data: bytes = b"") -> FileHandle:
    path.write_bytes(data)
    return await fs.open(path)


class TestOpenHandle:
    @pytest.mark.asyncio()
    async def test_bound_to_opening_context(self, fs: LocalFileSystem, tmp_path: Path) -> None:
        handle = await _open(fs, tmp_path / "f")
        try:
            assert isinstance(handle, OpenFile)
            assert handle.context_id == fs.registry.current()
            assert handle.check_context() == handle.context_id
            assert handle.state is HandleState.OPEN
            assert handle.path == str(tmp_path / "f")
        finally:
            await handle.close()

    @pytest.mark.asyncio()
    async def test_read_and_write(self, fs: LocalFileSystem, tmp_path: Path) -> None:
        handle = await _open(fs, tmp_path / "f", b"0123456789")
        try:
            assert await handle.read(2, 3) == b"234"
            await handle.write(b"ab", 8)
            await handle.write(memoryview(b"XYZ"), 10)
            await handle.sync()
            await handle.sync(metadata=True)
            assert await handle.read(0, 100) == b"01234567abXYZ"
            assert handle.outstanding == 0
        finally:
            await handle.close()

    @pytest.mark.asyncio()
    async def test_concurrent_positioned_writes(self, fs: LocalFileSystem, tmp_path: Path) -> None:
        handle = await _open(fs, tmp_path / "f")
        try:
            await asyncio.gather(*(handle.write(bytes([65 + i]) * 4, i * 4) for i in range(8)))
            assert await handle.read(0, 32) == b"AAAABBBBCCCCDDDDEEEEFFFFGGGGHHHH"
        finally:
            await handle.close()

    @pytest.mark.asyncio()
    async def test_negative_position_fails_through_completion(
        self, fs: LocalFileSystem, tmp_path: Path
    ) -> None:
        handle = await _open(fs, tmp_path / "f")
        try:
            completion = handle.read(-1, 4)
            with pytest.raises(FileSystemError) as exc_info:
                await completion
            assert exc_info.value.kind is ErrorKind.INVALID_ARGUMENT
        finally:
            await handle.close()


class TestContextViolation:
    @pytest.mark.asyncio()
    async def test_bound_other_context_is_rejected(
        self, fs: LocalFileSystem, tmp_path: Path
    ) -> None:
        handle = await _open(fs, tmp_path / "f", b"data")
        other = fs.registry.create_context(name="intruder")

        with fs.registry.bind(other.id):
            with pytest.raises(ContextViolationError) as exc_info:
                handle.read(0, 1)
            with pytest.raises(ContextViolationError):
                handle.write(b"x", 0)
            with pytest.raises(ContextViolationError):
                handle.sync()
            with pytest.raises(ContextViolationError):
                handle.close()

        assert exc_info.value.owner == handle.context_id
        assert exc_info.value.caller == other.id
        assert not handle.closed
        await handle.close()

    @pytest.mark.asyncio()
    async def test_explicit_other_context_is_rejected(
        self, fs: LocalFileSystem, tmp_path: Path
    ) -> None:
        handle = await _open(fs, tmp_path / "f")
        other = fs.registry.create_context()
        with pytest.raises(ContextViolationError):
            handle.read(0, 1, context=other.id)
        await handle.close()

    @pytest.mark.asyncio()
    async def test_violation_does_not_dispatch(self, fs: LocalFileSystem, tmp_path: Path) -> None:
        handle = await _open(fs, tmp_path / "f")
        other = fs.registry.create_context()
        with pytest.raises(ContextViolationError):
            handle.write(b"x", 0, context=other.id)
        assert handle.outstanding == 0
        await handle.close()
        assert (tmp_path / "f").read_bytes() == b""


class TestClose:
    @pytest.mark.asyncio()
    async def test_operations_after_close_fail(self, fs: LocalFileSystem, tmp_path: Path) -> None:
        handle = await _open(fs, tmp_path / "f")
        await handle.close()
        assert handle.closed
        assert handle.state is HandleState.CLOSED

        for completion in (handle.read(0, 1), handle.write(b"x", 0), handle.sync(), handle.close()):
            with pytest.raises(FileSystemError) as exc_info:
                await completion
            assert exc_info.value.kind is ErrorKind.HANDLE_CLOSED

    @pytest.mark.asyncio()
    async def test_close_waits_for_outstanding_operations(
        self, fs: LocalFileSystem, tmp_path: Path
    ) -> None:
        """A close issued behind in-flight writes releases the descriptor only after them."""
        handle = await _open(fs, tmp_path / "f")
        finished: list[str] = []

        writes = [handle.write(bytes([65 + i]) * 65536, i * 65536) for i in range(6)]
        closing = handle.close()
        for index, write in enumerate(writes):
            write.add_done_callback(lambda c, i=index: finished.append(f"write{i}"))
        closing.add_done_callback(lambda c: finished.append("close"))

        other = await fs.open(tmp_path / "other", create_new=True)
        await fs.write(other, b"other", 0)
        await asyncio.gather(*writes, closing)
        await fs.close(other)

        assert finished[-1] == "close"
        assert handle.outstanding == 0
        content = (tmp_path / "f").read_bytes()
        assert content == b"".join(bytes([65 + i]) * 65536 for i in range(6))
        assert (tmp_path / "other").read_bytes() == b"other"

    @pytest.mark.asyncio()
    async def test_cancelled_waiter_does_not_block_close(
        self, fs: LocalFileSystem, tmp_path: Path
    ) -> None:
        handle = await _open(fs, tmp_path / "f")

        async def write_and_wait() -> None:
            await handle.write(b"x" * 1024, 0)

        waiter = asyncio.create_task(write_and_wait())
        await asyncio.sleep(0)
        waiter.cancel()

        await asyncio.wait_for(handle.close(), timeout=5)
        assert handle.outstanding == 0

    @pytest.mark.asyncio()
    async def test_close_after_pool_shutdown_closes_inline(
        self, fs: LocalFileSystem, tmp_path: Path, log_records: list[dict[str, Any]]
    ) -> None:
        handle = await _open(fs, tmp_path / "f")
        fs.shutdown()

        await handle.close()

        assert handle.closed
        assert any("shut down" in r["message"] for r in log_records)

    @pytest.mark.asyncio()
    async def test_async_context_manager_closes(self, fs: LocalFileSystem, tmp_path: Path) -> None:
        async with await _open(fs, tmp_path / "f") as handle:
            await handle.write(b"x", 0)
        assert handle.closed

    @pytest.mark.asyncio()
    async def test_unclosed_handle_is_finalized(
        self, fs: LocalFileSystem, tmp_path: Path, log_records: list[dict[str, Any]]
    ) -> None:
        handle = await _open(fs, tmp_path / "f")
        del handle
        gc.collect()

        assert any("never closed" in r["message"] for r in log_records)

    @pytest.mark.asyncio()
    async def test_closed_handle_is_not_finalized(
        self, fs: LocalFileSystem, tmp_path: Path, log_records: list[dict[str, Any]]
    ) -> None:
        handle = await _open(fs, tmp_path / "f")
        await handle.close()
        del handle
        gc.collect()

        assert not any("never closed" in r["message"] for r in log_records)


class TestExplicitContext:
    @pytest.mark.asyncio()
    async def test_async_with_on_explicitly_owned_handle(
        self, fs: LocalFileSystem, tmp_path: Path
    ) -> None:
        owner = fs.registry.create_context(name="owner")

        async with await fs.open(tmp_path / "f", create_new=True, context=owner.id) as handle:
            await handle.write(b"owned", 0, context=owner.id)

        assert handle.closed
        assert (tmp_path / "f").read_bytes() == b"owned"

    @pytest.mark.asyncio()
    async def test_acting_context_prefers_binding(
        self, fs: LocalFileSystem, tmp_path: Path
    ) -> None:
        owner = fs.registry.create_context(name="owner")
        other = fs.registry.create_context(name="other")
        handle = await fs.open(tmp_path / "f", create_new=True, context=owner.id)

        assert handle.acting_context() == owner.id
        with fs.registry.bind(other.id):
            assert handle.acting_context() == other.id
        await handle.close(context=owner.id)
