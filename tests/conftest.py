"""Shared fixtures for the ctxfs test suite.

- registry: a fresh ContextRegistry
- pool: a small ThreadWorkerPool, shut down after the test
- fs: a LocalFileSystem with its own pool, shut down after the test
- tree: a small directory tree under tmp_path
- log_records: loguru records captured during the test
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from loguru import logger

from ctxfs.drivers.executors import ThreadWorkerPool
from ctxfs.drivers.fs import LocalFileSystem
from ctxfs.kernel.config import FileSystemConfig, WorkerPoolConfig, clear_config_cache
from ctxfs.kernel.context import ContextRegistry

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture()
def registry() -> ContextRegistry:
    return ContextRegistry()


@pytest.fixture()
def pool() -> Iterator[ThreadWorkerPool]:
    worker_pool = ThreadWorkerPool(max_workers=2, thread_name_prefix="ctxfs-test")
    yield worker_pool
    worker_pool.shutdown(wait=True)


@pytest.fixture()
def fs() -> Iterator[LocalFileSystem]:
    filesystem = LocalFileSystem(
        config=FileSystemConfig(worker_pool=WorkerPoolConfig(max_workers=4))
    )
    yield filesystem
    filesystem.shutdown(wait=True)


@pytest.fixture()
def tree(tmp_path: Path) -> Path:
    """Create::

    src/
        a.txt          "alpha"
        sub/
            b.txt      "beta"
            deeper/
                c.txt  "gamma"
    """
    root = tmp_path / "src"
    (root / "sub" / "deeper").mkdir(parents=True)
    (root / "a.txt").write_text("alpha")
    (root / "sub" / "b.txt").write_text("beta")
    (root / "sub" / "deeper" / "c.txt").write_text("gamma")
    return root


@pytest.fixture(autouse=True)
def _fresh_config_cache() -> Iterator[None]:
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture()
def log_records() -> Iterator[list[dict[str, Any]]]:
    """Capture loguru records emitted during the test."""
    records: list[dict[str, Any]] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="TRACE")
    yield records
    logger.remove(handler_id)
