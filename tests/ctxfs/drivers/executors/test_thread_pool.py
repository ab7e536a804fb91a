"""Tests for ThreadWorkerPool."""

from __future__ import annotations

import threading
from typing import Any

import pytest

from ctxfs.drivers.executors import ThreadWorkerPool
from ctxfs.kernel.config import WorkerPoolConfig
from ctxfs.kernel.exceptions import ValidationError, WorkerPoolClosedError
from ctxfs.kernel.ports import WorkerPool


class Outcomes:
    """Collects on_done calls and lets the test wait for them."""

    def __init__(self, expected: int = 1) -> None:
        self.values: list[tuple[Any, BaseException | None, str]] = []
        self._expected = expected
        self._done = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, value: Any, error: BaseException | None) -> None:
        with self._lock:
            self.values.append((value, error, threading.current_thread().name))
            if len(self.values) >= self._expected:
                self._done.set()

    def wait(self, timeout: float = 5.0) -> None:
        assert self._done.wait(timeout), "operations did not finish in time"


class TestConstruction:
    def test_satisfies_protocol(self, pool: ThreadWorkerPool) -> None:
        assert isinstance(pool, WorkerPool)
        assert pool.max_workers == 2
        assert not pool.closed

    def test_from_config(self) -> None:
        with ThreadWorkerPool.from_config(WorkerPoolConfig(max_workers=3)) as worker_pool:
            assert worker_pool.max_workers == 3

    def test_rejects_zero_workers(self) -> None:
        with pytest.raises(ValidationError):
            ThreadWorkerPool(max_workers=0)


class TestSubmit:
    def test_runs_on_worker_thread(self, pool: ThreadWorkerPool) -> None:
        outcomes = Outcomes()
        pool.submit(lambda: threading.get_ident(), outcomes)
        outcomes.wait()

        value, error, thread_name = outcomes.values[0]
        assert error is None
        assert value != threading.get_ident()
        assert thread_name.startswith("ctxfs-test")

    def test_error_is_passed_to_callback(self, pool: ThreadWorkerPool) -> None:
        outcomes = Outcomes(expected=2)

        def fail() -> None:
            raise OSError("disk on fire")

        pool.submit(fail, outcomes)
        pool.submit(lambda: "still alive", outcomes)
        outcomes.wait()

        results = {value: error for value, error, _ in outcomes.values}
        assert "still alive" in results
        assert isinstance(results[None], OSError)

    def test_callback_failure_is_logged(
        self, pool: ThreadWorkerPool, log_records: list[dict[str, Any]]
    ) -> None:
        def broken_callback(value: Any, error: BaseException | None) -> None:
            raise RuntimeError("callback bug")

        outcomes = Outcomes()
        pool.submit(lambda: 1, broken_callback)
        pool.submit(lambda: 2, outcomes)
        outcomes.wait()
        pool.shutdown(wait=True)

        assert any("Completion callback failed" in r["message"] for r in log_records)
        assert pool.pending == 0

    def test_many_operations_all_complete(self, pool: ThreadWorkerPool) -> None:
        outcomes = Outcomes(expected=50)
        for i in range(50):
            pool.submit(lambda i=i: i * 2, outcomes)
        outcomes.wait()
        assert sorted(value for value, _, _ in outcomes.values) == [i * 2 for i in range(50)]


class TestShutdown:
    def test_submit_after_shutdown_raises(self, pool: ThreadWorkerPool) -> None:
        pool.shutdown()
        assert pool.closed
        with pytest.raises(WorkerPoolClosedError):
            pool.submit(lambda: None, lambda value, error: None)

    def test_shutdown_is_idempotent(self, pool: ThreadWorkerPool) -> None:
        pool.shutdown()
        pool.shutdown()
        assert pool.closed

    def test_shutdown_waits_for_queued_work(self, pool: ThreadWorkerPool) -> None:
        outcomes = Outcomes(expected=10)
        for _ in range(10):
            pool.submit(lambda: None, outcomes)
        pool.shutdown(wait=True)
        assert len(outcomes.values) == 10
        assert pool.pending == 0

    def test_context_manager(self) -> None:
        with ThreadWorkerPool(max_workers=1) as worker_pool:
            assert not worker_pool.closed
        assert worker_pool.closed
