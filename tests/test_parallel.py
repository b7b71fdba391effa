"""Tests for the barrier-joined thread pool."""

from __future__ import annotations

import threading
import time

import pytest

from lenet_training.errors import WorkerError
from lenet_training.parallel import WorkerPool


class TestWorkerPool:
    def test_results_in_task_order(self) -> None:
        def make(i: int):
            def task() -> int:
                # Later tasks finish first
                time.sleep(0.01 * (5 - i))
                return i * i

            return task

        assert WorkerPool().run([make(i) for i in range(5)]) == [0, 1, 4, 9, 16]

    def test_empty_round(self) -> None:
        assert WorkerPool().run([]) == []

    def test_tasks_run_concurrently(self) -> None:
        barrier = threading.Barrier(3, timeout=5)

        def task() -> int:
            return barrier.wait()

        results = WorkerPool(num_workers=3).run([task, task, task])
        assert sorted(results) == [0, 1, 2]

    def test_single_worker_still_runs_everything(self) -> None:
        assert WorkerPool(num_workers=1).run([lambda: 1, lambda: 2]) == [1, 2]

    def test_failure_raises_worker_error(self) -> None:
        def bad() -> int:
            raise ValueError("boom")

        with pytest.raises(WorkerError, match="boom") as excinfo:
            WorkerPool().run([lambda: 0, bad, lambda: 2], desc="unit")
        assert excinfo.value.task_index == 1
        assert isinstance(excinfo.value.__cause__, ValueError)

    def test_lowest_failing_index_reported(self) -> None:
        def bad() -> int:
            raise RuntimeError("x")

        with pytest.raises(WorkerError) as excinfo:
            WorkerPool(num_workers=1).run([lambda: 0, bad, bad])
        assert excinfo.value.task_index == 1

    def test_retry_recovers_transient_failure(self) -> None:
        calls = {"n": 0}

        def flaky() -> str:
            calls["n"] += 1
            if calls["n"] == 1:
                raise OSError("transient")
            return "ok"

        assert WorkerPool(max_retries=1).run([flaky]) == ["ok"]
        assert calls["n"] == 2

    def test_retries_exhausted(self) -> None:
        calls = {"n": 0}

        def always_bad() -> None:
            calls["n"] += 1
            raise OSError("down")

        with pytest.raises(WorkerError):
            WorkerPool(max_retries=2).run([always_bad])
        assert calls["n"] == 3

    def test_timeout_raises_worker_error(self) -> None:
        release = threading.Event()

        def slow() -> None:
            release.wait(5)

        try:
            with pytest.raises(WorkerError, match="timed out") as excinfo:
                WorkerPool(timeout=0.05).run([slow])
            assert excinfo.value.task_index == 0
        finally:
            release.set()

    def test_timeout_names_the_overdue_task(self) -> None:
        release = threading.Event()

        def slow() -> str:
            release.wait(5)
            return "late"

        try:
            with pytest.raises(WorkerError, match="task 1 timed out") as excinfo:
                WorkerPool(timeout=0.1).run([lambda: "fast", slow, lambda: "fast"])
            assert excinfo.value.task_index == 1
        finally:
            release.set()

    def test_timeout_is_per_task_not_per_round(self) -> None:
        """Queued time is not charged: the round outlasts the timeout."""

        def task() -> float:
            time.sleep(0.1)
            return time.monotonic()

        start = time.monotonic()
        results = WorkerPool(num_workers=1, timeout=0.5).run([task] * 8)
        assert len(results) == 8
        assert time.monotonic() - start > 0.5

    def test_progress_bar_path(self) -> None:
        pool = WorkerPool(progress=True)
        assert pool.run([lambda: "a", lambda: "b"], desc="bar") == ["a", "b"]

    def test_progress_bar_path_failure(self) -> None:
        def bad() -> None:
            raise KeyError("k")

        with pytest.raises(WorkerError) as excinfo:
            WorkerPool(progress=True).run([bad])
        assert excinfo.value.task_index == 0
