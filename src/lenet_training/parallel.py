"""Thread-pool fan-out with a barrier, used for worker gradients and prediction.

Tasks in a round are independent closures over disjoint slices of data.  The
pool runs them concurrently, waits for all of them (the barrier), and hands
back results in task order.  The first failure aborts the round: there is
never a partial result.
"""

from __future__ import annotations

import concurrent.futures
import time
from collections.abc import Callable, Sequence
from typing import TypeVar

from loguru import logger
from tqdm import tqdm

from lenet_training.errors import WorkerError

T = TypeVar("T")


class WorkerPool:
    """Run independent tasks concurrently and join on a barrier.

    Torch kernels release the GIL, so threads give real parallelism for the
    forward/backward passes without copying tensors across processes.

    Args:
        num_workers: Thread count. ``None`` uses one thread per task.
        timeout: Seconds each task may run, measured from when it starts
            (time spent queued behind other tasks does not count). Retries
            share the same deadline. ``None`` waits indefinitely.
        max_retries: Extra attempts per task before its failure is fatal.
        progress: Show a tqdm bar while waiting on the barrier.
    """

    def __init__(
        self,
        num_workers: int | None = None,
        timeout: float | None = None,
        max_retries: int = 0,
        progress: bool = False,
    ) -> None:
        self.num_workers = num_workers
        self.timeout = timeout
        self.max_retries = max_retries
        self.progress = progress

    def run(self, tasks: Sequence[Callable[[], T]], desc: str = "tasks") -> list[T]:
        """Execute ``tasks`` and return their results in task order.

        Raises:
            WorkerError: If any task still fails after its retries or runs
                past its deadline. The lowest offending index is reported.
        """
        if not tasks:
            return []

        max_workers = self.num_workers or len(tasks)
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=desc
        )
        started: dict[int, float] = {}
        try:
            futures = {
                executor.submit(self._attempt, index, task, desc, started): index
                for index, task in enumerate(tasks)
            }
            done, expired = self._wait(futures, started, desc)

            failed = sorted(
                (futures[f], f.exception()) for f in done if f.exception() is not None
            )
            if failed:
                index, exc = failed[0]
                logger.error(f"{desc}: task {index} failed, aborting round: {exc}")
                msg = f"{desc}: task {index} failed: {exc}"
                raise WorkerError(msg, task_index=index) from exc
            if expired:
                index = min(expired)
                logger.error(
                    f"{desc}: task {index} still running after {self.timeout}s, "
                    "aborting round"
                )
                msg = f"{desc}: task {index} timed out after {self.timeout}s"
                raise WorkerError(msg, task_index=index)

            results: list[T] = [None] * len(tasks)  # type: ignore[list-item]
            for future, index in futures.items():
                results[index] = future.result()
            return results
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _wait(
        self,
        futures: dict[concurrent.futures.Future[T], int],
        started: dict[int, float],
        desc: str,
    ) -> tuple[set[concurrent.futures.Future[T]], list[int]]:
        """Block until every task finishes, one fails, or one overruns.

        Returns the finished futures and the indices of overdue tasks.
        """
        pending = set(futures)
        done: set[concurrent.futures.Future[T]] = set()
        with tqdm(
            total=len(futures),
            desc=desc,
            unit="task",
            leave=False,
            disable=not self.progress,
        ) as bar:
            while pending:
                finished, pending = concurrent.futures.wait(
                    pending,
                    timeout=self._next_deadline(futures, pending, started),
                    return_when=concurrent.futures.FIRST_COMPLETED,
                )
                done |= finished
                bar.update(len(finished))
                if any(f.exception() is not None for f in finished):
                    break
                expired = self._expired(futures, pending, started)
                if expired:
                    return done, expired
        return done, []

    def _next_deadline(
        self,
        futures: dict[concurrent.futures.Future[T], int],
        pending: set[concurrent.futures.Future[T]],
        started: dict[int, float],
    ) -> float | None:
        """Seconds until the earliest running task's deadline."""
        if self.timeout is None:
            return None
        now = time.monotonic()
        remaining = [
            started[futures[f]] + self.timeout - now
            for f in pending
            if futures[f] in started
        ]
        # Tasks not yet started get a full timeout once they do
        if len(remaining) < len(pending):
            remaining.append(self.timeout)
        return max(0.0, min(remaining))

    def _expired(
        self,
        futures: dict[concurrent.futures.Future[T], int],
        pending: set[concurrent.futures.Future[T]],
        started: dict[int, float],
    ) -> list[int]:
        if self.timeout is None:
            return []
        now = time.monotonic()
        return sorted(
            futures[f]
            for f in pending
            if futures[f] in started and now - started[futures[f]] >= self.timeout
        )

    def _attempt(
        self,
        index: int,
        task: Callable[[], T],
        desc: str,
        started: dict[int, float],
    ) -> T:
        started[index] = time.monotonic()
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return task()
            except Exception as e:
                if attempt == attempts:
                    raise
                logger.warning(
                    f"{desc}: task {index} failed on attempt {attempt}/{attempts}: "
                    f"{e}; retrying"
                )
        raise AssertionError("unreachable")
