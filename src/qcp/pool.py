from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import logging
import os
import threading
from typing import Callable

from qcp.models import JobResult, PlannedOperation, RunningTotal, RunSummary


class WorkerPool:
    """Fixed-size thread pool with fire-and-forget dispatch."""

    def __init__(self, size: int | None = None) -> None:
        self.size = size or os.cpu_count() or 1
        if self.size < 1:
            raise ValueError("pool size must be at least 1")
        self._executor = ThreadPoolExecutor(max_workers=self.size, thread_name_prefix="qcp-worker")
        self._stopped = False
        self._lock = threading.Lock()

    def dispatch(self, task: Callable[[], None]) -> None:
        with self._lock:
            if self._stopped:
                raise RuntimeError("worker pool is stopped")
            self._executor.submit(task)

    def stop_and_wait(self) -> None:
        with self._lock:
            self._stopped = True
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop_and_wait()


class Aggregator:
    """Collects job results from pool workers.

    Every tracked operation reports exactly once: a ``done`` or ``ERROR``
    line is logged, successful byte counts go into the running total, and
    the pending count drops. ``wait`` returns once it reaches zero.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.log = logger or logging.getLogger("qcp.pool")
        self.total = RunningTotal()
        self._cond = threading.Condition()
        self._pending = 0
        self._copied = 0
        self._failed = 0

    def track(self, operation: PlannedOperation) -> Callable[[], None]:
        with self._cond:
            self._pending += 1

        def task() -> None:
            try:
                try:
                    result = operation.execute()
                except Exception as exc:
                    result = JobResult(error=exc)
                self._report(operation, result)
            finally:
                with self._cond:
                    self._pending -= 1
                    if self._pending == 0:
                        self._cond.notify_all()

        return task

    def _report(self, operation: PlannedOperation, result: JobResult) -> None:
        if result.error is not None:
            self.log.error("ERROR: %s: %s", operation.source, result.error)
            with self._cond:
                self._failed += 1
            return

        self.log.info("done: ->%s", operation.destination)
        self.total.add(result.bytes_copied)
        with self._cond:
            self._copied += 1

    def wait(self, timeout: float | None = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0, timeout=timeout)

    def summary(self, planned: int = 0) -> RunSummary:
        with self._cond:
            return RunSummary(
                planned=planned,
                copied=self._copied,
                failed=self._failed,
                bytes_copied=self.total.value,
            )
