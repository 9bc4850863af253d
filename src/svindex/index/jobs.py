"""Per-path job dispatch with a join barrier.

Pipeline stages are written once against ``JobScheduler``; whether the
jobs run on the calling thread or on a worker pool is decided by
``IndexConfig.enable_threads`` when the scheduler is created.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Protocol

from svindex.core.config import IndexConfig
from svindex.core.progress import ProgressMonitor

logger = logging.getLogger(__name__)

# A job body returns True when it finished its path, False on a
# recoverable failure (the path is retried on the next pass).
JobFn = Callable[[str], bool]


@dataclass(frozen=True)
class Job:
    path: str
    fn: JobFn

    def run(self, monitor: ProgressMonitor | None = None) -> bool | None:
        """Run the job body; None means it was skipped due to cancellation."""
        if monitor is not None and monitor.is_canceled():
            return None
        try:
            ok = bool(self.fn(self.path))
        except Exception:
            logger.exception("Job failed for %s", self.path)
            ok = False
        if monitor is not None:
            monitor.worked(1, self.path)
        return ok


@dataclass
class BatchResult:
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def canceled(self) -> bool:
        return bool(self.skipped)

    def record(self, path: str, outcome: bool | None) -> None:
        if outcome is None:
            self.skipped.append(path)
        elif outcome:
            self.completed.append(path)
        else:
            self.failed.append(path)


class JobScheduler(Protocol):
    def submit(self, job: Job, monitor: ProgressMonitor | None = None) -> None: ...
    def join(self) -> BatchResult: ...
    def shutdown(self) -> None: ...


class InlineJobScheduler:
    """Runs each job immediately on the submitting thread."""

    def __init__(self) -> None:
        self._result = BatchResult()

    def submit(self, job: Job, monitor: ProgressMonitor | None = None) -> None:
        self._result.record(job.path, job.run(monitor))

    def join(self) -> BatchResult:
        result, self._result = self._result, BatchResult()
        return result

    def shutdown(self) -> None:
        """Nothing to release."""


class ThreadPoolJobScheduler:
    """Queues jobs on a ``ThreadPoolExecutor``; ``join`` waits for all of them."""

    def __init__(self, max_workers: int = 4) -> None:
        self._max_workers = max(1, max_workers)
        self._executor: ThreadPoolExecutor | None = None
        self._pending: dict[Future, str] = {}
        self._lock = threading.Lock()

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="svindex-job"
            )
        return self._executor

    def submit(self, job: Job, monitor: ProgressMonitor | None = None) -> None:
        with self._lock:
            future = self._pool().submit(job.run, monitor)
            self._pending[future] = job.path

    def join(self) -> BatchResult:
        with self._lock:
            pending, self._pending = self._pending, {}
        result = BatchResult()
        for fut in as_completed(pending):
            try:
                outcome = fut.result()
            except Exception:
                logger.exception("Failed job in parallel executor")
                outcome = False
            result.record(pending[fut], outcome)
        return result

    def shutdown(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)


def make_scheduler(config: IndexConfig) -> JobScheduler:
    if config.enable_threads:
        return ThreadPoolJobScheduler(max_workers=config.max_workers)
    return InlineJobScheduler()


def run_batch(
    scheduler: JobScheduler,
    paths: list[str],
    fn: JobFn,
    monitor: ProgressMonitor | None = None,
) -> BatchResult:
    """Create one job per path, submit them all, then join."""
    for path in paths:
        scheduler.submit(Job(path, fn), monitor)
    return scheduler.join()
