"""Progress reporting and cooperative cancellation for long-running index work."""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class ProgressMonitor:
    """Thread-safe progress/cancellation token.

    Pipeline stages call ``begin_task`` once, ``worked`` per finished unit and
    poll ``is_canceled`` between units.  Any thread may call ``cancel``.

    Parameters
    ----------
    callback:
        Optional ``(done, total, name)`` callable invoked after every unit of
        work.  Exceptions raised by the callback are logged and ignored.
    """

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self._callback = callback
        self._canceled = threading.Event()
        self._lock = threading.Lock()
        self._task = ""
        self._total = 0
        self._done = 0

    def begin_task(self, name: str, total: int) -> None:
        with self._lock:
            self._task = name
            self._total = total
            self._done = 0

    def worked(self, amount: int = 1, name: str = "") -> None:
        with self._lock:
            self._done += amount
            done, total = self._done, self._total
        if self._callback is not None:
            try:
                self._callback(done, total, name or self._task)
            except Exception as exc:
                logger.debug("Progress callback error: %s", exc)

    def done(self) -> None:
        with self._lock:
            self._done = self._total

    def cancel(self) -> None:
        self._canceled.set()

    def is_canceled(self) -> bool:
        return self._canceled.is_set()

    @property
    def task(self) -> str:
        return self._task


class NullProgressMonitor(ProgressMonitor):
    """Monitor that reports nothing and is never canceled unless asked to."""
