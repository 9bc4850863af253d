"""Tests for ProgressMonitor."""

import threading

from svindex.core.progress import NullProgressMonitor, ProgressMonitor


class TestProgressMonitor:
    def test_callback_receives_counts(self):
        calls = []
        monitor = ProgressMonitor(lambda done, total, name: calls.append((done, total, name)))
        monitor.begin_task("Parsing", 2)
        monitor.worked()
        monitor.worked(name="b.sv")
        assert calls == [(1, 2, "Parsing"), (2, 2, "b.sv")]
        assert monitor.task == "Parsing"

    def test_begin_task_resets_count(self):
        calls = []
        monitor = ProgressMonitor(lambda done, total, name: calls.append(done))
        monitor.begin_task("a", 3)
        monitor.worked(2)
        monitor.begin_task("b", 1)
        monitor.worked()
        assert calls == [2, 1]

    def test_callback_error_is_swallowed(self):
        def boom(done, total, name):
            raise RuntimeError("x")

        monitor = ProgressMonitor(boom)
        monitor.begin_task("t", 1)
        monitor.worked()  # no exception

    def test_cancel_from_another_thread(self):
        monitor = ProgressMonitor()
        assert not monitor.is_canceled()
        t = threading.Thread(target=monitor.cancel)
        t.start()
        t.join()
        assert monitor.is_canceled()

    def test_concurrent_worked(self):
        seen = []
        monitor = ProgressMonitor(lambda done, total, name: seen.append(done))
        monitor.begin_task("t", 400)
        threads = [threading.Thread(target=lambda: [monitor.worked() for _ in range(100)]) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert max(seen) == 400


def test_null_monitor_not_canceled():
    monitor = NullProgressMonitor()
    monitor.begin_task("x", 1)
    monitor.worked()
    monitor.done()
    assert not monitor.is_canceled()
