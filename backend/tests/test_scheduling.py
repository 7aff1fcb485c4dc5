"""Tests for the scheduler abstraction and the debouncer."""

import threading

from stockcount.services.scheduling import Debouncer, ManualScheduler, ThreadingScheduler


class TestManualScheduler:
    def test_runs_due_tasks_in_order(self):
        scheduler = ManualScheduler()
        calls = []
        scheduler.call_later(2.0, lambda: calls.append("b"))
        scheduler.call_later(1.0, lambda: calls.append("a"))

        assert scheduler.advance(0.5) == 0
        assert scheduler.advance(0.5) == 1
        assert scheduler.advance(1.0) == 1
        assert calls == ["a", "b"]

    def test_cancelled_task_does_not_run(self):
        scheduler = ManualScheduler()
        calls = []
        task = scheduler.call_later(1.0, lambda: calls.append(1))
        task.cancel()

        assert scheduler.pending == 0
        assert scheduler.advance(5) == 0
        assert calls == []


class TestDebouncer:
    """A burst of triggers results in a single call after the quiet period."""

    def test_burst_collapses_to_one_call(self):
        scheduler = ManualScheduler()
        calls = []
        debouncer = Debouncer(scheduler, 1.0, lambda: calls.append(scheduler.now))

        debouncer.trigger()
        scheduler.advance(0.6)
        debouncer.trigger()
        scheduler.advance(0.6)
        debouncer.trigger()

        assert calls == []
        assert debouncer.pending
        scheduler.advance(1.0)
        assert len(calls) == 1
        assert not debouncer.pending

    def test_flush_runs_pending_call_immediately(self):
        scheduler = ManualScheduler()
        calls = []
        debouncer = Debouncer(scheduler, 1.0, lambda: calls.append(1))

        assert debouncer.flush() is False
        debouncer.trigger()
        assert debouncer.flush() is True
        assert calls == [1]
        # The scheduled call was cancelled by the flush
        scheduler.advance(2.0)
        assert calls == [1]

    def test_cancel_drops_pending_call(self):
        scheduler = ManualScheduler()
        calls = []
        debouncer = Debouncer(scheduler, 1.0, lambda: calls.append(1))
        debouncer.trigger()
        debouncer.cancel()
        scheduler.advance(2.0)
        assert calls == []


class TestThreadingScheduler:
    def test_runs_callback_on_timer_thread(self):
        fired = threading.Event()
        ThreadingScheduler().call_later(0.01, fired.set)
        assert fired.wait(timeout=2.0)

    def test_cancel(self):
        fired = threading.Event()
        task = ThreadingScheduler().call_later(0.5, fired.set)
        task.cancel()
        assert not fired.wait(timeout=0.7)
