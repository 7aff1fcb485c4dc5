"""Scheduled-task abstraction used for debounced draft saves.

Code that needs "run this later" asks a :class:`Scheduler` instead of
starting timers itself, so the same code runs against real timers in the
service and against :class:`ManualScheduler` in tests.
"""

from abc import ABC, abstractmethod
import heapq
import itertools
import logging
import threading
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ScheduledTask(ABC):
    """Handle returned by :meth:`Scheduler.call_later`."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running if it has not run yet."""


class Scheduler(ABC):
    """Runs callbacks after a delay."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        """Schedule callback to run once, delay seconds from now."""


class _TimerTask(ScheduledTask):
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadingScheduler(Scheduler):
    """Real-time scheduler backed by daemon threading.Timer instances."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return _TimerTask(timer)


class _ManualTask(ScheduledTask):
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Deterministic scheduler driven by :meth:`advance`."""

    def __init__(self):
        self.now = 0.0
        self._counter = itertools.count()
        self._queue: List[Tuple[float, int, _ManualTask, Callable[[], None]]] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        task = _ManualTask()
        heapq.heappush(self._queue, (self.now + delay, next(self._counter), task, callback))
        return task

    @property
    def pending(self) -> int:
        return sum(1 for _, _, task, _ in self._queue if not task.cancelled)

    def advance(self, seconds: float) -> int:
        """Move time forward and run every task that became due. Returns the count run."""
        self.now += seconds
        ran = 0
        while self._queue and self._queue[0][0] <= self.now:
            _, _, task, callback = heapq.heappop(self._queue)
            if task.cancelled:
                continue
            callback()
            ran += 1
        return ran


class Debouncer:
    """Collapse bursts of triggers into a single delayed call."""

    def __init__(self, scheduler: Scheduler, delay: float, callback: Callable[[], None]):
        self.scheduler = scheduler
        self.delay = delay
        self.callback = callback
        self._task: Optional[ScheduledTask] = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._task is not None

    def trigger(self) -> None:
        with self._lock:
            if self._task is not None:
                self._task.cancel()
            self._task = self.scheduler.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        with self._lock:
            if self._task is not None:
                self._task.cancel()
                self._task = None

    def flush(self) -> bool:
        """Run a pending call now. Returns False when nothing was pending."""
        with self._lock:
            if self._task is None:
                return False
            self._task.cancel()
            self._task = None
        self.callback()
        return True

    def _fire(self) -> None:
        with self._lock:
            self._task = None
        self.callback()
