"""Host-pumped clocks and repeating tasks.

Nothing here spawns threads. The host calls :meth:`TaskScheduler.run_pending`
from its event loop; tests drive a :class:`VirtualClock` instead of waiting on
the wall clock.
"""
import time
from typing import Callable, List


class MonotonicClock:
    """Milliseconds from :func:`time.perf_counter`."""

    def now_ms(self) -> float:
        return time.perf_counter() * 1000.0


class VirtualClock:
    """Manually advanced clock."""

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)

    def now_ms(self) -> float:
        return self._now

    def advance(self, ms: float) -> float:
        self._now += max(0.0, float(ms))
        return self._now

    def advance_s(self, seconds: float) -> float:
        return self.advance(seconds * 1000.0)


class ScheduledTask:
    def __init__(self, scheduler: "TaskScheduler", interval_ms: float, callback: Callable[[], None], next_due: float):
        self._scheduler = scheduler
        self.interval_ms = float(interval_ms)
        self.callback = callback
        self.next_due = next_due
        self.cancelled = False
        self.runs = 0

    def cancel(self):
        """Stops the task; safe to call more than once."""
        if self.cancelled:
            return
        self.cancelled = True
        self._scheduler._discard(self)

    @property
    def active(self) -> bool:
        return not self.cancelled


class TaskScheduler:
    """Runs repeating callbacks when their interval has elapsed.

    An overdue task fires once per `run_pending` call and is rescheduled one
    interval after the current time, so a stalled host never triggers a burst
    of catch-up calls.
    """

    def __init__(self, clock=None):
        self.clock = clock if clock is not None else MonotonicClock()
        self._tasks: List[ScheduledTask] = []

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ScheduledTask(self, max(1.0, float(interval_ms)), callback,
                             self.clock.now_ms() + max(1.0, float(interval_ms)))
        self._tasks.append(task)
        return task

    def run_pending(self) -> int:
        now = self.clock.now_ms()
        ran = 0
        for task in list(self._tasks):
            # A callback may cancel tasks later in this pass.
            if task.cancelled or now < task.next_due:
                continue
            task.next_due = now + task.interval_ms
            task.runs += 1
            ran += 1
            task.callback()
        return ran

    def _discard(self, task):
        if task in self._tasks:
            self._tasks.remove(task)

    @property
    def pending(self) -> int:
        return len(self._tasks)
