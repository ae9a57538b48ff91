"""Concrete implementations for timer schedulers.

The simulated session never touches wall-clock timers directly; it asks a
``Scheduler``. Production code uses ``AsyncioScheduler``; tests use
``VirtualScheduler`` and move time forward by hand.
"""

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Tuple


class Scheduler(ABC):
    """Interface for a clock plus delayed callbacks."""

    @abstractmethod
    def now(self) -> datetime:
        """Returns the current (possibly virtual) time."""
        pass

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any):
        """Schedules ``callback(*args)`` after ``delay`` seconds.

        Returns a handle whose ``cancel()`` prevents the callback from running.
        """
        pass


class AsyncioScheduler(Scheduler):
    """Real time on the running event loop."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_later(self, delay, callback, *args):
        return asyncio.get_running_loop().call_later(delay, callback, *args)


class VirtualTimer:
    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler(Scheduler):
    """Deterministic time that only moves when ``advance`` is called."""

    def __init__(self, start: Optional[datetime] = None):
        self._start = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        self._elapsed = 0.0
        self._queue: List[Tuple[float, int, VirtualTimer]] = []
        self._counter = itertools.count()

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def call_later(self, delay, callback, *args):
        timer = VirtualTimer(self._elapsed + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (timer.when, next(self._counter), timer))
        return timer

    def advance(self, seconds: float) -> int:
        """Runs every timer due within ``seconds``, in due order.

        Timers scheduled by callbacks run too if they fall inside the window.
        Returns the number of callbacks run.
        """
        target = self._elapsed + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._elapsed = when
            timer.callback(*timer.args)
            ran += 1
        self._elapsed = target
        return ran

    @property
    def pending(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)
