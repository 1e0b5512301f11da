"""
Deferred callbacks and clocks.

The monitor's grace delay, the timer's ticks and the session's polling all go
through a Scheduler so they can be cancelled on teardown and driven
deterministically in tests.
"""

import heapq
import itertools
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable

from typing_extensions import override

from .logging_config import get_logger
from .models import now_ms

logger = get_logger("scheduling")

Clock = Callable[[], int]
"""Returns the current time in epoch milliseconds."""

system_clock: Clock = now_ms


class Handle(ABC):
    """A pending callback that may be cancelled before it fires."""

    @abstractmethod
    def cancel(self) -> None:
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class Scheduler(ABC):
    """Interface for running a callback once after a delay."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle:
        """
        Run callback once after delay seconds.

        Args:
            delay: Seconds to wait (>= 0)
            callback: Zero-argument callable

        Returns:
            Handle that cancels the call if it has not fired yet
        """
        pass


class _TimerHandle(Handle):
    def __init__(self, timer: threading.Timer):
        self._timer = timer
        self._cancelled = False

    @override
    def cancel(self) -> None:
        self._cancelled = True
        self._timer.cancel()

    @property
    @override
    def cancelled(self) -> bool:
        return self._cancelled


class ThreadingScheduler(Scheduler):
    """Scheduler backed by daemon ``threading.Timer`` threads."""

    @override
    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle:
        def guarded() -> None:
            try:
                callback()
            except Exception:
                # Nothing above a timer thread can catch this
                logger.exception(f"Scheduled callback {callback!r} failed")

        timer = threading.Timer(max(0.0, delay), guarded)
        timer.daemon = True
        timer.start()
        return _TimerHandle(timer)


class _ManualHandle(Handle):
    def __init__(self) -> None:
        self._cancelled = False

    @override
    def cancel(self) -> None:
        self._cancelled = True

    @property
    @override
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """
    Virtual-time scheduler for tests and simulations.

    Nothing fires until ``advance`` is called. The scheduler also serves as
    the clock (``scheduler.now``) so timers and callbacks share one timeline.
    """

    def __init__(self, start_ms: int = 0):
        self._now_ms: int = start_ms
        self._queue: list[tuple[int, int, _ManualHandle, Callable[[], None]]] = []
        self._seq = itertools.count()

    def now(self) -> int:
        return self._now_ms

    @override
    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle:
        handle = _ManualHandle()
        due = self._now_ms + int(round(max(0.0, delay) * 1000))
        heapq.heappush(self._queue, (due, next(self._seq), handle, callback))
        return handle

    def advance(self, seconds: float) -> None:
        """Move virtual time forward, firing every callback that falls due."""
        target = self._now_ms + int(round(seconds * 1000))
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            self._now_ms = max(self._now_ms, due)
            if not handle.cancelled:
                callback()
        self._now_ms = target

    def pending(self) -> int:
        """Number of callbacks still waiting to fire."""
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)
