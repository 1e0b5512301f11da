"""
Countdown timer coordinator.

Derives the remaining contest time from an absolute end time kept in local
session state, reconciles pauses and admin duration edits, and fires the
expiry action exactly once.
"""

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Logger

from .interfaces import LocalState, TimerSnapshot
from .logging_config import get_logger
from .models import CompetitionState, Team
from .scheduling import Clock, Handle, Scheduler

MS_PER_MINUTE = 60_000


def format_remaining(ms: int | None) -> str | None:
    """Format milliseconds as mm:ss; None stays None."""
    if ms is None:
        return None
    total_seconds = max(0, ms) // 1000
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


class CountdownTimer:
    """
    Countdown for one contestant session.

    ``sync`` is called with every observed competition state. While running,
    the timer ticks once per ``tick_interval`` through the scheduler. While
    paused it neither ticks nor moves its end time. Tearing down an active
    timer saves the remaining time as a pause snapshot that the next
    activation resumes from.
    """

    def __init__(
        self,
        local_state: LocalState,
        scheduler: Scheduler,
        clock: Clock,
        on_expire: Callable[[], None],
        on_tick: Callable[[int | None], None] | None = None,
        tick_interval: float = 1.0,
    ):
        self.local_state: LocalState = local_state
        self.scheduler: Scheduler = scheduler
        self.clock: Clock = clock
        self.tick_interval: float = tick_interval
        self._on_expire: Callable[[], None] = on_expire
        self._on_tick: Callable[[int | None], None] | None = on_tick

        self._lock = threading.RLock()
        self._end_time: int | None = None
        self._remaining: int | None = None
        self._observed_duration: int | None = None
        self._active: bool = False
        self._running: bool = False
        self._paused: bool = False
        self._expired: bool = False
        self._handle: Handle | None = None

        self.logger: Logger = get_logger("timer")

    @property
    def remaining_ms(self) -> int | None:
        return self._remaining

    @property
    def formatted(self) -> str | None:
        return format_remaining(self._remaining)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def end_time(self) -> int | None:
        return self._end_time

    def sync(self, state: CompetitionState, team: Team) -> None:
        """
        Reconcile the timer with the latest competition state.

        Args:
            state: Latest competition state
            team: Latest team record
        """
        with self._lock:
            if not state.is_active or team.is_done:
                if self._active:
                    self.logger.info("Timer inactive: competition over for this team")
                self._stop_ticking()
                self._running = False
                self._active = False
                self._remaining = None
                self._paused = False
                inactive = True
            else:
                inactive = False
                self._active = True

        if inactive:
            self._publish(None)
            return

        with self._lock:
            if self._expired:
                return

            snapshot = self.local_state.load()
            self._apply_duration_change(state.timer, snapshot)
            shown, was_paused = self._remaining, self._paused
            self._paused = state.is_paused

            if state.is_paused:
                if self._running:
                    self._teardown_locked(snapshot)
                else:
                    snapshot.setdefault("time_left_on_pause", self._frozen_remaining(state.timer, snapshot))
                    self.local_state.save(snapshot)
                self._remaining = snapshot.get("time_left_on_pause", self._remaining)
            elif self._running:
                self.local_state.save(snapshot)
                return
            else:
                now = self.clock()
                if "time_left_on_pause" in snapshot:
                    remaining = snapshot.pop("time_left_on_pause")
                    end_time = now + max(0, remaining)
                    self.logger.info(f"Resuming timer from pause snapshot: {remaining}ms left")
                elif "end_time" in snapshot:
                    end_time = snapshot["end_time"]
                else:
                    end_time = now + state.timer * MS_PER_MINUTE
                    self.logger.info(f"Starting timer: {state.timer} minutes")

                snapshot["end_time"] = end_time
                self.local_state.save(snapshot)
                self._end_time = end_time
                self._running = True
                self._handle = self.scheduler.call_later(self.tick_interval, self._scheduled_tick)

        # Paused: the display freezes on the saved remaining time
        if not state.is_paused:
            self.tick()
        elif not was_paused or self._remaining != shown:
            self._publish(self._remaining)

    def _frozen_remaining(self, duration: int, snapshot: TimerSnapshot) -> int:
        """Remaining time to show for a session that opens while paused."""
        if "end_time" in snapshot:
            return max(0, snapshot["end_time"] - self.clock())
        return duration * MS_PER_MINUTE

    def _apply_duration_change(self, duration: int, snapshot: TimerSnapshot) -> None:
        """Shift the end time by exactly the change in configured duration."""
        observed = self._observed_duration
        if observed is None:
            observed = snapshot.get("observed_duration")

        if observed is not None and duration != observed:
            delta = (duration - observed) * MS_PER_MINUTE
            if self._running and self._end_time is not None:
                self._end_time += delta
                snapshot["end_time"] = self._end_time
            elif "time_left_on_pause" in snapshot:
                snapshot["time_left_on_pause"] = max(0, snapshot["time_left_on_pause"] + delta)
            elif "end_time" in snapshot:
                snapshot["end_time"] += delta
            self.logger.info(f"Contest duration changed {observed} -> {duration} minutes, shifted by {delta}ms")

        self._observed_duration = duration
        snapshot["observed_duration"] = duration

    def tick(self) -> int | None:
        """
        Recompute the remaining time and publish it.

        The first tick that reaches zero fires the expiry action and stops the
        timer; later ticks never fire it again.

        Returns:
            Remaining milliseconds, or None when the timer is inactive
        """
        with self._lock:
            if not self._running or self._end_time is None:
                return self._remaining

            remaining = max(0, self._end_time - self.clock())
            self._remaining = remaining
            fire = remaining == 0 and not self._expired
            if fire:
                self._expired = True
                self._running = False
                self._stop_ticking()

        self._publish(remaining)
        if fire:
            self.logger.warning("Contest time expired")
            self._on_expire()
        return remaining

    def _scheduled_tick(self) -> None:
        self.tick()
        with self._lock:
            if self._running:
                self._handle = self.scheduler.call_later(self.tick_interval, self._scheduled_tick)

    def teardown(self) -> None:
        """Stop ticking; an active, unexpired timer saves a pause snapshot."""
        with self._lock:
            self._teardown_locked(self.local_state.load())

    def _teardown_locked(self, snapshot: TimerSnapshot) -> None:
        was_running = self._running
        self._stop_ticking()
        self._running = False
        if was_running and self._active and not self._expired and self._end_time is not None:
            remaining = max(0, self._end_time - self.clock())
            self._remaining = remaining
            snapshot["time_left_on_pause"] = remaining
            self.logger.info(f"Timer torn down with {remaining}ms left")
        self.local_state.save(snapshot)

    def _stop_ticking(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _publish(self, remaining: int | None) -> None:
        if self._on_tick is not None:
            self._on_tick(remaining)
