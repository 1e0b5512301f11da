"""
Tests for CountdownTimer.

Focus on one-shot expiry, pause snapshots and admin duration edits.
"""

import pytest

from pycompete.models import CompetitionState, Team
from pycompete.scheduling import ManualScheduler
from pycompete.storage.local_state import MemoryLocalState
from pycompete.timer import CountdownTimer, format_remaining


class ExpirySpy:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> None:
        self.calls += 1


def make_timer(
    scheduler: ManualScheduler, local_state: MemoryLocalState | None = None
) -> tuple[CountdownTimer, ExpirySpy, list[int | None]]:
    expiry = ExpirySpy()
    ticks: list[int | None] = []
    timer = CountdownTimer(
        local_state=local_state or MemoryLocalState(),
        scheduler=scheduler,
        clock=scheduler.now,
        on_expire=expiry,
        on_tick=ticks.append,
    )
    return timer, expiry, ticks


def running(minutes: int) -> CompetitionState:
    return CompetitionState.defaults().with_changes(timer=minutes)


class TestCountdown:
    """Ticking and expiry."""

    def test_starts_from_configured_duration(self, scheduler: ManualScheduler, team: Team) -> None:
        """A fresh session should count down from the full duration."""
        # Arrange
        timer, _, ticks = make_timer(scheduler)

        # Act
        timer.sync(running(60), team)

        # Assert
        assert ticks == [3_600_000]
        assert timer.formatted == "60:00"
        assert timer.end_time == scheduler.now() + 3_600_000

    def test_ticks_decrease_and_expire_once(self, scheduler: ManualScheduler, team: Team) -> None:
        """Ticks should strictly decrease to zero and fire expiry exactly once."""
        # Arrange
        timer, expiry, ticks = make_timer(scheduler)
        timer.sync(running(1), team)

        # Act
        scheduler.advance(60)
        scheduler.advance(30)
        timer.tick()
        timer.sync(running(1), team)

        # Assert
        assert ticks[-1] == 0
        assert ticks.count(0) == 1
        assert all(a > b for a, b in zip(ticks, ticks[1:]))
        assert len(ticks) == 61
        assert expiry.calls == 1
        assert timer.expired
        assert scheduler.pending() == 0

    def test_reload_keeps_end_time(self, scheduler: ManualScheduler, team: Team) -> None:
        """A new timer over the same local state should continue, not restart."""
        # Arrange
        local_state = MemoryLocalState()
        first, _, _ = make_timer(scheduler, local_state)
        first.sync(running(60), team)
        scheduler.advance(30)

        # Act
        second, _, ticks = make_timer(scheduler, local_state)
        second.sync(running(60), team)

        # Assert
        assert ticks == [3_600_000 - 30_000]

    def test_inactive_competition_publishes_none(self, scheduler: ManualScheduler, team: Team) -> None:
        """With no live contest the timer shows nothing and does not tick."""
        # Arrange
        timer, expiry, ticks = make_timer(scheduler)
        timer.sync(running(60), team)

        # Act
        timer.sync(running(60).with_changes(is_active=False), team)
        scheduler.advance(120)

        # Assert
        assert ticks[-1] is None
        assert timer.remaining_ms is None
        assert expiry.calls == 0
        assert scheduler.pending() == 0

    def test_finished_team_publishes_none(self, scheduler: ManualScheduler) -> None:
        """A team that already finished should see no timer."""
        # Arrange
        timer, _, ticks = make_timer(scheduler)
        done = Team(id="t", name="Done", has_finished=True)

        # Act
        timer.sync(running(60), done)

        # Assert
        assert ticks == [None]
        assert not timer.running


class TestPauseAndDurationEdits:
    """Pause snapshots and admin duration changes."""

    def test_pause_snapshot_resumes_exactly(self, scheduler: ManualScheduler, team: Team) -> None:
        """Pausing with 42s left should resume with 42s left, not a full reset."""
        # Arrange
        local_state = MemoryLocalState()
        timer, _, ticks = make_timer(scheduler, local_state)
        timer.sync(running(1), team)
        scheduler.advance(18)

        # Act
        timer.sync(running(1).with_changes(is_paused=True), team)
        snapshot = local_state.load()
        scheduler.advance(300)
        ticks_while_paused = len(ticks)
        timer.sync(running(1), team)

        # Assert
        assert snapshot["time_left_on_pause"] == 42_000
        assert ticks_while_paused == 20
        assert ticks[-1] == 42_000
        assert "time_left_on_pause" not in local_state.load()
        assert timer.end_time == scheduler.now() + 42_000

    def test_opening_while_paused_shows_full_duration(self, scheduler: ManualScheduler, team: Team) -> None:
        """A session that opens during a pause should display the frozen time, not nothing."""
        # Arrange
        local_state = MemoryLocalState()
        timer, _, ticks = make_timer(scheduler, local_state)

        # Act
        timer.sync(running(60).with_changes(is_paused=True), team)
        scheduler.advance(120)
        timer.sync(running(60).with_changes(is_paused=True), team)

        # Assert
        assert ticks == [3_600_000]
        assert timer.formatted == "60:00"
        assert not timer.running
        assert scheduler.pending() == 0

    def test_resume_after_opening_paused(self, scheduler: ManualScheduler, team: Team) -> None:
        """Resuming should start from the frozen value regardless of time spent paused."""
        # Arrange
        timer, _, ticks = make_timer(scheduler)
        timer.sync(running(60).with_changes(is_paused=True), team)
        scheduler.advance(300)

        # Act
        timer.sync(running(60), team)

        # Assert
        assert ticks == [3_600_000, 3_600_000]
        assert timer.running
        assert timer.end_time == scheduler.now() + 3_600_000

    def test_reload_during_pause_freezes_saved_end_time(self, scheduler: ManualScheduler, team: Team) -> None:
        """A reload that finds only an end time should freeze what was left when paused."""
        # Arrange
        local_state = MemoryLocalState()
        first, _, _ = make_timer(scheduler, local_state)
        first.sync(running(10), team)
        scheduler.advance(60)
        second, _, ticks = make_timer(scheduler, local_state)

        # Act
        second.sync(running(10).with_changes(is_paused=True), team)

        # Assert
        assert ticks == [540_000]
        assert local_state.load()["time_left_on_pause"] == 540_000

    def test_teardown_saves_snapshot(self, scheduler: ManualScheduler, team: Team) -> None:
        """Navigating away mid-contest should save the remaining time."""
        # Arrange
        local_state = MemoryLocalState()
        timer, _, _ = make_timer(scheduler, local_state)
        timer.sync(running(10), team)
        scheduler.advance(60)

        # Act
        timer.teardown()

        # Assert
        assert local_state.load()["time_left_on_pause"] == 540_000
        assert scheduler.pending() == 0

    def test_duration_increase_applies_delta(self, scheduler: ManualScheduler, team: Team) -> None:
        """60 -> 90 minutes after 10 minutes should leave 80 minutes, not 90."""
        # Arrange
        timer, _, _ = make_timer(scheduler)
        timer.sync(running(60), team)
        scheduler.advance(600)
        before = timer.tick()

        # Act
        timer.sync(running(90), team)
        after = timer.tick()

        # Assert
        assert before == 50 * 60_000
        assert after == 80 * 60_000

    def test_duration_edit_while_paused_shifts_snapshot(self, scheduler: ManualScheduler, team: Team) -> None:
        """A duration change during a pause should carry over to the resumed timer."""
        # Arrange
        timer, _, ticks = make_timer(scheduler)
        timer.sync(running(10), team)
        scheduler.advance(60)
        timer.sync(running(10).with_changes(is_paused=True), team)

        # Act
        timer.sync(running(15).with_changes(is_paused=True), team)
        timer.sync(running(15), team)

        # Assert
        assert ticks[-1] == 540_000 + 5 * 60_000

    def test_unchanged_duration_is_not_reapplied(self, scheduler: ManualScheduler, team: Team) -> None:
        """Repeated polls with the same duration should not shift the end time."""
        # Arrange
        timer, _, _ = make_timer(scheduler)
        timer.sync(running(60), team)
        end_time = timer.end_time

        # Act
        for _ in range(5):
            timer.sync(running(60), team)

        # Assert
        assert timer.end_time == end_time


class TestFormatRemaining:
    @pytest.mark.parametrize(
        ("ms", "expected"),
        [
            (None, None),
            (0, "00:00"),
            (42_000, "00:42"),
            (59_999, "00:59"),
            (3_600_000, "60:00"),
            (-5, "00:00"),
        ],
    )
    def test_format(self, ms: int | None, expected: str | None) -> None:
        assert format_remaining(ms) == expected
