"""
Tests for ViolationMonitor.

Focus on the escalation path: sticky terminal states and at-most-once
forced submission.
"""

import threading

from typing_extensions import override

from pycompete.exceptions import StoreError
from pycompete.models import CompetitionState, Team
from pycompete.monitor import (
    Alert,
    ContestOver,
    Disqualified,
    Escalating,
    EscalationScheduled,
    EventKind,
    Normal,
    Severity,
    ViolationMonitor,
    Warned,
)
from pycompete.scheduling import ManualScheduler
from pycompete.storage.memory_store import InMemoryContestStore


class ForcedSubmitSpy:
    """Counts forced submissions and disqualifies like the real session does."""

    def __init__(self, store: InMemoryContestStore, team_id: str = "team-1", fail: bool = False):
        self.store = store
        self.team_id = team_id
        self.fail = fail
        self.calls = 0

    def __call__(self) -> None:
        self.calls += 1
        if self.fail:
            raise RuntimeError("submission endpoint down")
        self.store.disqualify(self.team_id)


def make_monitor(
    store: InMemoryContestStore,
    scheduler: ManualScheduler,
    forced: ForcedSubmitSpy,
    notified: list | None = None,
    **policy: object,
) -> ViolationMonitor:
    return ViolationMonitor(
        team_id="team-1",
        store=store,
        policy=CompetitionState.defaults().with_changes(**policy),
        forced_submit=forced,
        scheduler=scheduler,
        notify=notified.append if notified is not None else None,
    )


class TestEscalation:
    """Tab switches drive the monitor toward disqualification."""

    def test_single_tab_switch_at_limit_one_disqualifies(
        self, store: InMemoryContestStore, scheduler: ManualScheduler
    ) -> None:
        """With limit 1, one tab switch should warn, escalate and disqualify once."""
        # Arrange
        forced = ForcedSubmitSpy(store)
        notified: list = []
        monitor = make_monitor(store, scheduler, forced, notified, tab_switch_violation_limit=1)

        # Act
        state, effects = monitor.on_event(EventKind.TAB_HIDDEN)
        calls_before_grace = forced.calls
        scheduler.advance(2.5)

        # Assert
        assert state == Escalating(1)
        assert effects[0].severity is Severity.CRITICAL
        assert "Tab switch limit reached (1/1)" in effects[0].message
        assert effects[1] == EscalationScheduled(2.5)
        assert calls_before_grace == 0
        assert forced.calls == 1
        assert monitor.transitions == [Normal(), Warned(1), Escalating(1), Disqualified()]
        assert notified == [ContestOver("disqualified")]
        assert store.get_team("team-1").is_disqualified

    def test_burst_of_tab_switches_forces_one_submission(
        self, store: InMemoryContestStore, scheduler: ManualScheduler
    ) -> None:
        """Events arriving while escalating should be ignored."""
        # Arrange
        forced = ForcedSubmitSpy(store)
        monitor = make_monitor(store, scheduler, forced, tab_switch_violation_limit=1)

        # Act
        for _ in range(5):
            monitor.on_event(EventKind.TAB_HIDDEN)
        scheduler.advance(10)
        monitor.on_event(EventKind.TAB_HIDDEN)
        scheduler.advance(10)

        # Assert
        assert forced.calls == 1
        assert store.get_team("team-1").tab_switch_violations == 1
        assert isinstance(monitor.state, Disqualified)

    def test_concurrent_burst_forces_one_submission(
        self, store: InMemoryContestStore, scheduler: ManualScheduler
    ) -> None:
        """Tab switches racing from several threads should escalate once."""
        # Arrange
        forced = ForcedSubmitSpy(store)
        monitor = make_monitor(store, scheduler, forced, tab_switch_violation_limit=2)
        barrier = threading.Barrier(6)

        def switch() -> None:
            barrier.wait()
            monitor.on_event(EventKind.TAB_HIDDEN)

        threads = [threading.Thread(target=switch) for _ in range(6)]

        # Act
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        scheduler.advance(2.5)

        # Assert
        assert forced.calls == 1
        assert sum(isinstance(s, Escalating) for s in monitor.transitions) == 1

    def test_below_limit_only_warns(self, store: InMemoryContestStore, scheduler: ManualScheduler) -> None:
        """Switches under the limit should warn with the running count."""
        # Arrange
        forced = ForcedSubmitSpy(store)
        monitor = make_monitor(store, scheduler, forced, tab_switch_violation_limit=3)

        # Act
        monitor.on_event(EventKind.TAB_HIDDEN)
        state, effects = monitor.on_event(EventKind.TAB_HIDDEN)

        # Assert
        assert state == Warned(2)
        assert effects == [
            Alert(
                "Switching tabs is a violation. You have switched tabs 2 time(s). Reaching the "
                "limit of 3 will result in automatic submission and disqualification.",
                Severity.WARNING,
            )
        ]
        assert scheduler.pending() == 0

    def test_auto_disqualify_off_never_escalates(
        self, store: InMemoryContestStore, scheduler: ManualScheduler
    ) -> None:
        """Without auto-disqualify, switches past the limit only warn."""
        # Arrange
        forced = ForcedSubmitSpy(store)
        monitor = make_monitor(
            store, scheduler, forced, tab_switch_violation_limit=1, auto_disqualify_on_tab_switch=False
        )

        # Act
        for _ in range(3):
            monitor.on_event(EventKind.TAB_HIDDEN)
        scheduler.advance(10)

        # Assert
        assert monitor.state == Warned(3)
        assert forced.calls == 0

    def test_failed_forced_submit_still_disqualifies(
        self, store: InMemoryContestStore, scheduler: ManualScheduler
    ) -> None:
        """A crash in the forced submission should not stop the terminal transition."""
        # Arrange
        forced = ForcedSubmitSpy(store, fail=True)
        notified: list = []
        monitor = make_monitor(store, scheduler, forced, notified)

        # Act
        monitor.on_event(EventKind.TAB_HIDDEN)
        scheduler.advance(2.5)

        # Assert
        assert forced.calls == 1
        assert isinstance(monitor.state, Disqualified)
        assert notified == [ContestOver("disqualified")]

    def test_policy_update_applies_to_later_events(
        self, store: InMemoryContestStore, scheduler: ManualScheduler
    ) -> None:
        """A freshly polled limit should be used for the next event."""
        # Arrange
        forced = ForcedSubmitSpy(store)
        monitor = make_monitor(store, scheduler, forced, tab_switch_violation_limit=5)
        monitor.on_event(EventKind.TAB_HIDDEN)

        # Act
        monitor.update_policy(CompetitionState.defaults().with_changes(tab_switch_violation_limit=2))
        state, _ = monitor.on_event(EventKind.TAB_HIDDEN)

        # Assert
        assert state == Escalating(2)


class TestAdvisoryEvents:
    """Clipboard and context-menu events are warnings only."""

    def test_copy_warns_without_counting(self, store: InMemoryContestStore, scheduler: ManualScheduler) -> None:
        """Copy should produce an advisory alert and leave the counter alone."""
        # Arrange
        forced = ForcedSubmitSpy(store)
        monitor = make_monitor(store, scheduler, forced)

        # Act
        state, effects = monitor.on_event(EventKind.COPY)

        # Assert
        assert state == Normal()
        assert effects == [Alert("A 'Copy' action was detected. This is a violation of the rules.", Severity.WARNING)]
        assert store.get_team("team-1").tab_switch_violations == 0

    def test_context_menu_label(self) -> None:
        assert EventKind.CONTEXT_MENU.label == "Context menu"
        assert EventKind.PASTE.label == "Paste"


class TestFailuresAndTeardown:
    """Store failures and closing the monitor."""

    def test_failed_increment_does_not_advance_state(self, scheduler: ManualScheduler, team: Team) -> None:
        """A store failure should surface an error alert and keep the local state."""
        # Arrange
        class DownStore(InMemoryContestStore):
            @override
            def increment_tab_switch_violation(self, team_id: str) -> Team:
                raise StoreError("connection refused")

        store = DownStore(teams=[team])
        forced = ForcedSubmitSpy(store)
        monitor = make_monitor(store, scheduler, forced)

        # Act
        state, effects = monitor.on_event(EventKind.TAB_HIDDEN)

        # Assert
        assert state == Normal()
        assert effects[0].severity is Severity.ERROR
        assert monitor.transitions == [Normal()]

    def test_close_cancels_pending_escalation(
        self, store: InMemoryContestStore, scheduler: ManualScheduler
    ) -> None:
        """Closing during the grace delay should prevent the forced submission."""
        # Arrange
        forced = ForcedSubmitSpy(store)
        monitor = make_monitor(store, scheduler, forced)
        monitor.on_event(EventKind.TAB_HIDDEN)

        # Act
        monitor.close()
        scheduler.advance(10)

        # Assert
        assert forced.calls == 0
        assert scheduler.pending() == 0
        assert monitor.on_event(EventKind.TAB_HIDDEN) == (Escalating(1), [])

    def test_should_attach(self, team: Team) -> None:
        """Monitoring requires anti-cheat on, an active contest and a competing team."""
        # Arrange
        state = CompetitionState.defaults()
        done = Team(id="t", name="Done", has_finished=True)

        # Assert
        assert ViolationMonitor.should_attach(state, team)
        assert not ViolationMonitor.should_attach(state.with_changes(use_anti_cheat=False), team)
        assert not ViolationMonitor.should_attach(state.with_changes(is_active=False), team)
        assert not ViolationMonitor.should_attach(state, done)
