"""
Violation monitor for proctored sessions.

A small state machine fed by one entry point, ``on_event``. It is independent
of how browser events are delivered: the host translates its listeners into
EventKind values and renders the returned effects.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Logger

from .exceptions import StoreError
from .interfaces import ContestStore
from .logging_config import get_logger
from .models import CompetitionState, Team
from .scheduling import Handle, Scheduler

DEFAULT_GRACE_DELAY = 2.5  # seconds for the terminal warning to render


class EventKind(str, Enum):
    """Monitored signals from the contestant's client."""

    COPY = "copy"
    PASTE = "paste"
    CUT = "cut"
    CONTEXT_MENU = "contextmenu"
    TAB_HIDDEN = "tab_hidden"

    @property
    def label(self) -> str:
        return "Context menu" if self is EventKind.CONTEXT_MENU else self.value.capitalize()


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# --- States ---


@dataclass(frozen=True)
class Normal:
    pass


@dataclass(frozen=True)
class Warned:
    count: int


@dataclass(frozen=True)
class Escalating:
    """Forced submission is scheduled or in flight."""
    count: int


@dataclass(frozen=True)
class Disqualified:
    pass


MonitorState = Normal | Warned | Escalating | Disqualified

# --- Effects ---


@dataclass(frozen=True)
class Alert:
    """A user-facing modal message."""
    message: str
    severity: Severity


@dataclass(frozen=True)
class EscalationScheduled:
    delay: float


@dataclass(frozen=True)
class ContestOver:
    """The session must move to the terminal view."""
    reason: str


Effect = Alert | EscalationScheduled | ContestOver


def _is_terminal(state: MonitorState) -> bool:
    return isinstance(state, (Escalating, Disqualified))


class ViolationMonitor:
    """
    Tracks anti-cheat violations for one team session.

    Only tab switches count toward disqualification; copy, paste, cut and
    context-menu attempts produce an advisory warning. The violation counter
    lives in the store, never locally. Escalating and Disqualified are sticky,
    so the forced submission runs at most once however many events arrive.
    """

    def __init__(
        self,
        team_id: str,
        store: ContestStore,
        policy: CompetitionState,
        forced_submit: Callable[[], None],
        scheduler: Scheduler,
        grace_delay: float = DEFAULT_GRACE_DELAY,
        notify: Callable[[Effect], None] | None = None,
    ):
        """
        Initialize violation monitor.

        Args:
            team_id: Team being monitored
            store: Contest store holding the authoritative counter
            policy: Competition state supplying limits and switches
            forced_submit: Submits the current code and disqualifies the team
            scheduler: Runs the forced submission after the grace delay
            grace_delay: Seconds between the terminal warning and the forced submission
            notify: Receives effects produced outside on_event (escalation outcome)
        """
        self.team_id: str = team_id
        self.store: ContestStore = store
        self.scheduler: Scheduler = scheduler
        self.grace_delay: float = grace_delay
        self._policy: CompetitionState = policy
        self._forced_submit: Callable[[], None] = forced_submit
        self._notify: Callable[[Effect], None] | None = notify

        self._lock = threading.Lock()
        self._state: MonitorState = Normal()
        self._pending: Handle | None = None
        self._closed: bool = False
        self.transitions: list[MonitorState] = [self._state]

        self.logger: Logger = get_logger("monitor")

    @staticmethod
    def should_attach(state: CompetitionState, team: Team) -> bool:
        """Monitor only while anti-cheat is on, the contest is live and the team is still competing."""
        return state.use_anti_cheat and state.is_active and not team.is_done

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def update_policy(self, policy: CompetitionState) -> None:
        """Adopt freshly polled limits; does not re-evaluate past events."""
        with self._lock:
            self._policy = policy

    def on_event(self, kind: EventKind) -> tuple[MonitorState, list[Effect]]:
        """
        Feed one monitored event into the state machine.

        Args:
            kind: The event observed on the client

        Returns:
            The state after the event and the effects for the host to render
        """
        with self._lock:
            if self._closed or _is_terminal(self._state):
                return self._state, []

        if kind is not EventKind.TAB_HIDDEN:
            self.logger.warning(f"Anti-cheat violation: {kind.label} by team {self.team_id}")
            return self._state, [
                Alert(f"A '{kind.label}' action was detected. This is a violation of the rules.", Severity.WARNING)
            ]

        self.logger.warning(f"Anti-cheat violation: Tab Switch by team {self.team_id}")
        try:
            team = self.store.increment_tab_switch_violation(self.team_id)
        except StoreError as e:
            self.logger.error(f"Failed to report tab switch violation for team {self.team_id}: {e}")
            return self._state, [
                Alert("Could not report the tab switch to the server. Please stay on this tab.", Severity.ERROR)
            ]

        with self._lock:
            # Another event may have escalated while the increment was in flight
            if self._closed or _is_terminal(self._state):
                return self._state, []

            count = team.tab_switch_violations
            limit = self._policy.tab_switch_violation_limit
            self._transition(Warned(count))

            if self._policy.auto_disqualify_on_tab_switch and count >= limit:
                self._transition(Escalating(count))
                self._pending = self.scheduler.call_later(self.grace_delay, self._escalate)
                self.logger.warning(
                    f"Team {self.team_id} reached the tab switch limit ({count}/{limit}), escalating"
                )
                return self._state, [
                    Alert(
                        f"Tab switch limit reached ({count}/{limit}). Your final code is being submitted "
                        "automatically, and your team will be disqualified.",
                        Severity.CRITICAL,
                    ),
                    EscalationScheduled(self.grace_delay),
                ]

            return self._state, [
                Alert(
                    f"Switching tabs is a violation. You have switched tabs {count} time(s). Reaching the "
                    f"limit of {limit} will result in automatic submission and disqualification.",
                    Severity.WARNING,
                )
            ]

    def _transition(self, state: MonitorState) -> None:
        self._state = state
        self.transitions.append(state)

    def _escalate(self) -> None:
        """Run the forced submission once the grace delay has passed."""
        with self._lock:
            if self._closed or not isinstance(self._state, Escalating):
                return
            self._pending = None

        try:
            self._forced_submit()
        except Exception:
            # The state goes terminal even if the submission failed
            self.logger.exception(f"Forced submission failed for team {self.team_id}")

        with self._lock:
            self._transition(Disqualified())
        self.logger.warning(f"Team {self.team_id} disqualified by the violation monitor")

        if self._notify is not None:
            self._notify(ContestOver("disqualified"))

    def close(self) -> None:
        """Detach: cancel any pending escalation and ignore further events."""
        with self._lock:
            self._closed = True
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
        self.logger.debug(f"Violation monitor for team {self.team_id} closed")
