"""
Contest session for one logged-in team.

Owns the judge, the violation monitor and the countdown timer for the
session's lifetime (created at login, closed at logout), and keeps the
last-known competition and team state in sync with the store by polling.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from typing_extensions import assert_never

if TYPE_CHECKING:
    from loguru import Logger

from .exceptions import ConfigurationError, StoreError, SubmissionRefusedError, ValidationError
from .interfaces import ContestStore, LocalState
from .judge import NOT_RUN_MARKER, Judge, Verdict
from .leaderboard import public_standings
from .logging_config import get_logger
from .models import AdminUser, CompetitionState, Problem, Submission, Team, TeamUser, User
from .monitor import (
    DEFAULT_GRACE_DELAY,
    Alert,
    ContestOver,
    Effect,
    Escalating,
    EventKind,
    Severity,
    ViolationMonitor,
)
from .runners.subprocess_runner import SubprocessRunner
from .scheduling import Clock, Handle, Scheduler, ThreadingScheduler, system_clock
from .storage.local_state import JSONFileLocalState, MemoryLocalState
from .timer import CountdownTimer, format_remaining

DEFAULT_POLL_INTERVAL = 7.0  # seconds of accepted staleness


@dataclass
class SessionConfig:
    """Configuration for a contest session."""

    grace_delay: float = DEFAULT_GRACE_DELAY  # seconds before the forced submission
    poll_interval: float = DEFAULT_POLL_INTERVAL
    tick_interval: float = 1.0
    runner_timeout: float | None = None  # None: the runner never kills contestant code
    data_dir: str | None = None  # local timer state; None keeps it in memory

    def __post_init__(self):
        """Validate configuration."""
        if self.grace_delay < 0:
            raise ValueError(f"grace_delay cannot be negative, got {self.grace_delay}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {self.tick_interval}")
        if self.runner_timeout is not None and self.runner_timeout <= 0:
            raise ValueError(f"runner_timeout must be positive, got {self.runner_timeout}")


@dataclass(frozen=True)
class SubmitOutcome:
    """Result of a submit action."""

    verdict: Verdict
    submission: Submission | None = None
    team: Team | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        if self.error is not None:
            return self.error
        return (
            f"Submission successful! You passed {self.verdict.score} out of "
            f"{self.verdict.total} test cases."
        )


@dataclass(frozen=True)
class FinishCheck:
    """Result of asking to finish the contest early."""

    all_submitted: bool
    finished: bool
    team: Team | None = None
    error: str | None = None


class ContestSession:
    """
    Explicit session context for one contestant.

    Replaces ambient global state: the current user, the local timer
    snapshot and the per-session components all hang off this object and
    go away with ``close()``.
    """

    def __init__(
        self,
        user: User,
        store: ContestStore,
        judge: Judge,
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
        local_state: LocalState | None = None,
        config: SessionConfig | None = None,
        on_alert: Callable[[Alert], None] | None = None,
        on_tick: Callable[[str | None], None] | None = None,
        on_contest_over: Callable[[str], None] | None = None,
    ):
        """
        Initialize contest session.

        Args:
            user: The logged-in user; must be a team
            store: Contest store
            judge: Judge used for run and submit actions
            scheduler: Drives polling, ticks and escalation (default: threads)
            clock: Epoch-millisecond clock (default: system clock)
            local_state: Timer persistence (default: from config.data_dir)
            config: Session configuration
            on_alert: Receives user-facing modal messages
            on_tick: Receives the remaining time as mm:ss, or None
            on_contest_over: Receives the reason the contest ended for this team
        """
        if isinstance(user, TeamUser):
            team = user.team
        elif isinstance(user, AdminUser):
            raise ConfigurationError("Admin users do not get a contest session; use AdminConsole")
        else:
            assert_never(user)

        self.user: TeamUser = user
        self.store: ContestStore = store
        self.judge: Judge = judge
        self.config: SessionConfig = config or SessionConfig()
        self.scheduler: Scheduler = scheduler or ThreadingScheduler()
        self.clock: Clock = clock or system_clock
        self.local_state: LocalState = local_state or self._default_local_state(team.id)

        self._on_alert = on_alert
        self._on_tick = on_tick
        self._on_contest_over = on_contest_over

        self._lock = threading.Lock()
        self._team: Team = team
        self._state: CompetitionState | None = None
        self._problems: list[Problem] = []
        self._drafts: dict[str, str] = {}
        self.current_problem_id: str | None = None
        self._monitor: ViolationMonitor | None = None
        self._poll_handle: Handle | None = None
        self._over: bool = False
        self._closed: bool = False

        self.timer: CountdownTimer = CountdownTimer(
            local_state=self.local_state,
            scheduler=self.scheduler,
            clock=self.clock,
            on_expire=self._on_time_expired,
            on_tick=self._publish_tick,
            tick_interval=self.config.tick_interval,
        )

        self.logger: Logger = get_logger("session")

    @classmethod
    def open(
        cls,
        user: User,
        store: ContestStore,
        judge: Judge | None = None,
        config: SessionConfig | None = None,
        **kwargs,
    ) -> "ContestSession":
        """
        Create a session at login: load problems, take the first state reading
        and attach the monitor and timer.
        """
        config = config or SessionConfig()
        if judge is None:
            judge = Judge(SubprocessRunner(timeout=config.runner_timeout))

        session = cls(user, store, judge, config=config, **kwargs)
        session.load_problems()
        session.refresh()
        session.logger.info(f"Session opened for team {session.team.name!r}")
        return session

    def _default_local_state(self, team_id: str) -> LocalState:
        if self.config.data_dir is None:
            return MemoryLocalState()
        return JSONFileLocalState(Path(self.config.data_dir) / f"session_{team_id}.json")

    # --- Observed state ---

    @property
    def team(self) -> Team:
        return self._team

    @property
    def competition_state(self) -> CompetitionState | None:
        return self._state

    @property
    def problems(self) -> list[Problem]:
        return list(self._problems)

    @property
    def monitor(self) -> ViolationMonitor | None:
        return self._monitor

    @property
    def is_upsolving(self) -> bool:
        """After the competition ends, practice continues but submissions stop."""
        return self._state is not None and not self._state.is_active

    @property
    def is_over(self) -> bool:
        return self._over or self._team.is_done

    def load_problems(self) -> list[Problem]:
        try:
            self._problems = self.store.get_problems()
        except StoreError as e:
            self.logger.warning(f"Failed to load problems, keeping {len(self._problems)} known: {e}")
        return self.problems

    def leaderboard(self) -> list[tuple[int, Team]]:
        """Finished, non-disqualified teams in rank order."""
        return public_standings(self.store.list_teams())

    def problem(self, problem_id: str) -> Problem:
        for problem in self._problems:
            if problem.id == problem_id:
                return problem
        raise ValidationError(f"Unknown problem: {problem_id}")

    def set_draft(self, problem_id: str, code: str) -> None:
        """Remember the editor contents; forced submission uses the current draft."""
        self._drafts[problem_id] = code
        self.current_problem_id = problem_id

    def draft(self, problem_id: str) -> str:
        """Current draft, falling back to the problem's initial code."""
        if problem_id in self._drafts:
            return self._drafts[problem_id]
        return self.problem(problem_id).initial_code

    def reset_draft(self, problem_id: str) -> str:
        self._drafts.pop(problem_id, None)
        return self.problem(problem_id).initial_code

    # --- Polling ---

    def refresh(self) -> bool:
        """
        Poll competition and team state, then reconcile monitor and timer.

        A failed read is logged and the session keeps its last-known state.

        Returns:
            True if fresh state was applied
        """
        if self._closed:
            return False
        try:
            state = self.store.get_competition_state()
            team = self.store.get_team(self._team.id)
        except StoreError as e:
            self.logger.warning(f"Failed to poll competition state: {e}")
            return False

        with self._lock:
            self._state = state
            self._team = team
        self._reconcile()
        return True

    def start_polling(self) -> None:
        """Refresh every poll_interval seconds until the session closes."""
        def poll() -> None:
            if self._closed:
                return
            try:
                self.refresh()
            finally:
                if not self._closed:
                    self._poll_handle = self.scheduler.call_later(self.config.poll_interval, poll)

        self._poll_handle = self.scheduler.call_later(self.config.poll_interval, poll)

    def _reconcile(self) -> None:
        state = self._state
        if state is None or self._closed:
            return

        should_attach = not self._over and ViolationMonitor.should_attach(state, self._team)
        if should_attach and self._monitor is None:
            self._monitor = ViolationMonitor(
                team_id=self._team.id,
                store=self.store,
                policy=state,
                forced_submit=self.forced_submit,
                scheduler=self.scheduler,
                grace_delay=self.config.grace_delay,
                notify=self._handle_effect,
            )
            self.logger.info(f"Violation monitor attached for team {self._team.id}")
        elif self._monitor is not None and not should_attach:
            if isinstance(self._monitor.state, Escalating):
                # Let the scheduled escalation finish; it ends the contest itself
                self._monitor.update_policy(state)
            else:
                self._detach_monitor()
        elif self._monitor is not None:
            self._monitor.update_policy(state)

        self.timer.sync(state, self._team)
        if self._team.is_done and not self._over:
            reason = "disqualified" if self._team.is_disqualified else "finished"
            self._end_contest(reason)

    def _detach_monitor(self) -> None:
        if self._monitor is not None:
            self._monitor.close()
            self._monitor = None
            self.logger.info(f"Violation monitor detached for team {self._team.id}")

    # --- Contestant actions ---

    def run_tests(self, problem_id: str, code: str) -> Verdict:
        """Run visible cases only. Never records anything."""
        problem = self.problem(problem_id)
        self.set_draft(problem_id, code)
        return self.judge.run_visible(code, problem.visible_cases)

    def submit(self, problem_id: str, code: str) -> SubmitOutcome:
        """
        Judge against every case and record a new submission.

        Raises:
            SubmissionRefusedError: During upsolving or once the team is done
        """
        if self.is_upsolving:
            raise SubmissionRefusedError("Submissions are disabled after the competition.")
        if self.is_over:
            raise SubmissionRefusedError("The contest is over for this team.")

        problem = self.problem(problem_id)
        self.set_draft(problem_id, code)
        verdict = self.judge.judge(code, problem.visible_cases, problem.hidden_cases)

        if verdict.degraded:
            message = f"{NOT_RUN_MARKER}. Please try again."
            self._alert(Alert(message, Severity.ERROR))
            return SubmitOutcome(verdict=verdict, error=message)

        return self._record(problem, code, verdict)

    def _record(self, problem: Problem, code: str, verdict: Verdict) -> SubmitOutcome:
        try:
            submission = self.store.submit_solution(self._team.id, problem.id, code, verdict.results)
        except StoreError as e:
            self.logger.error(f"Failed to record submission for {problem.id}: {e}")
            message = "Your submission could not be saved. Please try again."
            self._alert(Alert(message, Severity.ERROR))
            return SubmitOutcome(verdict=verdict, error=message)

        # The store recomputed the aggregate score; observe it
        team = self._refetch_team()
        return SubmitOutcome(verdict=verdict, submission=submission, team=team)

    def _refetch_team(self) -> Team:
        try:
            team = self.store.get_team(self._team.id)
        except StoreError as e:
            self.logger.warning(f"Failed to refresh team after submission: {e}")
            return self._team
        with self._lock:
            self._team = team
        return team

    def forced_submit(self) -> None:
        """
        Submit the current draft regardless of score, then disqualify.

        Disqualification is attempted even if judging or recording fails.
        """
        problem_id = self.current_problem_id
        try:
            if problem_id is not None:
                problem = self.problem(problem_id)
                code = self.draft(problem_id)
                verdict = self.judge.judge(code, problem.visible_cases, problem.hidden_cases)
                self._record(problem, code, verdict)
            else:
                self.logger.warning("No problem open at forced submission; disqualifying without a submission")
        finally:
            try:
                team = self.store.disqualify(self._team.id)
                with self._lock:
                    self._team = team
            except StoreError as e:
                self.logger.error(f"Failed to disqualify team {self._team.id}: {e}")
                self._alert(Alert("Could not reach the server to record the disqualification.", Severity.ERROR))

    def finish_contest(self, confirm: bool = False) -> FinishCheck:
        """
        Finish the contest early.

        Unless confirm is set, finishing is refused while some problem has no
        submission. If that check itself fails, finishing is allowed.
        """
        try:
            problem_ids = {p.id for p in self.store.get_problems()}
            submitted = {s.problem_id for s in self.store.get_submissions_by_team(self._team.id)}
            all_submitted = problem_ids <= submitted
        except StoreError as e:
            self.logger.warning(f"Error checking submissions before finishing contest: {e}")
            all_submitted = True

        if not all_submitted and not confirm:
            return FinishCheck(all_submitted=False, finished=False, team=self._team)

        try:
            team = self.store.finish(self._team.id)
        except StoreError as e:
            self.logger.error(f"Could not finish the contest: {e}")
            return FinishCheck(all_submitted=all_submitted, finished=False, team=self._team, error=str(e))

        with self._lock:
            self._team = team
        self._end_contest("finished")
        return FinishCheck(all_submitted=all_submitted, finished=True, team=team)

    def dispatch(self, kind: EventKind) -> list[Effect]:
        """Feed a client event to the violation monitor, if attached."""
        monitor = self._monitor
        if monitor is None or self._closed:
            return []
        _, effects = monitor.on_event(kind)
        for effect in effects:
            self._handle_effect(effect)
        return effects

    # --- Terminal transitions ---

    def _on_time_expired(self) -> None:
        try:
            team = self.store.finish(self._team.id)
            with self._lock:
                self._team = team
        except StoreError as e:
            self.logger.error(f"Failed to mark team {self._team.id} finished at time expiry: {e}")
        self._end_contest("time_expired")

    def _handle_effect(self, effect: Effect) -> None:
        if isinstance(effect, Alert):
            self._alert(effect)
        elif isinstance(effect, ContestOver):
            self._end_contest(effect.reason)

    def _end_contest(self, reason: str) -> None:
        """Move to the terminal view exactly once."""
        with self._lock:
            if self._over:
                return
            self._over = True

        self.logger.info(f"Contest over for team {self._team.id}: {reason}")
        self._detach_monitor()
        self.timer.teardown()
        if self._on_contest_over is not None:
            self._on_contest_over(reason)

    def _alert(self, alert: Alert) -> None:
        if self._on_alert is not None:
            self._on_alert(alert)

    def _publish_tick(self, remaining: int | None) -> None:
        if self._on_tick is not None:
            self._on_tick(format_remaining(remaining))

    def close(self, logout: bool = True) -> None:
        """
        Tear down every component so nothing fires into a dead session.

        Args:
            logout: Also forget the local timer state
        """
        if self._closed:
            return
        self._closed = True
        if self._poll_handle is not None:
            self._poll_handle.cancel()
            self._poll_handle = None
        self._detach_monitor()
        self.timer.teardown()
        if logout:
            self.local_state.clear()
        self.logger.info(f"Session closed for team {self._team.id}")
