"""
Abstract base classes defining the seams of the PyCompete core.

All interfaces are synchronous; concurrency lives in the scheduler and the
session that owns the components.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from typing_extensions import TypedDict

from .models import CompetitionState, Problem, RunOutcome, Submission, Team, TestResult


class TimerSnapshot(TypedDict, total=False):
    """Locally persisted countdown state (one session, one device)."""
    end_time: int  # absolute epoch ms
    time_left_on_pause: int  # ms remaining when last torn down
    observed_duration: int  # configured minutes when end_time was last adjusted


class Runner(ABC):
    """Interface for executing contestant code in a sandbox."""

    @abstractmethod
    def run(self, source_code: str, stdin_text: str) -> RunOutcome:
        """
        Execute source code with stdin redirected to stdin_text.

        Blocks until the run completes. Faults in the contestant code are
        reported through ``RunOutcome.runtime_error``, never raised.

        Args:
            source_code: Contestant program text
            stdin_text: Exact text to serve on stdin

        Returns:
            RunOutcome with everything written to stdout/stderr

        Raises:
            SandboxError: If the sandbox itself is unavailable or crashed
        """
        pass


class ContestStore(ABC):
    """
    Interface for the persistence and session service.

    The store is the only cross-session shared mutable state. Counter
    increments must be atomic at this boundary.
    """

    @abstractmethod
    def get_competition_state(self) -> CompetitionState:
        """Return the competition state, creating defaults if absent."""
        pass

    @abstractmethod
    def update_competition_state(self, state: CompetitionState) -> CompetitionState:
        """Replace the competition state."""
        pass

    @abstractmethod
    def toggle_pause(self) -> CompetitionState:
        """Flip ``is_paused``."""
        pass

    @abstractmethod
    def broadcast_announcement(self, message: str) -> CompetitionState:
        """Set the announcement with a fresh timestamp. Empty message clears it."""
        pass

    @abstractmethod
    def get_problems(self) -> list[Problem]:
        pass

    @abstractmethod
    def login_team(self, name: str) -> Team:
        """
        Find a team by case-insensitive name, creating it if absent.

        Raises:
            ValidationError: If the name is blank
        """
        pass

    @abstractmethod
    def get_team(self, team_id: str) -> Team:
        pass

    @abstractmethod
    def list_teams(self) -> list[Team]:
        pass

    @abstractmethod
    def submit_solution(
        self, team_id: str, problem_id: str, code: str, results: Sequence[TestResult]
    ) -> Submission:
        """
        Record a new submission and recompute the team's aggregate score.

        The aggregate is the sum over problems of the best submission score,
        never an increment of the old total. Callers re-fetch the team to
        observe the new score.
        """
        pass

    @abstractmethod
    def increment_tab_switch_violation(self, team_id: str) -> Team:
        """Atomically increment the tab-switch counter and return the team."""
        pass

    @abstractmethod
    def disqualify(self, team_id: str) -> Team:
        """Mark the team disqualified. Idempotent."""
        pass

    @abstractmethod
    def finish(self, team_id: str) -> Team:
        """Mark the team finished. Idempotent."""
        pass

    @abstractmethod
    def get_submissions_by_team(self, team_id: str) -> list[Submission]:
        """Return the team's submissions, newest first."""
        pass


class LocalState(ABC):
    """Interface for per-session state that survives a reload."""

    @abstractmethod
    def load(self) -> TimerSnapshot:
        """Load the saved snapshot (empty if nothing saved)."""
        pass

    @abstractmethod
    def save(self, snapshot: TimerSnapshot) -> None:
        """Replace the saved snapshot."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Forget everything (logout)."""
        pass
