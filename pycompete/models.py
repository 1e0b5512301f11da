"""
Core dataclasses for the PyCompete judging core.

Defines test cases, results, submissions, teams, competition state and the
user variant, with validation.
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum

from .exceptions import ValidationError


def now_ms() -> int:
    """Wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


class Partition(str, Enum):
    """Which subset of a problem's test cases a case belongs to."""

    VISIBLE = "visible"
    HIDDEN = "hidden"


@dataclass(frozen=True)
class TestCase:
    """One stdin/expected-output pair of a problem."""

    __test__ = False  # not a pytest class

    id: int
    input: str
    expected: str


@dataclass(frozen=True)
class TestResult:
    """Outcome of running one test case. Produced fresh for every run."""

    __test__ = False

    case_id: int
    partition: Partition
    input: str
    expected: str
    actual: str
    passed: bool


@dataclass(frozen=True)
class Problem:
    """A problem as served by the store. Read-only to the core."""

    id: str
    title: str
    description: str = ""
    initial_code: str = ""
    input_format: str = ""
    output_format: str = ""
    constraints: tuple[str, ...] = ()
    hint: str | None = None
    solution: str | None = None
    show_sample_cases: bool = True
    visible_cases: tuple[TestCase, ...] = ()
    hidden_cases: tuple[TestCase, ...] = ()

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("problem id cannot be empty")


@dataclass(frozen=True)
class Submission:
    """
    A recorded submit action.

    Immutable: a resubmission creates a new Submission rather than editing
    an old one. ``score`` is the number of passed results.
    """

    id: str
    team_id: str
    problem_id: str
    code: str
    results: tuple[TestResult, ...]
    score: int
    timestamp: int
    team_name: str = ""
    problem_title: str = ""

    def __post_init__(self) -> None:
        if not self.team_id:
            raise ValidationError("team_id cannot be empty")
        if not self.problem_id:
            raise ValidationError("problem_id cannot be empty")
        if self.score < 0:
            raise ValidationError(f"score cannot be negative, got {self.score}")


@dataclass
class Team:
    """Mutable team aggregate. The store owns the authoritative copy."""

    id: str
    name: str
    members: list[str] = field(default_factory=list)
    score: int = 0
    violations: int = 0
    tab_switch_violations: int = 0
    is_disqualified: bool = False
    has_finished: bool = False
    last_submission_timestamp: int | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("team id cannot be empty")

    @property
    def is_done(self) -> bool:
        """True once the contest is over for this team."""
        return self.has_finished or self.is_disqualified


@dataclass(frozen=True)
class Announcement:
    message: str = ""
    timestamp: int = 0


@dataclass(frozen=True)
class CompetitionState:
    """
    Process-wide competition settings, mutated only by admin actions.

    ``is_paused`` is only meaningful while ``is_active``.
    """

    is_active: bool = False
    is_paused: bool = False
    timer: int = 60  # minutes
    violation_limit: int = 3
    tab_switch_violation_limit: int = 1
    auto_disqualify_on_tab_switch: bool = True
    allow_hints: bool = True
    use_anti_cheat: bool = True
    announcement: Announcement = field(default_factory=Announcement)

    def __post_init__(self) -> None:
        if self.timer < 0:
            raise ValidationError(f"timer cannot be negative, got {self.timer}")
        if self.tab_switch_violation_limit < 0:
            raise ValidationError("tab_switch_violation_limit cannot be negative")
        if self.violation_limit < 0:
            raise ValidationError("violation_limit cannot be negative")

    @classmethod
    def defaults(cls) -> "CompetitionState":
        """State created when the store has none yet (active, 60 minutes)."""
        return cls(is_active=True)

    @property
    def is_running(self) -> bool:
        return self.is_active and not self.is_paused

    def with_changes(self, **changes: object) -> "CompetitionState":
        return replace(self, **changes)  # pyright: ignore[reportArgumentType]


@dataclass(frozen=True)
class AdminUser:
    """The administrator login."""

    name: str = "Admin"


@dataclass(frozen=True)
class TeamUser:
    """A contestant login wrapping the team record seen at login."""

    team: Team


User = AdminUser | TeamUser


@dataclass(frozen=True)
class RunOutcome:
    """What one sandboxed run produced."""

    captured_output: str
    runtime_error: bool = False
