"""
Shared fixtures: a virtual-time scheduler, a contest store seeded with one
problem and one team, and a scripted runner.
"""

from collections.abc import Callable

import pytest
from typing_extensions import override

from pycompete.exceptions import SandboxError
from pycompete.interfaces import Runner
from pycompete.models import CompetitionState, Problem, RunOutcome, Team, TestCase
from pycompete.scheduling import ManualScheduler
from pycompete.storage.memory_store import InMemoryContestStore

ADD_SOURCE = "a, b = map(int, input().split())\nprint(a + b)\n"
START_MS = 1_700_000_000_000


class ScriptedRunner(Runner):
    """Runner whose behavior is a plain function of (source, stdin)."""

    def __init__(self, behavior: Callable[[str, str], RunOutcome]):
        self.behavior = behavior
        self.calls: list[tuple[str, str]] = []

    @override
    def run(self, source_code: str, stdin_text: str) -> RunOutcome:
        self.calls.append((source_code, stdin_text))
        return self.behavior(source_code, stdin_text)


def adder(source_code: str, stdin_text: str) -> RunOutcome:
    """Pretends to run ADD_SOURCE: prints the sum of the two input numbers."""
    a, b = map(int, stdin_text.split())
    return RunOutcome(captured_output=f"{a + b}\n")


def failing_sandbox(source_code: str, stdin_text: str) -> RunOutcome:
    raise SandboxError("interpreter crashed")


def make_problem(problem_id: str = "sum") -> Problem:
    return Problem(
        id=problem_id,
        title="Sum of Two",
        initial_code="# read two integers\n",
        visible_cases=(TestCase(1, "2 3", "5"),),
        hidden_cases=(TestCase(2, "4 4", "9"),),
    )


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler(start_ms=START_MS)


@pytest.fixture
def team() -> Team:
    return Team(id="team-1", name="Lambda", members=["Lambda"])


@pytest.fixture
def store(scheduler: ManualScheduler, team: Team) -> InMemoryContestStore:
    return InMemoryContestStore(
        problems=[make_problem()],
        teams=[team],
        competition_state=CompetitionState.defaults(),
        clock=scheduler.now,
    )


@pytest.fixture
def adder_runner() -> ScriptedRunner:
    return ScriptedRunner(adder)
