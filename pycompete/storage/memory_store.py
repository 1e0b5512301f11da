"""
In-memory contest store.

Reference semantics for the contest store contract: atomic counters,
max-per-problem score recomputation and idempotent terminal transitions.
Thread-safe; one instance can back many concurrent sessions.
"""

import threading
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import replace

from typing_extensions import override

from ..exceptions import NotFoundError, ValidationError
from ..interfaces import ContestStore
from ..logging_config import get_logger
from ..models import Announcement, CompetitionState, Problem, Submission, Team, TestResult, now_ms
from ..scheduling import Clock

# Module-level logger
logger = get_logger("memory_store")


def _copy_team(team: Team) -> Team:
    return replace(team, members=list(team.members))


class InMemoryContestStore(ContestStore):
    """
    Contest store kept in process memory.

    Every read returns a copy so callers can never mutate the stored record.
    """

    def __init__(
        self,
        problems: Iterable[Problem] = (),
        teams: Iterable[Team] = (),
        competition_state: CompetitionState | None = None,
        clock: Clock = now_ms,
    ):
        """
        Initialize in-memory store.

        Args:
            problems: Problems to serve
            teams: Pre-registered teams
            competition_state: Initial state; defaults are created on first read if None
            clock: Source of submission and announcement timestamps (epoch ms)
        """
        self._lock = threading.RLock()
        self._clock: Clock = clock
        self._problems: dict[str, Problem] = {p.id: p for p in problems}
        self._teams: dict[str, Team] = {t.id: _copy_team(t) for t in teams}
        self._submissions: list[Submission] = []
        self._state: CompetitionState | None = competition_state

    # --- Competition state ---

    @override
    def get_competition_state(self) -> CompetitionState:
        with self._lock:
            if self._state is None:
                logger.warning("Competition state not found, creating a default one")
                self._state = CompetitionState.defaults()
            return self._state

    @override
    def update_competition_state(self, state: CompetitionState) -> CompetitionState:
        with self._lock:
            self._state = state
            logger.info(f"Competition state replaced: {state}")
            return state

    @override
    def toggle_pause(self) -> CompetitionState:
        with self._lock:
            state = self.get_competition_state()
            if not state.is_active:
                logger.info("Ignoring pause toggle while the competition is inactive")
                return state
            self._state = state.with_changes(is_paused=not state.is_paused)
            logger.info(f"Competition {'paused' if self._state.is_paused else 'resumed'}")
            return self._state

    @override
    def broadcast_announcement(self, message: str) -> CompetitionState:
        with self._lock:
            state = self.get_competition_state()
            self._state = state.with_changes(
                announcement=Announcement(message=message, timestamp=self._clock())
            )
            return self._state

    # --- Problems and teams ---

    @override
    def get_problems(self) -> list[Problem]:
        with self._lock:
            return list(self._problems.values())

    def add_problem(self, problem: Problem) -> Problem:
        with self._lock:
            self._problems[problem.id] = problem
            return problem

    @override
    def login_team(self, name: str) -> Team:
        trimmed = name.strip()
        if not trimmed:
            raise ValidationError("Team name must be a non-empty string.")

        with self._lock:
            for team in self._teams.values():
                if team.name.lower() == trimmed.lower():
                    return _copy_team(team)

            team = Team(id=uuid.uuid4().hex, name=trimmed, members=[trimmed])
            self._teams[team.id] = team
            logger.info(f"Registered team {trimmed!r} as {team.id}")
            return _copy_team(team)

    @override
    def get_team(self, team_id: str) -> Team:
        with self._lock:
            return _copy_team(self._require_team(team_id))

    @override
    def list_teams(self) -> list[Team]:
        with self._lock:
            return [_copy_team(t) for t in self._teams.values()]

    def _require_team(self, team_id: str) -> Team:
        team = self._teams.get(team_id)
        if team is None:
            raise NotFoundError(f"Team not found: {team_id}")
        return team

    # --- Submissions ---

    @override
    def submit_solution(
        self, team_id: str, problem_id: str, code: str, results: Sequence[TestResult]
    ) -> Submission:
        with self._lock:
            team = self._require_team(team_id)
            problem = self._problems.get(problem_id)
            if problem is None:
                raise NotFoundError(f"Problem not found: {problem_id}")

            submission = Submission(
                id=uuid.uuid4().hex,
                team_id=team_id,
                problem_id=problem_id,
                code=code,
                results=tuple(results),
                score=sum(1 for r in results if r.passed),
                timestamp=self._clock(),
                team_name=team.name,
                problem_title=problem.title,
            )
            self._submissions.append(submission)
            self._recompute_score(team)

            logger.info(
                f"Recorded submission {submission.id} for team {team_id} on {problem_id}: "
                f"score {submission.score}, team total {team.score}"
            )
            return submission

    def _recompute_score(self, team: Team) -> None:
        """Score is the sum of the best submission per problem, never a running total."""
        best = dict[str, Submission]()
        for sub in self._submissions:
            if sub.team_id != team.id:
                continue
            current = best.get(sub.problem_id)
            # Ties keep the earlier submission
            if current is None or current.score < sub.score:
                best[sub.problem_id] = sub

        team.score = sum(sub.score for sub in best.values())
        team.last_submission_timestamp = max((sub.timestamp for sub in best.values()), default=None)

    @override
    def get_submissions_by_team(self, team_id: str) -> list[Submission]:
        with self._lock:
            subs = [s for s in self._submissions if s.team_id == team_id]
            return sorted(subs, key=lambda s: s.timestamp, reverse=True)

    # --- Violations and terminal transitions ---

    @override
    def increment_tab_switch_violation(self, team_id: str) -> Team:
        with self._lock:
            team = self._require_team(team_id)
            team.tab_switch_violations += 1
            return _copy_team(team)

    @override
    def disqualify(self, team_id: str) -> Team:
        with self._lock:
            team = self._require_team(team_id)
            if not team.is_disqualified:
                team.is_disqualified = True
                logger.warning(f"Team {team_id} disqualified")
            return _copy_team(team)

    @override
    def finish(self, team_id: str) -> Team:
        with self._lock:
            team = self._require_team(team_id)
            if not team.has_finished:
                team.has_finished = True
                logger.info(f"Team {team_id} finished the contest")
            return _copy_team(team)
