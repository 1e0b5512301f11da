"""
HTTP contest store.

Talks to the contest REST service under ``/api`` using camelCase JSON, and
validates every response before converting it to core models.
"""

from collections.abc import Sequence
from typing import Any, Literal, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from typing_extensions import NotRequired, TypedDict, override

from ..exceptions import NotFoundError, StoreError, ValidationError
from ..interfaces import ContestStore
from ..logging_config import get_logger
from ..models import (
    Announcement,
    CompetitionState,
    Partition,
    Problem,
    Submission,
    Team,
    TestCase,
    TestResult,
)

logger = get_logger("http_store")

T = TypeVar("T")


class CasePayload(TypedDict):
    id: int
    input: str
    expected: str


class ResultPayload(TypedDict):
    caseId: int
    type: Literal["visible", "hidden"]
    input: str
    expected: str
    actual: str
    passed: bool


class ProblemPayload(TypedDict):
    id: str
    title: str
    description: NotRequired[str | None]
    initialCode: NotRequired[str | None]
    inputFormat: NotRequired[str | None]
    outputFormat: NotRequired[str | None]
    constraints: NotRequired[list[str]]
    hint: NotRequired[str | None]
    solution: NotRequired[str | None]
    showSampleCases: NotRequired[bool]
    visibleTestCases: NotRequired[list[CasePayload]]
    hiddenTestCases: NotRequired[list[CasePayload]]


class TeamPayload(TypedDict):
    id: str
    name: str
    members: NotRequired[list[str]]
    score: NotRequired[int]
    violations: NotRequired[int]
    tabSwitchViolations: NotRequired[int]
    isDisqualified: NotRequired[bool]
    hasFinished: NotRequired[bool]
    lastSubmissionTimestamp: NotRequired[int | None]


class SubmissionPayload(TypedDict):
    id: str
    teamId: str
    problemId: str
    code: str
    results: list[ResultPayload]
    score: int
    timestamp: int
    teamName: NotRequired[str]
    problemTitle: NotRequired[str]


class AnnouncementPayload(TypedDict, total=False):
    message: str | None
    timestamp: int | None


class CompetitionStatePayload(TypedDict):
    isActive: bool
    timer: int
    allowHints: NotRequired[bool]
    useAntiCheat: NotRequired[bool]
    autoDisqualifyOnTabSwitch: NotRequired[bool]
    tabSwitchViolationLimit: NotRequired[int]
    violationLimit: NotRequired[int]
    isPaused: NotRequired[bool]
    announcement: NotRequired[AnnouncementPayload | None]


# --- wire <-> model conversion ---


def _case_from_wire(data: CasePayload) -> TestCase:
    return TestCase(id=data["id"], input=data["input"], expected=data["expected"])


def result_to_wire(result: TestResult) -> ResultPayload:
    return {
        "caseId": result.case_id,
        "type": result.partition.value,
        "input": result.input,
        "expected": result.expected,
        "actual": result.actual,
        "passed": result.passed,
    }


def _result_from_wire(data: ResultPayload) -> TestResult:
    return TestResult(
        case_id=data["caseId"],
        partition=Partition(data["type"]),
        input=data["input"],
        expected=data["expected"],
        actual=data["actual"],
        passed=data["passed"],
    )


def problem_from_wire(data: ProblemPayload) -> Problem:
    return Problem(
        id=data["id"],
        title=data["title"],
        description=data.get("description") or "",
        initial_code=data.get("initialCode") or "",
        input_format=data.get("inputFormat") or "",
        output_format=data.get("outputFormat") or "",
        constraints=tuple(data.get("constraints", [])),
        hint=data.get("hint"),
        solution=data.get("solution"),
        show_sample_cases=data.get("showSampleCases", True),
        visible_cases=tuple(_case_from_wire(c) for c in data.get("visibleTestCases", [])),
        hidden_cases=tuple(_case_from_wire(c) for c in data.get("hiddenTestCases", [])),
    )


def team_from_wire(data: TeamPayload) -> Team:
    return Team(
        id=data["id"],
        name=data["name"],
        members=list(data.get("members", [])),
        score=data.get("score", 0),
        violations=data.get("violations", 0),
        tab_switch_violations=data.get("tabSwitchViolations", 0),
        is_disqualified=data.get("isDisqualified", False),
        has_finished=data.get("hasFinished", False),
        last_submission_timestamp=data.get("lastSubmissionTimestamp"),
    )


def submission_from_wire(data: SubmissionPayload) -> Submission:
    return Submission(
        id=data["id"],
        team_id=data["teamId"],
        problem_id=data["problemId"],
        code=data["code"],
        results=tuple(_result_from_wire(r) for r in data["results"]),
        score=data["score"],
        timestamp=data["timestamp"],
        team_name=data.get("teamName", ""),
        problem_title=data.get("problemTitle", ""),
    )


def state_from_wire(data: CompetitionStatePayload) -> CompetitionState:
    announcement = data.get("announcement") or {}
    return CompetitionState(
        is_active=data["isActive"],
        is_paused=data.get("isPaused", False),
        timer=data["timer"],
        violation_limit=data.get("violationLimit", 3),
        tab_switch_violation_limit=data.get("tabSwitchViolationLimit", 1),
        auto_disqualify_on_tab_switch=data.get("autoDisqualifyOnTabSwitch", True),
        allow_hints=data.get("allowHints", True),
        use_anti_cheat=data.get("useAntiCheat", True),
        announcement=Announcement(
            message=announcement.get("message") or "",
            timestamp=announcement.get("timestamp") or 0,
        ),
    )


def state_to_wire(state: CompetitionState) -> CompetitionStatePayload:
    return {
        "isActive": state.is_active,
        "isPaused": state.is_paused,
        "timer": state.timer,
        "violationLimit": state.violation_limit,
        "tabSwitchViolationLimit": state.tab_switch_violation_limit,
        "autoDisqualifyOnTabSwitch": state.auto_disqualify_on_tab_switch,
        "allowHints": state.allow_hints,
        "useAntiCheat": state.use_anti_cheat,
        "announcement": {
            "message": state.announcement.message,
            "timestamp": state.announcement.timestamp,
        },
    }


class HttpContestStore(ContestStore):
    """
    Contest store backed by the REST service.

    Transport failures, non-2xx responses and malformed bodies all surface
    as StoreError (NotFoundError for 404).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        """
        Initialize HTTP store.

        Args:
            base_url: Service root, e.g. "http://localhost:3001"
            timeout: Per-request timeout in seconds
            client: Preconfigured client (tests pass one with a mock transport)
        """
        self.client: httpx.Client = client or httpx.Client(base_url=base_url, timeout=timeout)
        logger.info(f"HTTP contest store initialized: base_url={self.client.base_url}")

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, path: str, schema: type[T], json: Any = None) -> T:
        """Send a request and validate the JSON body against schema."""
        try:
            response = self.client.request(method, f"/api{path}", json=json)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise StoreError(f"{method} {path} failed: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(self._error_message(response))
        if response.is_error:
            message = self._error_message(response)
            logger.error(f"{method} {path} returned {response.status_code}: {message}")
            raise StoreError(message)

        try:
            return TypeAdapter(schema).validate_python(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise StoreError(f"Malformed response from {method} {path}: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("message"), str):
            return body["message"]
        return f"An API error occurred: {response.reason_phrase}"

    @override
    def get_competition_state(self) -> CompetitionState:
        return state_from_wire(self._request("GET", "/competition/state", CompetitionStatePayload))

    @override
    def update_competition_state(self, state: CompetitionState) -> CompetitionState:
        data = self._request("PUT", "/competition/state", CompetitionStatePayload, json=state_to_wire(state))
        return state_from_wire(data)

    @override
    def toggle_pause(self) -> CompetitionState:
        return state_from_wire(self._request("POST", "/competition/toggle-pause", CompetitionStatePayload))

    @override
    def broadcast_announcement(self, message: str) -> CompetitionState:
        data = self._request(
            "PUT", "/competition/announcement", CompetitionStatePayload, json={"message": message}
        )
        return state_from_wire(data)

    @override
    def get_problems(self) -> list[Problem]:
        return [problem_from_wire(p) for p in self._request("GET", "/problems", list[ProblemPayload])]

    @override
    def login_team(self, name: str) -> Team:
        trimmed = name.strip()
        if not trimmed:
            raise ValidationError("Team name must be a non-empty string.")
        return team_from_wire(self._request("POST", "/teams/login", TeamPayload, json={"name": trimmed}))

    @override
    def get_team(self, team_id: str) -> Team:
        return team_from_wire(self._request("GET", f"/teams/{team_id}", TeamPayload))

    @override
    def list_teams(self) -> list[Team]:
        return [team_from_wire(t) for t in self._request("GET", "/teams", list[TeamPayload])]

    @override
    def submit_solution(
        self, team_id: str, problem_id: str, code: str, results: Sequence[TestResult]
    ) -> Submission:
        body = {
            "teamId": team_id,
            "problemId": problem_id,
            "code": code,
            "results": [result_to_wire(r) for r in results],
        }
        return submission_from_wire(self._request("POST", "/submissions", SubmissionPayload, json=body))

    @override
    def increment_tab_switch_violation(self, team_id: str) -> Team:
        return team_from_wire(self._request("POST", f"/teams/{team_id}/tabswitch-violation", TeamPayload))

    @override
    def disqualify(self, team_id: str) -> Team:
        return team_from_wire(self._request("POST", f"/teams/{team_id}/disqualify", TeamPayload))

    @override
    def finish(self, team_id: str) -> Team:
        return team_from_wire(self._request("POST", f"/teams/{team_id}/finish", TeamPayload))

    @override
    def get_submissions_by_team(self, team_id: str) -> list[Submission]:
        data = self._request("GET", f"/submissions/team/{team_id}", list[SubmissionPayload])
        return [submission_from_wire(s) for s in data]
