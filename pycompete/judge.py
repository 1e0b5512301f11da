"""
Judge for contestant submissions.

Drives a Runner across a problem's test cases and compares captured output
with the expected output.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Logger

from .exceptions import SandboxError
from .interfaces import Runner
from .logging_config import get_logger
from .models import Partition, TestCase, TestResult

NOT_RUN_MARKER = "Could not run code"


def outputs_match(actual: str, expected: str) -> bool:
    """Leading/trailing whitespace is insignificant; everything else counts."""
    return actual.strip() == expected.strip()


@dataclass(frozen=True)
class Verdict:
    """Ordered results of one judge call (visible first, then hidden)."""

    results: list[TestResult] = field(default_factory=list)
    error: str | None = None  # sandbox failure that cut the run short

    @property
    def score(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def degraded(self) -> bool:
        return self.error is not None


class Judge:
    """
    Runs test cases strictly in order: visible before hidden, each partition
    in its given order. No concurrent runner calls for one submission.
    """

    def __init__(self, runner: Runner):
        self.runner: Runner = runner
        self.logger: Logger = get_logger("judge")

    def judge(
        self,
        code: str,
        visible_cases: Sequence[TestCase],
        hidden_cases: Sequence[TestCase] = (),
    ) -> Verdict:
        """
        Judge code against both partitions.

        A sandbox infrastructure failure aborts the remaining cases; they are
        returned as failed with ``actual`` set to NOT_RUN_MARKER and the
        verdict carries the error. Never raises for contestant faults.

        Args:
            code: Contestant source
            visible_cases: Cases shown to the contestant
            hidden_cases: Cases not shown

        Returns:
            Verdict with one result per case, in visible-then-hidden order
        """
        batch = [(case, Partition.VISIBLE) for case in visible_cases]
        batch += [(case, Partition.HIDDEN) for case in hidden_cases]

        results = list[TestResult]()
        error: str | None = None

        for case, partition in batch:
            if error is not None:
                results.append(self._not_run(case, partition))
                continue

            try:
                outcome = self.runner.run(code, case.input)
            except SandboxError as e:
                self.logger.error(f"Sandbox failure on {partition.value} case {case.id}: {e}")
                error = str(e)
                results.append(self._not_run(case, partition))
                continue

            passed = not outcome.runtime_error and outputs_match(outcome.captured_output, case.expected)
            results.append(
                TestResult(
                    case_id=case.id,
                    partition=partition,
                    input=case.input,
                    expected=case.expected,
                    actual=outcome.captured_output,
                    passed=passed,
                )
            )

        verdict = Verdict(results=results, error=error)
        self.logger.info(
            f"Judged {verdict.total} cases: {verdict.score} passed"
            + (" (degraded)" if verdict.degraded else "")
        )
        return verdict

    def run_visible(self, code: str, visible_cases: Sequence[TestCase]) -> Verdict:
        """Run only the visible partition (the "run tests" action)."""
        return self.judge(code, visible_cases, ())

    @staticmethod
    def _not_run(case: TestCase, partition: Partition) -> TestResult:
        return TestResult(
            case_id=case.id,
            partition=partition,
            input=case.input,
            expected=case.expected,
            actual=NOT_RUN_MARKER,
            passed=False,
        )
