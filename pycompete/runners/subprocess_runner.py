"""
Subprocess runner implementation.

Runs every submission in a fresh, isolated interpreter process so no state
can leak between runs.
"""

import json
import subprocess
import sys

from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from typing_extensions import TypedDict, override

from ..exceptions import SandboxError
from ..interfaces import Runner
from ..logging_config import get_logger
from ..models import RunOutcome
from .wrapper import REPLY_SENTINEL, build_wrapper

# Module-level logger
logger = get_logger("subprocess_runner")


class WrapperReply(TypedDict):
    """Type definition for the wrapper's JSON reply line."""

    output: str
    error: bool


class SubprocessRunner(Runner):
    """
    Runner that executes the wrapper script with ``python -I -``.

    The wrapper is fed on the child's stdin rather than argv so large sources
    are not limited by the argument length. The contestant's own stdin is the
    embedded test input.
    """

    def __init__(self, python_executable: str | None = None, timeout: float | None = None):
        """
        Initialize subprocess runner.

        Args:
            python_executable: Interpreter to launch (default: the current one)
            timeout: Seconds before the child is killed; None waits forever
        """
        self.python_executable: str = python_executable or sys.executable
        self.timeout: float | None = timeout

    @override
    def run(self, source_code: str, stdin_text: str) -> RunOutcome:
        wrapper = build_wrapper(source_code, stdin_text)
        cmd = [self.python_executable, "-I", "-"]

        logger.debug(f"Running sandbox: {' '.join(cmd)} ({len(source_code)} chars of source)")

        try:
            completed = subprocess.run(
                cmd,
                input=wrapper,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"Sandbox timed out after {self.timeout}s")
            raise SandboxError(f"sandbox timed out after {self.timeout}s") from e
        except OSError as e:
            logger.error(f"Could not start interpreter {self.python_executable}: {e}")
            raise SandboxError(f"could not start interpreter: {e}") from e

        if completed.returncode != 0:
            logger.error(f"Sandbox exited with code {completed.returncode}")
            logger.error(f"stderr: {completed.stderr}")
            raise SandboxError(
                f"sandbox exited with code {completed.returncode}: {completed.stderr.strip()}"
            )

        reply = self._parse_reply(completed.stdout)
        return RunOutcome(captured_output=reply["output"], runtime_error=reply["error"])

    def _parse_reply(self, stdout: str) -> WrapperReply:
        """
        Extract the wrapper's reply from the child's stdout.

        Contestant code may write to the real stdout too, so only the text after
        the last sentinel counts.

        Raises:
            SandboxError: If no well-formed reply was printed
        """
        position = stdout.rfind(REPLY_SENTINEL)
        if position == -1:
            raise SandboxError("sandbox produced no reply")

        payload = stdout[position + len(REPLY_SENTINEL):].strip()
        try:
            return TypeAdapter(WrapperReply).validate_python(json.loads(payload))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise SandboxError(f"malformed sandbox reply: {e}") from e
