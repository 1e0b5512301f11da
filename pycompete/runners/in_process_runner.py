"""
In-process runner implementation.

Reuses the host interpreter as a single-threaded sandbox session. Every call
gets a pristine globals dict, fresh standard streams and the builtins as they
were before the call.
"""

import builtins
import io
import sys
import threading

from typing_extensions import override

from ..exceptions import SandboxError
from ..interfaces import Runner
from ..logging_config import get_logger
from ..models import RunOutcome
from .wrapper import RUNTIME_ERROR_MARKER, CaptureBuffer, format_fault

logger = get_logger("in_process_runner")

_MISSING = object()


def _restore_builtins(saved: dict[str, object]) -> None:
    """Undo any additions, rebinds or deletions made to the builtins module."""
    current = builtins.__dict__
    for name in [name for name in current if name not in saved]:
        del current[name]
    for name, value in saved.items():
        if current.get(name, _MISSING) is not value:
            current[name] = value


class InProcessRunner(Runner):
    """
    Runner that executes contestant code inside the current interpreter.

    Much faster than spawning a process per case, but offers no isolation
    beyond a fresh namespace and restored builtins. Swapping
    ``sys.stdin/stdout/stderr`` is process global, so runs are serialized
    with a lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ready = False

    def initialize(self) -> "InProcessRunner":
        """Mark the session ready. Runs before this raise SandboxError."""
        self._ready = True
        logger.info("In-process sandbox session initialized")
        return self

    def shutdown(self) -> None:
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    @override
    def run(self, source_code: str, stdin_text: str) -> RunOutcome:
        if not self._ready:
            raise SandboxError("sandbox session is not initialized")

        try:
            code = compile(source_code, "<contestant>", "exec")
        except (SyntaxError, ValueError) as e:
            return RunOutcome(captured_output=format_fault(e), runtime_error=True)

        with self._lock:
            captured = CaptureBuffer()
            saved_streams = (sys.stdin, sys.stdout, sys.stderr)
            saved_builtins = dict(builtins.__dict__)
            sys.stdin = io.StringIO(stdin_text)
            sys.stdout = captured
            sys.stderr = captured
            runtime_error = False
            fault: str | None = None
            try:
                exec(code, {"__name__": "__main__"})
            except SystemExit as e:
                if e.code not in (None, 0):
                    runtime_error = True
                    fault = f"{RUNTIME_ERROR_MARKER}: SystemExit: {e.code}"
            except BaseException as e:
                # Contestant faults include KeyboardInterrupt and friends
                runtime_error = True
                fault = format_fault(e)
            finally:
                sys.stdin, sys.stdout, sys.stderr = saved_streams
                _restore_builtins(saved_builtins)

        output = captured.getvalue()
        if fault is not None:
            if output and not output.endswith("\n"):
                output += "\n"
            output += fault + "\n"
        return RunOutcome(captured_output=output, runtime_error=runtime_error)
