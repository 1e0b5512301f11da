"""
Wrapper script construction for sandboxed runs.

Contestant source and stdin text are embedded in the wrapper as Python string
literals, so every sandbox meta-character must be escaped to round-trip
exactly.
"""

import io

RUNTIME_ERROR_MARKER = "Runtime Error"
REPLY_SENTINEL = "\x1e__pycompete_reply__"

# Everything that can terminate or corrupt a single-quoted literal
_ESCAPES = {
    ord("\\"): "\\\\",
    ord("'"): "\\'",
    ord('"'): '\\"',
    ord("\n"): "\\n",
    ord("\r"): "\\r",
    ord("\t"): "\\t",
    ord("\0"): "\\x00",
}


def escape_literal(text: str) -> str:
    """Escape text for the body of a single-quoted Python string literal."""
    return text.translate(_ESCAPES)


def to_literal(text: str) -> str:
    """Quote text as a Python string literal that evaluates back to text."""
    return "'" + escape_literal(text) + "'"


def format_fault(exc: BaseException) -> str:
    """The generic failure line appended to captured output."""
    return f"{RUNTIME_ERROR_MARKER}: {type(exc).__name__}: {exc}"


class CaptureBuffer(io.StringIO):
    """Output buffer the contestant cannot close."""

    def close(self) -> None:
        pass


_TEMPLATE = """\
import io
import json
import os
import sys


class _Capture(io.StringIO):
    def close(self):
        pass


_source = {source}
_captured = _Capture()
_dumps = json.dumps
_reply_stream = os.fdopen(os.dup(sys.__stdout__.fileno()), "w", encoding="utf-8")
_error = False

sys.stdin = io.StringIO({stdin})
sys.stdout = _captured
sys.stderr = _captured


def _mark(line):
    text = _captured.getvalue()
    if text and not text.endswith("\\n"):
        _captured.write("\\n")
    _captured.write(line + "\\n")


try:
    exec(compile(_source, "<contestant>", "exec"), {{"__name__": "__main__"}})
except SystemExit as _exc:
    if _exc.code not in (None, 0):
        _error = True
        _mark("{marker}: SystemExit: %s" % (_exc.code,))
except BaseException as _exc:
    _error = True
    _mark("{marker}: %s: %s" % (type(_exc).__name__, _exc))
finally:
    sys.stdin = sys.__stdin__
    sys.stdout = sys.__stdout__
    sys.stderr = sys.__stderr__

_reply_stream.write("\\n" + {sentinel} + _dumps({{"output": _captured.getvalue(), "error": _error}}) + "\\n")
_reply_stream.flush()
"""


def build_wrapper(source_code: str, stdin_text: str) -> str:
    """
    Build the script that runs source_code with stdin_text on stdin.

    The script prints one sentinel-prefixed JSON reply with the captured
    output and the runtime-error flag as its last line.
    """
    return _TEMPLATE.format(
        source=to_literal(source_code),
        stdin=to_literal(stdin_text),
        marker=RUNTIME_ERROR_MARKER,
        sentinel=to_literal(REPLY_SENTINEL),
    )
