"""
Sandboxed runner implementations.
"""

from .in_process_runner import InProcessRunner
from .subprocess_runner import SubprocessRunner
from .wrapper import RUNTIME_ERROR_MARKER, escape_literal, to_literal

__all__ = [
    "InProcessRunner",
    "SubprocessRunner",
    "RUNTIME_ERROR_MARKER",
    "escape_literal",
    "to_literal",
]
