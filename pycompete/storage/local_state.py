"""
Local session state storage.

Keeps the countdown snapshot for one contestant session so the timer survives
a reload. Nothing here is shared between sessions or devices.
"""

import json
import os
import tempfile
from pathlib import Path

from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from typing_extensions import override

from ..interfaces import LocalState, TimerSnapshot
from ..logging_config import get_logger

# Module-level logger
logger = get_logger("local_state")


class MemoryLocalState(LocalState):
    """Volatile local state; lost when the process exits."""

    def __init__(self, initial: TimerSnapshot | None = None):
        self._snapshot: TimerSnapshot = TimerSnapshot(**(initial or {}))

    @override
    def load(self) -> TimerSnapshot:
        return TimerSnapshot(**self._snapshot)

    @override
    def save(self, snapshot: TimerSnapshot) -> None:
        self._snapshot = TimerSnapshot(**snapshot)

    @override
    def clear(self) -> None:
        self._snapshot = TimerSnapshot()


class JSONFileLocalState(LocalState):
    """
    Local state persisted as one JSON document.

    Writes go to a temporary file that replaces the target, so a crash never
    leaves a half-written snapshot. A corrupt file is treated as empty.
    """

    path: Path

    def __init__(self, path: Path | str):
        """
        Initialize JSON file local state.

        Args:
            path: File holding the snapshot (parent directories are created)
        """
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @override
    def load(self) -> TimerSnapshot:
        if not self.path.exists():
            logger.debug(f"No local state at {self.path}")
            return TimerSnapshot()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return TypeAdapter(TimerSnapshot).validate_python(json.load(f))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning(f"Ignoring corrupt local state in {self.path}: {e}")
            return TimerSnapshot()

    @override
    def save(self, snapshot: TimerSnapshot) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot, f)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved local state to {self.path}: {snapshot}")

    @override
    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
