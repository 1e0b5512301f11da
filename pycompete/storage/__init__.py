"""
Contest store and local state implementations.
"""

from .http_store import HttpContestStore
from .local_state import JSONFileLocalState, MemoryLocalState
from .memory_store import InMemoryContestStore

__all__ = [
    "HttpContestStore",
    "InMemoryContestStore",
    "JSONFileLocalState",
    "MemoryLocalState",
]
