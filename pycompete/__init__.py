"""
PyCompete - Judging and Anti-Cheat Core

Runs contestant Python code against problem test cases in a sandbox,
proctors the session for violations and keeps a reload-safe countdown.
"""

from .admin import AdminConsole
from .interfaces import ContestStore, LocalState, Runner
from .judge import Judge, Verdict
from .leaderboard import public_standings, rank_teams
from .models import CompetitionState, Problem, Submission, Team, TestCase, TestResult
from .monitor import EventKind, ViolationMonitor
from .session import ContestSession, SessionConfig
from .timer import CountdownTimer

__version__ = "0.1.0"
__all__ = [
    "AdminConsole",
    "CompetitionState",
    "ContestSession",
    "ContestStore",
    "CountdownTimer",
    "EventKind",
    "Judge",
    "LocalState",
    "Problem",
    "Runner",
    "SessionConfig",
    "Submission",
    "Team",
    "TestCase",
    "TestResult",
    "Verdict",
    "ViolationMonitor",
    "public_standings",
    "rank_teams",
]
