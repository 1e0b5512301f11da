"""
Leaderboard ranking.

Teams are ordered by score, highest first. Within a score, the team whose
best submissions were in earliest wins; teams without a submission go last.
Equal score and equal timestamp share a rank (competition ranking: 1, 2, 2, 4).
"""

import math
from collections.abc import Iterable

from .models import Team


def _sort_key(team: Team) -> tuple[int, float]:
    timestamp = team.last_submission_timestamp
    return (-team.score, math.inf if timestamp is None else timestamp)


def rank_teams(teams: Iterable[Team]) -> list[tuple[int, Team]]:
    """
    Rank teams for display.

    Args:
        teams: Teams in any order

    Returns:
        (rank, team) pairs in leaderboard order
    """
    ordered = sorted(teams, key=_sort_key)
    ranked = list[tuple[int, Team]]()
    for position, team in enumerate(ordered, start=1):
        if ranked and _sort_key(ranked[-1][1]) == _sort_key(team):
            ranked.append((ranked[-1][0], team))
        else:
            ranked.append((position, team))
    return ranked


def public_standings(teams: Iterable[Team]) -> list[tuple[int, Team]]:
    """Ranking shown to contestants: finished teams only, disqualified teams hidden."""
    return rank_teams(t for t in teams if t.has_finished and not t.is_disqualified)
