"""
Administrator controls over the shared competition state.
"""

from typing import TYPE_CHECKING

from typing_extensions import assert_never

if TYPE_CHECKING:
    from loguru import Logger

from .exceptions import ConfigurationError, ValidationError
from .interfaces import ContestStore
from .leaderboard import rank_teams
from .logging_config import get_logger
from .models import AdminUser, CompetitionState, Team, TeamUser, User


class AdminConsole:
    """
    Admin-side controls. Every control writes through the store and returns
    the resulting CompetitionState; sessions observe it on their next poll.
    """

    def __init__(self, user: User, store: ContestStore):
        if isinstance(user, AdminUser):
            self.user: AdminUser = user
        elif isinstance(user, TeamUser):
            raise ConfigurationError(f"Team {user.team.name!r} cannot use the admin console")
        else:
            assert_never(user)

        self.store: ContestStore = store
        self.logger: Logger = get_logger("admin")

    @property
    def state(self) -> CompetitionState:
        return self.store.get_competition_state()

    def start(self, duration: int | None = None) -> CompetitionState:
        """
        Start the competition, unpaused.

        Args:
            duration: Minutes; keeps the configured duration if None

        Raises:
            ValidationError: If duration is not positive
        """
        changes: dict[str, object] = {"is_active": True, "is_paused": False}
        if duration is not None:
            _require_positive("duration", duration)
            changes["timer"] = duration

        state = self.store.update_competition_state(self.state.with_changes(**changes))
        self.logger.info(f"{self.user.name} started the competition ({state.timer} minutes)")
        return state

    def stop(self) -> CompetitionState:
        """End the competition for everyone; sessions switch to upsolving."""
        state = self.store.update_competition_state(self.state.with_changes(is_active=False, is_paused=False))
        self.logger.info(f"{self.user.name} stopped the competition")
        return state

    def toggle_pause(self) -> CompetitionState:
        return self.store.toggle_pause()

    def set_duration(self, minutes: int) -> CompetitionState:
        """
        Change the configured duration. Running timers shift by the difference.

        Raises:
            ValidationError: If minutes is not positive
        """
        _require_positive("duration", minutes)
        state = self.store.update_competition_state(self.state.with_changes(timer=minutes))
        self.logger.info(f"{self.user.name} set the contest duration to {minutes} minutes")
        return state

    def announce(self, message: str) -> CompetitionState:
        message = message.strip()
        if not message:
            raise ValidationError("Announcement cannot be empty; use clear_announcement()")
        self.logger.info(f"{self.user.name} broadcast an announcement: {message!r}")
        return self.store.broadcast_announcement(message)

    def clear_announcement(self) -> CompetitionState:
        return self.store.broadcast_announcement("")

    def standings(self) -> list[tuple[int, Team]]:
        """Every team ranked, including unfinished and disqualified ones."""
        return rank_teams(self.store.list_teams())

    def set_anti_cheat_policy(
        self,
        use_anti_cheat: bool | None = None,
        auto_disqualify_on_tab_switch: bool | None = None,
        tab_switch_violation_limit: int | None = None,
        violation_limit: int | None = None,
        allow_hints: bool | None = None,
    ) -> CompetitionState:
        """Update any subset of the proctoring switches; None leaves a field unchanged."""
        changes: dict[str, object] = {}
        if use_anti_cheat is not None:
            changes["use_anti_cheat"] = use_anti_cheat
        if auto_disqualify_on_tab_switch is not None:
            changes["auto_disqualify_on_tab_switch"] = auto_disqualify_on_tab_switch
        if tab_switch_violation_limit is not None:
            _require_positive("tab_switch_violation_limit", tab_switch_violation_limit)
            changes["tab_switch_violation_limit"] = tab_switch_violation_limit
        if violation_limit is not None:
            _require_positive("violation_limit", violation_limit)
            changes["violation_limit"] = violation_limit
        if allow_hints is not None:
            changes["allow_hints"] = allow_hints

        if not changes:
            return self.state

        state = self.store.update_competition_state(self.state.with_changes(**changes))
        self.logger.info(f"{self.user.name} updated the anti-cheat policy: {changes}")
        return state


def _require_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
