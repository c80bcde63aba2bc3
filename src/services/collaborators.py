"""
Capabilities the service consumes but does not implement itself.
(Discord bot / dashboard provide the real ones, tests provide mocks.)
"""

import logging
from typing import Callable, Iterable, Optional, Protocol
from uuid import UUID

from src.db.repository import GameParametersRepository
from src.snakes_ladders.events import RollEvent

logger = logging.getLogger(__name__)


class Announcer(Protocol):
    def notify(self, game_id: UUID, channel_id: Optional[str], event: RollEvent) -> None:
        """Tell the players about a roll. May raise. May be called more than once for the same event."""
        ...


class Authorizer(Protocol):
    def is_moderator(self, user_id: str, guild_id: str) -> bool:
        """Can this member start / pause / reset games in this guild?"""
        ...


class LoggingAnnouncer:
    """Announcer that only writes to the log. Useful for scripts and local runs."""

    def notify(self, game_id: UUID, channel_id: Optional[str], event: RollEvent) -> None:
        logger.info(
            "[game %s / channel %s] %s rolled %d: %d -> %d %s",
            game_id,
            channel_id,
            event.team_name,
            event.dice_roll,
            event.old_position,
            event.new_position,
            event.snake_or_ladder or "",
        )


class GameParametersAuthorizer:
    """
    Administrators are always moderators. Otherwise the member needs the guild's moderator role
    (GameParameters.moderator_role_id).
    ---
    `member_roles` and `is_administrator` are lookups into Discord, supplied by the bot.
    """

    def __init__(
        self,
        repository: GameParametersRepository,
        member_roles: Callable[[str, str], Iterable[str]],
        is_administrator: Callable[[str, str], bool] = lambda user_id, guild_id: False,
    ) -> None:
        self.repo = repository
        self.member_roles = member_roles
        self.is_administrator = is_administrator

    def is_moderator(self, user_id: str, guild_id: str) -> bool:
        if self.is_administrator(user_id, guild_id):
            return True
        parameters = self.repo.get_parameters(guild_id)
        if parameters is None or parameters.moderator_role_id is None:
            return False
        return parameters.moderator_role_id in set(self.member_roles(user_id, guild_id))
