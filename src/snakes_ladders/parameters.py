"""Rules derived from a guild's GameParameters."""

from datetime import datetime, timedelta
from typing import Optional

from src.core.exceptions import InvalidTransitionError
from src.core.models import GameParameters, GameSettings


def effective_settings(parameters: Optional[GameParameters]) -> GameSettings:
    """Guilds that never configured anything play with the defaults."""
    return parameters.settings if parameters else GameSettings()


def check_can_start(
    parameters: Optional[GameParameters],
    participant_count: int,
    other_active_games: int,
) -> None:
    """Raise InvalidTransitionError if the guild settings do not allow this game to start."""
    settings = effective_settings(parameters)

    if participant_count > settings.max_teams_per_game:
        raise InvalidTransitionError(
            f"Too many teams: {participant_count} registered, at most {settings.max_teams_per_game} allowed."
        )
    if not settings.allow_multiple_games and other_active_games > 0:
        raise InvalidTransitionError(
            "Another game is already active in this server. Finish or abort it first."
        )


def default_application_deadline(
    parameters: Optional[GameParameters], now: datetime
) -> datetime:
    return now + timedelta(days=effective_settings(parameters).default_game_duration)
