"""Unit tests for src/snakes_ladders/parameters.py"""

from datetime import datetime, timedelta, timezone

import pytest

from src.core.exceptions import InvalidTransitionError
from src.core.models import GameParameters, GameSettings
from src.snakes_ladders.parameters import (
    check_can_start,
    default_application_deadline,
    effective_settings,
)


def test_defaults_without_parameters() -> None:
    settings = effective_settings(None)
    assert settings.max_teams_per_game == 10
    assert settings.allow_multiple_games is False
    assert settings.default_game_duration == 7


def test_guild_settings_win() -> None:
    parameters = GameParameters(guild_id="1", settings=GameSettings(max_teams_per_game=3))
    assert effective_settings(parameters).max_teams_per_game == 3


@pytest.mark.parametrize("count", [1, 5, 10])
def test_team_count_within_limit(count: int) -> None:
    check_can_start(None, count, 0)


def test_too_many_teams() -> None:
    with pytest.raises(InvalidTransitionError, match="Too many teams"):
        check_can_start(None, 11, 0)


def test_single_active_game_per_guild() -> None:
    with pytest.raises(InvalidTransitionError, match="already active"):
        check_can_start(None, 2, 1)


def test_multiple_games_allowed() -> None:
    parameters = GameParameters(guild_id="1", settings=GameSettings(allow_multiple_games=True))
    check_can_start(parameters, 2, 3)


def test_default_deadline() -> None:
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    parameters = GameParameters(guild_id="1", settings=GameSettings(default_game_duration=14))
    assert default_application_deadline(None, now) == now + timedelta(days=7)
    assert default_application_deadline(parameters, now) == now + timedelta(days=14)
