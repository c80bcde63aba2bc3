"""Protocol repositories (can implement later for other storage backends)"""

from typing import Protocol
from uuid import UUID

from src.core.models import GameModel, GameParameters, TeamModel
from src.snakes_ladders.events import RollEventLog

__all__ = [
    "GameRepository",
    "TeamRepository",
    "GameParametersRepository",
    "RollEventLog",
]


class GameRepository(Protocol):
    """Persistence layer orchestration"""

    def get_game(self, game_id: UUID) -> GameModel | None:
        """Get game by ID, if record exists."""
        ...

    def create_game(self, game_id: UUID, game: GameModel) -> GameModel:
        """Store new game under the given ID and return the stored data."""
        ...

    def update_game(self, game_id: UUID, game: GameModel) -> GameModel | None:
        """Add new info to existing record."""
        ...

    def delete_game(self, game_id: UUID) -> GameModel | None:
        """Remove a game's record."""
        ...

    def count_games(self, guild_id: str, status: str) -> int:
        """Number of games of a guild in the given status."""
        ...


class TeamRepository(Protocol):
    def get_team(self, team_id: UUID) -> TeamModel | None:
        """Get team by ID, if record exists."""
        ...

    def list_teams(self, game_id: UUID) -> dict[UUID, TeamModel]:
        """All teams of a game, keyed by team ID."""
        ...

    def create_team(self, team_id: UUID, team: TeamModel) -> TeamModel:
        """Store new team under the given ID."""
        ...

    def update_team(self, team_id: UUID, team: TeamModel) -> TeamModel | None:
        """Add new info to existing record."""
        ...


class GameParametersRepository(Protocol):
    def get_parameters(self, guild_id: str) -> GameParameters | None:
        """Settings of a guild, if it configured any."""
        ...

    def save_parameters(self, parameters: GameParameters) -> GameParameters:
        """Create or replace the settings of a guild."""
        ...


class SnakesLaddersRepository(
    GameRepository, TeamRepository, GameParametersRepository, Protocol
):
    """Everything the service needs besides the roll log (SQLGameRepository implements all of it)."""
