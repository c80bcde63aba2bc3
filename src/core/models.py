"""
Boundary layer data model(s).

These objects can be used to communicate with the Service.
Hence, both the API layer (higher) and domain/db layers (lower) will use model(s) defined here to send to/receive from the Service
(Decouples the data model specific to the DB layer, API layer, or domain layer from the information needed to send across boundaries)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

# Type aliases to make the models easier to read
Tile = int
TeamName = str


@dataclass(frozen=True)
class RolledBy:
    """Discord identity of the member who issued the roll."""

    user_id: str
    username: str
    display_name: str


@dataclass
class GameModel:
    """Transport-safe representation of one Snakes & Ladders game."""

    name: str
    guild_id: str
    created_by: str
    status: str
    snakes: dict[Tile, Tile]
    ladders: dict[Tile, Tile]
    participants: list[UUID] = field(default_factory=list)
    tile_tasks: dict[Tile, str] = field(default_factory=dict)
    max_team_size: Optional[int] = None
    application_deadline: Optional[datetime] = None
    is_paused: bool = False
    winner_team_id: Optional[UUID] = None
    completed_at: Optional[datetime] = None
    channel_id: Optional[str] = None
    announcement_channel_id: Optional[str] = None


@dataclass
class TeamModel:
    """A team accepted into a game. `can_roll` is the persisted view of the roll gate."""

    game_id: UUID
    team_name: TeamName
    current_position: int = 0
    can_roll: bool = False
    channel_id: Optional[str] = None


@dataclass
class RollEventModel:
    """One row of the roll audit log."""

    roll_id: UUID
    game_id: UUID
    team_id: UUID
    team_name: TeamName
    dice_roll: int
    old_position: int
    new_position: int
    snake_or_ladder: Optional[str]
    rolled_by: RolledBy
    announcement_sent: bool
    created_at: datetime


@dataclass
class GameSettings:
    max_teams_per_game: int = 10
    allow_multiple_games: bool = False
    default_game_duration: int = 7  # days


@dataclass
class GameParameters:
    """Per-guild settings. Owned by the guild's moderators, only read by the engine."""

    guild_id: str
    moderator_role_id: Optional[str] = None
    settings: GameSettings = field(default_factory=GameSettings)
