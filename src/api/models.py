"""Requests and Response models"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, field_validator, model_validator

from src.core.exceptions import InvalidInputError, InvalidRequestError
from src.core.shared_types import DenialReason, GateState, ResetType, Status
from src.snakes_ladders.board import GOAL_TILE, START_TILE, parse_redirects

Tile = int
TeamName = str


def _validate_tiles(value: dict[Tile, Tile]) -> dict[Tile, Tile]:
    for start, end in value.items():
        if not (START_TILE < start < GOAL_TILE and START_TILE < end <= GOAL_TILE):
            raise InvalidRequestError(
                f"Tiles must be between 1 and {GOAL_TILE}. Got {start} -> {end}."
            )
    return value


# --- REQUEST MODELS ---
class Member(BaseModel):
    """Discord member issuing a request."""

    user_id: str
    username: str
    display_name: str


class CreateGameRequest(BaseModel):
    """
    Snakes and ladders can be given as maps, as moderator text ("16:6,47:26"),
    or be generated at random (`random_snakes` / `random_ladders`). Without any of these, the classic board is used.
    """

    name: str
    guild_id: str
    created_by: str
    snakes: Optional[dict[Tile, Tile]] = None
    ladders: Optional[dict[Tile, Tile]] = None
    snakes_config: Optional[str] = None
    ladders_config: Optional[str] = None
    random_snakes: Optional[int] = None
    random_ladders: Optional[int] = None
    tile_tasks: dict[Tile, str] = {}
    max_team_size: Optional[int] = None
    application_deadline: Optional[datetime] = None
    channel_id: Optional[str] = None
    announcement_channel_id: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not value.strip():
            raise InvalidRequestError("A game needs a name.")
        return value.strip()

    @field_validator("snakes", "ladders")
    @classmethod
    def validate_redirect_tiles(
        cls, value: Optional[dict[Tile, Tile]]
    ) -> Optional[dict[Tile, Tile]]:
        if value is None:
            return value
        return _validate_tiles(value)

    @field_validator("snakes_config", "ladders_config")
    @classmethod
    def validate_redirect_config(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            redirects = parse_redirects(value)
        except InvalidInputError as exc:
            raise InvalidRequestError(str(exc)) from exc
        _validate_tiles(redirects)
        return value

    @field_validator("random_snakes", "random_ladders", "max_team_size")
    @classmethod
    def validate_counts(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise InvalidRequestError(f"Expected a positive number. Got {value}.")
        return value

    @field_validator("tile_tasks")
    @classmethod
    def validate_task_tiles(cls, value: dict[Tile, str]) -> dict[Tile, str]:
        for tile in value:
            if not START_TILE < tile <= GOAL_TILE:
                raise InvalidRequestError(f"No tile {tile} on the board.")
        return value

    @model_validator(mode="after")
    def validate_board_source(self) -> "CreateGameRequest":
        explicit = (
            self.snakes is not None
            or self.ladders is not None
            or self.snakes_config is not None
            or self.ladders_config is not None
        )
        generated = self.random_snakes is not None or self.random_ladders is not None
        if explicit and generated:
            raise InvalidRequestError(
                "Either configure snakes and ladders, or generate them at random. Not both."
            )
        if self.snakes is not None and self.snakes_config is not None:
            raise InvalidRequestError("Snakes given twice.")
        if self.ladders is not None and self.ladders_config is not None:
            raise InvalidRequestError("Ladders given twice.")
        return self


class ModeratorRequest(BaseModel):
    """Any request that changes the course of a game. `requested_by` must be a moderator of the guild."""

    game_id: UUID
    requested_by: str


class OpenRegistrationRequest(ModeratorRequest):
    max_team_size: Optional[int] = None
    application_deadline: Optional[datetime] = None

    @field_validator("max_team_size")
    @classmethod
    def validate_team_size(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 1:
            raise InvalidRequestError(f"Team size must be at least 1. Got {value}.")
        return value


class AddTeamRequest(BaseModel):
    game_id: UUID
    team_name: TeamName
    channel_id: Optional[str] = None


class StartGameRequest(ModeratorRequest):
    pass


class RearmTeamRequest(ModeratorRequest):
    team_id: UUID


class NextRoundRequest(ModeratorRequest):
    pass


class PauseGameRequest(ModeratorRequest):
    pass


class ResumeGameRequest(ModeratorRequest):
    pass


class AbortGameRequest(ModeratorRequest):
    pass


class ResetGameRequest(ModeratorRequest):
    reset_type: ResetType


class RollRequest(BaseModel):
    game_id: UUID
    team_id: UUID
    rolled_by: Member
    # Only for tests / replays. Normally the service rolls the die itself.
    dice: Optional[int] = None

    @field_validator("dice")
    @classmethod
    def validate_dice(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and not 1 <= value <= 6:
            raise InvalidRequestError(f"Dice value must be between 1 and 6. Got {value}.")
        return value


class GetGameRequest(BaseModel):
    game_id: UUID


class RollHistoryRequest(BaseModel):
    game_id: UUID
    limit: Optional[int] = None


class DeleteGameRequest(ModeratorRequest):
    pass


# --- RESPONSE MODELS ---
class TeamResponse(BaseModel):
    team_id: UUID
    team_name: TeamName
    current_position: int
    gate: GateState
    can_roll: bool


class GameResponse(BaseModel):
    game_id: UUID
    name: str
    status: Status
    is_paused: bool
    snakes: dict[Tile, Tile]
    ladders: dict[Tile, Tile]
    snake_count: int
    ladder_count: int
    max_team_size: Optional[int]
    application_deadline: Optional[datetime]
    teams: list[TeamResponse]
    winner_team_id: Optional[UUID]


class RollEventResponse(BaseModel):
    roll_id: UUID
    team_id: UUID
    team_name: TeamName
    dice_roll: int
    old_position: int
    new_position: int
    snake_or_ladder: Optional[str]
    rolled_by: Member
    announcement_sent: bool
    created_at: datetime


class RollResponse(BaseModel):
    """Either `event` is set (the roll happened) or `denied` is (it did not)."""

    game_id: UUID
    team_id: UUID
    event: Optional[RollEventResponse] = None
    denied: Optional[DenialReason] = None
    tile_task: Optional[str] = None
    won: bool = False

    @property
    def granted(self) -> bool:
        return self.event is not None


class RollHistoryResponse(BaseModel):
    game_id: UUID
    rolls: list[RollEventResponse]
