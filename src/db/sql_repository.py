"""Implementation of the repositories using SQLAlchemy"""

import threading
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.exceptions import DuplicateRollError, NotFoundError
from src.core.models import (
    GameModel,
    GameParameters,
    GameSettings,
    RolledBy,
    TeamModel,
)
from src.db.schema import DBGame, DBGameParameters, DBRollEvent, DBTeam
from src.snakes_ladders.events import RollEvent


class _SQLRepository:
    """
    A Session must not be used from two threads at once.
    Repositories sharing a session should share the lock as well.
    """

    def __init__(self, db_session: Session, lock: Optional[threading.RLock] = None) -> None:
        self.db = db_session
        self._lock = lock or threading.RLock()


class SQLGameRepository(_SQLRepository):
    """Games, teams and guild parameters stored using SQL / methods implemented using SQLAlchemy"""

    # --- games ---
    def get_game(self, game_id: UUID) -> GameModel | None:
        """Get game by ID, if record exists."""
        with self._lock:
            game_db = self._fetch_game(game_id)
            if game_db:
                return self._to_game_model(game_db)
            return None

    def create_game(self, game_id: UUID, game: GameModel) -> GameModel:
        """Store new game under the given ID and return the stored data."""
        with self._lock:
            game_db = DBGame(id=game_id, created_by=game.created_by)
            self._copy_game(game, game_db)
            self.db.add(game_db)
            self.db.commit()
            self.db.refresh(game_db)
            return self._to_game_model(game_db)

    def update_game(self, game_id: UUID, game: GameModel) -> GameModel | None:
        """Add new info to existing record."""
        with self._lock:
            game_db = self._fetch_game(game_id)
            if not game_db:
                return None
            self._copy_game(game, game_db)
            self.db.commit()
            self.db.refresh(game_db)
            return self._to_game_model(game_db)

    def delete_game(self, game_id: UUID) -> GameModel | None:
        """Remove a game's record (and its teams)."""
        with self._lock:
            game_db = self._fetch_game(game_id)
            if not game_db:
                return None
            game_model = self._to_game_model(game_db)
            for team_db in self.db.scalars(select(DBTeam).where(DBTeam.game_id == game_id)):
                self.db.delete(team_db)
            self.db.delete(game_db)
            self.db.commit()
            return game_model

    def count_games(self, guild_id: str, status: str) -> int:
        """Number of games of a guild in the given status."""
        with self._lock:
            query = (
                select(func.count())
                .select_from(DBGame)
                .where(DBGame.guild_id == guild_id, DBGame.status == status)
            )
            return self.db.scalar(query) or 0

    # --- teams ---
    def get_team(self, team_id: UUID) -> TeamModel | None:
        """Get team by ID, if record exists."""
        with self._lock:
            team_db = self.db.get(DBTeam, team_id)
            return self._to_team_model(team_db) if team_db else None

    def list_teams(self, game_id: UUID) -> dict[UUID, TeamModel]:
        """All teams of a game, keyed by team ID."""
        with self._lock:
            query = select(DBTeam).where(DBTeam.game_id == game_id).order_by(DBTeam.created_at)
            return {team_db.id: self._to_team_model(team_db) for team_db in self.db.scalars(query)}

    def create_team(self, team_id: UUID, team: TeamModel) -> TeamModel:
        """Store new team under the given ID."""
        with self._lock:
            if self._fetch_game(team.game_id) is None:
                raise NotFoundError("Game", team.game_id)
            team_db = DBTeam(id=team_id, game_id=team.game_id)
            self._copy_team(team, team_db)
            self.db.add(team_db)
            self.db.commit()
            self.db.refresh(team_db)
            return self._to_team_model(team_db)

    def update_team(self, team_id: UUID, team: TeamModel) -> TeamModel | None:
        """Add new info to existing record."""
        with self._lock:
            team_db = self.db.get(DBTeam, team_id)
            if not team_db:
                return None
            self._copy_team(team, team_db)
            self.db.commit()
            self.db.refresh(team_db)
            return self._to_team_model(team_db)

    # --- guild parameters ---
    def get_parameters(self, guild_id: str) -> GameParameters | None:
        """Settings of a guild, if it configured any."""
        with self._lock:
            params_db = self.db.get(DBGameParameters, guild_id)
            return self._to_parameters(params_db) if params_db else None

    def save_parameters(self, parameters: GameParameters) -> GameParameters:
        """Create or replace the settings of a guild."""
        with self._lock:
            params_db = self.db.get(DBGameParameters, parameters.guild_id)
            if params_db is None:
                params_db = DBGameParameters(guild_id=parameters.guild_id)
                self.db.add(params_db)
            params_db.moderator_role_id = parameters.moderator_role_id
            params_db.max_teams_per_game = parameters.settings.max_teams_per_game
            params_db.allow_multiple_games = parameters.settings.allow_multiple_games
            params_db.default_game_duration = parameters.settings.default_game_duration
            self.db.commit()
            self.db.refresh(params_db)
            return self._to_parameters(params_db)

    # --- helpers ---
    def _fetch_game(self, game_id: UUID) -> DBGame | None:
        query = select(DBGame).where(DBGame.id == game_id)
        return self.db.scalar(query)

    def _copy_game(self, game: GameModel, game_db: DBGame) -> None:
        """Everything but the ID and the creator can change over the lifetime of a game."""
        game_db.name = game.name
        game_db.guild_id = game.guild_id
        game_db.status = game.status
        game_db.snakes = {str(k): v for k, v in game.snakes.items()}
        game_db.ladders = {str(k): v for k, v in game.ladders.items()}
        game_db.tile_tasks = {str(k): v for k, v in game.tile_tasks.items()}
        game_db.snake_count = len(game.snakes)
        game_db.ladder_count = len(game.ladders)
        game_db.participants = [str(team_id) for team_id in game.participants]
        game_db.max_team_size = game.max_team_size
        game_db.application_deadline = game.application_deadline
        game_db.is_paused = game.is_paused
        game_db.winner_team_id = game.winner_team_id
        game_db.completed_at = game.completed_at
        game_db.channel_id = game.channel_id
        game_db.announcement_channel_id = game.announcement_channel_id

    def _to_game_model(self, game_db: DBGame) -> GameModel:
        """Convert SQLAlchemy model to data transfer model."""
        return GameModel(
            name=game_db.name,
            guild_id=game_db.guild_id,
            created_by=game_db.created_by,
            status=game_db.status,
            snakes={int(k): v for k, v in game_db.snakes.items()},
            ladders={int(k): v for k, v in game_db.ladders.items()},
            participants=[UUID(team_id) for team_id in game_db.participants],
            tile_tasks={int(k): v for k, v in game_db.tile_tasks.items()},
            max_team_size=game_db.max_team_size,
            application_deadline=_as_utc(game_db.application_deadline),
            is_paused=game_db.is_paused,
            winner_team_id=game_db.winner_team_id,
            completed_at=_as_utc(game_db.completed_at),
            channel_id=game_db.channel_id,
            announcement_channel_id=game_db.announcement_channel_id,
        )

    def _copy_team(self, team: TeamModel, team_db: DBTeam) -> None:
        team_db.team_name = team.team_name
        team_db.current_position = team.current_position
        team_db.can_roll = team.can_roll
        team_db.channel_id = team.channel_id

    def _to_team_model(self, team_db: DBTeam) -> TeamModel:
        return TeamModel(
            game_id=team_db.game_id,
            team_name=team_db.team_name,
            current_position=team_db.current_position,
            can_roll=team_db.can_roll,
            channel_id=team_db.channel_id,
        )

    def _to_parameters(self, params_db: DBGameParameters) -> GameParameters:
        return GameParameters(
            guild_id=params_db.guild_id,
            moderator_role_id=params_db.moderator_role_id,
            settings=GameSettings(
                max_teams_per_game=params_db.max_teams_per_game,
                allow_multiple_games=params_db.allow_multiple_games,
                default_game_duration=params_db.default_game_duration,
            ),
        )


class SQLRollEventRepository(_SQLRepository):
    """RollEventLog stored in the roll_events table. Rows are only ever inserted, plus the announcement flag."""

    def append(self, event: RollEvent) -> RollEvent:
        with self._lock:
            if self.db.get(DBRollEvent, event.roll_id) is not None:
                raise DuplicateRollError(f"Roll {event.roll_id} was already recorded.")
            self.db.add(self._to_db(event))
            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                raise DuplicateRollError(f"Roll {event.roll_id} was already recorded.") from exc
            return event

    def get(self, roll_id: UUID) -> RollEvent | None:
        with self._lock:
            event_db = self.db.get(DBRollEvent, roll_id)
            return self._to_event(event_db) if event_db else None

    def mark_announced(self, roll_id: UUID) -> RollEvent:
        with self._lock:
            event_db = self.db.get(DBRollEvent, roll_id)
            if event_db is None:
                raise NotFoundError("RollEvent", roll_id)
            if not event_db.announcement_sent:
                event_db.announcement_sent = True
                self.db.commit()
                self.db.refresh(event_db)
            return self._to_event(event_db)

    def list_for_game(self, game_id: UUID) -> list[RollEvent]:
        with self._lock:
            query = (
                select(DBRollEvent)
                .where(DBRollEvent.game_id == game_id)
                .order_by(DBRollEvent.created_at.desc())
            )
            return [self._to_event(event_db) for event_db in self.db.scalars(query)]

    def list_unannounced(self) -> list[RollEvent]:
        with self._lock:
            query = (
                select(DBRollEvent)
                .where(DBRollEvent.announcement_sent.is_(False))
                .order_by(DBRollEvent.created_at.asc())
            )
            return [self._to_event(event_db) for event_db in self.db.scalars(query)]

    def _to_db(self, event: RollEvent) -> DBRollEvent:
        return DBRollEvent(
            roll_id=event.roll_id,
            game_id=event.game_id,
            team_id=event.team_id,
            team_name=event.team_name,
            dice_roll=event.dice_roll,
            old_position=event.old_position,
            new_position=event.new_position,
            snake_or_ladder=event.snake_or_ladder,
            rolled_by_user_id=event.rolled_by.user_id,
            rolled_by_username=event.rolled_by.username,
            rolled_by_display_name=event.rolled_by.display_name,
            announcement_sent=event.announcement_sent,
            created_at=event.created_at,
        )

    def _to_event(self, event_db: DBRollEvent) -> RollEvent:
        """Convert SQLAlchemy model to the domain event."""
        return RollEvent(
            roll_id=event_db.roll_id,
            game_id=event_db.game_id,
            team_id=event_db.team_id,
            team_name=event_db.team_name,
            dice_roll=event_db.dice_roll,
            old_position=event_db.old_position,
            new_position=event_db.new_position,
            snake_or_ladder=event_db.snake_or_ladder,
            rolled_by=RolledBy(
                user_id=event_db.rolled_by_user_id,
                username=event_db.rolled_by_username,
                display_name=event_db.rolled_by_display_name,
            ),
            created_at=_as_utc(event_db.created_at),
            announcement_sent=event_db.announcement_sent,
        )


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes. Everything in this package is stored in UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
