"""Database tables / schema"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DBGame(Base):
    __tablename__ = "games"
    id: Mapped[UUID] = mapped_column(primary_key=True)
    name: Mapped[str]
    guild_id: Mapped[str] = mapped_column(index=True)
    created_by: Mapped[str]
    status: Mapped[str] = mapped_column(index=True)
    # JSON objects only have string keys: {"16": 6, ...}
    snakes: Mapped[dict[str, int]] = mapped_column(JSON)
    ladders: Mapped[dict[str, int]] = mapped_column(JSON)
    tile_tasks: Mapped[dict[str, str]] = mapped_column(JSON)
    snake_count: Mapped[int] = mapped_column(default=0)
    ladder_count: Mapped[int] = mapped_column(default=0)
    participants: Mapped[list[str]] = mapped_column(JSON)
    max_team_size: Mapped[Optional[int]]
    application_deadline: Mapped[Optional[datetime]]
    is_paused: Mapped[bool] = mapped_column(default=False)
    winner_team_id: Mapped[Optional[UUID]]
    completed_at: Mapped[Optional[datetime]]
    channel_id: Mapped[Optional[str]]
    announcement_channel_id: Mapped[Optional[str]]
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)


class DBTeam(Base):
    __tablename__ = "teams"
    id: Mapped[UUID] = mapped_column(primary_key=True)
    game_id: Mapped[UUID] = mapped_column(ForeignKey("games.id"), index=True)
    team_name: Mapped[str]
    current_position: Mapped[int] = mapped_column(default=0)
    can_roll: Mapped[bool] = mapped_column(default=False)
    channel_id: Mapped[Optional[str]]
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)


class DBRollEvent(Base):
    __tablename__ = "roll_events"
    # roll ids are generated by the engine, the primary key guarantees their uniqueness
    roll_id: Mapped[UUID] = mapped_column(primary_key=True)
    game_id: Mapped[UUID]
    team_id: Mapped[UUID]
    team_name: Mapped[str]
    dice_roll: Mapped[int]
    old_position: Mapped[int]
    new_position: Mapped[int]
    snake_or_ladder: Mapped[Optional[str]]
    rolled_by_user_id: Mapped[str]
    rolled_by_username: Mapped[str]
    rolled_by_display_name: Mapped[str]
    announcement_sent: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime]

    __table_args__ = (
        Index("ix_roll_events_game_created", "game_id", "created_at"),
        Index("ix_roll_events_announced_created", "announcement_sent", "created_at"),
    )


class DBGameParameters(Base):
    __tablename__ = "game_parameters"
    guild_id: Mapped[str] = mapped_column(primary_key=True)
    moderator_role_id: Mapped[Optional[str]]
    max_teams_per_game: Mapped[int] = mapped_column(default=10)
    allow_multiple_games: Mapped[bool] = mapped_column(default=False)
    default_game_duration: Mapped[int] = mapped_column(default=7)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)
