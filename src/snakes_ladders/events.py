"""
Roll audit log.

Every committed roll becomes one RollEvent. Events are never edited, except for the
`announcement_sent` flag which goes False -> True once the announcer delivered it.
"""

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional, Protocol, Self
from uuid import UUID, uuid4

from src.core.exceptions import DuplicateRollError, NotFoundError
from src.core.models import RolledBy, RollEventModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RollEvent:
    roll_id: UUID
    game_id: UUID
    team_id: UUID
    team_name: str
    dice_roll: int
    old_position: int
    new_position: int
    snake_or_ladder: Optional[str]
    rolled_by: RolledBy
    created_at: datetime
    announcement_sent: bool = False

    @classmethod
    def new(
        cls,
        game_id: UUID,
        team_id: UUID,
        team_name: str,
        dice_roll: int,
        old_position: int,
        new_position: int,
        snake_or_ladder: Optional[str],
        rolled_by: RolledBy,
        created_at: Optional[datetime] = None,
    ) -> Self:
        """Fresh, not yet announced event with a random (uuid4) id."""
        return cls(
            roll_id=uuid4(),
            game_id=game_id,
            team_id=team_id,
            team_name=team_name,
            dice_roll=dice_roll,
            old_position=old_position,
            new_position=new_position,
            snake_or_ladder=snake_or_ladder,
            rolled_by=rolled_by,
            created_at=created_at or utc_now(),
        )

    @classmethod
    def from_model(cls, model: RollEventModel) -> Self:
        return cls(
            roll_id=model.roll_id,
            game_id=model.game_id,
            team_id=model.team_id,
            team_name=model.team_name,
            dice_roll=model.dice_roll,
            old_position=model.old_position,
            new_position=model.new_position,
            snake_or_ladder=model.snake_or_ladder,
            rolled_by=model.rolled_by,
            created_at=model.created_at,
            announcement_sent=model.announcement_sent,
        )

    def to_model(self) -> RollEventModel:
        return RollEventModel(
            roll_id=self.roll_id,
            game_id=self.game_id,
            team_id=self.team_id,
            team_name=self.team_name,
            dice_roll=self.dice_roll,
            old_position=self.old_position,
            new_position=self.new_position,
            snake_or_ladder=self.snake_or_ladder,
            rolled_by=self.rolled_by,
            announcement_sent=self.announcement_sent,
            created_at=self.created_at,
        )


class RollEventLog(Protocol):
    """Append-only store of roll events."""

    def append(self, event: RollEvent) -> RollEvent:
        """Insert a new event. Raises DuplicateRollError if the roll id is already taken."""
        ...

    def get(self, roll_id: UUID) -> RollEvent | None:
        """Get event by ID, if it exists."""
        ...

    def mark_announced(self, roll_id: UUID) -> RollEvent:
        """Flag the event as announced. Calling it again is a no-op."""
        ...

    def list_for_game(self, game_id: UUID) -> list[RollEvent]:
        """All events of a game, newest first."""
        ...

    def list_unannounced(self) -> list[RollEvent]:
        """Events still waiting for the announcer, oldest first."""
        ...


class InMemoryRollEventLog:
    """Thread-safe RollEventLog kept in a dictionary. Used by tests and single-process setups."""

    def __init__(self) -> None:
        self._events: dict[UUID, RollEvent] = {}
        self._lock = threading.Lock()

    def append(self, event: RollEvent) -> RollEvent:
        with self._lock:
            if event.roll_id in self._events:
                raise DuplicateRollError(f"Roll {event.roll_id} was already recorded.")
            self._events[event.roll_id] = event
        return event

    def get(self, roll_id: UUID) -> RollEvent | None:
        with self._lock:
            return self._events.get(roll_id)

    def mark_announced(self, roll_id: UUID) -> RollEvent:
        with self._lock:
            event = self._events.get(roll_id)
            if event is None:
                raise NotFoundError("RollEvent", roll_id)
            if not event.announcement_sent:
                event = replace(event, announcement_sent=True)
                self._events[roll_id] = event
            return event

    def list_for_game(self, game_id: UUID) -> list[RollEvent]:
        with self._lock:
            events = [e for e in self._events.values() if e.game_id == game_id]
        return sorted(events, key=lambda e: e.created_at, reverse=True)

    def list_unannounced(self) -> list[RollEvent]:
        with self._lock:
            events = [e for e in self._events.values() if not e.announcement_sent]
        return sorted(events, key=lambda e: e.created_at)
