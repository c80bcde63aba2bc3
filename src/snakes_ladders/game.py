"""
The Game class will be the entrypoint into the domain layer for the service layer.
It owns the lifecycle of one game (pending -> registration -> active -> completed), the positions of its teams,
and decides when a roll is legal. Roll resolution itself is delegated to resolver.py, the per-team locking to gate.py.

Concurrency:
- the RollGate serializes rolls per team (different teams roll in parallel)
- `_lock` serializes changes of the game status, including the commit of a winning roll,
  so only one team can ever be recorded as the winner.
Nothing blocking happens while `_lock` is held.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Self, Union
from uuid import UUID, uuid4

from src.core.exceptions import (
    GameError,
    GameNotActiveError,
    GameStateError,
    InsufficientParticipantsError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from src.core.models import GameModel, GameParameters, RolledBy, TeamModel
from src.core.shared_types import STATUS_ORDER, DenialReason, ResetType, Status
from src.snakes_ladders.board import GOAL_TILE, START_TILE, BoardTopology
from src.snakes_ladders.events import RollEvent, RollEventLog, utc_now
from src.snakes_ladders.gate import RollDenied, RollGate
from src.snakes_ladders.parameters import check_can_start
from src.snakes_ladders.resolver import resolve_roll

logger = logging.getLogger(__name__)

RollOutcome = Union[RollEvent, RollDenied]

DEFAULT_ROLL_TIMEOUT = 30.0


@dataclass
class Team:
    team_id: UUID
    team_name: str
    current_position: int = START_TILE
    channel_id: Optional[str] = None


@dataclass
class Game:
    # --- DOMAIN LAYER API CALLED BY SERVICE---

    game_id: UUID
    name: str
    guild_id: str
    created_by: str
    board: BoardTopology
    status: Status
    teams: dict[UUID, Team]
    gate: RollGate
    events: RollEventLog
    tile_tasks: dict[int, str] = field(default_factory=dict)
    max_team_size: Optional[int] = None
    application_deadline: Optional[datetime] = None
    is_paused: bool = False
    winner_team_id: Optional[UUID] = None
    completed_at: Optional[datetime] = None
    channel_id: Optional[str] = None
    announcement_channel_id: Optional[str] = None
    clock: Callable[[], datetime] = field(default=utc_now, repr=False, compare=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    @classmethod
    def new_game(
        cls,
        name: str,
        guild_id: str,
        created_by: str,
        board: BoardTopology,
        events: RollEventLog,
        roll_timeout: float = DEFAULT_ROLL_TIMEOUT,
        tile_tasks: Optional[dict[int, str]] = None,
        max_team_size: Optional[int] = None,
        application_deadline: Optional[datetime] = None,
        channel_id: Optional[str] = None,
        announcement_channel_id: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> Self:
        """A fresh game in the `pending` state, without any teams."""
        if not name.strip():
            raise InvalidInputError("A game needs a name.")
        return cls(
            game_id=uuid4(),
            name=name,
            guild_id=guild_id,
            created_by=created_by,
            board=board,
            status=Status.PENDING,
            teams={},
            gate=RollGate(roll_timeout),
            events=events,
            tile_tasks=dict(tile_tasks or {}),
            max_team_size=max_team_size,
            application_deadline=application_deadline,
            channel_id=channel_id,
            announcement_channel_id=announcement_channel_id,
            clock=clock,
        )

    @classmethod
    def from_model(
        cls,
        game_id: UUID,
        model: GameModel,
        teams: dict[UUID, TeamModel],
        events: RollEventLog,
        roll_timeout: float = DEFAULT_ROLL_TIMEOUT,
        clock: Callable[[], datetime] = utc_now,
    ) -> Self:
        """Define how to construct a Game from the information the Service layer actually has"""

        # Validation
        if model.status not in Status.__members__.values():
            raise GameStateError(
                f"Invalid status: {model.status!r}. \nPick one from {','.join(Status)}"
            )

        board = BoardTopology.from_snakes_and_ladders(model.snakes, model.ladders)
        gate = RollGate(roll_timeout)
        domain_teams: dict[UUID, Team] = {}
        for team_id, team_model in teams.items():
            domain_teams[team_id] = Team(
                team_id=team_id,
                team_name=team_model.team_name,
                current_position=team_model.current_position,
                channel_id=team_model.channel_id,
            )
            gate.register(team_id, armed=team_model.can_roll)

        return cls(
            game_id=game_id,
            name=model.name,
            guild_id=model.guild_id,
            created_by=model.created_by,
            board=board,
            status=Status(model.status),
            teams=domain_teams,
            gate=gate,
            events=events,
            tile_tasks=dict(model.tile_tasks),
            max_team_size=model.max_team_size,
            application_deadline=model.application_deadline,
            is_paused=model.is_paused,
            winner_team_id=model.winner_team_id,
            completed_at=model.completed_at,
            channel_id=model.channel_id,
            announcement_channel_id=model.announcement_channel_id,
            clock=clock,
        )

    def to_model(self) -> GameModel:
        """Encode back into a format the Service layer uses"""
        return GameModel(
            name=self.name,
            guild_id=self.guild_id,
            created_by=self.created_by,
            status=self.status.value,
            snakes=self.board.snakes,
            ladders=self.board.ladders,
            participants=list(self.teams),
            tile_tasks=dict(self.tile_tasks),
            max_team_size=self.max_team_size,
            application_deadline=self.application_deadline,
            is_paused=self.is_paused,
            winner_team_id=self.winner_team_id,
            completed_at=self.completed_at,
            channel_id=self.channel_id,
            announcement_channel_id=self.announcement_channel_id,
        )

    def team_model(self, team_id: UUID) -> TeamModel:
        team = self.team(team_id)
        return TeamModel(
            game_id=self.game_id,
            team_name=team.team_name,
            current_position=team.current_position,
            can_roll=self.gate.can_roll(team_id),
            channel_id=team.channel_id,
        )

    def team_models(self) -> dict[UUID, TeamModel]:
        return {team_id: self.team_model(team_id) for team_id in self.teams}

    # --- QUERIES ---
    @property
    def participants(self) -> set[UUID]:
        return set(self.teams)

    @property
    def winner(self) -> Optional[Team]:
        if self.winner_team_id is None:
            return None
        return self.teams.get(self.winner_team_id)

    def team(self, team_id: UUID) -> Team:
        team = self.teams.get(team_id)
        if team is None:
            raise NotFoundError("Team", team_id)
        return team

    def can_roll(self, team_id: UUID) -> bool:
        """Would a roll by this team be granted right now?"""
        self.team(team_id)
        return self._denial_reason() is None and self.gate.can_roll(team_id)

    def standings(self) -> list[Team]:
        """Teams ordered from the furthest along to the last one."""
        return sorted(self.teams.values(), key=lambda t: (-t.current_position, t.team_name))

    def tile_task(self, tile: int) -> Optional[str]:
        return self.tile_tasks.get(tile)

    # --- LIFECYCLE ---
    def open_registration(
        self,
        max_team_size: Optional[int] = None,
        application_deadline: Optional[datetime] = None,
    ) -> None:
        """pending -> registration. The maximum team size must be known by now."""
        with self._lock:
            self._assert_status(Status.PENDING)
            if max_team_size is not None:
                if max_team_size < 1:
                    raise InvalidInputError(f"Team size must be at least 1. Got {max_team_size}.")
                self.max_team_size = max_team_size
            if self.max_team_size is None:
                raise InvalidTransitionError(
                    "Cannot open registration before the maximum team size is set."
                )
            if application_deadline is not None:
                self.application_deadline = application_deadline
            self._change_status(Status.REGISTRATION)

    def add_team(self, team_name: str, channel_id: Optional[str] = None) -> Team:
        """
        Record a team that has been accepted into the game.
        (Applications and membership are handled elsewhere, the engine only tracks the team itself.)
        """
        with self._lock:
            if self.status not in (Status.PENDING, Status.REGISTRATION):
                raise GameStateError(
                    f"Cannot add teams to this game anymore. status: {self.status}"
                )
            if not team_name.strip():
                raise InvalidInputError("A team needs a name.")
            if any(t.team_name == team_name for t in self.teams.values()):
                raise InvalidInputError(f"Team name {team_name!r} is already taken in this game.")

            team = Team(team_id=uuid4(), team_name=team_name, channel_id=channel_id)
            self.teams[team.team_id] = team
            self.gate.register(team.team_id, armed=False)
        return team

    def start(
        self,
        parameters: Optional[GameParameters] = None,
        other_active_games: int = 0,
    ) -> None:
        """registration -> active. Every team gets to roll once."""
        with self._lock:
            self._assert_status(Status.REGISTRATION)
            if not self.teams:
                raise InsufficientParticipantsError(
                    "Cannot start a game without any teams."
                )
            check_can_start(parameters, len(self.teams), other_active_games)
            self.is_paused = False
            self._change_status(Status.ACTIVE)
            self.gate.arm_all()

    def roll(
        self,
        team_id: UUID,
        dice: int,
        rolled_by: RolledBy,
        rearm: bool = False,
    ) -> RollOutcome:
        """
        Attempt a roll for a team.
        ----

        1. Check the game accepts rolls (active, not paused)
        2. Take the team's gate (ARMED -> IN_FLIGHT) or return the reason why not
        3. Resolve the dice on the board
        4. Commit the new position (and the win, if any) under the game lock
        5. Append the RollEvent to the log
        6. Release the gate: LOCKED, unless `rearm` (and the game is not over)

        Denials are returned, not raised. Invalid input raises.
        """
        team = self.team(team_id)

        with self._lock:
            reason = self._denial_reason()
        if reason is not None:
            logger.debug("Roll for team %s denied: %s", team_id, reason)
            return RollDenied(team_id, reason)

        grant = self.gate.try_acquire(team_id)
        if isinstance(grant, RollDenied):
            logger.debug("Roll for team %s denied: %s", team_id, grant.reason)
            return grant

        # The team is IN_FLIGHT from here on: only the holder of `grant` moves it.
        old_position = team.current_position
        try:
            result = resolve_roll(self.board, old_position, dice)
        except GameError:
            self.gate.cancel(team_id, grant)
            raise

        with self._lock:
            if not self.gate.holds(grant):
                # Expired or revoked by a reset while we were resolving: nothing is committed.
                logger.warning("Roll for team %s lost its grant before commit, dropped.", team_id)
                return RollDenied(team_id, DenialReason.LOCKED)

            # The game may have been won by another team / paused while we were resolving.
            reason = self._denial_reason()
            if reason is not None:
                if reason == DenialReason.GAME_PAUSED:
                    self.gate.cancel(team_id, grant)
                else:
                    self.gate.release(team_id, grant=grant)
                logger.debug("Roll for team %s denied at commit: %s", team_id, reason)
                return RollDenied(team_id, reason)

            team.current_position = result.new_position
            if result.won:
                self._declare_winner(team)

        event = RollEvent.new(
            game_id=self.game_id,
            team_id=team_id,
            team_name=team.team_name,
            dice_roll=dice,
            old_position=old_position,
            new_position=result.new_position,
            snake_or_ladder=result.effect.value if result.effect else None,
            rolled_by=rolled_by,
            created_at=self.clock(),
        )
        try:
            self.events.append(event)
        finally:
            # The position is committed either way: never hand back an ambiguous roll.
            self.gate.release(team_id, rearm=rearm and not result.won, grant=grant)

        logger.info(
            "Team %r rolled %d: %d -> %d%s",
            team.team_name,
            dice,
            old_position,
            result.new_position,
            f" ({result.effect})" if result.effect else "",
        )
        return event

    def rearm(self, team_id: UUID) -> None:
        """Allow a team to roll again (e.g. after a moderator verified their tile task)."""
        self.team(team_id)
        with self._lock:
            self._assert_active()
            self.gate.arm(team_id)

    def next_round(self) -> None:
        """Re-arm every team of the game."""
        with self._lock:
            self._assert_active()
            self.gate.arm_all()

    def pause(self) -> None:
        with self._lock:
            self._assert_active()
            if self.is_paused:
                raise GameStateError(f"Game {self.name!r} is already paused.")
            self.is_paused = True

    def resume(self) -> None:
        with self._lock:
            self._assert_active()
            if not self.is_paused:
                raise GameStateError(f"Game {self.name!r} is not paused.")
            self.is_paused = False

    def abort(self) -> None:
        """End an active game without a winner."""
        with self._lock:
            self._assert_status(Status.ACTIVE)
            self.completed_at = self.clock()
            self._change_status(Status.COMPLETED)
            self.gate.lock_all()

    def reset(self, reset_type: ResetType) -> None:
        """
        Re-initialise an active or completed game. The only way to move the status backwards.
        ----

        * FULL: back to `pending`
        * POSITIONS: back to `registration`, the same teams can start again

        Either way every team goes back to the start and nobody can roll until the game is started again.
        The roll log is left untouched.
        """
        with self._lock:
            if self.status not in (Status.ACTIVE, Status.COMPLETED):
                raise InvalidTransitionError(
                    f"Only an active or completed game can be reset. status: {self.status}"
                )
            for team in self.teams.values():
                team.current_position = START_TILE
            self.winner_team_id = None
            self.completed_at = None
            self.is_paused = False
            # rolls still in flight must not land on the reset board
            self.gate.revoke_all()
            new_status = Status.PENDING if reset_type == ResetType.FULL else Status.REGISTRATION
            logger.info("Game %r reset (%s): %s -> %s", self.name, reset_type, self.status, new_status)
            self.status = new_status

    def expire_stale_rolls(self) -> list[UUID]:
        return self.gate.expire_stale()

    # -- PRIVATE HELPERS ---
    def _denial_reason(self) -> Optional[DenialReason]:
        """Must be called with the lock held."""
        if self.status != Status.ACTIVE:
            return DenialReason.GAME_NOT_ACTIVE
        if self.is_paused:
            return DenialReason.GAME_PAUSED
        return None

    def _declare_winner(self, team: Team) -> None:
        """Must be called with the lock held. Everybody is locked out once a team has won."""
        assert team.current_position == GOAL_TILE
        self.winner_team_id = team.team_id
        self.completed_at = self.clock()
        self._change_status(Status.COMPLETED)
        self.gate.lock_all()
        logger.info("Team %r won game %r", team.team_name, self.name)

    def _assert_status(self, expected: Status) -> None:
        if self.status != expected:
            raise InvalidTransitionError(
                f"Game must be {expected} for this action. status: {self.status}"
            )

    def _assert_active(self) -> None:
        if self.status != Status.ACTIVE:
            raise GameNotActiveError(f"Game is not active. status: {self.status}")

    def _change_status(self, new_status: Status) -> None:
        """Forward only, one step at a time."""
        if STATUS_ORDER.index(new_status) != STATUS_ORDER.index(self.status) + 1:
            raise InvalidTransitionError(f"Cannot go from {self.status} to {new_status}.")
        logger.info("Game %r: %s -> %s", self.name, self.status, new_status)
        self.status = new_status
