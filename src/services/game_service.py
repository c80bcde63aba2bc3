"""Orchestration of communication from the bot/API layer to business logic and persistence layers (and the reverse direction)."""

import logging
import random
import threading
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from src.api.models import (
    AbortGameRequest,
    AddTeamRequest,
    CreateGameRequest,
    DeleteGameRequest,
    GameResponse,
    GetGameRequest,
    Member,
    ModeratorRequest,
    NextRoundRequest,
    OpenRegistrationRequest,
    PauseGameRequest,
    RearmTeamRequest,
    ResetGameRequest,
    ResumeGameRequest,
    RollEventResponse,
    RollHistoryRequest,
    RollHistoryResponse,
    RollRequest,
    RollResponse,
    StartGameRequest,
    TeamResponse,
)
from src.core.config import ROLL_TIMEOUT_SECONDS
from src.core.exceptions import (
    GameStateError,
    NotAuthorizedError,
    NotFoundError,
    RepositoryError,
)
from src.core.models import RolledBy
from src.core.shared_types import Status
from src.db.repository import RollEventLog, SnakesLaddersRepository
from src.services.collaborators import Announcer, Authorizer
from src.snakes_ladders.board import GOAL_TILE, BoardTopology, parse_redirects
from src.snakes_ladders.events import RollEvent, utc_now
from src.snakes_ladders.game import Game
from src.snakes_ladders.gate import RollDenied
from src.snakes_ladders.parameters import default_application_deadline
from src.snakes_ladders.resolver import roll_die

logger = logging.getLogger(__name__)


class GameService:
    """
    Orchestration of layers for Snakes & Ladders games.
    ---

    Games are loaded once and kept in memory: the Game object owns the roll gates, so all rolls for a game
    must go through the same instance. Persistence and announcements happen AFTER the game committed a change,
    and their failure never undoes that change (it is logged; unannounced rolls can be retried).
    """

    def __init__(
        self,
        repository: SnakesLaddersRepository,
        events: RollEventLog,
        announcer: Announcer,
        authorizer: Authorizer,
        dice: Optional[Callable[[], int]] = None,
        roll_timeout: float = ROLL_TIMEOUT_SECONDS,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repo = repository
        self.events = events
        self.announcer = announcer
        self.authorizer = authorizer
        self.rng = rng or random.Random()
        self.dice = dice or (lambda: roll_die(self.rng))
        self.roll_timeout = roll_timeout
        self.clock = clock
        self._games: dict[UUID, Game] = {}
        self._games_lock = threading.Lock()
        self._guild_locks: dict[str, threading.Lock] = {}

    # -- game setup --
    def create_new_game(self, request: CreateGameRequest) -> GameResponse:
        """Moderator created a new game. It starts out `pending`."""

        board = self._build_board(request)
        parameters = self.repo.get_parameters(request.guild_id)
        game = Game.new_game(
            name=request.name,
            guild_id=request.guild_id,
            created_by=request.created_by,
            board=board,
            events=self.events,
            roll_timeout=self.roll_timeout,
            clock=self.clock,
            tile_tasks=dict(request.tile_tasks),
            max_team_size=request.max_team_size,
            application_deadline=request.application_deadline
            or default_application_deadline(parameters, self.clock()),
            channel_id=request.channel_id,
            announcement_channel_id=request.announcement_channel_id,
        )

        self.repo.create_game(game.game_id, game.to_model())
        with self._games_lock:
            self._games[game.game_id] = game

        logger.info("Game %r created in guild %s", game.name, game.guild_id)
        return self._create_game_response(game)

    def open_registration(self, request: OpenRegistrationRequest) -> GameResponse:
        game = self._fetch_game_as_moderator(request)
        game.open_registration(request.max_team_size, request.application_deadline)
        self._save_game(game)
        return self._create_game_response(game)

    def add_team(self, request: AddTeamRequest) -> TeamResponse:
        """A team was accepted into the game (the application itself is handled elsewhere)."""
        game = self._fetch_game(request.game_id)
        team = game.add_team(request.team_name, request.channel_id)
        self.repo.create_team(team.team_id, game.team_model(team.team_id))
        self._save_game(game)
        return self._create_team_response(game, team.team_id)

    def start_game(self, request: StartGameRequest) -> GameResponse:
        game = self._fetch_game_as_moderator(request)
        # counting the active games and saving this one as active must not interleave within a guild
        with self._guild_lock(game.guild_id):
            parameters = self.repo.get_parameters(game.guild_id)
            other_active_games = self.repo.count_games(game.guild_id, Status.ACTIVE.value)
            game.start(parameters, other_active_games)
            self._save_game(game, with_teams=True)
        return self._create_game_response(game)

    # -- playing --
    def roll(self, request: RollRequest) -> RollResponse:
        """
        A team member asked to roll.
        ----
        Who may roll for a team is decided before this call. The service only asks the game.
        """
        game = self._fetch_game(request.game_id)
        dice = request.dice if request.dice is not None else self.dice()

        outcome = game.roll(request.team_id, dice, self._rolled_by(request.rolled_by))

        if isinstance(outcome, RollDenied):
            return RollResponse(
                game_id=game.game_id, team_id=request.team_id, denied=outcome.reason
            )

        won = outcome.new_position == GOAL_TILE
        self._save_after_roll(game, request.team_id, won)
        announced = self._announce(game, outcome)

        return RollResponse(
            game_id=game.game_id,
            team_id=request.team_id,
            event=self._create_event_response(announced),
            tile_task=game.tile_task(outcome.new_position),
            won=won,
        )

    def rearm_team(self, request: RearmTeamRequest) -> TeamResponse:
        """Moderator verified the team's task: they may roll again."""
        game = self._fetch_game_as_moderator(request)
        game.rearm(request.team_id)
        self._save_team(game, request.team_id)
        return self._create_team_response(game, request.team_id)

    def next_round(self, request: NextRoundRequest) -> GameResponse:
        game = self._fetch_game_as_moderator(request)
        game.next_round()
        self._save_game(game, with_teams=True)
        return self._create_game_response(game)

    def pause_game(self, request: PauseGameRequest) -> GameResponse:
        game = self._fetch_game_as_moderator(request)
        game.pause()
        self._save_game(game)
        return self._create_game_response(game)

    def resume_game(self, request: ResumeGameRequest) -> GameResponse:
        game = self._fetch_game_as_moderator(request)
        game.resume()
        self._save_game(game)
        return self._create_game_response(game)

    def abort_game(self, request: AbortGameRequest) -> GameResponse:
        game = self._fetch_game_as_moderator(request)
        game.abort()
        self._save_game(game, with_teams=True)
        return self._create_game_response(game)

    def reset_game(self, request: ResetGameRequest) -> GameResponse:
        game = self._fetch_game_as_moderator(request)
        game.reset(request.reset_type)
        self._save_game(game, with_teams=True)
        return self._create_game_response(game)

    # -- queries --
    def get_game_state(self, request: GetGameRequest) -> GameResponse:
        game = self._fetch_game(request.game_id)
        return self._create_game_response(game)

    def roll_history(self, request: RollHistoryRequest) -> RollHistoryResponse:
        """Rolls of a game, newest first."""
        self._fetch_game(request.game_id)
        events = self.events.list_for_game(request.game_id)
        if request.limit is not None:
            events = events[: request.limit]
        return RollHistoryResponse(
            game_id=request.game_id,
            rolls=[self._create_event_response(event) for event in events],
        )

    def delete_game(self, request: DeleteGameRequest) -> None:
        """Handle a request to delete a Game record. Active games must be aborted first."""
        game = self._fetch_game_as_moderator(request)
        if game.status == Status.ACTIVE:
            raise GameStateError(
                f"Cannot delete game {game.name!r} while it is active. Abort it first."
            )
        self.repo.delete_game(request.game_id)
        with self._games_lock:
            self._games.pop(request.game_id, None)

    # -- maintenance --
    def retry_announcements(self) -> int:
        """Deliver every roll that has not been announced yet (oldest first). Returns how many went through."""
        delivered = 0
        for event in self.events.list_unannounced():
            try:
                game = self._fetch_game(event.game_id)
            except NotFoundError:
                # the game was deleted after the roll; nobody is left to announce it to
                logger.warning(
                    "Skipping announcement of roll %s: game %s no longer exists",
                    event.roll_id,
                    event.game_id,
                )
                continue
            if self._announce(game, event).announcement_sent:
                delivered += 1
        return delivered

    def expire_stale_rolls(self) -> list[UUID]:
        """Lock every team whose roll has been in flight for too long."""
        with self._games_lock:
            games = list(self._games.values())
        expired: list[UUID] = []
        for game in games:
            stale = game.expire_stale_rolls()
            for team_id in stale:
                self._save_team(game, team_id)
            expired.extend(stale)
        return expired

    # -- Internal helpers --
    def _fetch_game(self, game_id: UUID) -> Game:
        """Cached Game, or rebuild it from the repository. Raise error if it does not exist."""
        with self._games_lock:
            game = self._games.get(game_id)
            if game is not None:
                return game

            game_model = self.repo.get_game(game_id)
            if game_model is None:
                raise RepositoryError("Game", game_id)
            teams = self.repo.list_teams(game_id)
            game = Game.from_model(
                game_id, game_model, teams, self.events, self.roll_timeout, self.clock
            )
            self._games[game_id] = game
            return game

    def _guild_lock(self, guild_id: str) -> threading.Lock:
        with self._games_lock:
            return self._guild_locks.setdefault(guild_id, threading.Lock())

    def _fetch_game_as_moderator(self, request: ModeratorRequest) -> Game:
        game = self._fetch_game(request.game_id)
        if not self.authorizer.is_moderator(request.requested_by, game.guild_id):
            raise NotAuthorizedError(
                "You need Administrator permissions or the designated moderator role for this action."
            )
        return game

    def _save_game(self, game: Game, with_teams: bool = False) -> None:
        self.repo.update_game(game.game_id, game.to_model())
        if with_teams:
            for team_id in game.teams:
                self._save_team(game, team_id)

    def _save_team(self, game: Game, team_id: UUID) -> None:
        self.repo.update_team(team_id, game.team_model(team_id))

    def _save_after_roll(self, game: Game, team_id: UUID, won: bool) -> None:
        """The roll is committed in memory. A failing write is logged, never rolled back."""
        try:
            if won:
                self._save_game(game, with_teams=True)
            else:
                self._save_team(game, team_id)
        except Exception:
            logger.exception(
                "Could not persist roll of team %s in game %s", team_id, game.game_id
            )

    def _announce(self, game: Game, event: RollEvent) -> RollEvent:
        """Best effort. The event stays unannounced (and retryable) if anything goes wrong."""
        channel_id = game.announcement_channel_id or game.channel_id
        try:
            self.announcer.notify(game.game_id, channel_id, event)
        except Exception:
            logger.exception("Could not announce roll %s", event.roll_id)
            return event
        return self.events.mark_announced(event.roll_id)

    def _build_board(self, request: CreateGameRequest) -> BoardTopology:
        if request.random_snakes is not None or request.random_ladders is not None:
            return BoardTopology.random(
                request.random_snakes or 0, request.random_ladders or 0, self.rng
            )

        snakes = request.snakes
        if snakes is None and request.snakes_config is not None:
            snakes = parse_redirects(request.snakes_config)
        ladders = request.ladders
        if ladders is None and request.ladders_config is not None:
            ladders = parse_redirects(request.ladders_config)

        if snakes is None and ladders is None:
            return BoardTopology.default()
        return BoardTopology.from_snakes_and_ladders(snakes or {}, ladders or {})

    def _rolled_by(self, member: Member) -> RolledBy:
        return RolledBy(
            user_id=member.user_id,
            username=member.username,
            display_name=member.display_name,
        )

    def _create_team_response(self, game: Game, team_id: UUID) -> TeamResponse:
        team = game.team(team_id)
        return TeamResponse(
            team_id=team_id,
            team_name=team.team_name,
            current_position=team.current_position,
            gate=game.gate.state(team_id),
            can_roll=game.can_roll(team_id),
        )

    def _create_game_response(self, game: Game) -> GameResponse:
        """Convert the Game to a GameResponse (teams ordered by position)."""
        return GameResponse(
            game_id=game.game_id,
            name=game.name,
            status=game.status,
            is_paused=game.is_paused,
            snakes=game.board.snakes,
            ladders=game.board.ladders,
            snake_count=game.board.snake_count,
            ladder_count=game.board.ladder_count,
            max_team_size=game.max_team_size,
            application_deadline=game.application_deadline,
            teams=[
                self._create_team_response(game, team.team_id)
                for team in game.standings()
            ],
            winner_team_id=game.winner_team_id,
        )

    def _create_event_response(self, event: RollEvent) -> RollEventResponse:
        return RollEventResponse(
            roll_id=event.roll_id,
            team_id=event.team_id,
            team_name=event.team_name,
            dice_roll=event.dice_roll,
            old_position=event.old_position,
            new_position=event.new_position,
            snake_or_ladder=event.snake_or_ladder,
            rolled_by=Member(
                user_id=event.rolled_by.user_id,
                username=event.rolled_by.username,
                display_name=event.rolled_by.display_name,
            ),
            announcement_sent=event.announcement_sent,
            created_at=event.created_at,
        )
