"""Pure roll resolution: old position + dice value -> new position."""

import random
from dataclasses import dataclass
from typing import Optional

from src.core.exceptions import GameCompletedOrWonError, InvalidInputError
from src.core.shared_types import Effect
from src.snakes_ladders.board import GOAL_TILE, START_TILE, BoardTopology

DIE_FACES = 6


@dataclass(frozen=True)
class RollResult:
    landed: int  # tile reached by the dice alone
    new_position: int  # tile after applying the board (if any redirect)
    effect: Optional[Effect] = None

    @property
    def redirected(self) -> bool:
        return self.effect is not None

    @property
    def won(self) -> bool:
        return self.new_position == GOAL_TILE


def roll_die(rng: Optional[random.Random] = None) -> int:
    """Uniform draw from 1..6."""
    return (rng or random).randint(1, DIE_FACES)


def resolve_roll(board: BoardTopology, old_position: int, dice: int) -> RollResult:
    """
    Compute where a team ends up.
    ----

    1. Overshooting the goal is capped at the goal (never bounced back, never rejected).
    2. The goal tile is terminal: no lookup on the board.
    3. Otherwise, apply at most one snake or ladder on the landed tile.
    """
    if old_position == GOAL_TILE:
        raise GameCompletedOrWonError("Team already reached the goal and cannot roll again.")
    if not START_TILE <= old_position < GOAL_TILE:
        raise InvalidInputError(f"Position must be in [0, 99]. Got {old_position}.")
    if not 1 <= dice <= DIE_FACES:
        raise InvalidInputError(f"Dice value must be in [1, {DIE_FACES}]. Got {dice}.")

    landed = min(old_position + dice, GOAL_TILE)
    if landed == GOAL_TILE:
        return RollResult(landed=landed, new_position=GOAL_TILE)

    redirect = board.resolve(landed)
    if redirect is None:
        return RollResult(landed=landed, new_position=landed)
    return RollResult(landed=landed, new_position=redirect.target, effect=redirect.effect)
