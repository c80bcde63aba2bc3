"""
Board topology: which tile sends a team to which other tile.

Snakes and ladders are merged into a single mapping. Redirects are applied once (single hop):
the tile a team is sent to is final for that roll, even if it is itself the start of another snake or ladder.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from src.core.exceptions import BoardConfigurationError, InvalidInputError
from src.core.shared_types import Effect

logger = logging.getLogger(__name__)

START_TILE = 0
GOAL_TILE = 100

# fmt: off
DEFAULT_LADDERS: dict[int, int] = {
     1: 38,   4: 14,   9: 31,  21: 42,  28: 84,
    36: 44,  51: 67,  71: 91,  80: 100,
}
DEFAULT_SNAKES: dict[int, int] = {
    16:  6,  47: 26,  49: 11,  56: 53,  62: 19,
    64: 60,  87: 24,  93: 73,  95: 75,  98: 78,
}
# fmt: on


@dataclass(frozen=True)
class Redirect:
    """Where a tile sends you, and whether that was a snake or a ladder."""

    target: int
    effect: Effect


@dataclass(frozen=True)
class BoardTopology:
    """Immutable tile -> Redirect lookup."""

    redirects: Mapping[int, Redirect] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # freeze the mapping so nobody can sneak a new snake onto a running board
        object.__setattr__(self, "redirects", MappingProxyType(dict(self.redirects)))
        for source, redirect in self.redirects.items():
            _validate_redirect(source, redirect)
        self._warn_about_chains()

    # --- construction ---
    @classmethod
    def from_snakes_and_ladders(
        cls, snakes: Mapping[int, int], ladders: Mapping[int, int]
    ) -> BoardTopology:
        """Merge separate snake (head -> tail) and ladder (bottom -> top) maps."""
        overlap = set(snakes) & set(ladders)
        if overlap:
            raise BoardConfigurationError(
                f"Tiles {sorted(overlap)} are both the head of a snake and the bottom of a ladder."
            )

        redirects: dict[int, Redirect] = {}
        for head, tail in snakes.items():
            if tail >= head:
                raise BoardConfigurationError(
                    f"A snake must go down. Got {head} -> {tail}."
                )
            redirects[int(head)] = Redirect(target=int(tail), effect=Effect.SNAKE)
        for bottom, top in ladders.items():
            if top <= bottom:
                raise BoardConfigurationError(
                    f"A ladder must go up. Got {bottom} -> {top}."
                )
            redirects[int(bottom)] = Redirect(target=int(top), effect=Effect.LADDER)
        return cls(redirects)

    @classmethod
    def default(cls) -> BoardTopology:
        """The classic board layout."""
        return cls.from_snakes_and_ladders(DEFAULT_SNAKES, DEFAULT_LADDERS)

    @classmethod
    def random(
        cls,
        snake_count: int,
        ladder_count: int,
        rng: Optional[random.Random] = None,
    ) -> BoardTopology:
        """
        Generate a board where no tile is used twice.
        ----

        * snake heads on tiles 10-99, tails anywhere below the head
        * ladder bottoms on tiles 1-80, tops above the bottom but at most 99
        """
        if snake_count < 0 or ladder_count < 0:
            raise InvalidInputError("Snake and ladder counts cannot be negative.")
        # every snake/ladder uses two tiles, and only tiles 1-99 can be used
        if 2 * (snake_count + ladder_count) > GOAL_TILE - 1:
            raise InvalidInputError(
                f"Cannot fit {snake_count} snakes and {ladder_count} ladders on the board."
            )

        rng = rng or random.Random()
        used: set[int] = set()
        snakes: dict[int, int] = {}
        ladders: dict[int, int] = {}

        for _ in range(snake_count):
            while True:
                head = rng.randint(10, 99)
                tail = rng.randint(1, head - 1)
                if head not in used and tail not in used:
                    break
            snakes[head] = tail
            used.update((head, tail))

        for _ in range(ladder_count):
            while True:
                bottom = rng.randint(1, 80)
                top = rng.randint(bottom + 1, 99)
                if bottom not in used and top not in used:
                    break
            ladders[bottom] = top
            used.update((bottom, top))

        return cls.from_snakes_and_ladders(snakes, ladders)

    # --- lookup ---
    def resolve(self, tile: int) -> Optional[Redirect]:
        """The redirect starting on `tile`, if any."""
        return self.redirects.get(tile)

    @property
    def snakes(self) -> dict[int, int]:
        return {
            source: redirect.target
            for source, redirect in self.redirects.items()
            if redirect.effect == Effect.SNAKE
        }

    @property
    def ladders(self) -> dict[int, int]:
        return {
            source: redirect.target
            for source, redirect in self.redirects.items()
            if redirect.effect == Effect.LADDER
        }

    @property
    def snake_count(self) -> int:
        return len(self.snakes)

    @property
    def ladder_count(self) -> int:
        return len(self.ladders)

    def _warn_about_chains(self) -> None:
        """Redirects are never chained. Still worth a warning when a board is configured as if they were."""
        chained = sorted(
            source
            for source, redirect in self.redirects.items()
            if redirect.target in self.redirects
        )
        if chained:
            logger.warning(
                "Board has redirects ending on another redirect (only the first hop is applied): %s",
                chained,
            )


def _validate_redirect(source: int, redirect: Redirect) -> None:
    if not START_TILE < source < GOAL_TILE:
        raise BoardConfigurationError(
            f"Redirect source must be on tiles 1-99. Got {source}."
        )
    if not START_TILE < redirect.target <= GOAL_TILE:
        raise BoardConfigurationError(
            f"Redirect target must be on tiles 1-100. Got {source} -> {redirect.target}."
        )
    if redirect.target == source:
        raise BoardConfigurationError(f"Tile {source} cannot redirect to itself.")


def parse_redirects(config: str) -> dict[int, int]:
    """
    Parse the moderator text format: "16:6, 47:26" -> {16: 6, 47: 26}.

    An empty string means no redirects.
    """
    redirects: dict[int, int] = {}
    if not config.strip():
        return redirects

    for pair in config.split(","):
        parts = pair.strip().split(":")
        if len(parts) != 2:
            raise InvalidInputError(
                f"Cannot interpret {pair.strip()!r}. Use the format start:end,start:end"
            )
        try:
            start, end = int(parts[0]), int(parts[1])
        except ValueError as exc:
            raise InvalidInputError(
                f"Tiles must be whole numbers. Got {pair.strip()!r}."
            ) from exc
        if start in redirects:
            raise InvalidInputError(f"Tile {start} appears more than once.")
        redirects[start] = end
    return redirects
