"""Unit tests for src/snakes_ladders/resolver.py"""

import random
from itertools import product

import pytest

from src.core.exceptions import GameCompletedOrWonError, InvalidInputError
from src.snakes_ladders.board import BoardTopology, Effect
from src.snakes_ladders.resolver import RollResult, resolve_roll, roll_die


@pytest.fixture
def board() -> BoardTopology:
    return BoardTopology.default()


# -- PROPERTIES --
def test_result_always_on_the_board(board: BoardTopology) -> None:
    """Every legal (position, dice) pair ends on a tile in [0, 100]. Reaching 100 or beyond means the goal."""
    for old_position, dice in product(range(0, 100), range(1, 7)):
        result = resolve_roll(board, old_position, dice)
        assert 0 <= result.new_position <= 100
        if old_position + dice >= 100:
            assert result.new_position == 100
            assert result.won


def test_goal_never_redirects() -> None:
    """Even a (nonsensical) board lookup on 100 is never done."""
    board = BoardTopology.from_snakes_and_ladders({99: 1}, {})
    result = resolve_roll(board, 98, 2)
    assert result == RollResult(landed=100, new_position=100, effect=None)


def test_tile_without_redirect_is_kept(board: BoardTopology) -> None:
    result = resolve_roll(board, 2, 3)
    assert result.landed == 5
    assert result.new_position == 5
    assert not result.redirected


# -- DOCUMENTED SCENARIOS --
def test_ladder_from_tile_9(board: BoardTopology) -> None:
    result = resolve_roll(board, 8, 1)
    assert result.landed == 9
    assert result.new_position == 31
    assert result.effect == Effect.LADDER


def test_snake_on_tile_47(board: BoardTopology) -> None:
    result = resolve_roll(board, 46, 1)
    assert result.landed == 47
    assert result.new_position == 26
    assert result.effect == Effect.SNAKE


@pytest.mark.parametrize("dice", range(1, 7))
def test_any_roll_from_99_wins(board: BoardTopology, dice: int) -> None:
    result = resolve_roll(board, 99, dice)
    assert result.new_position == 100
    assert result.won


def test_ladder_to_the_goal_wins(board: BoardTopology) -> None:
    result = resolve_roll(board, 77, 3)
    assert result.new_position == 100
    assert result.effect == Effect.LADDER
    assert result.won


def test_only_the_landed_tile_is_checked() -> None:
    """Standing on the foot of a ladder does nothing: the post-roll tile counts."""
    board = BoardTopology.from_snakes_and_ladders({}, {10: 50})
    result = resolve_roll(board, 10, 1)
    assert result.new_position == 11


def test_single_hop() -> None:
    """4 -> 14 is a ladder, 14 -> 3 a snake. Landing on 4 ends on 14."""
    board = BoardTopology.from_snakes_and_ladders({14: 3}, {4: 14})
    result = resolve_roll(board, 1, 3)
    assert result.new_position == 14
    assert result.effect == Effect.LADDER


# -- INVALID INPUT --
def test_team_at_goal_cannot_roll(board: BoardTopology) -> None:
    with pytest.raises(GameCompletedOrWonError):
        resolve_roll(board, 100, 3)


@pytest.mark.parametrize("dice", [0, 7, -1])
def test_invalid_dice(board: BoardTopology, dice: int) -> None:
    with pytest.raises(InvalidInputError):
        resolve_roll(board, 10, dice)


@pytest.mark.parametrize("position", [-1, 101])
def test_invalid_position(board: BoardTopology, position: int) -> None:
    with pytest.raises(InvalidInputError):
        resolve_roll(board, position, 3)


# -- DICE --
def test_roll_die_stays_within_faces() -> None:
    rng = random.Random(99)
    values = {roll_die(rng) for _ in range(500)}
    assert values == {1, 2, 3, 4, 5, 6}
