"""
Type definitions used across layers
"""

from enum import StrEnum


class Status(StrEnum):
    PENDING = "pending"
    REGISTRATION = "registration"
    ACTIVE = "active"
    COMPLETED = "completed"


# Forward order of the lifecycle. Only `reset` is allowed to move backwards.
STATUS_ORDER: tuple[Status, ...] = (
    Status.PENDING,
    Status.REGISTRATION,
    Status.ACTIVE,
    Status.COMPLETED,
)


class Effect(StrEnum):
    """Label of a board redirect, also used as announcement text."""

    SNAKE = "Snake"
    LADDER = "Ladder"


class GateState(StrEnum):
    ARMED = "armed"
    LOCKED = "locked"
    IN_FLIGHT = "in flight"


class DenialReason(StrEnum):
    LOCKED = "locked"
    ALREADY_IN_FLIGHT = "already in flight"
    GAME_NOT_ACTIVE = "game not active"
    GAME_PAUSED = "game paused"


class ResetType(StrEnum):
    FULL = "full"
    POSITIONS = "positions"
