"""
Exceptions shared by all layers.

Hierarchy:
- GameError (base, catch this at the edge of the service)
  - InvalidInputError
    - InvalidRequestError
  - GameStateError
    - GameNotActiveError
    - GameCompletedOrWonError
    - InvalidTransitionError
    - InsufficientParticipantsError
  - NotFoundError
    - RepositoryError
  - NotAuthorizedError
  - BoardConfigurationError
  - DuplicateRollError

A denied roll is NOT an exception. See src/snakes_ladders/gate.py (RollDenied).
"""


class GameError(Exception):
    """Base exception for anything raised on purpose by this package."""


# --- validation ---
class InvalidInputError(GameError):
    """Malformed dice value, position, tile, ..."""


class InvalidRequestError(InvalidInputError):
    """Raised by the request models' field validators."""


# --- lifecycle ---
class GameStateError(GameError):
    """Operation not allowed in the current state of the game."""


class GameNotActiveError(GameStateError):
    pass


class GameCompletedOrWonError(GameStateError):
    pass


class InvalidTransitionError(GameStateError):
    pass


class InsufficientParticipantsError(GameStateError):
    pass


# --- lookups ---
class NotFoundError(GameError):
    def __init__(self, entity: str, key: object) -> None:
        super().__init__(f"{entity} with id={key!s} not found.")
        self.entity = entity
        self.key = key


class RepositoryError(NotFoundError):
    """Record could not be found in the persistence layer."""


# --- authorization ---
class NotAuthorizedError(GameError):
    pass


# --- fatal ---
class BoardConfigurationError(GameError):
    """Topology does not satisfy its construction invariants."""


class DuplicateRollError(GameError):
    """A roll id was recorded twice."""
