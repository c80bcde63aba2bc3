"""
Per-team roll gate.

Rolling is a privilege: it is granted (ARMED), consumed (IN_FLIGHT while the roll is processed), and then
the team stays LOCKED until someone re-arms it.

    ARMED --try_acquire--> IN_FLIGHT --release--> LOCKED (or ARMED if rearm=True)
                               |--cancel--> ARMED (grant was never used)
                               |--expire_stale--> LOCKED
                               |--revoke_all--> LOCKED

Every grant carries a token. A roll may only commit while its grant still holds the slot:
once the slot has expired or been revoked, the late roll is refused (`holds` is False).

Every check-and-set happens under one lock, so two requests for the same team can never both see ARMED.
The lock is only held for dictionary updates, so teams do not slow each other down.
"""

import itertools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Union
from uuid import UUID

from src.core.exceptions import GameStateError, NotFoundError
from src.core.shared_types import DenialReason, GateState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RollGrant:
    team_id: UUID
    acquired_at: float
    token: int = 0


@dataclass(frozen=True)
class RollDenied:
    """Expected outcome (not an error): the caller shows `reason` to the user."""

    team_id: UUID
    reason: DenialReason


GateOutcome = Union[RollGrant, RollDenied]


@dataclass
class _Slot:
    state: GateState
    since: float
    token: int = 0


class RollGate:
    """One outstanding-roll slot per team."""

    def __init__(
        self,
        roll_timeout: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.roll_timeout = roll_timeout
        self._clock = clock
        self._slots: dict[UUID, _Slot] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    # -- registration --
    def register(self, team_id: UUID, armed: bool = False) -> None:
        """Start tracking a team. A persisted `can_roll` maps onto ARMED / LOCKED."""
        state = GateState.ARMED if armed else GateState.LOCKED
        with self._lock:
            self._slots[team_id] = _Slot(state, self._clock())

    def teams(self) -> list[UUID]:
        with self._lock:
            return list(self._slots)

    def state(self, team_id: UUID) -> GateState:
        with self._lock:
            return self._slot(team_id).state

    def can_roll(self, team_id: UUID) -> bool:
        return self.state(team_id) == GateState.ARMED

    # -- roll cycle --
    def try_acquire(self, team_id: UUID) -> GateOutcome:
        """Atomically move ARMED -> IN_FLIGHT, or say why not."""
        with self._lock:
            slot = self._slot(team_id)
            if slot.state == GateState.IN_FLIGHT:
                return RollDenied(team_id, DenialReason.ALREADY_IN_FLIGHT)
            if slot.state == GateState.LOCKED:
                return RollDenied(team_id, DenialReason.LOCKED)
            now = self._clock()
            token = next(self._tokens)
            self._slots[team_id] = _Slot(GateState.IN_FLIGHT, now, token)
            return RollGrant(team_id, acquired_at=now, token=token)

    def holds(self, grant: RollGrant) -> bool:
        """Is this grant still the roll in flight for its team?"""
        with self._lock:
            return self._held_by(self._slot(grant.team_id), grant)

    def release(
        self, team_id: UUID, rearm: bool = False, grant: Optional[RollGrant] = None
    ) -> bool:
        """The roll was committed. Team stays LOCKED unless re-armed in the same step."""
        return self._finish(team_id, GateState.ARMED if rearm else GateState.LOCKED, grant)

    def cancel(self, team_id: UUID, grant: Optional[RollGrant] = None) -> bool:
        """The grant was never consumed (nothing was committed): hand it back."""
        return self._finish(team_id, GateState.ARMED, grant)

    def _finish(
        self, team_id: UUID, new_state: GateState, grant: Optional[RollGrant]
    ) -> bool:
        """
        Without a grant the slot must be IN_FLIGHT. With a grant, a slot that moved on
        (expired, revoked, acquired again) is left as it is and False is returned.
        """
        with self._lock:
            slot = self._slot(team_id)
            if grant is not None and not self._held_by(slot, grant):
                logger.debug("Grant %d of team %s no longer holds the gate", grant.token, team_id)
                return False
            if slot.state != GateState.IN_FLIGHT:
                raise GameStateError(
                    f"No roll in flight for team {team_id}. Gate state: {slot.state}"
                )
            self._slots[team_id] = _Slot(new_state, self._clock())
            return True

    # -- moderation --
    def arm(self, team_id: UUID) -> None:
        """Re-grant the right to roll. A roll in flight is left alone."""
        with self._lock:
            slot = self._slot(team_id)
            if slot.state != GateState.IN_FLIGHT:
                self._slots[team_id] = _Slot(GateState.ARMED, self._clock())

    def lock(self, team_id: UUID) -> None:
        with self._lock:
            slot = self._slot(team_id)
            if slot.state != GateState.IN_FLIGHT:
                self._slots[team_id] = _Slot(GateState.LOCKED, self._clock())

    def arm_all(self, team_ids: Iterable[UUID] | None = None) -> None:
        for team_id in team_ids if team_ids is not None else self.teams():
            self.arm(team_id)

    def lock_all(self) -> None:
        """Lock every team that is not mid-roll. In-flight rolls get LOCKED on release."""
        for team_id in self.teams():
            self.lock(team_id)

    def revoke_all(self) -> list[UUID]:
        """Lock every team, rolls in flight included. Their grants can no longer commit."""
        now = self._clock()
        revoked: list[UUID] = []
        with self._lock:
            for team_id, slot in self._slots.items():
                if slot.state == GateState.IN_FLIGHT:
                    revoked.append(team_id)
                self._slots[team_id] = _Slot(GateState.LOCKED, now)
        return revoked

    def expire_stale(self) -> list[UUID]:
        """Clear in-flight markers older than the timeout. They become LOCKED, never ARMED."""
        now = self._clock()
        expired: list[UUID] = []
        with self._lock:
            for team_id, slot in self._slots.items():
                if slot.state == GateState.IN_FLIGHT and now - slot.since >= self.roll_timeout:
                    self._slots[team_id] = _Slot(GateState.LOCKED, now)
                    expired.append(team_id)
        for team_id in expired:
            logger.warning("Roll for team %s was stuck in flight and has been locked.", team_id)
        return expired

    def _slot(self, team_id: UUID) -> _Slot:
        """Must be called with the lock held."""
        slot = self._slots.get(team_id)
        if slot is None:
            raise NotFoundError("Team", team_id)
        return slot

    @staticmethod
    def _held_by(slot: _Slot, grant: RollGrant) -> bool:
        return slot.state == GateState.IN_FLIGHT and slot.token == grant.token
