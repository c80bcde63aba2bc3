"""Unit tests for src/snakes_ladders/gate.py"""

import threading
from concurrent.futures import ThreadPoolExecutor
from uuid import UUID, uuid4

import pytest

from src.core.exceptions import GameStateError, NotFoundError
from src.snakes_ladders.gate import (
    DenialReason,
    GateState,
    RollDenied,
    RollGate,
    RollGrant,
)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gate(clock: FakeClock) -> RollGate:
    return RollGate(roll_timeout=30, clock=clock)


@pytest.fixture
def team_id() -> UUID:
    return uuid4()


# -- ROLL CYCLE --
def test_armed_team_gets_a_grant(gate: RollGate, team_id: UUID) -> None:
    gate.register(team_id, armed=True)
    outcome = gate.try_acquire(team_id)
    assert isinstance(outcome, RollGrant)
    assert gate.state(team_id) == GateState.IN_FLIGHT
    assert not gate.can_roll(team_id)


def test_locked_team_is_denied(gate: RollGate, team_id: UUID) -> None:
    gate.register(team_id, armed=False)
    assert gate.try_acquire(team_id) == RollDenied(team_id, DenialReason.LOCKED)
    assert gate.state(team_id) == GateState.LOCKED


def test_second_request_while_in_flight_is_denied(gate: RollGate, team_id: UUID) -> None:
    gate.register(team_id, armed=True)
    gate.try_acquire(team_id)
    assert gate.try_acquire(team_id) == RollDenied(team_id, DenialReason.ALREADY_IN_FLIGHT)


def test_release_locks_the_team(gate: RollGate, team_id: UUID) -> None:
    """A consumed grant must be re-granted before the next roll."""
    gate.register(team_id, armed=True)
    gate.try_acquire(team_id)
    gate.release(team_id)
    assert gate.state(team_id) == GateState.LOCKED
    assert gate.try_acquire(team_id) == RollDenied(team_id, DenialReason.LOCKED)


def test_release_with_rearm(gate: RollGate, team_id: UUID) -> None:
    gate.register(team_id, armed=True)
    gate.try_acquire(team_id)
    gate.release(team_id, rearm=True)
    assert gate.state(team_id) == GateState.ARMED


def test_cancel_hands_the_grant_back(gate: RollGate, team_id: UUID) -> None:
    gate.register(team_id, armed=True)
    gate.try_acquire(team_id)
    gate.cancel(team_id)
    assert gate.can_roll(team_id)


def test_release_without_roll_in_flight(gate: RollGate, team_id: UUID) -> None:
    gate.register(team_id, armed=True)
    with pytest.raises(GameStateError):
        gate.release(team_id)


def test_unknown_team(gate: RollGate) -> None:
    with pytest.raises(NotFoundError):
        gate.try_acquire(uuid4())


# -- MODERATION --
def test_arm_after_lock(gate: RollGate, team_id: UUID) -> None:
    gate.register(team_id)
    gate.arm(team_id)
    assert gate.can_roll(team_id)
    gate.lock(team_id)
    assert not gate.can_roll(team_id)


def test_moderation_leaves_rolls_in_flight_alone(gate: RollGate, team_id: UUID) -> None:
    gate.register(team_id, armed=True)
    gate.try_acquire(team_id)
    gate.arm(team_id)
    gate.lock_all()
    assert gate.state(team_id) == GateState.IN_FLIGHT


def test_arm_all_and_lock_all(gate: RollGate) -> None:
    teams = [uuid4() for _ in range(3)]
    for team in teams:
        gate.register(team)
    gate.arm_all()
    assert all(gate.can_roll(team) for team in teams)
    gate.lock_all()
    assert not any(gate.can_roll(team) for team in teams)


# -- STUCK ROLLS --
def test_stale_roll_becomes_locked(gate: RollGate, clock: FakeClock, team_id: UUID) -> None:
    """Never silently re-arm a roll that may or may not have happened."""
    gate.register(team_id, armed=True)
    gate.try_acquire(team_id)

    clock.advance(10)
    assert gate.expire_stale() == []
    assert gate.state(team_id) == GateState.IN_FLIGHT

    clock.advance(25)
    assert gate.expire_stale() == [team_id]
    assert gate.state(team_id) == GateState.LOCKED

    # the late release of the stuck roll is refused
    with pytest.raises(GameStateError):
        gate.release(team_id)


def test_expire_ignores_armed_and_locked(gate: RollGate, clock: FakeClock) -> None:
    armed, locked = uuid4(), uuid4()
    gate.register(armed, armed=True)
    gate.register(locked, armed=False)
    clock.advance(3600)
    assert gate.expire_stale() == []
    assert gate.state(armed) == GateState.ARMED


# -- GRANTS --
def test_grants_are_distinct(gate: RollGate, team_id: UUID) -> None:
    gate.register(team_id, armed=True)
    first = gate.try_acquire(team_id)
    gate.release(team_id, rearm=True, grant=first)
    second = gate.try_acquire(team_id)
    assert first.token != second.token
    assert gate.holds(second)
    assert not gate.holds(first)


def test_expired_grant_no_longer_holds(gate: RollGate, clock: FakeClock, team_id: UUID) -> None:
    gate.register(team_id, armed=True)
    stuck = gate.try_acquire(team_id)
    clock.advance(60)
    gate.expire_stale()
    gate.arm(team_id)
    fresh = gate.try_acquire(team_id)

    assert not gate.holds(stuck)
    # the late roll cannot release (or cancel) someone else's grant
    assert gate.release(team_id, grant=stuck) is False
    assert gate.cancel(team_id, grant=stuck) is False
    assert gate.state(team_id) == GateState.IN_FLIGHT
    assert gate.release(team_id, grant=fresh) is True
    assert gate.state(team_id) == GateState.LOCKED


def test_revoke_all_includes_rolls_in_flight(gate: RollGate) -> None:
    in_flight, armed = uuid4(), uuid4()
    gate.register(in_flight, armed=True)
    gate.register(armed, armed=True)
    grant = gate.try_acquire(in_flight)

    assert gate.revoke_all() == [in_flight]
    assert gate.state(in_flight) == GateState.LOCKED
    assert gate.state(armed) == GateState.LOCKED
    assert not gate.holds(grant)


# -- CONCURRENCY --
def test_concurrent_requests_for_one_team(team_id: UUID) -> None:
    """Out of many simultaneous requests exactly one gets the grant."""
    gate = RollGate(roll_timeout=30)
    gate.register(team_id, armed=True)
    attempts = 16
    barrier = threading.Barrier(attempts)

    def attempt() -> object:
        barrier.wait()
        return gate.try_acquire(team_id)

    with ThreadPoolExecutor(max_workers=attempts) as pool:
        outcomes = list(pool.map(lambda _: attempt(), range(attempts)))

    grants = [o for o in outcomes if isinstance(o, RollGrant)]
    denials = [o for o in outcomes if isinstance(o, RollDenied)]
    assert len(grants) == 1
    assert len(denials) == attempts - 1
    assert all(d.reason == DenialReason.ALREADY_IN_FLIGHT for d in denials)


def test_teams_do_not_block_each_other() -> None:
    gate = RollGate(roll_timeout=30)
    teams = [uuid4() for _ in range(8)]
    for team in teams:
        gate.register(team, armed=True)

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(gate.try_acquire, teams))

    assert all(isinstance(o, RollGrant) for o in outcomes)
