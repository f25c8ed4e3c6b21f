"""Shared test fixtures for the room state store.

Factory-pattern fixtures that return callables accepting **overrides, plus
a controllable clock for the TTL tests.

Fixtures:
    make_player: Factory for valid Player instances
    make_room: Factory for valid GameRoom instances (live by default)
    clock: A FakeClock starting at a fixed UTC instant
    ms_clock: A FakeMsClock for the rate limiter (epoch milliseconds)
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from roomstate.schemas import GameRoom, Player

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock returning an aware UTC datetime. Advance it explicitly."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMsClock:
    """Callable clock returning epoch milliseconds."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ms_clock() -> FakeMsClock:
    return FakeMsClock()


# ---------------------------------------------------------------------------
# Player factory
# ---------------------------------------------------------------------------


@pytest.fixture
def make_player():
    """Returns a factory function for creating valid Player instances.

    Defaults produce a player with a unique id. Override any field via kwargs.
    """

    def _make(**overrides) -> Player:
        defaults = {
            "id": f"user-{uuid4().hex[:8]}",
            "name": "Ada",
        }
        defaults.update(overrides)
        return Player(**defaults)

    return _make


# ---------------------------------------------------------------------------
# GameRoom factory
# ---------------------------------------------------------------------------


@pytest.fixture
def make_room(make_player):
    """Returns a factory function for creating valid GameRoom instances.

    Defaults produce a lobby room with one host player, expiring 24 hours
    from now. player_ids is derived from players unless overridden. Pass
    expires_at in the past to get an already-expired room.
    """

    def _make(**overrides) -> GameRoom:
        if "players" not in overrides:
            host_id = overrides.get("host_id", f"user-{uuid4().hex[:8]}")
            overrides["players"] = [make_player(id=host_id)]
        players = overrides["players"]
        defaults = {
            "room_code": f"ROOM-{uuid4().hex[:6].upper()}",
            "host_id": players[0].id if players else "nobody",
            "player_ids": [p.id for p in players],
            "expires_at": datetime.now(timezone.utc) + timedelta(hours=24),
        }
        defaults.update(overrides)
        return GameRoom(**defaults)

    return _make
