"""Ladder test fixtures: file-backed async SQLite database, frozen clock and recording sink.

Each test gets its own database file under tmp_path. A file (rather than
:memory:) lets concurrent operations use separate connections the same way
the bot does.
"""

import asyncio
import dataclasses
from datetime import datetime, timedelta
from typing import Any, Dict, List, Tuple

import pytest

from ladder.config import LadderSettings
from ladder.database.database import Database
from ladder.operations.challenge_operations import ChallengeOperations
from ladder.operations.player_operations import PlayerOperations
from ladder.services.lock_manager import PlayerLockManager
from ladder.services.notifications import NotificationDispatcher, NotificationSink
from ladder.utils.clock import Clock

# Wednesday
START = datetime(2024, 1, 10, 12, 0, 0)


class FrozenClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, moment: datetime = START):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def set(self, moment: datetime):
        self.moment = moment

    def advance(self, **kwargs):
        self.moment += timedelta(**kwargs)


class RecordingSink(NotificationSink):
    name = 'recording'

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def notify(self, event_name, payload):
        self.events.append((event_name, payload))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def last(self, event_name: str) -> Dict[str, Any]:
        return [payload for name, payload in self.events if name == event_name][-1]


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def notifier(sink):
    return NotificationDispatcher([sink], timeout=1.0)


@pytest.fixture
def locks():
    return PlayerLockManager()


@pytest.fixture
async def db(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'ladder.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def settings():
    return LadderSettings()


@pytest.fixture
def make_challenge_ops(db, clock, notifier, locks):
    """Build ChallengeOperations with settings overrides, sharing the test's db, clock and locks."""
    def _make(**overrides) -> ChallengeOperations:
        settings = dataclasses.replace(LadderSettings(), **overrides)
        return ChallengeOperations(db, settings=settings, clock=clock, notifier=notifier, locks=locks)
    return _make


@pytest.fixture
def challenge_ops(db, settings, clock, notifier, locks):
    return ChallengeOperations(db, settings=settings, clock=clock, notifier=notifier, locks=locks)


@pytest.fixture
def player_ops(db, clock, notifier, locks):
    return PlayerOperations(db, clock=clock, notifier=notifier, locks=locks)


@pytest.fixture
def register(player_ops):
    """Register players in order, so the n-th name gets rank n."""
    async def _register(count: int, prefix: str = 'player'):
        players = []
        for index in range(1, count + 1):
            players.append(await player_ops.register_player(f"{prefix}{index}", discord_id=1000 + index))
        return players
    return _register


@pytest.fixture
async def ladder(register):
    """Six players: ranks 1..6 (tiers 1, 2, 2, 3, 3, 3)."""
    return await register(6)


async def ranks_by_id(player_ops) -> Dict[int, int]:
    return {player.id: player.rank for player in await player_ops.list_standings()}


async def wait_for_events(sink: RecordingSink, count: int, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while len(sink.events) < count:
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"Expected {count} events, got {sink.names()}")
        await asyncio.sleep(0.01)
