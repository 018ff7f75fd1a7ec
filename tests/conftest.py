"""
Shared fixtures: settings without .env, fake clocks, in-memory services
and a temporary SQLite database.
"""
import os
import tempfile
from datetime import datetime, timezone

import pytest

from config.settings import Settings
from matchday.cache import TieredCache
from matchday.db import init_db, make_engine, make_session_factory
from matchday.idempotency import IdempotencyGuard, InMemoryIdempotencyStore, MatchLockRegistry
from matchday.live_match.processor import EventProcessor
from matchday.live_match.repository import InMemoryAggregateStore, InMemoryMatchRepository


class FakeClock:
    """Manually advanced seconds source."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InterleavingRepository:
    """
    Wraps a match repository and runs `interleave` once, right after the
    next load. Simulates another worker saving between our load and save.
    """

    def __init__(self, inner):
        self.inner = inner
        self.interleave = None

    def load(self, match_id):
        state = self.inner.load(match_id)
        interleave, self.interleave = self.interleave, None
        if interleave is not None:
            interleave()
        return state

    def save(self, state):
        self.inner.save(state)

    def delete(self, match_id):
        self.inner.delete(match_id)


FIXED_NOW = datetime(2026, 9, 12, 15, 0, tzinfo=timezone.utc)


def make_row(event, minute, player=None, **extra):
    """Build a spreadsheet-style row."""
    row = {"Event": event, "Minute": minute}
    if player is not None:
        row["Player"] = player
    row.update(extra)
    return row


@pytest.fixture
def settings():
    return Settings(_env_file=None, lock_timeout_seconds=0.2)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(settings, clock):
    return TieredCache(settings, clock=clock)


@pytest.fixture
def repository():
    return InMemoryMatchRepository()


@pytest.fixture
def idempotency_store():
    return InMemoryIdempotencyStore()


@pytest.fixture
def locks():
    return MatchLockRegistry()


@pytest.fixture
def aggregates():
    return InMemoryAggregateStore()


@pytest.fixture
def processor(settings, repository, idempotency_store, locks, cache, aggregates):
    guard = IdempotencyGuard(idempotency_store, locks, lock_timeout=settings.lock_timeout_seconds)
    return EventProcessor(
        settings,
        repository=repository,
        guard=guard,
        cache=cache,
        aggregates=aggregates,
        now=lambda: FIXED_NOW,
    )


@pytest.fixture
def temp_db():
    """Temporary SQLite database; yields a session factory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = make_engine(f"sqlite:///{os.path.join(tmpdir, 'test_matchday.db')}")
        init_db(engine)
        yield make_session_factory(engine)
        engine.dispose()
