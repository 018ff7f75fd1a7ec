"""
Tests for the SQLAlchemy-backed stores, using a temporary SQLite database.
"""
import os
import tempfile

import pytest
from sqlalchemy.exc import OperationalError

from config.settings import Settings
from matchday.db import init_db, make_engine, make_session_factory
from matchday.errors import ContentionError, StoreUnavailable
from matchday.idempotency import IdempotencyGuard, MatchLockRegistry
from matchday.live_match.models import (
    CardRecord,
    CardType,
    Interval,
    MatchState,
    MatchStatus,
    PlayerRole,
    ProcessingOutcome,
)
from matchday.live_match.processor import EventProcessor
from matchday.services import build_services
from matchday.storage import SqlAggregateStore, SqlIdempotencyStore, SqlMatchRepository

from conftest import FIXED_NOW, InterleavingRepository, make_row


def outcome_for(fingerprint):
    return ProcessingOutcome(
        fingerprint=fingerprint,
        match_id="m-1",
        event_type="goal",
        payload={"event_type": "goal_scored", "home_score": 1},
        processed_at="2026-09-12T15:00:00Z",
    )


def finished_match(match_id="m-1"):
    state = MatchState(match_id=match_id, status=MatchStatus.FULL_TIME, clock=90, closed=True)
    smith = state.ensure_player("Smith", PlayerRole.STARTER)
    smith.intervals.append(Interval(0, 90))
    smith.goals = 2
    jones = state.ensure_player("Jones", PlayerRole.SUBSTITUTE)
    jones.intervals.append(Interval(60, 75))
    jones.cards = [
        CardRecord(CardType.YELLOW, 65),
        CardRecord(CardType.YELLOW, 75, outcome="second_yellow"),
    ]
    return state


class TestSqlMatchRepository:
    def test_round_trip(self, temp_db):
        repo = SqlMatchRepository(temp_db)
        state = finished_match()
        state.opponent = "Rovers"
        repo.save(state)

        loaded = repo.load("m-1")
        assert loaded.to_dict() == state.to_dict()
        assert repo.load("other") is None

    def test_save_overwrites(self, temp_db):
        repo = SqlMatchRepository(temp_db)
        state = MatchState(match_id="m-1")
        repo.save(state)
        state.home_score = 3
        repo.save(state)
        assert repo.load("m-1").home_score == 3

    def test_save_bumps_version(self, temp_db):
        repo = SqlMatchRepository(temp_db)
        state = MatchState(match_id="m-1")
        repo.save(state)
        repo.save(state)
        assert state.version == 2
        assert repo.load("m-1").version == 2

    def test_stale_save_rejected(self, temp_db):
        repo = SqlMatchRepository(temp_db)
        repo.save(MatchState(match_id="m-1"))
        first = repo.load("m-1")
        second = repo.load("m-1")

        first.home_score = 1
        repo.save(first)
        second.away_score = 1
        with pytest.raises(ContentionError):
            repo.save(second)

        stored = repo.load("m-1")
        assert (stored.home_score, stored.away_score) == (1, 0)

    def test_second_create_rejected(self, temp_db):
        repo = SqlMatchRepository(temp_db)
        repo.save(MatchState(match_id="m-1", opponent="Rovers"))
        with pytest.raises(ContentionError):
            repo.save(MatchState(match_id="m-1", opponent="United"))
        assert repo.load("m-1").opponent == "Rovers"

    def test_delete(self, temp_db):
        repo = SqlMatchRepository(temp_db)
        repo.save(MatchState(match_id="m-1"))
        repo.delete("m-1")
        assert repo.load("m-1") is None

    def test_database_errors_become_store_unavailable(self, temp_db):
        def broken_factory():
            session = temp_db()

            def fail(*args, **kwargs):
                raise OperationalError("SELECT", {}, Exception("database is locked"))

            session.get = fail
            return session

        repo = SqlMatchRepository(broken_factory)
        with pytest.raises(StoreUnavailable) as exc:
            repo.load("m-1")
        assert exc.value.backend == "match_repository"


class TestSqlIdempotencyStore:
    def test_reserve_commit_replay(self, temp_db, clock):
        store = SqlIdempotencyStore(temp_db, clock=clock)
        assert store.reserve("m-1", "fp").acquired
        store.commit("m-1", "fp", outcome_for("fp"))

        again = store.reserve("m-1", "fp")
        assert not again.acquired
        assert again.prior_outcome.payload["home_score"] == 1

    def test_concurrent_reservation_is_in_flight(self, temp_db, clock):
        store = SqlIdempotencyStore(temp_db, clock=clock)
        store.reserve("m-1", "fp")
        second = store.reserve("m-1", "fp")
        assert second.in_flight
        assert not second.acquired

    def test_stale_reservation_reclaimed(self, temp_db, clock):
        store = SqlIdempotencyStore(temp_db, reservation_ttl_seconds=60, clock=clock)
        store.reserve("m-1", "fp")
        clock.advance(61)
        assert store.reserve("m-1", "fp").acquired

    def test_release_only_drops_reservations(self, temp_db, clock):
        store = SqlIdempotencyStore(temp_db, clock=clock)
        store.reserve("m-1", "a")
        store.release("m-1", "a")
        assert store.reserve("m-1", "a").acquired

        store.commit("m-1", "a", outcome_for("a"))
        store.release("m-1", "a")
        assert store.reserve("m-1", "a").prior_outcome is not None

    def test_commit_race_becomes_store_unavailable(self, temp_db, clock):
        SqlIdempotencyStore(temp_db, clock=clock).reserve("m-1", "fp")

        class NoRows:
            def filter_by(self, **kwargs):
                return self

            def update(self, *args, **kwargs):
                return 0

        def vanished_reservation_factory():
            # The update misses, so commit falls back to an insert that collides
            session = temp_db()
            session.query = lambda *entities: NoRows()
            return session

        store = SqlIdempotencyStore(vanished_reservation_factory, clock=clock)
        with pytest.raises(StoreUnavailable) as exc:
            store.commit("m-1", "fp", outcome_for("fp"))
        assert exc.value.backend == "idempotency"

    def test_purge_expired(self, temp_db, clock):
        store = SqlIdempotencyStore(temp_db, ttl_seconds=100, clock=clock)
        store.reserve("m-1", "fp")
        store.commit("m-1", "fp", outcome_for("fp"))
        clock.advance(101)
        assert store.purge_expired() == 1
        assert store.purge_expired() == 0


class TestSqlAggregateStore:
    def test_flush_and_read(self, temp_db):
        store = SqlAggregateStore(temp_db)
        assert store.flush_match(finished_match()) is True

        smith = store.season_stats("smith")
        assert smith.appearances == 1
        assert smith.starts == 1
        assert smith.goals == 2
        assert smith.minutes == 90

        jones = store.season_stats("Jones")
        assert jones.sub_appearances == 1
        assert jones.yellow_cards == 2
        assert jones.red_cards == 1
        assert jones.minutes == 15

    def test_flush_once_per_match(self, temp_db):
        store = SqlAggregateStore(temp_db)
        store.flush_match(finished_match("m-1"))
        assert store.flush_match(finished_match("m-1")) is False
        store.flush_match(finished_match("m-2"))
        assert store.season_stats("Smith").appearances == 2

    def test_unknown_player(self, temp_db):
        assert SqlAggregateStore(temp_db).season_stats("Nobody") is None


def sql_worker(settings, session_factory, cache, repository=None):
    """A processor as one worker process would build it: own locks, shared database."""
    guard = IdempotencyGuard(SqlIdempotencyStore(session_factory), MatchLockRegistry(), 0.2)
    return EventProcessor(
        settings,
        repository=repository or SqlMatchRepository(session_factory),
        guard=guard,
        cache=cache,
        aggregates=SqlAggregateStore(session_factory),
        now=lambda: FIXED_NOW,
    )


class TestSqlProcessor:
    def test_match_survives_a_new_processor(self, settings, temp_db, cache):
        first = sql_worker(settings, temp_db, cache)
        first.process_row("m-1", make_row("Kick Off", 0, "Smith"))
        first.process_row("m-1", make_row("Goal", 10, "Smith"))

        second = sql_worker(settings, temp_db, cache)
        replay = second.process_row("m-1", make_row("Goal", 10, "Smith"))
        assert replay.skipped is True
        second.process_row("m-1", make_row("Full Time", 90))

        assert second.get_match("m-1").home_score == 1
        assert second.season_stats("Smith")["goals"] == 1

    def test_workers_sharing_a_database_lose_no_updates(self, settings, temp_db, cache):
        racing = InterleavingRepository(SqlMatchRepository(temp_db))
        worker_a = sql_worker(settings, temp_db, cache, repository=racing)
        worker_b = sql_worker(settings, temp_db, cache)
        worker_a.process_row("m-1", make_row("Kick Off", 0, "Smith, Brown"))

        # Worker B saves between worker A's load and save
        racing.interleave = lambda: worker_b.process_row("m-1", make_row("Goal", 20, "Brown"))
        with pytest.raises(ContentionError):
            worker_a.process_row("m-1", make_row("Goal", 10, "Smith"))

        retried = worker_a.process_row("m-1", make_row("Goal", 10, "Smith"))
        assert retried.skipped is False

        state = worker_b.get_match("m-1")
        assert state.scoreline() == {"home_score": 2, "away_score": 0}
        assert state.get_player("Brown").goals == 1
        assert state.get_player("Smith").goals == 1


class TestBuildServices:
    def test_expired_fingerprints_purged_at_startup(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            url = f"sqlite:///{os.path.join(tmpdir, 'matchday.db')}"
            engine = make_engine(url)
            init_db(engine)
            old = SqlIdempotencyStore(make_session_factory(engine), ttl_seconds=1, clock=lambda: 0.0)
            old.reserve("m-1", "fp")
            old.commit("m-1", "fp", outcome_for("fp"))
            engine.dispose()

            services = build_services(Settings(_env_file=None, database_url=url))
            try:
                assert services.backend == "sqlite"
                assert services.processor.guard.store.purge_expired() == 0
            finally:
                services.engine.dispose()
