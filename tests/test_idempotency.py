"""
Tests for fingerprints, the reservation store and the per-match guard.
"""
import threading

import pytest

from matchday.errors import ContentionError, StoreUnavailable
from matchday.idempotency import (
    IdempotencyGuard,
    InMemoryIdempotencyStore,
    MatchLockRegistry,
    compute_fingerprint,
)
from matchday.live_match.models import CardType, DraftEvent, EventType, ProcessingOutcome


def outcome_for(fingerprint, match_id="m-1"):
    return ProcessingOutcome(
        fingerprint=fingerprint,
        match_id=match_id,
        event_type="goal",
        payload={"event_type": "goal_scored"},
        processed_at="2026-09-12T15:00:00Z",
    )


class TestFingerprint:
    def test_stable_and_case_folded(self):
        a = compute_fingerprint("m-1", DraftEvent(EventType.GOAL, 34, player="Smith"))
        b = compute_fingerprint("m-1", DraftEvent(EventType.GOAL, 34, player=" smith "))
        assert a == b
        assert len(a) == 64

    def test_differs_by_match_minute_and_player(self):
        base = compute_fingerprint("m-1", DraftEvent(EventType.GOAL, 34, player="Smith"))
        assert base != compute_fingerprint("m-2", DraftEvent(EventType.GOAL, 34, player="Smith"))
        assert base != compute_fingerprint("m-1", DraftEvent(EventType.GOAL, 35, player="Smith"))
        assert base != compute_fingerprint("m-1", DraftEvent(EventType.GOAL, 34, player="Jones"))

    def test_card_severity_is_part_of_the_key(self):
        yellow = DraftEvent(EventType.CARD, 40, player="Jones", card_type=CardType.YELLOW)
        red = DraftEvent(EventType.CARD, 40, player="Jones", card_type=CardType.RED)
        assert compute_fingerprint("m-1", yellow) != compute_fingerprint("m-1", red)


class TestInMemoryStore:
    def test_reserve_commit_replay(self, clock):
        store = InMemoryIdempotencyStore(clock=clock)
        assert store.reserve("m-1", "fp").acquired
        store.commit("m-1", "fp", outcome_for("fp"))
        again = store.reserve("m-1", "fp")
        assert not again.acquired
        assert again.prior_outcome.fingerprint == "fp"

    def test_in_flight_reservation(self, clock):
        store = InMemoryIdempotencyStore(clock=clock)
        store.reserve("m-1", "fp")
        second = store.reserve("m-1", "fp")
        assert not second.acquired
        assert second.in_flight

    def test_stale_reservation_reclaimed(self, clock):
        store = InMemoryIdempotencyStore(reservation_ttl_seconds=60, clock=clock)
        store.reserve("m-1", "fp")
        clock.advance(61)
        assert store.reserve("m-1", "fp").acquired

    def test_committed_fingerprint_expires(self, clock):
        store = InMemoryIdempotencyStore(ttl_seconds=100, clock=clock)
        store.reserve("m-1", "fp")
        store.commit("m-1", "fp", outcome_for("fp"))
        clock.advance(101)
        assert store.reserve("m-1", "fp").acquired

    def test_release_frees_reservation(self, clock):
        store = InMemoryIdempotencyStore(clock=clock)
        store.reserve("m-1", "fp")
        store.release("m-1", "fp")
        assert store.reserve("m-1", "fp").acquired
        assert len(store) == 1


class TestGuard:
    @pytest.fixture
    def guard(self, idempotency_store, locks):
        return IdempotencyGuard(idempotency_store, locks, lock_timeout=0.2)

    def test_commit_then_replay(self, guard):
        with guard.claim("m-1", "fp") as claim:
            assert claim.replay is None
            claim.commit(outcome_for("fp"))

        with guard.claim("m-1", "fp") as claim:
            assert claim.replay.skipped is True
            assert claim.replay.fingerprint == "fp"

    def test_failure_releases(self, guard, idempotency_store):
        with pytest.raises(RuntimeError):
            with guard.claim("m-1", "fp"):
                raise RuntimeError("boom")
        assert idempotency_store.reserve("m-1", "fp").acquired

    def test_leaving_without_commit_releases(self, guard, idempotency_store):
        with guard.claim("m-1", "fp"):
            pass
        assert idempotency_store.reserve("m-1", "fp").acquired

    def test_in_flight_fingerprint_is_contention(self, guard, idempotency_store):
        idempotency_store.reserve("m-1", "fp")
        with pytest.raises(ContentionError):
            with guard.claim("m-1", "fp"):
                pass

    def test_lock_timeout_is_contention(self, guard, locks):
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold("m-1", 1.0):
                held.set()
                release.wait(2.0)

        t = threading.Thread(target=holder)
        t.start()
        held.wait(1.0)
        try:
            with pytest.raises(ContentionError):
                with guard.claim("m-1", "fp"):
                    pass
            # Other matches are unaffected
            with guard.claim("m-2", "fp") as claim:
                claim.commit(outcome_for("fp", "m-2"))
        finally:
            release.set()
            t.join()

    def test_release_failure_is_logged_not_raised(self, locks, caplog):
        class BrokenRelease(InMemoryIdempotencyStore):
            def release(self, match_id, fingerprint):
                raise StoreUnavailable("idempotency")

        guard = IdempotencyGuard(BrokenRelease(), locks, lock_timeout=0.2)
        with pytest.raises(ValueError):
            with guard.claim("m-1", "fp"):
                raise ValueError("bad row")
        assert "Could not release" in caplog.text


class TestLockRegistry:
    def test_is_locked(self):
        registry = MatchLockRegistry()
        assert not registry.is_locked("m-1")
        with registry.hold("m-1", 0.1):
            assert registry.is_locked("m-1")
        assert not registry.is_locked("m-1")
