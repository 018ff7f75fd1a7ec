"""
Exactly-once gate for event processing.

A row is keyed by its fingerprint. The first invocation to reserve the
fingerprint processes it; every later one gets the stored outcome back
marked `skipped`. Failed processing releases the reservation so the row
can be retried.
"""
import hashlib
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from matchday.errors import ContentionError, StoreUnavailable
from matchday.live_match.models import DraftEvent, EventType, ProcessingOutcome, player_key

from .locks import MatchLockRegistry
from .store import IdempotencyStore

logger = logging.getLogger("idempotency.guard")


def compute_fingerprint(match_id: str, draft: DraftEvent) -> str:
    """
    Stable hash of (match, event type, player, minute[, card severity]).

    The player label is case-folded so "Smith" and "smith " collide.
    """
    parts = [
        str(match_id),
        draft.event_type.value,
        player_key(draft.player or ""),
        str(draft.minute),
    ]
    if draft.event_type == EventType.CARD and draft.card_type is not None:
        parts.append(draft.card_type.value)
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


class Claim:
    """
    Handle given to the caller while it owns a fingerprint.

    `replay` is set when the fingerprint was already processed; the
    caller must then return it without doing any work.
    """

    def __init__(
        self,
        store: IdempotencyStore,
        match_id: str,
        fingerprint: str,
        replay: Optional[ProcessingOutcome] = None,
    ):
        self._store = store
        self.match_id = match_id
        self.fingerprint = fingerprint
        self.replay = replay
        self.committed = False

    def commit(self, outcome: ProcessingOutcome) -> None:
        if self.replay is not None:
            raise RuntimeError("cannot commit a replayed fingerprint")
        self._store.commit(self.match_id, self.fingerprint, outcome)
        self.committed = True


class IdempotencyGuard:
    """Serializes reservation per match and enforces reserve/commit/release."""

    def __init__(
        self,
        store: IdempotencyStore,
        locks: MatchLockRegistry,
        lock_timeout: float = 3.0,
    ):
        self.store = store
        self.locks = locks
        self.lock_timeout = lock_timeout

    @contextmanager
    def claim(self, match_id: str, fingerprint: str) -> Iterator[Claim]:
        """
        Reserve a fingerprint under the match lock.

        The block must call `claim.commit(outcome)` on success. Leaving
        the block without a commit, or with an exception, releases the
        reservation.

        Raises:
            ContentionError: match lock timed out, or the fingerprint is
                reserved by another in-flight invocation
            StoreUnavailable: the idempotency store failed (fatal)
        """
        with self.locks.hold(match_id, self.lock_timeout):
            reservation = self.store.reserve(match_id, fingerprint)

            if reservation.prior_outcome is not None:
                logger.info(f"Replay of {fingerprint[:12]} for match {match_id}, skipping")
                yield Claim(self.store, match_id, fingerprint,
                            replay=reservation.prior_outcome.as_replay())
                return

            if not reservation.acquired:
                raise ContentionError(
                    match_id,
                    f"fingerprint {fingerprint[:12]} is being processed by another invocation",
                )

            claim = Claim(self.store, match_id, fingerprint)
            try:
                yield claim
            except BaseException:
                self._release(match_id, fingerprint)
                raise
            if not claim.committed:
                self._release(match_id, fingerprint)

    def _release(self, match_id: str, fingerprint: str) -> None:
        try:
            self.store.release(match_id, fingerprint)
            logger.info(f"Released reservation {fingerprint[:12]} for match {match_id}")
        except StoreUnavailable as e:
            # The reservation goes stale and becomes reclaimable after its TTL
            logger.error(f"Could not release {fingerprint[:12]} for match {match_id}: {e}")
