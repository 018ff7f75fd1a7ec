"""
SQLAlchemy storage layer for Matchday Core.

Durable implementations of the match repository, the idempotency store
and the season aggregate store. Every backend failure surfaces as
StoreUnavailable; uniqueness conflicts are handled where they carry
meaning (fingerprint races, repeated flushes), and a stale match save
is a ContentionError.
"""
import json
import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from matchday.errors import ContentionError, StoreUnavailable
from matchday.idempotency.store import COMMITTED, RESERVED, Reservation
from matchday.live_match.models import (
    MatchState,
    PlayerSeasonStats,
    ProcessingOutcome,
    player_key,
)
from matchday.models import FlushedMatch, IdempotencyRecord, MatchRecord, PlayerSeasonRecord

logger = logging.getLogger("matchday.storage")

SEASON_COLUMNS = (
    "appearances",
    "starts",
    "sub_appearances",
    "goals",
    "assists",
    "yellow_cards",
    "red_cards",
    "sin_bins",
    "minutes",
)


class _SqlStore:
    backend = "database"

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Session scope: commit on success, rollback and close always."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"{self.backend} store error: {e}")
            raise StoreUnavailable(self.backend, str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class SqlMatchRepository(_SqlStore):
    """
    Match state as a JSON document plus queryable scoreline columns.

    Saves are optimistic: a row is only overwritten at the version it
    was loaded at, so invocations in other processes can never silently
    drop each other's updates.
    """

    backend = "match_repository"

    def load(self, match_id: str) -> Optional[MatchState]:
        with self._session() as session:
            record = session.get(MatchRecord, match_id)
            if record is None:
                return None
            state = MatchState.from_dict(json.loads(record.state_json))
            state.version = record.version
            return state

    def save(self, state: MatchState) -> None:
        """
        Write the state and bump its version.

        Raises:
            ContentionError: the row changed (or was created) since `state` was loaded
        """
        values = {
            "status": state.status.value,
            "opponent": state.opponent,
            "home_score": state.home_score,
            "away_score": state.away_score,
            "closed": state.closed,
            "state_json": json.dumps(state.to_dict()),
        }
        try:
            with self._session() as session:
                if state.version == 0:
                    session.add(MatchRecord(match_id=state.match_id, version=1, **values))
                    session.flush()
                else:
                    updated = (
                        session.query(MatchRecord)
                        .filter(
                            MatchRecord.match_id == state.match_id,
                            MatchRecord.version == state.version,
                        )
                        .update({**values, "version": state.version + 1}, synchronize_session=False)
                    )
                    if not updated:
                        logger.warning(
                            f"Stale save rejected for match {state.match_id} (version {state.version})"
                        )
                        raise ContentionError(
                            state.match_id,
                            f"match {state.match_id} changed since version {state.version}",
                        )
        except IntegrityError as e:
            logger.warning(f"Match {state.match_id} was created by another invocation")
            raise ContentionError(
                state.match_id, f"match {state.match_id} was created by another invocation"
            ) from e
        state.version += 1

    def delete(self, match_id: str) -> None:
        with self._session() as session:
            session.query(MatchRecord).filter(MatchRecord.match_id == match_id).delete()


class SqlIdempotencyStore(_SqlStore):
    """
    Fingerprint store backed by a unique (match_id, fingerprint) row.

    Inserting the row is the test-and-set. Expired rows (stale
    reservations or outcomes older than the TTL) are taken over with a
    conditional update so two reclaimers cannot both win.
    """

    backend = "idempotency"

    def __init__(
        self,
        session_factory: sessionmaker,
        reservation_ttl_seconds: int = 60,
        ttl_seconds: int = 60 * 60 * 24,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(session_factory)
        self._reservation_ttl = reservation_ttl_seconds
        self._ttl = ttl_seconds
        self._clock = clock

    def reserve(self, match_id: str, fingerprint: str) -> Reservation:
        now = self._clock()
        try:
            with self._session() as session:
                record = (
                    session.query(IdempotencyRecord)
                    .filter_by(match_id=match_id, fingerprint=fingerprint)
                    .one_or_none()
                )
                if record is None:
                    session.add(IdempotencyRecord(
                        match_id=match_id,
                        fingerprint=fingerprint,
                        state=RESERVED,
                        reserved_at=now,
                        expires_at=now + self._reservation_ttl,
                    ))
                    session.flush()
                    return Reservation(acquired=True)

                if record.expires_at > now:
                    if record.state == COMMITTED:
                        outcome = ProcessingOutcome.from_dict(json.loads(record.outcome_json))
                        return Reservation(acquired=False, prior_outcome=outcome)
                    return Reservation(acquired=False, in_flight=True)

                taken = (
                    session.query(IdempotencyRecord)
                    .filter(
                        IdempotencyRecord.id == record.id,
                        IdempotencyRecord.expires_at == record.expires_at,
                    )
                    .update(
                        {
                            "state": RESERVED,
                            "outcome_json": None,
                            "reserved_at": now,
                            "expires_at": now + self._reservation_ttl,
                        },
                        synchronize_session=False,
                    )
                )
                if taken:
                    logger.info(f"Reclaimed expired fingerprint {fingerprint[:12]} for match {match_id}")
                return Reservation(acquired=bool(taken), in_flight=not taken)
        except IntegrityError:
            # Another invocation inserted the same fingerprint first
            return Reservation(acquired=False, in_flight=True)

    def commit(self, match_id: str, fingerprint: str, outcome: ProcessingOutcome) -> None:
        now = self._clock()
        try:
            with self._session() as session:
                updated = (
                    session.query(IdempotencyRecord)
                    .filter_by(match_id=match_id, fingerprint=fingerprint)
                    .update(
                        {
                            "state": COMMITTED,
                            "outcome_json": json.dumps(outcome.to_dict()),
                            "expires_at": now + self._ttl,
                        },
                        synchronize_session=False,
                    )
                )
                if not updated:
                    session.add(IdempotencyRecord(
                        match_id=match_id,
                        fingerprint=fingerprint,
                        state=COMMITTED,
                        outcome_json=json.dumps(outcome.to_dict()),
                        reserved_at=now,
                        expires_at=now + self._ttl,
                    ))
        except IntegrityError as e:
            # Our reservation vanished and another invocation took the fingerprint
            raise StoreUnavailable(self.backend, str(e)) from e

    def release(self, match_id: str, fingerprint: str) -> None:
        with self._session() as session:
            session.query(IdempotencyRecord).filter_by(
                match_id=match_id, fingerprint=fingerprint, state=RESERVED
            ).delete(synchronize_session=False)

    def purge_expired(self) -> int:
        """Delete rows past their TTL. Returns the number removed."""
        now = self._clock()
        with self._session() as session:
            removed = (
                session.query(IdempotencyRecord)
                .filter(IdempotencyRecord.expires_at <= now)
                .delete(synchronize_session=False)
            )
        if removed:
            logger.info(f"Purged {removed} expired fingerprints")
        return removed


class SqlAggregateStore(_SqlStore):
    """Season totals per player; each match is folded in at most once."""

    backend = "aggregates"

    def flush_match(self, state: MatchState) -> bool:
        try:
            with self._session() as session:
                if session.get(FlushedMatch, state.match_id) is not None:
                    return False
                session.add(FlushedMatch(match_id=state.match_id))

                for player in state.players.values():
                    delta = PlayerSeasonStats(player=player.player)
                    delta.add_match(player, state.clock)

                    key = player_key(player.player)
                    record = session.get(PlayerSeasonRecord, key)
                    if record is None:
                        record = PlayerSeasonRecord(player_key=key, player=player.player)
                        for column in SEASON_COLUMNS:
                            setattr(record, column, 0)
                        session.add(record)
                    for column in SEASON_COLUMNS:
                        setattr(record, column, getattr(record, column) + getattr(delta, column))
            return True
        except IntegrityError:
            # A concurrent flush of the same match won the marker row
            logger.info(f"Match {state.match_id} was already flushed")
            return False

    def season_stats(self, player: str) -> Optional[PlayerSeasonStats]:
        with self._session() as session:
            record = session.get(PlayerSeasonRecord, player_key(player))
            if record is None:
                return None
            return PlayerSeasonStats(
                player=record.player,
                **{column: getattr(record, column) for column in SEASON_COLUMNS},
            )
