"""
Idempotency store interface and in-memory implementation.

The store is a test-and-set over (match_id, fingerprint): a
fingerprint is first reserved, then either committed with its outcome
or released so the row can be retried.
"""
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, Tuple

from matchday.live_match.models import ProcessingOutcome

RESERVED = "reserved"
COMMITTED = "committed"


@dataclass
class Reservation:
    """
    Result of a reserve() call.

    - acquired: the caller now owns the fingerprint
    - prior_outcome: the fingerprint was already committed
    - in_flight: another invocation holds an uncommitted reservation
    """
    acquired: bool
    prior_outcome: Optional[ProcessingOutcome] = None
    in_flight: bool = False


class IdempotencyStore(Protocol):
    """
    Durable fingerprint store shared by concurrent invocations.

    Implementations raise matchday.errors.StoreUnavailable when the
    backend cannot be reached.
    """

    def reserve(self, match_id: str, fingerprint: str) -> Reservation:
        ...

    def commit(self, match_id: str, fingerprint: str, outcome: ProcessingOutcome) -> None:
        ...

    def release(self, match_id: str, fingerprint: str) -> None:
        ...


@dataclass
class _Record:
    status: str
    updated_at: float
    outcome: Optional[dict] = None


class InMemoryIdempotencyStore:
    """Process-local store; durable only for the life of the process."""

    def __init__(
        self,
        reservation_ttl_seconds: int = 60,
        ttl_seconds: int = 60 * 60 * 24,
        clock: Callable[[], float] = time.time,
    ):
        self._records: Dict[Tuple[str, str], _Record] = {}
        self._lock = threading.Lock()
        self._reservation_ttl = reservation_ttl_seconds
        self._ttl = ttl_seconds
        self._clock = clock

    def reserve(self, match_id: str, fingerprint: str) -> Reservation:
        now = self._clock()
        key = (match_id, fingerprint)
        with self._lock:
            record = self._records.get(key)
            if record is not None:
                if record.status == COMMITTED and now - record.updated_at < self._ttl:
                    return Reservation(
                        acquired=False,
                        prior_outcome=ProcessingOutcome.from_dict(record.outcome),
                    )
                if record.status == RESERVED and now - record.updated_at < self._reservation_ttl:
                    return Reservation(acquired=False, in_flight=True)
            # New, expired, or an abandoned reservation
            self._records[key] = _Record(status=RESERVED, updated_at=now)
            return Reservation(acquired=True)

    def commit(self, match_id: str, fingerprint: str, outcome: ProcessingOutcome) -> None:
        with self._lock:
            self._records[(match_id, fingerprint)] = _Record(
                status=COMMITTED,
                updated_at=self._clock(),
                outcome=outcome.to_dict(),
            )

    def release(self, match_id: str, fingerprint: str) -> None:
        with self._lock:
            record = self._records.get((match_id, fingerprint))
            if record is not None and record.status == RESERVED:
                del self._records[(match_id, fingerprint)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
