"""
Exactly-once processing: fingerprints, a durable reservation store and
per-match locks.
"""
from .guard import Claim, IdempotencyGuard, compute_fingerprint
from .locks import MatchLockRegistry
from .store import IdempotencyStore, InMemoryIdempotencyStore, Reservation

__all__ = [
    "Claim",
    "IdempotencyGuard",
    "compute_fingerprint",
    "MatchLockRegistry",
    "IdempotencyStore",
    "InMemoryIdempotencyStore",
    "Reservation",
]
