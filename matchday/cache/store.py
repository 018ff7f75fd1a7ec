"""
Cache store backends.

A store holds entries per tier and knows nothing about TTL policy;
expiry decisions belong to the TieredCache.
"""
import threading
from typing import Dict, Optional, Protocol, Tuple

from .core import CacheEntry, CacheTier


class CacheStore(Protocol):
    """
    Interface for cache backends.

    Implementations raise matchday.errors.StoreUnavailable when the
    backend cannot be reached.
    """

    def read(self, tier: CacheTier, key: str) -> Optional[CacheEntry]:
        ...

    def write(self, entry: CacheEntry) -> None:
        ...

    def delete(self, tier: CacheTier, key: str) -> bool:
        ...

    def count(self) -> int:
        ...


class InMemoryCacheStore:
    """Thread-safe dict-backed store, one namespace per tier."""

    def __init__(self):
        self._entries: Dict[Tuple[CacheTier, str], CacheEntry] = {}
        self._lock = threading.RLock()

    def read(self, tier: CacheTier, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get((tier, key))

    def write(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[(entry.tier, entry.key)] = entry

    def delete(self, tier: CacheTier, key: str) -> bool:
        with self._lock:
            return self._entries.pop((tier, key), None) is not None

    def count(self) -> int:
        with self._lock:
            return len(self._entries)
