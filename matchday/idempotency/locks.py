"""Per-match mutual exclusion with a bounded wait."""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from matchday.errors import ContentionError

logger = logging.getLogger("idempotency.locks")


class MatchLockRegistry:
    """
    One lock per match, so unrelated matches never serialize each other.

    Locks are created on first use and kept for the life of the registry.
    """

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, match_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(match_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[match_id] = lock
            return lock

    @contextmanager
    def hold(self, match_id: str, timeout: float) -> Iterator[None]:
        """
        Hold the match lock for the duration of the block.

        Raises:
            ContentionError: if the lock is not acquired within `timeout` seconds
        """
        lock = self._lock_for(match_id)
        if not lock.acquire(timeout=timeout):
            logger.warning(f"Lock wait for match {match_id} exceeded {timeout}s")
            raise ContentionError(match_id, f"could not lock match {match_id} within {timeout}s")
        try:
            yield
        finally:
            lock.release()

    def is_locked(self, match_id: str) -> bool:
        with self._registry_lock:
            lock = self._locks.get(match_id)
        return lock is not None and lock.locked()
