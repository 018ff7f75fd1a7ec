"""
Request coalescing for cache recomputation.

When several callers miss on the same key at once, only one of them
runs the computation and the rest share its result (or its error).
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger("cache.coalescer")


@dataclass
class _Pending:
    done: threading.Event = field(default_factory=threading.Event)
    result: Any = None
    error: Optional[Exception] = None
    waiters: int = 0


class RequestCoalescer:
    """Runs at most one computation per key at a time."""

    def __init__(self, timeout: float = 10.0):
        """
        Args:
            timeout: Max seconds a waiter blocks on someone else's computation
        """
        self._pending: Dict[str, _Pending] = {}
        self._lock = threading.Lock()
        self._timeout = timeout
        self._computed = 0
        self._shared = 0

    def get_or_compute(self, cache_key: str, compute_fn: Callable[[], Any]) -> Any:
        """
        Return compute_fn's result, sharing it with concurrent callers of the same key.

        Raises:
            TimeoutError: the in-flight computation did not finish within the timeout
            Exception: whatever compute_fn raised, re-raised for every caller
        """
        pending, owner = self._join(cache_key)
        if owner:
            self._run(cache_key, pending, compute_fn)
        elif not pending.done.wait(timeout=self._timeout):
            logger.error(f"Timeout waiting for coalesced computation: {cache_key}")
            raise TimeoutError(f"Computation for {cache_key} timed out after {self._timeout}s")

        if pending.error is not None:
            raise pending.error
        return pending.result

    def _join(self, cache_key: str) -> Tuple[_Pending, bool]:
        with self._lock:
            pending = self._pending.get(cache_key)
            if pending is not None:
                pending.waiters += 1
                self._shared += 1
                logger.debug(f"Coalescing {cache_key} (waiters: {pending.waiters})")
                return pending, False
            pending = _Pending()
            self._pending[cache_key] = pending
            self._computed += 1
            return pending, True

    def _run(self, cache_key: str, pending: _Pending, compute_fn: Callable[[], Any]) -> None:
        try:
            pending.result = compute_fn()
        except Exception as e:
            pending.error = e
            logger.warning(f"Computation failed for {cache_key}: {e}")
        finally:
            with self._lock:
                self._pending.pop(cache_key, None)
            pending.done.set()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "active_computations": len(self._pending),
                "computed": self._computed,
                "shared": self._shared,
            }
