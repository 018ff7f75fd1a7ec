"""
Tiered cache orchestration: hot, warm and cold TTL tiers over one store.
"""
import json
import threading
import logging
import time
from typing import Dict, Optional, Callable, Any

from config.settings import Settings
from matchday.errors import StoreUnavailable

from .core import CacheEntry, CacheHit, CacheTier, TIER_ORDER
from .coalescer import RequestCoalescer
from .store import CacheStore, InMemoryCacheStore
from .ttl_policies import build_ttl_config, get_tier_for_key

logger = logging.getLogger("cache.manager")

# Backend errors that make the cache fail open instead of failing the event
_STORE_ERRORS = (StoreUnavailable, OSError)


class TieredCache:
    """
    Read-through / write-through cache with:
    - Three TTL tiers chosen from the key's declared category
    - Lookups from the fastest tier down (hot -> warm -> cold)
    - Request coalescing for concurrent recomputation
    - Fail-open behavior when the store is unreachable

    Correctness never depends on this cache; it only saves recomputation.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[CacheStore] = None,
        clock: Callable[[], float] = time.time,
        coalesce_timeout: float = 10.0,
    ):
        """
        Args:
            settings: Tier TTLs and the enable flag
            store: Backend holding the entries (in-memory by default)
            clock: Seconds source, injectable for tests
            coalesce_timeout: Timeout for waiting on coalesced computations
        """
        self.enabled = settings.cache_enabled
        self._ttl = build_ttl_config(settings)
        self._store: CacheStore = store if store is not None else InMemoryCacheStore()
        self._clock = clock
        self._coalescer = RequestCoalescer(timeout=coalesce_timeout)
        self._stats_lock = threading.Lock()
        self._stats = {
            "hits_hot": 0,
            "hits_warm": 0,
            "hits_cold": 0,
            "misses": 0,
            "writes": 0,
            "invalidations": 0,
            "store_errors": 0,
        }

    def ttl_for(self, tier: CacheTier) -> int:
        return self._ttl[tier]

    def get(self, cache_key: str) -> Optional[CacheHit]:
        """
        Look a key up in every tier, fastest first.

        Returns:
            CacheHit with the value and its remaining validity, or None on a miss
        """
        if not self.enabled:
            return None

        now = self._clock()
        for tier in TIER_ORDER:
            entry = self._read(tier, cache_key)
            if entry is None:
                continue
            if entry.is_expired(now):
                # Passive expiry
                self._delete(tier, cache_key)
                continue
            try:
                value = json.loads(entry.value)
            except ValueError:
                logger.warning(f"Dropping undecodable cache entry: {cache_key} [{tier.value}]")
                self._delete(tier, cache_key)
                continue
            logger.debug(
                f"CACHE HIT ({tier.value}): {cache_key} "
                f"[remaining={entry.remaining_seconds(now):.1f}s]"
            )
            self._count(f"hits_{tier.value}")
            return CacheHit(value=value, remaining_seconds=entry.remaining_seconds(now), tier=tier)

        logger.debug(f"CACHE MISS: {cache_key}")
        self._count("misses")
        return None

    def set(self, cache_key: str, value: Any, tier: Optional[CacheTier] = None) -> bool:
        """
        Write a value to its tier and refresh any faster tier already holding it.

        Args:
            cache_key: Key in "category:part" form
            value: JSON-serializable value
            tier: Explicit tier; defaults to the key category's tier

        Returns:
            True if the value was written to the chosen tier
        """
        if not self.enabled:
            return False

        tier = tier or get_tier_for_key(cache_key)
        try:
            serialized = json.dumps(value, sort_keys=True)
        except (TypeError, ValueError) as e:
            logger.warning(f"Value for {cache_key} is not cacheable: {e}")
            return False

        now = self._clock()
        written = self._write(CacheEntry(
            key=cache_key,
            value=serialized,
            tier=tier,
            expires_at=now + self._ttl[tier],
        ))

        for faster in TIER_ORDER[:TIER_ORDER.index(tier)]:
            if self._read(faster, cache_key) is not None:
                self._write(CacheEntry(
                    key=cache_key,
                    value=serialized,
                    tier=faster,
                    expires_at=now + self._ttl[faster],
                ))

        if written:
            self._count("writes")
        return written

    def invalidate(self, cache_key: str) -> bool:
        """
        Remove a key from every tier.

        Returns:
            True if any tier held the key
        """
        removed = False
        for tier in TIER_ORDER:
            removed = self._delete(tier, cache_key) or removed
        if removed:
            logger.info(f"Invalidated cache: {cache_key}")
            self._count("invalidations")
        return removed

    def get_or_compute(
        self,
        cache_key: str,
        compute_fn: Callable[[], Any],
        tier: Optional[CacheTier] = None,
    ) -> Any:
        """
        Read-through: return the cached value or compute, store and return it.

        A computed None means "nothing to cache" and is not stored.
        """
        hit = self.get(cache_key)
        if hit is not None:
            return hit.value
        value = self._coalescer.get_or_compute(cache_key, compute_fn)
        if value is not None:
            self.set(cache_key, value, tier)
        return value

    def _read(self, tier: CacheTier, cache_key: str) -> Optional[CacheEntry]:
        try:
            return self._store.read(tier, cache_key)
        except _STORE_ERRORS as e:
            self._store_error("read", cache_key, e)
            return None

    def _write(self, entry: CacheEntry) -> bool:
        try:
            self._store.write(entry)
            return True
        except _STORE_ERRORS as e:
            self._store_error("write", entry.key, e)
            return False

    def _delete(self, tier: CacheTier, cache_key: str) -> bool:
        try:
            return self._store.delete(tier, cache_key)
        except _STORE_ERRORS as e:
            self._store_error("delete", cache_key, e)
            return False

    def _store_error(self, operation: str, cache_key: str, error: Exception) -> None:
        logger.warning(f"Cache {operation} failed open for {cache_key}: {error}")
        self._count("store_errors")

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
        hits = stats["hits_hot"] + stats["hits_warm"] + stats["hits_cold"]
        lookups = hits + stats["misses"]
        stats["hit_rate_percent"] = round(hits / lookups * 100, 1) if lookups else 0
        stats["enabled"] = self.enabled
        try:
            stats["entries"] = self._store.count()
        except _STORE_ERRORS:
            stats["entries"] = None
        stats["coalescer"] = self._coalescer.get_stats()
        return stats
