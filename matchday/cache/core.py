"""
Core cache data structures.
"""
from dataclasses import dataclass
from typing import Any
from enum import Enum


class CacheTier(Enum):
    """Cache tiers, fastest and most volatile first."""
    HOT = "hot"     # per-batch values, seconds
    WARM = "warm"   # live-match aggregates, minutes
    COLD = "cold"   # season aggregates, tens of minutes


# Lookup order for get(); a "lower" tier is a faster one
TIER_ORDER = (CacheTier.HOT, CacheTier.WARM, CacheTier.COLD)


class KeyCategory(Enum):
    """Declared category of a cache key. The category alone decides the tier."""
    SCORELINE = "scoreline"                     # hot
    MATCH_SNAPSHOT = "match_snapshot"           # warm
    PLAYER_MINUTES = "player_minutes"           # warm
    DISCIPLINE = "discipline"                   # warm
    SEASON_AGGREGATE = "season_aggregate"       # cold


@dataclass
class CacheEntry:
    """
    A cached item: the serialized value plus its tier and absolute expiry.

    Entries are never refreshed in place; a write replaces them.
    """
    key: str
    value: str          # JSON
    tier: CacheTier
    expires_at: float   # clock seconds

    def remaining_seconds(self, now: float) -> float:
        return max(0.0, self.expires_at - now)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CacheHit:
    """A successful lookup: the value, how long it stays valid, and where it came from."""
    value: Any
    remaining_seconds: float
    tier: CacheTier
