"""
Tiered caching for derived match aggregates: hot/warm/cold TTLs,
request coalescing and fail-open store access.
"""
from .core import CacheEntry, CacheHit, CacheTier, KeyCategory, TIER_ORDER
from .ttl_policies import (
    CATEGORY_TIERS,
    build_ttl_config,
    get_category_for_key,
    get_tier_for_key,
    make_key,
)
from .coalescer import RequestCoalescer
from .store import CacheStore, InMemoryCacheStore
from .manager import TieredCache

__all__ = [
    # Core types
    "CacheEntry",
    "CacheHit",
    "CacheTier",
    "KeyCategory",
    "TIER_ORDER",
    # TTL policies
    "CATEGORY_TIERS",
    "build_ttl_config",
    "get_category_for_key",
    "get_tier_for_key",
    "make_key",
    # Coalescing
    "RequestCoalescer",
    # Stores
    "CacheStore",
    "InMemoryCacheStore",
    # Manager
    "TieredCache",
]
