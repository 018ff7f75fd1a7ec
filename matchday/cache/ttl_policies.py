"""
TTL configuration and key-to-tier mapping.
"""
from typing import Dict, Any

from config.settings import Settings

from .core import CacheTier, KeyCategory

KEY_SEPARATOR = ":"

# Tier by declared key category
CATEGORY_TIERS: Dict[KeyCategory, CacheTier] = {
    KeyCategory.SCORELINE: CacheTier.HOT,
    KeyCategory.MATCH_SNAPSHOT: CacheTier.WARM,
    KeyCategory.PLAYER_MINUTES: CacheTier.WARM,
    KeyCategory.DISCIPLINE: CacheTier.WARM,
    KeyCategory.SEASON_AGGREGATE: CacheTier.COLD,
}


def build_ttl_config(settings: Settings) -> Dict[CacheTier, int]:
    """TTL in seconds per tier."""
    return {
        CacheTier.HOT: settings.cache_hot_ttl_seconds,       # 5 seconds
        CacheTier.WARM: settings.cache_warm_ttl_seconds,     # 5 minutes
        CacheTier.COLD: settings.cache_cold_ttl_seconds,     # 30 minutes
    }


def make_key(category: KeyCategory, *parts: Any) -> str:
    """
    Build a cache key in the "category:part:part" format.

    Examples:
        make_key(KeyCategory.SCORELINE, "m-42") -> "scoreline:m-42"
        make_key(KeyCategory.SEASON_AGGREGATE, "smith") -> "season_aggregate:smith"
    """
    if not parts:
        raise ValueError("cache keys need at least one part after the category")
    return KEY_SEPARATOR.join([category.value] + [str(p) for p in parts])


def get_category_for_key(cache_key: str) -> KeyCategory:
    """
    Read the declared category from a key.

    Raises:
        ValueError: if the key does not start with a known category
    """
    prefix = cache_key.split(KEY_SEPARATOR, 1)[0]
    try:
        return KeyCategory(prefix)
    except ValueError:
        raise ValueError(f"cache key {cache_key!r} has no known category prefix")


def get_tier_for_key(cache_key: str) -> CacheTier:
    """Deterministic tier for a key, from its category only."""
    return CATEGORY_TIERS[get_category_for_key(cache_key)]
