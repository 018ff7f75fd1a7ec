"""Configuration management using pydantic-settings."""
from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "Matchday Core"
    app_version: str = "1.0.0"

    # Envelope "source" for outbound payloads
    payload_source: str = "matchday-core"

    # Persistence (SQLite file in the project root by default)
    database_url: str = "sqlite:///./matchday.db"

    # Which side of the scoreline the tracked club occupies by default
    team_side: str = "home"

    # Opposition detection
    # A goal row whose Player is one of these belongs to the opposition
    opposition_goal_sentinels: List[str] = ["Goal", "Opposition"]
    # A card row whose Player is one of these belongs to the opposition
    opposition_card_sentinels: List[str] = ["Opposition"]
    # Player labels that can never identify a team player
    ambiguous_player_labels: List[str] = ["?", "unknown", "tbc", "n/a", "none"]

    # Minute validation (stoppage time included)
    minute_min: int = 0
    minute_max: int = 130
    max_text_length: int = 120

    # Concurrency
    lock_timeout_seconds: float = 3.0
    reservation_ttl_seconds: int = 60
    idempotency_ttl_seconds: int = 60 * 60 * 24

    # Cache tiers
    cache_enabled: bool = True
    cache_hot_ttl_seconds: int = 5
    cache_warm_ttl_seconds: int = 300
    cache_cold_ttl_seconds: int = 1800

    # Outbound webhook (delivery is optional)
    webhook_url: Optional[str] = None
    webhook_timeout_seconds: float = 30.0
    webhook_retry_attempts: int = 3

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("team_side")
    @classmethod
    def _check_team_side(cls, value: str) -> str:
        side = value.strip().lower()
        if side not in ("home", "away"):
            raise ValueError(f"team_side must be 'home' or 'away', got {value!r}")
        return side

    @field_validator("opposition_goal_sentinels", "opposition_card_sentinels")
    @classmethod
    def _check_sentinels(cls, value: List[str]) -> List[str]:
        cleaned = [v.strip() for v in value if v and v.strip()]
        if not cleaned:
            raise ValueError("at least one opposition sentinel is required")
        return cleaned

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @model_validator(mode="after")
    def _check_ranges(self) -> "Settings":
        if self.minute_min < 0 or self.minute_min >= self.minute_max:
            raise ValueError("minute_min must be >= 0 and below minute_max")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
        ttls = (
            self.cache_hot_ttl_seconds,
            self.cache_warm_ttl_seconds,
            self.cache_cold_ttl_seconds,
        )
        if min(ttls) <= 0:
            raise ValueError("cache TTLs must be positive")
        # Tiers are ordered by volatility
        if not (ttls[0] <= ttls[1] <= ttls[2]):
            raise ValueError("cache TTLs must satisfy hot <= warm <= cold")
        return self


@lru_cache
def get_settings() -> Settings:
    """Build the process-wide settings once, validating at startup."""
    return Settings()
