"""
Live match state, event ingestion and match-day trackers.
"""
from .models import (
    CardRecord,
    CardType,
    DraftEvent,
    Event,
    EventType,
    Interval,
    MatchState,
    MatchStatus,
    PitchState,
    PlayerMatchState,
    PlayerRole,
    PlayerSeasonStats,
    ProcessingOutcome,
)

__all__ = [
    "CardRecord",
    "CardType",
    "DraftEvent",
    "Event",
    "EventType",
    "Interval",
    "MatchState",
    "MatchStatus",
    "PitchState",
    "PlayerMatchState",
    "PlayerRole",
    "PlayerSeasonStats",
    "ProcessingOutcome",
]
