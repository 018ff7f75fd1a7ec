"""
Pydantic schemas for API request/response models
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ===== LINEUP SCHEMAS =====

class LineupRequest(BaseModel):
    """Squad declared before kickoff"""
    starters: List[str]
    substitutes: List[str] = Field(default_factory=list)
    opponent: Optional[str] = None
    team_side: Optional[str] = None
    date: Optional[str] = None


# ===== EVENT SCHEMAS =====

class OutcomeResponse(BaseModel):
    """Result of processing one event row"""
    fingerprint: str
    match_id: str
    event_type: str
    payload: Dict[str, Any]
    processed_at: str
    skipped: bool = False
    delivered: Optional[bool] = None

    class Config:
        from_attributes = True


# ===== MATCH SCHEMAS =====

class PlayerMinutesResponse(BaseModel):
    """Minutes played so far, per player"""
    match_id: str
    minutes: Dict[str, int]


class PlayerSeasonResponse(BaseModel):
    """Season-to-date aggregate for one player"""
    player: str
    appearances: int = 0
    starts: int = 0
    sub_appearances: int = 0
    goals: int = 0
    assists: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    sin_bins: int = 0
    minutes: int = 0

    class Config:
        from_attributes = True


# ===== SERVICE SCHEMAS =====

class HealthResponse(BaseModel):
    status: str
    database: str
    cache_enabled: bool


class VersionResponse(BaseModel):
    name: str
    version: str
    payload_version: str
