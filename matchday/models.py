"""
Database models for Matchday Core
SQLAlchemy ORM models for live match state, processed fingerprints and
season aggregates
"""
from datetime import datetime

from sqlalchemy import (
    Boolean, Column, DateTime, Float, Integer, String, Text, UniqueConstraint
)
from sqlalchemy.ext.declarative import declarative_base

Base = declarative_base()


class MatchRecord(Base):
    """
    Match entity - one row per live match
    The full MatchState is kept as JSON; the scoreline columns are for querying
    """
    __tablename__ = "matches"

    match_id = Column(String, primary_key=True)
    status = Column(String, nullable=False, index=True)
    opponent = Column(String, nullable=True)
    home_score = Column(Integer, nullable=False, default=0)
    away_score = Column(Integer, nullable=False, default=0)
    closed = Column(Boolean, nullable=False, default=False)
    state_json = Column(Text, nullable=False)
    version = Column(Integer, nullable=False, default=1)  # bumped on every save
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<MatchRecord(match_id='{self.match_id}', status='{self.status}', score={self.home_score}-{self.away_score}, version={self.version})>"


class IdempotencyRecord(Base):
    """
    Fingerprint entity - a reservation while in flight, an outcome once committed
    The (match_id, fingerprint) unique constraint is the test-and-set
    """
    __tablename__ = "idempotency_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(String, nullable=False, index=True)
    fingerprint = Column(String(64), nullable=False)
    state = Column(String, nullable=False)  # reserved / committed
    outcome_json = Column(Text, nullable=True)
    reserved_at = Column(Float, nullable=False)
    expires_at = Column(Float, nullable=False, index=True)

    # Constraints
    __table_args__ = (
        UniqueConstraint("match_id", "fingerprint", name="uix_match_fingerprint"),
    )

    def __repr__(self):
        return f"<IdempotencyRecord(match_id='{self.match_id}', fingerprint='{self.fingerprint[:12]}', state='{self.state}')>"


class PlayerSeasonRecord(Base):
    """
    Player season aggregate - one row per player, keyed by normalized name
    """
    __tablename__ = "player_season_stats"

    player_key = Column(String, primary_key=True)
    player = Column(String, nullable=False)
    appearances = Column(Integer, nullable=False, default=0)
    starts = Column(Integer, nullable=False, default=0)
    sub_appearances = Column(Integer, nullable=False, default=0)
    goals = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)
    yellow_cards = Column(Integer, nullable=False, default=0)
    red_cards = Column(Integer, nullable=False, default=0)
    sin_bins = Column(Integer, nullable=False, default=0)
    minutes = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<PlayerSeasonRecord(player='{self.player}', appearances={self.appearances}, minutes={self.minutes})>"


class FlushedMatch(Base):
    """Marker row: this match has been folded into the season aggregates"""
    __tablename__ = "flushed_matches"

    match_id = Column(String, primary_key=True)
    flushed_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<FlushedMatch(match_id='{self.match_id}')>"
