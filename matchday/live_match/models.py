"""
Data models for live match processing.

These dataclasses are the canonical shape of match state, independent
of whether it is held in memory or persisted through SQLAlchemy.
"""
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any, Tuple
from enum import Enum

from matchday.utils.helpers import normalize_label


class MatchStatus(Enum):
    """Lifecycle of a match."""
    SCHEDULED = "scheduled"
    KICKOFF = "kickoff"
    FIRST_HALF = "first_half"
    HALF_TIME = "half_time"
    SECOND_HALF = "second_half"
    FULL_TIME = "full_time"
    POSTPONED = "postponed"


IN_PLAY_STATUSES = (
    MatchStatus.KICKOFF,
    MatchStatus.FIRST_HALF,
    MatchStatus.HALF_TIME,
    MatchStatus.SECOND_HALF,
)


class EventType(Enum):
    """Canonical event types."""
    GOAL = "goal"
    GOAL_OPPOSITION = "goal_opposition"
    CARD = "card"
    CARD_OPPOSITION = "card_opposition"
    SECOND_YELLOW = "second_yellow"
    SUBSTITUTION = "substitution"
    SIN_BIN_RETURN = "sin_bin_return"
    KICKOFF = "kickoff"
    HALF_TIME = "half_time"
    SECOND_HALF = "second_half"
    FULL_TIME = "full_time"
    POSTPONED = "postponed"

    @property
    def is_status(self) -> bool:
        return self in STATUS_EVENTS


STATUS_EVENTS = (
    EventType.KICKOFF,
    EventType.HALF_TIME,
    EventType.SECOND_HALF,
    EventType.FULL_TIME,
    EventType.POSTPONED,
)


class CardType(Enum):
    """Card severity as entered on the row."""
    YELLOW = "yellow"
    RED = "red"
    SIN_BIN = "sin_bin"


class PlayerRole(Enum):
    STARTER = "starter"
    SUBSTITUTE = "substitute"


class PitchState(Enum):
    """Where a player is right now."""
    BENCH = "bench"
    ON_PITCH = "on_pitch"
    SIN_BIN = "sin_bin"       # temporarily off, may return
    OFF_PITCH = "off_pitch"   # final: subbed off, sent off or full time


def player_key(name: str) -> str:
    """Registry key for a player label ("Smith" and " smith " are the same player)."""
    return normalize_label(name)


@dataclass
class Interval:
    """A contiguous [start, end) span on the pitch."""
    start: int
    end: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.end is None

    def length(self, clock: int) -> int:
        """Minutes credited; an open interval runs up to the match clock."""
        end = self.end if self.end is not None else clock
        return max(0, end - self.start)

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Interval":
        return cls(start=data["start"], end=data.get("end"))


@dataclass
class CardRecord:
    """A card shown in this match."""
    card_type: CardType
    minute: int
    outcome: str = "card"  # "card" or "second_yellow"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "card_type": self.card_type.value,
            "minute": self.minute,
            "outcome": self.outcome,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CardRecord":
        return cls(
            card_type=CardType(data["card_type"]),
            minute=data["minute"],
            outcome=data.get("outcome", "card"),
        )


@dataclass
class PlayerMatchState:
    """
    Per-player state for one match.

    Minutes played are never stored; they are recomputed from the
    intervals on every query.
    """
    player: str
    role: PlayerRole = PlayerRole.SUBSTITUTE
    pitch_state: PitchState = PitchState.BENCH
    intervals: List[Interval] = field(default_factory=list)
    cards: List[CardRecord] = field(default_factory=list)
    goals: int = 0
    assists: int = 0

    @property
    def open_interval(self) -> Optional[Interval]:
        if self.intervals and self.intervals[-1].is_open:
            return self.intervals[-1]
        return None

    @property
    def yellow_count(self) -> int:
        return sum(1 for c in self.cards if c.card_type == CardType.YELLOW)

    @property
    def is_dismissed(self) -> bool:
        """Sent off by a straight red or a second yellow."""
        return any(
            c.card_type == CardType.RED or c.outcome == "second_yellow"
            for c in self.cards
        )

    @property
    def appeared(self) -> bool:
        return bool(self.intervals)

    def was_on_pitch(self, minute: int) -> bool:
        """True when one of the intervals covers `minute` (end exclusive)."""
        return any(
            i.start <= minute and (i.end is None or minute < i.end)
            for i in self.intervals
        )

    def minutes_played(self, clock: int) -> int:
        """Sum of interval lengths, O(number of intervals)."""
        return sum(interval.length(clock) for interval in self.intervals)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player": self.player,
            "role": self.role.value,
            "pitch_state": self.pitch_state.value,
            "intervals": [i.to_dict() for i in self.intervals],
            "cards": [c.to_dict() for c in self.cards],
            "goals": self.goals,
            "assists": self.assists,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlayerMatchState":
        return cls(
            player=data["player"],
            role=PlayerRole(data.get("role", "substitute")),
            pitch_state=PitchState(data.get("pitch_state", "bench")),
            intervals=[Interval.from_dict(i) for i in data.get("intervals", [])],
            cards=[CardRecord.from_dict(c) for c in data.get("cards", [])],
            goals=data.get("goals", 0),
            assists=data.get("assists", 0),
        )


@dataclass
class MatchState:
    """
    Authoritative state of a live match.

    Owned by the core from kickoff until full time. The clock is the
    highest minute processed so far, stoppage included.
    """
    match_id: str
    opponent: str = ""
    date: Optional[str] = None
    status: MatchStatus = MatchStatus.SCHEDULED
    home_score: int = 0
    away_score: int = 0
    team_side: str = "home"
    clock: int = 0
    final_minute: Optional[int] = None
    players: Dict[str, PlayerMatchState] = field(default_factory=dict)
    opposition_cards: List[CardRecord] = field(default_factory=list)
    closed: bool = False
    # Storage revision this copy was loaded at; 0 means never saved
    version: int = 0

    @property
    def is_in_play(self) -> bool:
        return self.status in IN_PLAY_STATUSES

    @property
    def team_score(self) -> int:
        return self.home_score if self.team_side == "home" else self.away_score

    @property
    def opposition_score(self) -> int:
        return self.away_score if self.team_side == "home" else self.home_score

    def add_team_goal(self) -> None:
        if self.team_side == "home":
            self.home_score += 1
        else:
            self.away_score += 1

    def add_opposition_goal(self) -> None:
        if self.team_side == "home":
            self.away_score += 1
        else:
            self.home_score += 1

    def advance_clock(self, minute: int) -> None:
        """The clock never runs backwards; late rows leave it untouched."""
        if minute > self.clock:
            self.clock = minute

    def get_player(self, name: str) -> Optional[PlayerMatchState]:
        return self.players.get(player_key(name))

    def ensure_player(
        self, name: str, role: PlayerRole = PlayerRole.SUBSTITUTE
    ) -> PlayerMatchState:
        """Get the player's state, creating it on first reference."""
        key = player_key(name)
        state = self.players.get(key)
        if state is None:
            state = PlayerMatchState(player=name, role=role)
            self.players[key] = state
        return state

    def player_minutes(self) -> Dict[str, int]:
        return {p.player: p.minutes_played(self.clock) for p in self.players.values()}

    def scoreline(self) -> Dict[str, int]:
        return {"home_score": self.home_score, "away_score": self.away_score}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_id": self.match_id,
            "opponent": self.opponent,
            "date": self.date,
            "status": self.status.value,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "team_side": self.team_side,
            "clock": self.clock,
            "final_minute": self.final_minute,
            "players": {k: p.to_dict() for k, p in self.players.items()},
            "opposition_cards": [c.to_dict() for c in self.opposition_cards],
            "closed": self.closed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatchState":
        return cls(
            match_id=data["match_id"],
            opponent=data.get("opponent", ""),
            date=data.get("date"),
            status=MatchStatus(data.get("status", "scheduled")),
            home_score=data.get("home_score", 0),
            away_score=data.get("away_score", 0),
            team_side=data.get("team_side", "home"),
            clock=data.get("clock", 0),
            final_minute=data.get("final_minute"),
            players={
                k: PlayerMatchState.from_dict(p)
                for k, p in data.get("players", {}).items()
            },
            opposition_cards=[
                CardRecord.from_dict(c) for c in data.get("opposition_cards", [])
            ],
            closed=data.get("closed", False),
        )


@dataclass(frozen=True)
class DraftEvent:
    """A validated, normalized row that has not been fingerprinted yet."""
    event_type: EventType
    minute: int
    player: Optional[str] = None
    assist: Optional[str] = None
    card_type: Optional[CardType] = None
    player_off: Optional[str] = None
    player_on: Optional[str] = None
    players: Tuple[str, ...] = ()
    opponent: Optional[str] = None
    notes: str = ""
    reported_home_score: Optional[int] = None
    reported_away_score: Optional[int] = None


@dataclass(frozen=True)
class Event:
    """
    Canonical, immutable record of one accepted row.

    `event_type` is the resolved type (opposition and second-yellow
    classification already applied).
    """
    fingerprint: str
    match_id: str
    event_type: EventType
    minute: int
    player: Optional[str] = None
    assist: Optional[str] = None
    card_type: Optional[CardType] = None
    player_off: Optional[str] = None
    player_on: Optional[str] = None
    players: Tuple[str, ...] = ()
    opponent: Optional[str] = None
    notes: str = ""
    reported_home_score: Optional[int] = None
    reported_away_score: Optional[int] = None

    @classmethod
    def from_draft(
        cls,
        draft: DraftEvent,
        fingerprint: str,
        match_id: str,
        event_type: Optional[EventType] = None,
    ) -> "Event":
        values = asdict(draft)
        values["event_type"] = event_type or draft.event_type
        values["players"] = tuple(draft.players)
        return cls(fingerprint=fingerprint, match_id=match_id, **values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "match_id": self.match_id,
            "event_type": self.event_type.value,
            "minute": self.minute,
            "player": self.player,
            "assist": self.assist,
            "card_type": self.card_type.value if self.card_type else None,
            "player_off": self.player_off,
            "player_on": self.player_on,
            "players": list(self.players),
            "opponent": self.opponent,
            "notes": self.notes,
        }


@dataclass
class ProcessingOutcome:
    """
    Result of processing one row.

    This is what the idempotency store keeps; a replay returns the same
    outcome with `skipped` set.
    """
    fingerprint: str
    match_id: str
    event_type: str
    payload: Dict[str, Any]
    processed_at: str
    skipped: bool = False

    def as_replay(self) -> "ProcessingOutcome":
        return ProcessingOutcome(
            fingerprint=self.fingerprint,
            match_id=self.match_id,
            event_type=self.event_type,
            payload=dict(self.payload),
            processed_at=self.processed_at,
            skipped=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "match_id": self.match_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "processed_at": self.processed_at,
            "skipped": self.skipped,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcessingOutcome":
        return cls(
            fingerprint=data["fingerprint"],
            match_id=data["match_id"],
            event_type=data["event_type"],
            payload=data.get("payload", {}),
            processed_at=data.get("processed_at", ""),
            skipped=data.get("skipped", False),
        )


@dataclass
class PlayerSeasonStats:
    """Season-to-date aggregate for one player, fed at each match close."""
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

    def add_match(self, state: PlayerMatchState, clock: int) -> None:
        """Fold one closed match into the season totals."""
        if state.appeared:
            self.appearances += 1
            if state.role == PlayerRole.STARTER:
                self.starts += 1
            else:
                self.sub_appearances += 1
        self.goals += state.goals
        self.assists += state.assists
        for card in state.cards:
            if card.card_type == CardType.SIN_BIN:
                self.sin_bins += 1
            elif card.card_type == CardType.RED or card.outcome == "second_yellow":
                self.red_cards += 1
            if card.card_type == CardType.YELLOW:
                self.yellow_cards += 1
        self.minutes += state.minutes_played(clock)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
