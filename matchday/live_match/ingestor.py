"""
Event ingestion: validate and normalize a raw spreadsheet row.

Rows arrive as untyped key-value mappings. Columns are looked up by
name (case and whitespace insensitive), never by position.
"""
import logging
import re
from typing import Any, Dict, Mapping, Optional

from config.settings import Settings
from matchday.errors import ValidationError
from matchday.live_match.models import CardType, DraftEvent, EventType
from matchday.utils.helpers import (
    normalize_label,
    parse_non_negative_int,
    sanitize_text,
    split_names,
)

logger = logging.getLogger("live_match.ingestor")


# Event label -> (event type, implied card severity)
EVENT_LABELS: Dict[str, tuple] = {
    "goal": (EventType.GOAL, None),
    "card": (EventType.CARD, None),
    "yellow card": (EventType.CARD, CardType.YELLOW),
    "yellow": (EventType.CARD, CardType.YELLOW),
    "red card": (EventType.CARD, CardType.RED),
    "red": (EventType.CARD, CardType.RED),
    "sin bin": (EventType.CARD, CardType.SIN_BIN),
    "sin bin return": (EventType.SIN_BIN_RETURN, None),
    "substitution": (EventType.SUBSTITUTION, None),
    "sub": (EventType.SUBSTITUTION, None),
    "kick off": (EventType.KICKOFF, None),
    "kickoff": (EventType.KICKOFF, None),
    "kick-off": (EventType.KICKOFF, None),
    "half time": (EventType.HALF_TIME, None),
    "half-time": (EventType.HALF_TIME, None),
    "halftime": (EventType.HALF_TIME, None),
    "second half": (EventType.SECOND_HALF, None),
    "second half kick off": (EventType.SECOND_HALF, None),
    "2nd half": (EventType.SECOND_HALF, None),
    "2nd half kick off": (EventType.SECOND_HALF, None),
    "full time": (EventType.FULL_TIME, None),
    "full-time": (EventType.FULL_TIME, None),
    "fulltime": (EventType.FULL_TIME, None),
    "postponed": (EventType.POSTPONED, None),
}

# Card Type column values. A declared second yellow is recorded as a
# yellow; escalation is decided from the player's card history.
CARD_TYPE_LABELS: Dict[str, CardType] = {
    "yellow": CardType.YELLOW,
    "yellow card": CardType.YELLOW,
    "second yellow": CardType.YELLOW,
    "2nd yellow": CardType.YELLOW,
    "red": CardType.RED,
    "red card": CardType.RED,
    "straight red": CardType.RED,
    "sin bin": CardType.SIN_BIN,
    "sin-bin": CardType.SIN_BIN,
    "sinbin": CardType.SIN_BIN,
}

PLAYER_EVENTS = (
    EventType.GOAL,
    EventType.CARD,
    EventType.SUBSTITUTION,
    EventType.SIN_BIN_RETURN,
)

_MINUTE_PATTERN = re.compile(r"^(\d{1,3})\s*(?:\+\s*(\d{1,2}))?\s*'?$")


class EventIngestor:
    """
    Validates a raw row and emits a normalized DraftEvent.

    Raises ValidationError naming the offending column and its raw
    value. Never touches match state.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def ingest(self, row: Mapping[str, Any]) -> DraftEvent:
        if not isinstance(row, Mapping):
            raise ValidationError("row", row, "row must be a mapping of column to value")

        cells = _normalize_columns(row)
        event_type, label_card = self._parse_event(cells.get("event"))
        minute = self._parse_minute(cells.get("minute"))

        player = self._text(cells.get("player"))
        assist = self._text(cells.get("assist"))
        notes = self._text(cells.get("notes"))
        opponent = self._text(cells.get("opponent")) or None
        home_score = self._parse_score("Home Score", cells.get("home score"))
        away_score = self._parse_score("Away Score", cells.get("away score"))

        card_type = None
        if event_type == EventType.CARD:
            card_type = self._parse_card_type(label_card, cells.get("card type"))

        player_off = None
        player_on = None
        players: tuple = ()

        if event_type == EventType.SUBSTITUTION:
            player_off = self._text(cells.get("player off")) or player
            player_on = self._text(cells.get("player on")) or assist
            if not player_off:
                raise ValidationError("Player Off", cells.get("player off", cells.get("player")),
                                      "substitution needs an outgoing player")
            if not player_on:
                raise ValidationError("Player On", cells.get("player on", cells.get("assist")),
                                      "substitution needs an incoming player")
            if normalize_label(player_off) == normalize_label(player_on):
                raise ValidationError("Player On", player_on,
                                      "incoming and outgoing player are the same")
            player = player_off
            assist = ""
        elif event_type in (EventType.KICKOFF, EventType.SECOND_HALF):
            # Optional comma separated list of players starting this half
            players = tuple(split_names(cells.get("player"), self.settings.max_text_length))
            player = ""
        elif event_type in PLAYER_EVENTS and not player:
            raise ValidationError("Player", cells.get("player"), "player is required")

        if event_type == EventType.GOAL and assist and \
                normalize_label(assist) == normalize_label(player):
            raise ValidationError("Assist", assist, "a player cannot assist their own goal")

        if event_type.is_status:
            # Status rows carry no player attribution
            player = ""
            assist = ""

        draft = DraftEvent(
            event_type=event_type,
            minute=minute,
            player=player or None,
            assist=assist or None,
            card_type=card_type,
            player_off=player_off,
            player_on=player_on,
            players=players,
            opponent=opponent,
            notes=notes,
            reported_home_score=home_score,
            reported_away_score=away_score,
        )
        logger.debug(f"Ingested {event_type.value} at {minute}' ({draft.player or '-'})")
        return draft

    def _text(self, value: Any) -> str:
        return sanitize_text(value, max_length=self.settings.max_text_length)

    def _parse_event(self, raw: Any) -> tuple:
        label = normalize_label(raw)
        if not label:
            raise ValidationError("Event", raw, "event label is required")
        if label not in EVENT_LABELS:
            raise ValidationError("Event", raw, "unrecognized event label")
        return EVENT_LABELS[label]

    def _parse_minute(self, raw: Any) -> int:
        """Accept 67, "67", "67'" and stoppage notation "90+3" (= 93)."""
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            raise ValidationError("Minute", raw, "minute is required")
        if isinstance(raw, bool):
            raise ValidationError("Minute", raw, "minute must be an integer")
        if isinstance(raw, int):
            minute = raw
        elif isinstance(raw, float) and raw.is_integer():
            minute = int(raw)
        else:
            match = _MINUTE_PATTERN.match(str(raw).strip())
            if not match:
                raise ValidationError("Minute", raw, "minute must be an integer")
            minute = int(match.group(1)) + int(match.group(2) or 0)

        low, high = self.settings.minute_min, self.settings.minute_max
        if not low <= minute <= high:
            raise ValidationError("Minute", raw, f"minute must be between {low} and {high}")
        return minute

    def _parse_score(self, column: str, raw: Any) -> Optional[int]:
        try:
            return parse_non_negative_int(raw)
        except ValueError:
            raise ValidationError(column, raw, "score must be a non-negative integer")

    def _parse_card_type(self, label_card: Optional[CardType], raw: Any) -> CardType:
        declared = normalize_label(raw)
        if declared:
            if declared not in CARD_TYPE_LABELS:
                raise ValidationError("Card Type", raw, "unrecognized card type")
            card = CARD_TYPE_LABELS[declared]
            if label_card is not None and card != label_card:
                raise ValidationError("Card Type", raw, "card type contradicts the event label")
            return card
        if label_card is None:
            raise ValidationError("Card Type", raw, "card type is required")
        return label_card


def _normalize_columns(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Map "  Home  Score " -> "home score"; later duplicates do not overwrite."""
    cells: Dict[str, Any] = {}
    for key, value in row.items():
        name = normalize_label(key)
        if name and name not in cells:
            cells[name] = value
    return cells
