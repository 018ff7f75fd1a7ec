"""
Outbound payload construction.

`build_payload` is pure: it reads the canonical Event and current
match state and returns a dict. No I/O, no clock reads, no mutation.
Only sanitized Event fields are used, never the raw row.
"""
from typing import Any, Callable, Dict, List

from matchday.live_match.models import (
    CardType,
    Event,
    EventType,
    MatchState,
)

PAYLOAD_VERSION = "1.0"

# Canonical event type -> outbound event_type
OUTBOUND_EVENT_TYPES: Dict[EventType, str] = {
    EventType.GOAL: "goal_scored",
    EventType.GOAL_OPPOSITION: "goal_opposition",
    EventType.CARD: "card_shown",
    EventType.SECOND_YELLOW: "card_second_yellow",
    EventType.CARD_OPPOSITION: "discipline_opposition",
    EventType.SUBSTITUTION: "substitution",
    EventType.SIN_BIN_RETURN: "sin_bin_return",
    EventType.KICKOFF: "kick_off",
    EventType.HALF_TIME: "half_time",
    EventType.SECOND_HALF: "second_half_kickoff",
    EventType.FULL_TIME: "full_time",
    EventType.POSTPONED: "match_postponed",
}


def _score(match: MatchState) -> Dict[str, Any]:
    return {"home_score": match.home_score, "away_score": match.away_score}


def _player_minutes(match: MatchState, name: str) -> int:
    player = match.get_player(name)
    return player.minutes_played(match.clock) if player else 0


def _goal_fields(event: Event, match: MatchState) -> Dict[str, Any]:
    scorer = match.get_player(event.player)
    return {
        "player": event.player,
        "assist": event.assist,
        "minute": event.minute,
        "player_goals": scorer.goals if scorer else 0,
        **_score(match),
    }


def _opposition_goal_fields(event: Event, match: MatchState) -> Dict[str, Any]:
    return {"minute": event.minute, "opponent": match.opponent, **_score(match)}


def _card_fields(event: Event, match: MatchState) -> Dict[str, Any]:
    return {
        "player": event.player,
        "card_type": event.card_type.value if event.card_type else None,
        "minute": event.minute,
        "player_minutes": _player_minutes(match, event.player),
    }


def _second_yellow_fields(event: Event, match: MatchState) -> Dict[str, Any]:
    fields = _card_fields(event, match)
    fields["card_type"] = CardType.RED.value
    return fields


def _opposition_card_fields(event: Event, match: MatchState) -> Dict[str, Any]:
    return {
        "card_type": event.card_type.value if event.card_type else None,
        "minute": event.minute,
        "opponent": match.opponent,
    }


def _substitution_fields(event: Event, match: MatchState) -> Dict[str, Any]:
    return {
        "player_off": event.player_off,
        "player_on": event.player_on,
        "minute": event.minute,
        "player_off_minutes": _player_minutes(match, event.player_off),
    }


def _sin_bin_return_fields(event: Event, match: MatchState) -> Dict[str, Any]:
    return {"player": event.player, "minute": event.minute}


def _status_fields(event: Event, match: MatchState) -> Dict[str, Any]:
    fields = {
        "status": match.status.value,
        "minute": event.minute,
        "opponent": match.opponent,
        **_score(match),
    }
    if event.event_type == EventType.FULL_TIME:
        fields["player_minutes"] = _minutes_table(match)
    return fields


def _minutes_table(match: MatchState) -> List[Dict[str, Any]]:
    rows = [
        {"player": p.player, "minutes": p.minutes_played(match.clock), "role": p.role.value}
        for p in match.players.values()
        if p.appeared
    ]
    return sorted(rows, key=lambda r: (-r["minutes"], r["player"]))


FIELD_BUILDERS: Dict[EventType, Callable[[Event, MatchState], Dict[str, Any]]] = {
    EventType.GOAL: _goal_fields,
    EventType.GOAL_OPPOSITION: _opposition_goal_fields,
    EventType.CARD: _card_fields,
    EventType.SECOND_YELLOW: _second_yellow_fields,
    EventType.CARD_OPPOSITION: _opposition_card_fields,
    EventType.SUBSTITUTION: _substitution_fields,
    EventType.SIN_BIN_RETURN: _sin_bin_return_fields,
    EventType.KICKOFF: _status_fields,
    EventType.HALF_TIME: _status_fields,
    EventType.SECOND_HALF: _status_fields,
    EventType.FULL_TIME: _status_fields,
    EventType.POSTPONED: _status_fields,
}


def build_payload(
    event: Event,
    match: MatchState,
    timestamp: str,
    source: str,
    version: str = PAYLOAD_VERSION,
) -> Dict[str, Any]:
    """
    Map an accepted event onto the outbound payload contract.

    Args:
        event: Canonical event
        match: Match state after the event was applied
        timestamp: ISO-8601 UTC processing time, supplied by the caller
        source: Envelope source identifier
        version: Payload contract version
    """
    payload = {
        "event_type": OUTBOUND_EVENT_TYPES[event.event_type],
        "match_id": event.match_id,
        "timestamp": timestamp,
        "source": source,
        "version": version,
        "fingerprint": event.fingerprint,
    }
    payload.update(FIELD_BUILDERS[event.event_type](event, match))
    return payload
