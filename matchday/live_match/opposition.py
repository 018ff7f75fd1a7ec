"""
Opposition resolution.

The spreadsheet marks opposition events with a sentinel in the Player
column ("Goal" for a goal conceded, "Opposition" for a card shown to
the other side). All classification goes through `classify`.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, FrozenSet

from config.settings import Settings
from matchday.errors import ValidationError
from matchday.live_match.models import DraftEvent, EventType
from matchday.utils.helpers import normalize_label


class Side(Enum):
    TEAM = "team"
    OPPOSITION = "opposition"
    STATUS = "status"


@dataclass(frozen=True)
class Classification:
    side: Side
    event_type: EventType

    @property
    def is_opposition(self) -> bool:
        return self.side == Side.OPPOSITION


def _label_set(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(normalize_label(v) for v in values if normalize_label(v))


class OppositionResolver:
    """Classifies a draft event as tracked team, opposition or match status."""

    def __init__(self, settings: Settings):
        self.goal_sentinels = _label_set(settings.opposition_goal_sentinels)
        self.card_sentinels = _label_set(settings.opposition_card_sentinels)
        self.ambiguous_labels = _label_set(settings.ambiguous_player_labels)

    def classify(self, draft: DraftEvent) -> Classification:
        if draft.event_type.is_status:
            return Classification(Side.STATUS, draft.event_type)

        if draft.event_type == EventType.GOAL:
            return self._resolve(
                draft, self.goal_sentinels, self.card_sentinels, EventType.GOAL_OPPOSITION
            )
        if draft.event_type == EventType.CARD:
            return self._resolve(
                draft, self.card_sentinels, self.goal_sentinels, EventType.CARD_OPPOSITION
            )

        # Substitutions and sin-bin returns always concern our own players
        for column, name in (("Player", draft.player), ("Player On", draft.player_on)):
            if name is not None:
                self._check_team_player(column, name, self.goal_sentinels | self.card_sentinels)
        return Classification(Side.TEAM, draft.event_type)

    def _resolve(
        self,
        draft: DraftEvent,
        sentinels: FrozenSet[str],
        other_sentinels: FrozenSet[str],
        opposition_type: EventType,
    ) -> Classification:
        label = normalize_label(draft.player)
        if label in sentinels:
            return Classification(Side.OPPOSITION, opposition_type)
        # A sentinel of the other kind on this event is a data entry slip,
        # not something to guess at.
        self._check_team_player("Player", draft.player, other_sentinels)
        if draft.assist:
            self._check_team_player("Assist", draft.assist, sentinels | other_sentinels)
        return Classification(Side.TEAM, draft.event_type)

    def _check_team_player(self, column: str, name: str, forbidden: FrozenSet[str]) -> None:
        label = normalize_label(name)
        if not label:
            raise ValidationError(column, name, "player is required")
        if label in self.ambiguous_labels or label in forbidden:
            raise ValidationError(column, name, "ambiguous player for a team event")
