"""
Discipline tracking with second-yellow escalation.
"""
import logging

from matchday.errors import RuleViolation
from matchday.live_match.minutes import MinutesTracker
from matchday.live_match.models import (
    CardRecord,
    CardType,
    EventType,
    MatchState,
)

logger = logging.getLogger("live_match.discipline")

SECOND_YELLOW = "second_yellow"


class DisciplineTracker:
    """
    Appends card records and applies escalation.

    A second yellow for the same player becomes a `second_yellow`
    outcome, distinct from a straight red. Both end the player's
    on-pitch interval through the MinutesTracker.
    """

    def __init__(self, minutes: MinutesTracker):
        self.minutes = minutes

    def record_team_card(
        self, match: MatchState, name: str, card_type: CardType, minute: int
    ) -> EventType:
        """Record a card for a named team player and return the resolved event type."""
        player = match.ensure_player(name)
        if player.is_dismissed:
            raise RuleViolation(f"{player.player} has already been sent off", player=player.player)

        if card_type == CardType.YELLOW and player.yellow_count >= 1:
            first = next(c for c in player.cards if c.card_type == CardType.YELLOW)
            if minute >= first.minute:
                self.minutes.send_off(player, minute)
                player.cards.append(CardRecord(CardType.YELLOW, minute, outcome=SECOND_YELLOW))
                logger.info(f"Second yellow for {player.player} at {minute}' ({match.match_id})")
                return EventType.SECOND_YELLOW

            # The earlier caution arrived late: the card on record is the second one
            self.minutes.send_off(player, first.minute)
            first.outcome = SECOND_YELLOW
            player.cards.insert(player.cards.index(first), CardRecord(CardType.YELLOW, minute))
            logger.info(
                f"Late caution at {minute}' for {player.player}; second yellow at "
                f"{first.minute}' ({match.match_id})"
            )
            return EventType.CARD

        if card_type == CardType.RED:
            self.minutes.send_off(player, minute)
            logger.info(f"Straight red for {player.player} at {minute}' ({match.match_id})")
        elif card_type == CardType.SIN_BIN:
            self.minutes.sin_bin(player, minute)
        player.cards.append(CardRecord(card_type, minute))
        return EventType.CARD

    def record_opposition_card(self, match: MatchState, card_type: CardType, minute: int) -> None:
        """Opposition cards are kept on the match, never on a named player."""
        match.opposition_cards.append(CardRecord(card_type, minute))

    @staticmethod
    def opposition_summary(match: MatchState) -> dict:
        counts = {card.value: 0 for card in CardType}
        for record in match.opposition_cards:
            counts[record.card_type.value] += 1
        return {"opposition": counts}
