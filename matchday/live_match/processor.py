"""
Live match event processing.

One call to `EventProcessor.process_row` is one invocation: validate the
row, pass the exactly-once gate, classify, apply every tracker update to
a working copy of the match, build the payload, then persist the state
and commit the fingerprint. Any failure before the commit leaves the
stored match untouched and releases the fingerprint.
"""
import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from config.settings import Settings
from matchday.cache import KeyCategory, TieredCache, make_key
from matchday.errors import ContentionError, RuleViolation, StoreUnavailable, ValidationError
from matchday.idempotency import IdempotencyGuard, compute_fingerprint
from matchday.live_match.discipline import DisciplineTracker
from matchday.live_match.ingestor import EventIngestor
from matchday.live_match.minutes import MinutesTracker
from matchday.live_match.models import (
    DraftEvent,
    Event,
    EventType,
    MatchState,
    MatchStatus,
    PitchState,
    PlayerMatchState,
    PlayerRole,
    ProcessingOutcome,
    player_key,
)
from matchday.live_match.opposition import OppositionResolver
from matchday.live_match.payloads import build_payload
from matchday.live_match.repository import AggregateStore, MatchRepository
from matchday.utils.helpers import sanitize_text

logger = logging.getLogger("live_match.processor")

# Status event -> (statuses it may follow, status it moves to)
STATUS_TRANSITIONS = {
    EventType.KICKOFF: ((MatchStatus.SCHEDULED,), MatchStatus.KICKOFF),
    EventType.HALF_TIME: ((MatchStatus.KICKOFF, MatchStatus.FIRST_HALF), MatchStatus.HALF_TIME),
    EventType.SECOND_HALF: ((MatchStatus.HALF_TIME,), MatchStatus.SECOND_HALF),
    EventType.FULL_TIME: (
        (MatchStatus.KICKOFF, MatchStatus.FIRST_HALF, MatchStatus.HALF_TIME, MatchStatus.SECOND_HALF),
        MatchStatus.FULL_TIME,
    ),
    EventType.POSTPONED: ((MatchStatus.SCHEDULED,), MatchStatus.POSTPONED),
}

UNAVAILABLE_STATES = (PitchState.OFF_PITCH, PitchState.SIN_BIN)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventProcessor:
    """
    Runs the event pipeline for one match row at a time.

    All collaborators are passed in; nothing here is a module-level
    singleton.
    """

    def __init__(
        self,
        settings: Settings,
        repository: MatchRepository,
        guard: IdempotencyGuard,
        cache: TieredCache,
        aggregates: Optional[AggregateStore] = None,
        now: Callable[[], datetime] = _utc_now,
    ):
        self.settings = settings
        self.repository = repository
        self.guard = guard
        self.cache = cache
        self.aggregates = aggregates
        self.ingestor = EventIngestor(settings)
        self.resolver = OppositionResolver(settings)
        self.minutes = MinutesTracker()
        self.discipline = DisciplineTracker(self.minutes)
        self._now = now

    # =========================================================================
    # Invocation entry points
    # =========================================================================

    def process_row(self, match_id: Any, row: Mapping[str, Any]) -> ProcessingOutcome:
        """
        Process one raw row for a match.

        Returns:
            The outcome; `skipped` is True when the row was already processed

        Raises:
            ValidationError: malformed row (nothing mutated)
            RuleViolation: row breaks a match rule (nothing mutated)
            ContentionError: match busy or saved by another invocation meanwhile; retry
            StoreUnavailable: idempotency store or repository failed
        """
        match_id = self._check_match_id(match_id)
        draft = self.ingestor.ingest(row)
        fingerprint = compute_fingerprint(match_id, draft)

        with self.guard.claim(match_id, fingerprint) as claim:
            if claim.replay is not None:
                return claim.replay

            previous = self.repository.load(match_id)
            working = copy.deepcopy(previous) if previous is not None else None
            event, working = self._apply(match_id, draft, fingerprint, working)

            payload = build_payload(
                event,
                working,
                timestamp=self._timestamp(),
                source=self.settings.payload_source,
            )
            outcome = ProcessingOutcome(
                fingerprint=fingerprint,
                match_id=match_id,
                event_type=event.event_type.value,
                payload=payload,
                processed_at=payload["timestamp"],
            )

            self.repository.save(working)
            try:
                claim.commit(outcome)
            except StoreUnavailable:
                self._restore(working, previous)
                raise

        logger.info(
            f"Processed {event.event_type.value} at {event.minute}' for match {match_id} "
            f"[{fingerprint[:12]}]"
        )
        self._refresh_cache(working)
        if event.event_type == EventType.FULL_TIME:
            self._flush(working)
        return outcome

    def register_lineup(
        self,
        match_id: Any,
        starters: Iterable[str],
        substitutes: Iterable[str] = (),
        opponent: Optional[str] = None,
        team_side: Optional[str] = None,
        date: Optional[str] = None,
    ) -> MatchState:
        """
        Declare the squad before kickoff.

        Starters get an interval opened by the kickoff row; substitutes
        wait on the bench.
        """
        match_id = self._check_match_id(match_id)
        side = (team_side or self.settings.team_side).strip().lower()
        if side not in ("home", "away"):
            raise ValidationError("team_side", team_side, "team side must be home or away")

        with self.guard.locks.hold(match_id, self.guard.lock_timeout):
            state = self.repository.load(match_id) or MatchState(match_id=match_id, team_side=side)
            if state.status != MatchStatus.SCHEDULED:
                raise RuleViolation(f"lineup for match {match_id} is locked once play has started")

            state.team_side = side
            if opponent:
                state.opponent = self._text(opponent)
            if date:
                state.date = self._text(date)
            for role, names in ((PlayerRole.STARTER, starters), (PlayerRole.SUBSTITUTE, substitutes)):
                for name in names:
                    label = self._text(name)
                    if not label:
                        raise ValidationError("lineup", name, "player name is required")
                    player = state.ensure_player(label, role)
                    player.role = role
            self.repository.save(state)

        self._refresh_cache(state)
        return state

    def flush_match(self, match_id: Any) -> bool:
        """Push a finished match into the season aggregates (safe to repeat)."""
        match_id = self._check_match_id(match_id)
        state = self.repository.load(match_id)
        if state is None or state.status != MatchStatus.FULL_TIME:
            raise RuleViolation(f"match {match_id} has not finished")
        return self._flush(state, raise_errors=True)

    # =========================================================================
    # Read-side views (cached)
    # =========================================================================

    def get_match(self, match_id: Any) -> Optional[MatchState]:
        return self.repository.load(self._check_match_id(match_id))

    def scoreline(self, match_id: Any) -> Optional[Dict[str, int]]:
        match_id = self._check_match_id(match_id)
        return self.cache.get_or_compute(
            make_key(KeyCategory.SCORELINE, match_id),
            lambda: self._view(match_id, lambda s: s.scoreline()),
        )

    def player_minutes(self, match_id: Any) -> Optional[Dict[str, int]]:
        match_id = self._check_match_id(match_id)
        return self.cache.get_or_compute(
            make_key(KeyCategory.PLAYER_MINUTES, match_id),
            lambda: self._view(match_id, lambda s: s.player_minutes()),
        )

    def match_snapshot(self, match_id: Any) -> Optional[Dict[str, Any]]:
        match_id = self._check_match_id(match_id)
        return self.cache.get_or_compute(
            make_key(KeyCategory.MATCH_SNAPSHOT, match_id),
            lambda: self._view(match_id, self._snapshot),
        )

    def discipline_summary(self, match_id: Any) -> Optional[Dict[str, Any]]:
        match_id = self._check_match_id(match_id)
        return self.cache.get_or_compute(
            make_key(KeyCategory.DISCIPLINE, match_id),
            lambda: self._view(match_id, self._discipline_view),
        )

    def season_stats(self, player: str) -> Optional[Dict[str, Any]]:
        if self.aggregates is None:
            return None
        label = self._text(player)
        if not label:
            raise ValidationError("player", player, "player is required")

        def compute():
            stats = self.aggregates.season_stats(label)
            return stats.to_dict() if stats is not None else None

        return self.cache.get_or_compute(
            make_key(KeyCategory.SEASON_AGGREGATE, player_key(label)), compute
        )

    # =========================================================================
    # Event application
    # =========================================================================

    def _apply(
        self,
        match_id: str,
        draft: DraftEvent,
        fingerprint: str,
        state: Optional[MatchState],
    ) -> tuple:
        classification = self.resolver.classify(draft)
        event_type = classification.event_type

        if state is None:
            if event_type not in (EventType.KICKOFF, EventType.POSTPONED):
                raise RuleViolation(f"match {match_id} has not kicked off")
            state = MatchState(match_id=match_id, team_side=self.settings.team_side)

        if draft.opponent and not state.opponent:
            state.opponent = draft.opponent

        if event_type.is_status:
            self._transition(state, event_type)
        elif not state.is_in_play:
            raise RuleViolation(
                f"match {match_id} is {state.status.value}; {event_type.value} rejected"
            )

        if event_type != EventType.POSTPONED:
            state.advance_clock(draft.minute)

        if event_type == EventType.GOAL:
            self._apply_team_goal(state, draft)
        elif event_type == EventType.GOAL_OPPOSITION:
            state.add_opposition_goal()
        elif event_type == EventType.CARD:
            event_type = self.discipline.record_team_card(
                state, draft.player, draft.card_type, draft.minute
            )
        elif event_type == EventType.CARD_OPPOSITION:
            self.discipline.record_opposition_card(state, draft.card_type, draft.minute)
        elif event_type == EventType.SUBSTITUTION:
            self.minutes.substitute(state, draft.minute, draft.player_off, draft.player_on)
        elif event_type == EventType.SIN_BIN_RETURN:
            self.minutes.sin_bin_return(state, draft.player, draft.minute)
        elif event_type == EventType.KICKOFF:
            self.minutes.kickoff(state, draft.minute, draft.players)
        elif event_type == EventType.SECOND_HALF:
            self.minutes.second_half(state, draft.minute, draft.players)
        elif event_type == EventType.FULL_TIME:
            self.minutes.full_time(state, draft.minute)
            state.closed = True

        if state.status == MatchStatus.KICKOFF and not event_type.is_status:
            state.status = MatchStatus.FIRST_HALF

        self._check_reported_score(state, draft)
        return Event.from_draft(draft, fingerprint, match_id, event_type), state

    def _transition(self, state: MatchState, event_type: EventType) -> None:
        allowed, target = STATUS_TRANSITIONS[event_type]
        if state.status not in allowed:
            raise RuleViolation(
                f"cannot move match {state.match_id} from {state.status.value} "
                f"to {target.value}"
            )
        state.status = target

    def _apply_team_goal(self, state: MatchState, draft: DraftEvent) -> None:
        scorer = state.ensure_player(draft.player)
        self._check_on_pitch(scorer, draft.minute, "score")
        if draft.assist:
            provider = state.ensure_player(draft.assist)
            self._check_on_pitch(provider, draft.minute, "assist")
            provider.assists += 1
        scorer.goals += 1
        state.add_team_goal()

    @staticmethod
    def _check_on_pitch(player: PlayerMatchState, minute: int, action: str) -> None:
        # Judged at the goal minute so late rows are placed against the right interval
        if player.appeared:
            if player.was_on_pitch(minute):
                return
        elif player.pitch_state not in UNAVAILABLE_STATES:
            return
        raise RuleViolation(
            f"{player.player} was not on the pitch at {minute}' and cannot {action}",
            player=player.player,
        )

    def _check_reported_score(self, state: MatchState, draft: DraftEvent) -> None:
        # The row's scoreline is informational; the tracked score is authoritative
        reported = (draft.reported_home_score, draft.reported_away_score)
        if reported == (None, None):
            return
        if reported != (state.home_score, state.away_score):
            logger.warning(
                f"Scoreline mismatch for match {state.match_id}: row says "
                f"{reported[0]}-{reported[1]}, tracked {state.home_score}-{state.away_score}"
            )

    # =========================================================================
    # Post-commit work
    # =========================================================================

    def _restore(self, working: MatchState, previous: Optional[MatchState]) -> None:
        match_id = working.match_id
        try:
            if previous is None:
                self.repository.delete(match_id)
            else:
                # Write over our own revision, not the one we loaded
                previous.version = working.version
                self.repository.save(previous)
            logger.warning(f"Restored match {match_id} after a failed fingerprint commit")
        except (StoreUnavailable, ContentionError) as e:
            logger.error(f"Could not restore match {match_id}: {e}")

    def _refresh_cache(self, state: MatchState) -> None:
        self.cache.set(make_key(KeyCategory.SCORELINE, state.match_id), state.scoreline())
        for category in (KeyCategory.PLAYER_MINUTES, KeyCategory.MATCH_SNAPSHOT, KeyCategory.DISCIPLINE):
            self.cache.invalidate(make_key(category, state.match_id))

    def _flush(self, state: MatchState, raise_errors: bool = False) -> bool:
        if self.aggregates is None:
            return False
        try:
            flushed = self.aggregates.flush_match(state)
        except StoreUnavailable as e:
            logger.error(f"Season flush for match {state.match_id} failed: {e}")
            if raise_errors:
                raise
            return False
        if flushed:
            logger.info(f"Flushed match {state.match_id} into season aggregates")
            for player in state.players.values():
                self.cache.invalidate(
                    make_key(KeyCategory.SEASON_AGGREGATE, player_key(player.player))
                )
        return flushed

    # =========================================================================
    # Helpers
    # =========================================================================

    def _view(self, match_id: str, build: Callable[[MatchState], Any]) -> Any:
        state = self.repository.load(match_id)
        return build(state) if state is not None else None

    def _snapshot(self, state: MatchState) -> Dict[str, Any]:
        snapshot = state.to_dict()
        snapshot["player_minutes"] = state.player_minutes()
        return snapshot

    def _discipline_view(self, state: MatchState) -> Dict[str, Any]:
        view = self.discipline.opposition_summary(state)
        view["players"] = {
            p.player: [c.to_dict() for c in p.cards]
            for p in state.players.values()
            if p.cards
        }
        return view

    def _check_match_id(self, match_id: Any) -> str:
        cleaned = self._text(match_id)
        if not cleaned:
            raise ValidationError("match_id", match_id, "match id is required")
        return cleaned

    def _text(self, value: Any) -> str:
        return sanitize_text(value, max_length=self.settings.max_text_length)

    def _timestamp(self) -> str:
        return self._now().isoformat().replace("+00:00", "Z")
