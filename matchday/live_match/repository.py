"""
Match state and season aggregate repositories.

The repository is the authoritative copy of every live match; the
cache only ever holds derived views of it. SQL-backed implementations
live in matchday.storage.
"""
import copy
import threading
from typing import Dict, Optional, Protocol, Set

from matchday.errors import ContentionError
from matchday.live_match.models import MatchState, PlayerSeasonStats, player_key


class MatchRepository(Protocol):
    """
    Durable match state shared by concurrent invocations.

    Implementations raise matchday.errors.StoreUnavailable when the
    backend cannot be reached.
    """

    def load(self, match_id: str) -> Optional[MatchState]:
        ...

    def save(self, state: MatchState) -> None:
        """
        Persist `state` if nobody saved the match since it was loaded,
        and bump `state.version`; otherwise raise ContentionError.
        """
        ...

    def delete(self, match_id: str) -> None:
        ...


class AggregateStore(Protocol):
    """Season-to-date player aggregates, fed once per closed match."""

    def flush_match(self, state: MatchState) -> bool:
        """Fold a closed match into the aggregates. Returns False if already flushed."""
        ...

    def season_stats(self, player: str) -> Optional[PlayerSeasonStats]:
        ...


class InMemoryMatchRepository:
    """Keeps deep copies so callers can never mutate the stored state in place."""

    def __init__(self):
        self._matches: Dict[str, MatchState] = {}
        self._lock = threading.Lock()

    def load(self, match_id: str) -> Optional[MatchState]:
        with self._lock:
            state = self._matches.get(match_id)
            return copy.deepcopy(state) if state is not None else None

    def save(self, state: MatchState) -> None:
        with self._lock:
            stored = self._matches.get(state.match_id)
            current = stored.version if stored is not None else 0
            if state.version != current:
                raise ContentionError(
                    state.match_id,
                    f"match {state.match_id} changed since version {state.version}",
                )
            state.version += 1
            self._matches[state.match_id] = copy.deepcopy(state)

    def delete(self, match_id: str) -> None:
        with self._lock:
            self._matches.pop(match_id, None)


class InMemoryAggregateStore:
    def __init__(self):
        self._stats: Dict[str, PlayerSeasonStats] = {}
        self._flushed: Set[str] = set()
        self._lock = threading.Lock()

    def flush_match(self, state: MatchState) -> bool:
        with self._lock:
            if state.match_id in self._flushed:
                return False
            for player in state.players.values():
                key = player_key(player.player)
                stats = self._stats.setdefault(key, PlayerSeasonStats(player=player.player))
                stats.add_match(player, state.clock)
            self._flushed.add(state.match_id)
            return True

    def season_stats(self, player: str) -> Optional[PlayerSeasonStats]:
        with self._lock:
            stats = self._stats.get(player_key(player))
            return copy.deepcopy(stats) if stats is not None else None
