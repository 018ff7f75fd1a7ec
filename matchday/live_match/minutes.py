"""
Minutes tracking.

Each player moves through bench -> on_pitch -> off_pitch, with a
temporary on_pitch <-> sin_bin loop. Playing time lives only in the
player's intervals; nothing here keeps raw event history.
"""
import logging
from typing import Iterable, List, Tuple

from matchday.errors import RuleViolation
from matchday.live_match.models import (
    Interval,
    MatchState,
    PitchState,
    PlayerMatchState,
    PlayerRole,
)

logger = logging.getLogger("live_match.minutes")


class MinutesTracker:
    """State machine over PlayerMatchState intervals."""

    def kickoff(
        self, match: MatchState, minute: int, named_starters: Iterable[str] = ()
    ) -> List[PlayerMatchState]:
        """Open an interval for every starter still on the bench."""
        for name in named_starters:
            player = match.ensure_player(name, PlayerRole.STARTER)
            player.role = PlayerRole.STARTER

        opened = []
        for player in match.players.values():
            if player.role == PlayerRole.STARTER and player.pitch_state == PitchState.BENCH:
                self._open(player, minute)
                opened.append(player)
        logger.info(f"Kickoff {match.match_id} at {minute}': {len(opened)} starters on")
        return opened

    def second_half(
        self, match: MatchState, minute: int, named_players: Iterable[str] = ()
    ) -> List[PlayerMatchState]:
        """
        Bring on named second-half players who have not played yet.

        Players already on the pitch keep their open interval; the match
        clock is continuous across the break.
        """
        opened = []
        for name in named_players:
            player = match.ensure_player(name)
            if player.pitch_state == PitchState.ON_PITCH:
                continue
            if player.pitch_state != PitchState.BENCH:
                raise RuleViolation(
                    f"{player.player} cannot start the second half from {player.pitch_state.value}",
                    player=player.player,
                )
            self._open(player, minute)
            opened.append(player)
        return opened

    def substitute(
        self, match: MatchState, minute: int, player_off: str, player_on: str
    ) -> Tuple[PlayerMatchState, PlayerMatchState]:
        outgoing = match.get_player(player_off)
        if outgoing is None or outgoing.pitch_state != PitchState.ON_PITCH:
            state = outgoing.pitch_state.value if outgoing else "unknown"
            raise RuleViolation(
                f"{player_off} is not on the pitch ({state}) and cannot be substituted off",
                player=player_off,
            )

        incoming = match.get_player(player_on)
        if incoming is not None and incoming.pitch_state != PitchState.BENCH:
            raise RuleViolation(
                f"{incoming.player} cannot come on from {incoming.pitch_state.value}",
                player=incoming.player,
            )
        if incoming is None:
            incoming = match.ensure_player(player_on, PlayerRole.SUBSTITUTE)

        self._close(outgoing, minute)
        outgoing.pitch_state = PitchState.OFF_PITCH
        self._open(incoming, minute)
        logger.info(
            f"Substitution {match.match_id} {minute}': {outgoing.player} -> {incoming.player}"
        )
        return outgoing, incoming

    def send_off(self, player: PlayerMatchState, minute: int) -> None:
        """
        Red card or second yellow: the player leaves for good.

        A dismissal that arrives after the player already left (subbed
        off or sin-binned) must not predate that exit; the rows would
        contradict each other, so it is rejected rather than rewriting a
        closed interval.
        """
        if player.open_interval is not None:
            self._close(player, minute)
        elif player.intervals and minute < player.intervals[-1].end:
            raise RuleViolation(
                f"{player.player} cannot be sent off at {minute}' after leaving at "
                f"{player.intervals[-1].end}'",
                player=player.player,
            )
        player.pitch_state = PitchState.OFF_PITCH

    def sin_bin(self, player: PlayerMatchState, minute: int) -> None:
        if player.pitch_state != PitchState.ON_PITCH:
            return
        self._close(player, minute)
        player.pitch_state = PitchState.SIN_BIN

    def sin_bin_return(self, match: MatchState, name: str, minute: int) -> PlayerMatchState:
        player = match.get_player(name)
        if player is None or player.pitch_state != PitchState.SIN_BIN:
            raise RuleViolation(f"{name} is not in the sin bin", player=name)
        self._open(player, minute)
        return player

    def full_time(self, match: MatchState, minute: int) -> int:
        """Close every open interval at the final minute, added time included."""
        final_minute = max(minute, match.clock)
        for player in match.players.values():
            if player.open_interval is not None:
                self._close(player, final_minute)
            if player.pitch_state in (PitchState.ON_PITCH, PitchState.SIN_BIN):
                player.pitch_state = PitchState.OFF_PITCH
        match.final_minute = final_minute
        return final_minute

    def _open(self, player: PlayerMatchState, minute: int) -> None:
        if player.open_interval is not None:
            raise RuleViolation(f"{player.player} is already on the pitch", player=player.player)
        if player.pitch_state == PitchState.OFF_PITCH:
            raise RuleViolation(
                f"{player.player} has left the pitch and cannot return", player=player.player
            )
        if player.intervals and minute < player.intervals[-1].end:
            raise RuleViolation(
                f"{player.player} cannot return at {minute}' before leaving at "
                f"{player.intervals[-1].end}'",
                player=player.player,
            )
        player.intervals.append(Interval(start=minute))
        player.pitch_state = PitchState.ON_PITCH

    def _close(self, player: PlayerMatchState, minute: int) -> None:
        interval = player.open_interval
        if interval is None:
            raise RuleViolation(
                f"{player.player} has no open interval to close", player=player.player
            )
        if minute < interval.start:
            raise RuleViolation(
                f"{player.player} cannot leave at {minute}' before coming on at {interval.start}'",
                player=player.player,
            )
        interval.end = minute
