"""
Tests for the minutes state machine and discipline escalation.
"""
import pytest

from matchday.errors import RuleViolation
from matchday.live_match.discipline import DisciplineTracker
from matchday.live_match.minutes import MinutesTracker
from matchday.live_match.models import (
    CardType,
    EventType,
    MatchState,
    PitchState,
    PlayerRole,
)


@pytest.fixture
def minutes():
    return MinutesTracker()


@pytest.fixture
def discipline(minutes):
    return DisciplineTracker(minutes)


@pytest.fixture
def match(minutes):
    state = MatchState(match_id="m-1")
    state.ensure_player("Smith", PlayerRole.STARTER)
    state.ensure_player("Jones", PlayerRole.STARTER)
    state.ensure_player("Brown", PlayerRole.SUBSTITUTE)
    minutes.kickoff(state, 0)
    return state


def at(state, minute):
    state.advance_clock(minute)
    return minute


class TestKickoff:
    def test_starters_go_on_and_subs_stay_on_bench(self, match):
        assert match.get_player("Smith").pitch_state == PitchState.ON_PITCH
        assert match.get_player("Brown").pitch_state == PitchState.BENCH

    def test_named_players_become_starters(self, minutes):
        state = MatchState(match_id="m-2")
        minutes.kickoff(state, 0, ["Adams", "Baker"])
        adams = state.get_player("adams")
        assert adams.role == PlayerRole.STARTER
        assert adams.open_interval is not None

    def test_open_interval_runs_with_the_clock(self, match):
        at(match, 30)
        assert match.get_player("Smith").minutes_played(match.clock) == 30


class TestSubstitution:
    def test_minutes_split_at_substitution(self, match, minutes):
        minutes.substitute(match, at(match, 70), "Smith", "Brown")
        minutes.full_time(match, at(match, 93))
        assert match.get_player("Smith").minutes_played(match.clock) == 70
        assert match.get_player("Brown").minutes_played(match.clock) == 23

    def test_player_not_on_pitch_cannot_go_off(self, match, minutes):
        with pytest.raises(RuleViolation):
            minutes.substitute(match, 60, "Brown", "Smith")

    def test_player_subbed_off_cannot_return(self, match, minutes):
        minutes.substitute(match, 60, "Smith", "Brown")
        with pytest.raises(RuleViolation):
            minutes.substitute(match, 70, "Brown", "Smith")

    def test_unknown_incoming_player_is_created(self, match, minutes):
        _, incoming = minutes.substitute(match, 60, "Jones", "Green")
        assert incoming.role == PlayerRole.SUBSTITUTE
        assert incoming.pitch_state == PitchState.ON_PITCH

    def test_closing_before_start_rejected(self, match, minutes):
        minutes.substitute(match, 60, "Jones", "Brown")
        with pytest.raises(RuleViolation):
            minutes.substitute(match, 50, "Brown", "Green")


class TestSendOff:
    def test_red_closes_open_interval(self, match, minutes):
        jones = match.get_player("Jones")
        minutes.send_off(jones, at(match, 50))
        assert jones.intervals[-1].end == 50
        assert jones.pitch_state == PitchState.OFF_PITCH

    def test_red_predating_substitution_rejected(self, match, minutes):
        minutes.substitute(match, at(match, 70), "Smith", "Brown")
        smith = match.get_player("Smith")
        with pytest.raises(RuleViolation):
            minutes.send_off(smith, 50)
        assert smith.intervals[-1].end == 70
        assert smith.minutes_played(match.clock) == 70

    def test_red_while_in_sin_bin(self, match, minutes, discipline):
        discipline.record_team_card(match, "Smith", CardType.SIN_BIN, at(match, 60))
        discipline.record_team_card(match, "Smith", CardType.RED, at(match, 65))
        smith = match.get_player("Smith")
        assert smith.pitch_state == PitchState.OFF_PITCH
        assert smith.minutes_played(match.clock) == 60


class TestWasOnPitch:
    def test_intervals_are_end_exclusive(self, match, minutes):
        minutes.substitute(match, 70, "Smith", "Brown")
        smith = match.get_player("Smith")
        brown = match.get_player("Brown")
        assert smith.was_on_pitch(10)
        assert not smith.was_on_pitch(70)
        assert brown.was_on_pitch(70)
        assert not brown.was_on_pitch(69)


class TestSecondHalf:
    def test_clock_is_continuous_across_half_time(self, match, minutes):
        minutes.second_half(match, at(match, 46), ["Brown"])
        minutes.full_time(match, at(match, 90))
        assert match.get_player("Smith").minutes_played(match.clock) == 90
        assert match.get_player("Brown").minutes_played(match.clock) == 44

    def test_players_already_on_keep_their_interval(self, match, minutes):
        minutes.second_half(match, 46, ["Smith"])
        assert len(match.get_player("Smith").intervals) == 1


class TestFullTime:
    def test_closes_everything_at_final_minute(self, match, minutes):
        at(match, 95)
        final = minutes.full_time(match, 90)
        assert final == 95
        assert match.final_minute == 95
        for player in match.players.values():
            assert player.open_interval is None
        assert match.get_player("Smith").pitch_state == PitchState.OFF_PITCH
        assert match.get_player("Brown").pitch_state == PitchState.BENCH


class TestDiscipline:
    def test_single_yellow_keeps_player_on(self, match, discipline):
        outcome = discipline.record_team_card(match, "Jones", CardType.YELLOW, 40)
        assert outcome == EventType.CARD
        assert match.get_player("Jones").pitch_state == PitchState.ON_PITCH

    def test_second_yellow_escalates(self, match, discipline):
        discipline.record_team_card(match, "Jones", CardType.YELLOW, at(match, 40))
        outcome = discipline.record_team_card(match, "Jones", CardType.YELLOW, at(match, 75))
        jones = match.get_player("Jones")
        assert outcome == EventType.SECOND_YELLOW
        assert jones.cards[-1].outcome == "second_yellow"
        assert jones.intervals[-1].end == 75
        assert jones.pitch_state == PitchState.OFF_PITCH

    def test_late_first_caution_dismisses_at_the_later_card(self, match, discipline):
        discipline.record_team_card(match, "Jones", CardType.YELLOW, at(match, 75))
        outcome = discipline.record_team_card(match, "Jones", CardType.YELLOW, 40)
        jones = match.get_player("Jones")
        assert outcome == EventType.CARD
        assert [(c.minute, c.outcome) for c in jones.cards] == [(40, "card"), (75, "second_yellow")]
        assert jones.intervals[-1].end == 75
        assert jones.minutes_played(match.clock) == 75
        assert jones.is_dismissed

    def test_straight_red_is_not_a_second_yellow(self, match, discipline):
        outcome = discipline.record_team_card(match, "Jones", CardType.RED, 30)
        jones = match.get_player("Jones")
        assert outcome == EventType.CARD
        assert jones.cards[-1].outcome == "card"
        assert jones.is_dismissed

    def test_no_cards_after_dismissal(self, match, discipline):
        discipline.record_team_card(match, "Jones", CardType.RED, 30)
        with pytest.raises(RuleViolation):
            discipline.record_team_card(match, "Jones", CardType.YELLOW, 35)

    def test_sin_bin_round_trip(self, match, minutes, discipline):
        discipline.record_team_card(match, "Smith", CardType.SIN_BIN, at(match, 20))
        smith = match.get_player("Smith")
        assert smith.pitch_state == PitchState.SIN_BIN
        minutes.sin_bin_return(match, "Smith", at(match, 30))
        minutes.full_time(match, at(match, 80))
        assert smith.minutes_played(match.clock) == 70

    def test_sin_bin_never_escalates(self, match, minutes, discipline):
        discipline.record_team_card(match, "Smith", CardType.SIN_BIN, 20)
        minutes.sin_bin_return(match, "Smith", 30)
        outcome = discipline.record_team_card(match, "Smith", CardType.SIN_BIN, 50)
        assert outcome == EventType.CARD
        assert not match.get_player("Smith").is_dismissed

    def test_return_without_sin_bin_rejected(self, match, minutes):
        with pytest.raises(RuleViolation):
            minutes.sin_bin_return(match, "Smith", 30)

    def test_opposition_cards_stay_off_players(self, match, discipline):
        discipline.record_opposition_card(match, CardType.YELLOW, 12)
        discipline.record_opposition_card(match, CardType.RED, 80)
        summary = discipline.opposition_summary(match)
        assert summary == {"opposition": {"yellow": 1, "red": 1, "sin_bin": 0}}
        assert all(not p.cards for p in match.players.values())
