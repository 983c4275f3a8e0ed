"""
Test suite for the ball outcome processor
Tests engine/ball_outcome.py against engine/innings.py state
"""

import pytest

from conftest import assert_innings_invariants
from engine.ball_outcome import (
    ALL_OUT,
    NON_STRIKER,
    OVERS_COMPLETE,
    TARGET_REACHED,
    BallOutcome,
    apply_ball,
)
from engine.errors import IllegalStateTransitionError, InvalidBallOutcomeError
from engine.innings import InningsState, format_overs, max_wickets_for
from engine.player import AWAY, HOME


def fresh_innings(target=None, roster_size=11, overs=20):
    inn = InningsState(1, HOME, AWAY, roster_size, overs, target)
    inn.strike_batsman = 0
    inn.non_strike_batsman = 1
    inn.bring_in_batter(0)
    inn.bring_in_batter(1)
    inn.current_bowler = 0
    inn.ensure_bowler(0)
    return inn


def play(inn, *outcomes):
    result = None
    for outcome in outcomes:
        before = inn.legal_balls
        inn, result = apply_ball(inn, outcome)
        assert inn.legal_balls == before + (1 if outcome.is_legal else 0)
        assert_innings_invariants(inn)
    return inn, result


def dots(n):
    return [BallOutcome() for _ in range(n)]


class TestInningsHelpers:

    def test_format_overs(self):
        assert format_overs(0) == "0.0"
        assert format_overs(104) == "17.2"
        assert format_overs(120) == "20.0"

    @pytest.mark.parametrize("size,expected", [(1, 0), (2, 1), (6, 5), (11, 10), (15, 10)])
    def test_max_wickets(self, size, expected):
        assert max_wickets_for(size) == expected


class TestScoringRules:

    def test_single_swaps_strike(self):
        inn, _ = play(fresh_innings(), BallOutcome(runs_off_bat=1))
        assert inn.total_runs == 1
        assert inn.strike_batsman == 1
        assert inn.batter_figures[0].runs_scored == 1
        assert inn.bowler_figures[0].runs_conceded == 1

    def test_boundary_keeps_strike(self):
        inn, _ = play(fresh_innings(), BallOutcome(runs_off_bat=4), BallOutcome(runs_off_bat=6))
        batter = inn.batter_figures[0]
        assert (batter.runs_scored, batter.fours, batter.sixes) == (10, 1, 1)
        assert inn.strike_batsman == 0

    def test_wide_is_not_a_legal_ball(self):
        inn, _ = play(fresh_innings(), BallOutcome(extra_type="wide"))
        assert inn.total_runs == 1
        assert inn.extras.wides == 1
        assert inn.legal_balls == 0
        assert inn.batter_figures[0].balls_faced == 0
        assert inn.bowler_figures[0].runs_conceded == 1
        assert inn.bowler_figures[0].wides == 1

    def test_wide_with_runs_taken(self):
        inn, _ = play(fresh_innings(), BallOutcome(extra_type="wd", extra_runs=1))
        assert inn.total_runs == 2
        assert inn.extras.wides == 2
        assert inn.strike_batsman == 1

    def test_no_ball_runs_go_to_batter(self):
        inn, _ = play(fresh_innings(), BallOutcome(runs_off_bat=4, extra_type="nb"))
        assert inn.total_runs == 5
        assert inn.extras.no_balls == 1
        assert inn.batter_figures[0].runs_scored == 4
        assert inn.batter_figures[0].balls_faced == 0
        assert inn.bowler_figures[0].runs_conceded == 5
        assert inn.legal_balls == 0

    def test_byes_are_not_charged_to_bowler(self):
        inn, _ = play(fresh_innings(), BallOutcome(extra_type="bye", extra_runs=2))
        assert inn.total_runs == 2
        assert inn.extras.byes == 2
        assert inn.bowler_figures[0].runs_conceded == 0
        assert inn.batter_figures[0].balls_faced == 1
        assert inn.legal_balls == 1
        assert inn.strike_batsman == 0

    def test_single_leg_bye_swaps_strike(self):
        inn, _ = play(fresh_innings(), BallOutcome(extra_type="leg_bye", extra_runs=1))
        assert inn.extras.leg_byes == 1
        assert inn.strike_batsman == 1

    def test_input_state_is_untouched(self):
        original = fresh_innings()
        apply_ball(original, BallOutcome(runs_off_bat=6))
        assert original.total_runs == 0
        assert original.legal_balls == 0

    def test_maiden_over(self):
        inn, result = play(fresh_innings(), *dots(6))
        assert result.over_completed
        assert inn.bowler_figures[0].maidens == 1
        assert inn.last_over == ["0"] * 6
        assert inn.this_over == []

    def test_runs_total_matches_batters_plus_extras(self):
        inn, _ = play(
            fresh_innings(),
            BallOutcome(runs_off_bat=1),
            BallOutcome(extra_type="wide", extra_runs=2),
            BallOutcome(runs_off_bat=2, extra_type="nb"),
            BallOutcome(extra_type="lb", extra_runs=1),
            BallOutcome(runs_off_bat=6),
            BallOutcome(extra_type="b", extra_runs=4),
        )
        assert_innings_invariants(inn)
        assert inn.total_runs == 1 + 3 + 3 + 1 + 6 + 4


class TestOverBoundaries:

    def test_wide_on_sixth_ball_does_not_end_over(self):
        inn, _ = play(fresh_innings(), *dots(5))
        inn, result = play(inn, BallOutcome(extra_type="wide"))
        assert not result.over_completed
        assert inn.balls_in_current_over == 5
        assert inn.this_over[-1] == "WD"

        inn, result = play(inn, BallOutcome())
        assert result.over_completed
        assert result.needs_new_bowler
        assert inn.completed_overs == 1

    def test_three_off_last_ball_keeps_batter_on_strike(self):
        inn, _ = play(fresh_innings(), *dots(5))
        assert inn.strike_batsman == 0
        inn, result = play(inn, BallOutcome(runs_off_bat=3))
        assert result.over_completed
        assert inn.strike_batsman == 0
        assert inn.non_strike_batsman == 1

    def test_dot_on_last_ball_swaps_ends(self):
        inn, _ = play(fresh_innings(), *dots(6))
        assert inn.strike_batsman == 1


class TestWickets:

    def test_bowled_credits_bowler(self):
        inn, result = play(fresh_innings(), BallOutcome(is_wicket=True, wicket_method="Bowled"))
        assert result.dismissed_player == 0
        assert result.needs_new_batsman
        assert inn.strike_batsman is None
        assert inn.wickets_lost == 1
        assert inn.bowler_figures[0].wickets_taken == 1
        assert inn.batter_figures[0].dismissed_by == 0
        assert inn.batter_figures[0].balls_faced == 1

    def test_caught_records_fielder(self):
        inn, _ = play(fresh_innings(), BallOutcome(is_wicket=True, wicket_method="Caught", fielder=4))
        assert inn.batter_figures[0].fielder == 4
        assert inn.batter_figures[0].out_method == "Caught"

    def test_run_out_of_non_striker_with_a_run(self):
        inn, result = play(fresh_innings(), BallOutcome(
            runs_off_bat=1, is_wicket=True, wicket_method="Run Out", dismissed=NON_STRIKER, fielder=3,
        ))
        assert result.dismissed_player == 1
        assert inn.total_runs == 1
        assert inn.bowler_figures[0].wickets_taken == 0
        assert inn.batter_figures[1].dismissed_by is None
        assert inn.batter_figures[1].is_out
        assert inn.non_strike_batsman == 0 or inn.strike_batsman == 0
        assert inn.this_over == ["RO+1"]

    def test_stumped_off_a_wide(self):
        inn, _ = play(fresh_innings(), BallOutcome(extra_type="wide", is_wicket=True, wicket_method="Stumped"))
        assert inn.total_runs == 1
        assert inn.wickets_lost == 1
        assert inn.legal_balls == 0
        assert inn.bowler_figures[0].wickets_taken == 1

    def test_wicket_on_last_ball_needs_batsman_and_bowler(self):
        inn, _ = play(fresh_innings(), *dots(5))
        inn, result = play(inn, BallOutcome(is_wicket=True, wicket_method="LBW"))
        assert result.needs_new_batsman
        assert result.needs_new_bowler


class TestCompletion:

    def test_target_reached_mid_over(self):
        inn, result = play(fresh_innings(target=5), BallOutcome(runs_off_bat=4), BallOutcome(runs_off_bat=1))
        assert result.completion_reason == TARGET_REACHED
        assert inn.is_complete
        assert not result.needs_new_bowler

    def test_last_man_standing(self):
        inn, result = play(fresh_innings(roster_size=2), BallOutcome(is_wicket=True, wicket_method="Bowled"))
        assert result.completion_reason == ALL_OUT
        assert not result.needs_new_batsman

    def test_overs_complete(self):
        inn, result = play(fresh_innings(overs=1), *dots(6))
        assert result.completion_reason == OVERS_COMPLETE
        assert not result.needs_new_bowler

    def test_ball_after_completion_rejected(self):
        inn, _ = play(fresh_innings(overs=1), *dots(6))
        with pytest.raises(IllegalStateTransitionError):
            apply_ball(inn, BallOutcome())

    def test_ball_without_bowler_rejected(self):
        inn = fresh_innings()
        inn.current_bowler = None
        with pytest.raises(IllegalStateTransitionError):
            apply_ball(inn, BallOutcome())


class TestValidation:

    @pytest.mark.parametrize("kwargs", [
        {"runs_off_bat": -1},
        {"runs_off_bat": 1.5},
        {"runs_off_bat": True},
        {"extra_type": "wide", "runs_off_bat": 2},
        {"extra_type": "bye", "runs_off_bat": 1, "extra_runs": 1},
        {"extra_type": "bye"},
        {"extra_type": "leg_bye", "extra_runs": 0},
        {"extra_runs": 2},
        {"extra_type": "dead_ball"},
        {"fielder": 2},
        {"is_wicket": True, "wicket_method": "Retired"},
        {"is_wicket": True, "wicket_method": "Bowled", "extra_type": "wide"},
        {"is_wicket": True, "wicket_method": "Stumped", "extra_type": "nb"},
        {"is_wicket": True, "wicket_method": "Caught", "dismissed": NON_STRIKER},
        {"is_wicket": True, "wicket_method": "Bowled", "runs_off_bat": 2},
    ])
    def test_rejected(self, kwargs):
        with pytest.raises(InvalidBallOutcomeError):
            BallOutcome(**kwargs)

    def test_from_dict_requires_object(self):
        with pytest.raises(InvalidBallOutcomeError):
            BallOutcome.from_dict("four")

    @pytest.mark.parametrize("kwargs,symbol", [
        ({}, "0"),
        ({"runs_off_bat": 4}, "4"),
        ({"extra_type": "wide"}, "WD"),
        ({"extra_type": "wide", "extra_runs": 3}, "WD+3"),
        ({"extra_type": "nb", "runs_off_bat": 1}, "NB+1"),
        ({"extra_type": "bye", "extra_runs": 2}, "B2"),
        ({"extra_type": "lb", "extra_runs": 1}, "LB1"),
        ({"is_wicket": True, "wicket_method": "Bowled"}, "W"),
        ({"is_wicket": True, "wicket_method": "Run Out"}, "RO"),
    ])
    def test_symbols(self, kwargs, symbol):
        assert BallOutcome(**kwargs).symbol() == symbol
