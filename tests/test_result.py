"""
Test suite for the match result evaluator
Tests engine/result.py: result decision, man of the match and MatchSummary
"""

import pytest

from conftest import make_match, start_innings
from engine.errors import IllegalStateTransitionError
from engine.innings import InningsState
from engine.player import AWAY, HOME
from engine.result import (
    DRAW,
    FIRST_SIDE_WINS,
    SECOND_SIDE_WINS,
    MatchSummary,
    evaluate_result,
    pick_man_of_the_match,
)

TEAMS = {HOME: "Strikers", AWAY: "Chargers"}


def finished(number, batting_side, runs, wickets, legal_balls, target=None, roster_size=11, overs=20):
    bowling_side = AWAY if batting_side == HOME else HOME
    inn = InningsState(number, batting_side, bowling_side, roster_size, overs, target)
    inn.total_runs = runs
    inn.wickets_lost = wickets
    inn.completed_overs, inn.balls_in_current_over = divmod(legal_balls, 6)
    inn.is_complete = True
    return inn


def perf(name, **figures):
    base = {
        "side": HOME, "index": 0, "player_name": name, "account_ref": None,
        "runs_scored": 0, "balls_faced": 0, "legal_balls_bowled": 0,
        "runs_conceded": 0, "wickets_taken": 0, "catches": 0, "run_outs": 0,
    }
    base.update(figures)
    return base


class TestEvaluateResult:

    def test_chase_won_by_wickets(self):
        first = finished(1, HOME, 150, 8, 120)
        second = finished(2, AWAY, 151, 6, 110, target=151)
        result = evaluate_result(first, second, TEAMS)
        assert result.kind == SECOND_SIDE_WINS
        assert result.winner_side == AWAY
        assert (result.margin, result.margin_type) == (4, "wickets")
        assert result.description == "Chargers won by 4 wickets with 10 balls remaining"

    def test_chase_won_off_last_ball(self):
        first = finished(1, HOME, 150, 8, 120)
        second = finished(2, AWAY, 152, 9, 120, target=151)
        result = evaluate_result(first, second, TEAMS)
        assert result.description == "Chargers won by 1 wicket"

    def test_margin_respects_short_roster(self):
        first = finished(1, HOME, 30, 2, 30, roster_size=6)
        second = finished(2, AWAY, 31, 1, 20, target=31, roster_size=6)
        assert evaluate_result(first, second, TEAMS).margin == 4

    def test_defended_by_runs(self):
        first = finished(1, HOME, 150, 8, 120)
        second = finished(2, AWAY, 130, 10, 101, target=151)
        result = evaluate_result(first, second, TEAMS)
        assert result.kind == FIRST_SIDE_WINS
        assert result.winner_side == HOME
        assert result.description == "Strikers won by 20 runs"

    def test_defended_by_one_run(self):
        first = finished(1, HOME, 150, 8, 120)
        second = finished(2, AWAY, 148, 5, 120, target=151)
        assert evaluate_result(first, second, TEAMS).description == "Strikers won by 2 runs"

    def test_level_scores_draw(self):
        first = finished(1, HOME, 150, 8, 120)
        second = finished(2, AWAY, 150, 3, 120, target=151)
        result = evaluate_result(first, second, TEAMS)
        assert result.kind == DRAW
        assert result.winner_side is None
        assert result.margin == 0

    def test_incomplete_innings_rejected(self):
        first = finished(1, HOME, 150, 8, 120)
        second = finished(2, AWAY, 90, 3, 60, target=151)
        second.is_complete = False
        with pytest.raises(IllegalStateTransitionError):
            evaluate_result(first, second, TEAMS)


class TestManOfTheMatch:

    def test_century_beats_three_wickets(self):
        perfs = [
            perf("Bowler", index=1, wickets_taken=3, legal_balls_bowled=24, runs_conceded=40),
            perf("Batter", index=0, runs_scored=102, balls_faced=90),
        ]
        mom = pick_man_of_the_match(perfs, "T20")
        assert mom["player_name"] == "Batter"
        assert mom["performance_score"] == 142
        assert "Century Bonus (+40)" in mom["breakdown"]["bonuses"]

    def test_limited_overs_bonuses(self):
        perfs = [perf("Quick", runs_scored=30, balls_faced=18, wickets_taken=1,
                      legal_balls_bowled=24, runs_conceded=18, catches=1)]
        mom = pick_man_of_the_match(perfs, "T20")
        breakdown = mom["breakdown"]
        assert breakdown["batting_points"] == 50
        assert breakdown["bowling_points"] == 45
        assert breakdown["fielding_points"] == 10
        assert mom["performance_score"] == 105

    def test_no_rate_bonuses_outside_limited_overs(self):
        perfs = [perf("Quick", runs_scored=30, balls_faced=18)]
        assert pick_man_of_the_match(perfs, "Test")["performance_score"] == 30

    def test_tie_keeps_roster_order(self):
        perfs = [perf("First", runs_scored=20), perf("Second", index=1, runs_scored=20)]
        assert pick_man_of_the_match(perfs, "Test")["player_name"] == "First"

    def test_empty(self):
        assert pick_man_of_the_match([], "T20") is None


class TestMatchSummary:

    def _completed(self, roster_input):
        roster_input["match_overs"] = 1
        roster_input["my_team_players"][0] = {"name": "Home 1", "account_ref": "acct-1"}
        match = make_match(roster_input)
        start_innings(match)
        for outcome in ({"runs_off_bat": 4}, {"runs_off_bat": 6}, {"extra_type": "wide"},
                        {}, {}, {}, {}):
            match.record_ball(outcome)
        match.start_second_innings()
        start_innings(match)
        match.record_ball({"is_wicket": True, "wicket_method": "Caught", "fielder": 3})
        match.select_new_batsman(2)
        for _ in range(5):
            match.record_ball({})
        return match

    def test_summary_contents(self, roster_input):
        summary = self._completed(roster_input).get_summary()
        data = summary.to_dict()
        assert data["result"]["description"] == "Strikers won by 11 runs"

        first, second = data["innings"]
        assert first["total_runs"] == 11
        assert first["extras"]["wides"] == 1
        assert first["batting"][0]["player_name"] == "Home 1"
        assert first["batting"][0]["account_ref"] == "acct-1"
        assert "Home 3" in first["did_not_bat"]

        out = second["batting"][0]
        assert out["out_method"] == "Caught"
        assert out["dismissed_by_name"] == "Home 1"
        assert out["fielder_name"] == "Home 4"

    def test_fielding_credit_and_mom(self, roster_input):
        data = self._completed(roster_input).get_summary().to_dict()
        catcher = next(p for p in data["player_performances"]
                       if p["side"] == HOME and p["index"] == 3)
        assert catcher["catches"] == 1
        assert data["man_of_the_match"]["player_name"] == "Home 1"
        assert data["man_of_the_match"]["account_ref"] == "acct-1"

    def test_summary_is_read_only(self, roster_input):
        summary = self._completed(roster_input).get_summary()
        summary.to_dict()["result"]["description"] = "changed"
        summary.innings[0]["total_runs"] = 0
        assert summary.result["description"] == "Strikers won by 11 runs"
        assert summary.innings[0]["total_runs"] == 11
        assert summary == MatchSummary(summary.to_dict())
