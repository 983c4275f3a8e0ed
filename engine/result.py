"""
engine/result.py
================

Match Result Evaluator.  Decides the result once the second innings is
complete and assembles the read-only MatchSummary handed to persistence.

Decision table (second innings complete):

    runs >= target          -> side batting second wins by wickets in hand
    runs <  target - 1      -> side batting first wins by (target - 1 - runs) runs
    runs == target - 1      -> scores level, Draw

Man of the match is a points system over runs, wickets
and fielding, with strike-rate and economy bonuses for limited-overs formats.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from engine.errors import IllegalStateTransitionError
from engine.innings import BALLS_PER_OVER, InningsState, format_overs
from engine.player import Player

logger = logging.getLogger(__name__)

FIRST_SIDE_WINS = "first_side_wins"
SECOND_SIDE_WINS = "second_side_wins"
DRAW = "draw"

LIMITED_OVERS_FORMATS = ("T20", "ODI")


class MatchResult:
    """Tagged result: kind, winning side (None for a draw) and margin."""

    def __init__(self, kind: str, winner_side: Optional[str], margin: int,
                 margin_type: Optional[str], description: str):
        self.kind = kind
        self.winner_side = winner_side
        self.margin = margin
        self.margin_type = margin_type
        self.description = description

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "winner_side": self.winner_side,
            "margin": self.margin,
            "margin_type": self.margin_type,
            "description": self.description,
        }


def evaluate_result(first: InningsState, second: InningsState,
                    team_names: Dict[str, str]) -> MatchResult:
    if not (first.is_complete and second.is_complete):
        raise IllegalStateTransitionError("Both innings must be complete before a result is decided")
    target = second.target
    runs = second.total_runs

    if runs >= target:
        margin = second.max_wickets - second.wickets_lost
        name = team_names[second.batting_side]
        unit = "wicket" if margin == 1 else "wickets"
        description = f"{name} won by {margin} {unit}"
        if second.balls_remaining > 0:
            description += f" with {second.balls_remaining} balls remaining"
        result = MatchResult(SECOND_SIDE_WINS, second.batting_side, margin, "wickets", description)
    elif runs < target - 1:
        margin = target - 1 - runs
        name = team_names[first.batting_side]
        unit = "run" if margin == 1 else "runs"
        result = MatchResult(FIRST_SIDE_WINS, first.batting_side, margin, "runs",
                             f"{name} won by {margin} {unit}")
    else:
        result = MatchResult(DRAW, None, 0, None, "Match drawn, scores level")

    logger.info("Result: %s", result.description)
    return result


# -----------------------------------------------------------------------------
# Man of the match
# -----------------------------------------------------------------------------

def _performance_points(perf: Dict[str, Any], match_format: str) -> Dict[str, Any]:
    batting = perf["runs_scored"]
    bowling = perf["wickets_taken"] * 25
    fielding = perf["catches"] * 10 + perf["run_outs"] * 15
    bonuses: List[str] = []

    if perf["runs_scored"] >= 100:
        batting += 40
        bonuses.append("Century Bonus (+40)")
    elif perf["runs_scored"] >= 50:
        batting += 20
        bonuses.append("Half-Century Bonus (+20)")

    limited = match_format in LIMITED_OVERS_FORMATS
    if limited and perf["balls_faced"] > 0:
        strike_rate = perf["runs_scored"] * 100.0 / perf["balls_faced"]
        if strike_rate >= 150:
            batting += 20
            bonuses.append("Excellent Strike Rate 150+ (+20)")
        elif strike_rate >= 130:
            batting += 10
            bonuses.append("Good Strike Rate 130+ (+10)")

    if perf["wickets_taken"] >= 5:
        bowling += 30
        bonuses.append("5-Wicket Haul Bonus (+30)")
    elif perf["wickets_taken"] >= 3:
        bowling += 15
        bonuses.append("3-Wicket Haul Bonus (+15)")

    if limited and perf["legal_balls_bowled"] > 0:
        economy = perf["runs_conceded"] * BALLS_PER_OVER / perf["legal_balls_bowled"]
        if economy <= 5:
            bowling += 20
            bonuses.append("Excellent Economy <=5.0 (+20)")
        elif economy <= 6:
            bowling += 10
            bonuses.append("Good Economy <=6.0 (+10)")

    return {
        "batting_points": batting,
        "bowling_points": bowling,
        "fielding_points": fielding,
        "bonuses": bonuses,
        "total": batting + bowling + fielding,
    }


def collect_performances(innings_list: List[InningsState],
                         rosters: Dict[str, List[Player]]) -> List[Dict[str, Any]]:
    """Combine each player's batting, bowling and fielding across both innings."""
    perfs: Dict[tuple, Dict[str, Any]] = {}
    for side, roster in rosters.items():
        for p in roster:
            perfs[(side, p.index)] = {
                "side": side,
                "index": p.index,
                "player_name": p.name,
                "account_ref": p.account_ref,
                "runs_scored": 0,
                "balls_faced": 0,
                "was_dismissed": False,
                "fours": 0,
                "sixes": 0,
                "legal_balls_bowled": 0,
                "runs_conceded": 0,
                "wickets_taken": 0,
                "catches": 0,
                "run_outs": 0,
            }

    for inn in innings_list:
        for idx, bat in inn.batter_figures.items():
            perf = perfs[(inn.batting_side, idx)]
            perf["runs_scored"] += bat.runs_scored
            perf["balls_faced"] += bat.balls_faced
            perf["fours"] += bat.fours
            perf["sixes"] += bat.sixes
            perf["was_dismissed"] = perf["was_dismissed"] or bat.is_out
            if bat.fielder is not None:
                fielder = perfs.get((inn.bowling_side, bat.fielder))
                if fielder is not None:
                    if bat.out_method == "Caught":
                        fielder["catches"] += 1
                    elif bat.out_method == "Run Out":
                        fielder["run_outs"] += 1
        for idx, bowl in inn.bowler_figures.items():
            perf = perfs[(inn.bowling_side, idx)]
            perf["legal_balls_bowled"] += bowl.legal_balls_bowled
            perf["runs_conceded"] += bowl.runs_conceded
            perf["wickets_taken"] += bowl.wickets_taken

    for perf in perfs.values():
        perf["overs_bowled"] = format_overs(perf["legal_balls_bowled"])
    return list(perfs.values())


def pick_man_of_the_match(performances: List[Dict[str, Any]],
                          match_format: str = "T20") -> Optional[Dict[str, Any]]:
    if not performances:
        return None
    best = None
    for perf in performances:
        points = _performance_points(perf, match_format)
        perf["points"] = points
        if best is None or points["total"] > best["points"]["total"]:
            best = perf
    return {
        "side": best["side"],
        "index": best["index"],
        "player_name": best["player_name"],
        "account_ref": best["account_ref"],
        "performance_score": best["points"]["total"],
        "breakdown": best["points"],
    }


# -----------------------------------------------------------------------------
# MatchSummary
# -----------------------------------------------------------------------------

def _innings_card(inn: InningsState, rosters: Dict[str, List[Player]],
                  team_names: Dict[str, str]) -> Dict[str, Any]:
    batting = rosters[inn.batting_side]
    bowling = rosters[inn.bowling_side]
    batting_card = []
    for idx, fig in sorted(inn.batter_figures.items(), key=lambda kv: kv[1].batting_position):
        row = fig.to_dict()
        row["index"] = idx
        row["player_name"] = batting[idx].name
        row["account_ref"] = batting[idx].account_ref
        row["dismissed_by_name"] = bowling[fig.dismissed_by].name if fig.dismissed_by is not None else None
        row["fielder_name"] = bowling[fig.fielder].name if fig.fielder is not None else None
        batting_card.append(row)
    bowling_card = []
    for idx, fig in inn.bowler_figures.items():
        row = fig.to_dict()
        row["index"] = idx
        row["player_name"] = bowling[idx].name
        row["account_ref"] = bowling[idx].account_ref
        bowling_card.append(row)
    return {
        "number": inn.number,
        "batting_side": inn.batting_side,
        "bowling_side": inn.bowling_side,
        "batting_team": team_names[inn.batting_side],
        "bowling_team": team_names[inn.bowling_side],
        "total_runs": inn.total_runs,
        "wickets_lost": inn.wickets_lost,
        "overs": inn.overs,
        "legal_balls": inn.legal_balls,
        "target": inn.target,
        "completion_reason": inn.completion_reason,
        "extras": inn.extras.to_dict(),
        "batting": batting_card,
        "bowling": bowling_card,
        "did_not_bat": [p.name for p in batting if p.index not in inn.batter_figures],
    }


class MatchSummary:
    """
    Immutable record of a completed match.  Built once by the controller and
    handed to persistence; every accessor returns a copy.
    """

    def __init__(self, data: Dict[str, Any]):
        self._data = copy.deepcopy(data)

    @classmethod
    def build(cls, match_id: str, match_overs: int, match_format: str,
              team_names: Dict[str, str], rosters: Dict[str, List[Player]],
              toss: Dict[str, Any], innings_list: List[InningsState],
              result: MatchResult) -> "MatchSummary":
        performances = collect_performances(innings_list, rosters)
        mom = pick_man_of_the_match(performances, match_format)
        return cls({
            "match_id": match_id,
            "match_overs": match_overs,
            "match_format": match_format,
            "team_names": dict(team_names),
            "toss": dict(toss),
            "innings": [_innings_card(inn, rosters, team_names) for inn in innings_list],
            "result": result.to_dict(),
            "player_performances": performances,
            "man_of_the_match": mom,
        })

    @property
    def match_id(self) -> str:
        return self._data["match_id"]

    @property
    def result(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data["result"])

    @property
    def innings(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._data["innings"])

    @property
    def man_of_the_match(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._data["man_of_the_match"])

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def __eq__(self, other) -> bool:
        if not isinstance(other, MatchSummary):
            return NotImplemented
        return self._data == other._data
