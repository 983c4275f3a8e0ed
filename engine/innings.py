"""
engine/innings.py
=================

Per-innings state: team score, over/ball counters, the two batters at the
crease, the current and previous-over bowler, and per-player figures.

Overs are never stored as floats.  Everything is counted in legal balls and
converted to the ``"O.B"`` display form on the way out.
"""

from typing import Any, Dict, Optional

BALLS_PER_OVER = 6
MAX_WICKETS = 10


def format_overs(legal_balls: int) -> str:
    """17 overs and 4 balls -> "17.4"."""
    return f"{legal_balls // BALLS_PER_OVER}.{legal_balls % BALLS_PER_OVER}"


def max_wickets_for(roster_size: int) -> int:
    """Last man standing: a side of N players is all out after N-1 wickets, never more than 10."""
    return max(0, min(MAX_WICKETS, roster_size - 1))


class BatterFigures:
    def __init__(self, batting_position: int):
        self.batting_position = batting_position
        self.runs_scored = 0
        self.balls_faced = 0
        self.fours = 0
        self.sixes = 0
        self.dots = 0
        self.is_out = False
        self.out_method: Optional[str] = None
        self.dismissed_by: Optional[int] = None   # bowler index
        self.fielder: Optional[int] = None        # fielder index

    @property
    def strike_rate(self) -> float:
        if not self.balls_faced:
            return 0.0
        return round(self.runs_scored * 100.0 / self.balls_faced, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batting_position": self.batting_position,
            "runs_scored": self.runs_scored,
            "balls_faced": self.balls_faced,
            "fours": self.fours,
            "sixes": self.sixes,
            "dots": self.dots,
            "is_out": self.is_out,
            "out_method": self.out_method,
            "dismissed_by": self.dismissed_by,
            "fielder": self.fielder,
            "strike_rate": self.strike_rate,
        }


class BowlerFigures:
    def __init__(self):
        self.legal_balls_bowled = 0
        self.runs_conceded = 0
        self.wickets_taken = 0
        self.maidens = 0
        self.wides = 0
        self.no_balls = 0

    @property
    def overs(self) -> str:
        return format_overs(self.legal_balls_bowled)

    @property
    def economy(self) -> float:
        if not self.legal_balls_bowled:
            return 0.0
        return round(self.runs_conceded * BALLS_PER_OVER / self.legal_balls_bowled, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "legal_balls_bowled": self.legal_balls_bowled,
            "overs": self.overs,
            "runs_conceded": self.runs_conceded,
            "wickets_taken": self.wickets_taken,
            "maidens": self.maidens,
            "wides": self.wides,
            "no_balls": self.no_balls,
            "economy": self.economy,
        }


class Extras:
    def __init__(self):
        self.wides = 0
        self.no_balls = 0
        self.byes = 0
        self.leg_byes = 0

    @property
    def total(self) -> int:
        return self.wides + self.no_balls + self.byes + self.leg_byes

    def to_dict(self) -> Dict[str, int]:
        return {
            "wides": self.wides,
            "no_balls": self.no_balls,
            "byes": self.byes,
            "leg_byes": self.leg_byes,
            "total": self.total,
        }


class InningsState:
    """
    The live state machine unit for one innings.

    ``strike_batsman`` / ``non_strike_batsman`` / ``current_bowler`` hold roster
    indices (batting side for batters, bowling side for the bowler).  A batter
    slot is None only while the scorer is choosing a replacement after a
    wicket; ``current_bowler`` is None only while a new bowler is awaited.
    """

    def __init__(self, number: int, batting_side: str, bowling_side: str,
                 batting_roster_size: int, match_overs: int,
                 target: Optional[int] = None):
        self.number = number
        self.batting_side = batting_side
        self.bowling_side = bowling_side
        self.batting_roster_size = batting_roster_size
        self.match_overs = match_overs
        self.target = target

        self.total_runs = 0
        self.wickets_lost = 0
        self.completed_overs = 0
        self.balls_in_current_over = 0
        self.runs_this_over = 0

        self.strike_batsman: Optional[int] = None
        self.non_strike_batsman: Optional[int] = None
        self.current_bowler: Optional[int] = None
        self.previous_over_bowler: Optional[int] = None

        self.batter_figures: Dict[int, BatterFigures] = {}
        self.bowler_figures: Dict[int, BowlerFigures] = {}
        self.extras = Extras()
        self.this_over = []
        self.last_over = []

        self.is_complete = False
        self.completion_reason: Optional[str] = None

    # ------------------------------------------------------------------ #
    # Derived values                                                       #
    # ------------------------------------------------------------------ #

    @property
    def legal_balls(self) -> int:
        return self.completed_overs * BALLS_PER_OVER + self.balls_in_current_over

    @property
    def overs(self) -> str:
        return format_overs(self.legal_balls)

    @property
    def max_wickets(self) -> int:
        return max_wickets_for(self.batting_roster_size)

    @property
    def balls_remaining(self) -> int:
        return self.match_overs * BALLS_PER_OVER - self.legal_balls

    @property
    def run_rate(self) -> float:
        if not self.legal_balls:
            return 0.0
        return round(self.total_runs * BALLS_PER_OVER / self.legal_balls, 2)

    @property
    def runs_needed(self) -> Optional[int]:
        if self.target is None:
            return None
        return max(0, self.target - self.total_runs)

    @property
    def required_run_rate(self) -> Optional[float]:
        if self.target is None or self.balls_remaining <= 0:
            return None
        return round(self.runs_needed * BALLS_PER_OVER / self.balls_remaining, 2)

    def batters_at_crease(self):
        return [i for i in (self.strike_batsman, self.non_strike_batsman) if i is not None]

    # ------------------------------------------------------------------ #
    # Mutation helpers used by the processor / rotation manager            #
    # ------------------------------------------------------------------ #

    def swap_strike(self) -> None:
        self.strike_batsman, self.non_strike_batsman = self.non_strike_batsman, self.strike_batsman

    def bring_in_batter(self, player_index: int) -> BatterFigures:
        figures = self.batter_figures.get(player_index)
        if figures is None:
            figures = BatterFigures(batting_position=len(self.batter_figures) + 1)
            self.batter_figures[player_index] = figures
        return figures

    def ensure_bowler(self, player_index: int) -> BowlerFigures:
        figures = self.bowler_figures.get(player_index)
        if figures is None:
            figures = BowlerFigures()
            self.bowler_figures[player_index] = figures
        return figures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "batting_side": self.batting_side,
            "bowling_side": self.bowling_side,
            "total_runs": self.total_runs,
            "wickets_lost": self.wickets_lost,
            "completed_overs": self.completed_overs,
            "balls_in_current_over": self.balls_in_current_over,
            "legal_balls": self.legal_balls,
            "overs": self.overs,
            "match_overs": self.match_overs,
            "target": self.target,
            "strike_batsman": self.strike_batsman,
            "non_strike_batsman": self.non_strike_batsman,
            "current_bowler": self.current_bowler,
            "previous_over_bowler": self.previous_over_bowler,
            "batter_figures": {str(k): v.to_dict() for k, v in self.batter_figures.items()},
            "bowler_figures": {str(k): v.to_dict() for k, v in self.bowler_figures.items()},
            "extras": self.extras.to_dict(),
            "this_over": list(self.this_over),
            "last_over": list(self.last_over),
            "run_rate": self.run_rate,
            "is_complete": self.is_complete,
            "completion_reason": self.completion_reason,
        }
