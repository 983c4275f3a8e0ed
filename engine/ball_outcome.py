# -----------------------------------------------------------------------------
# ball_outcome.py
#
# Ball Outcome Processor: applies one scored delivery to an InningsState.
#
# Scoring rules:
#   - wide    : 1 penalty + runs taken, all to extras.wides and the bowler.
#               Not a legal ball; nothing to the batter.
#   - no ball : 1 penalty (+ any byes run) to extras.no_balls and the bowler,
#               runs off the bat to the batter and the bowler.
#               Not a legal ball, so the batter's balls-faced is unchanged.
#   - bye /
#     leg bye : runs to extras only, never to the bowler.  Legal ball, the
#               striker is charged a ball faced.
#   - normal  : runs off the bat to the striker and the bowler.  Legal ball.
#
#   Odd runs actually run (off the bat plus byes/wides run) swap the strike.
#   The sixth legal ball ends the over: counters roll over and the ends swap
#   unconditionally, on top of any swap the runs already caused.
#
# The processor works on a deep copy and hands back the new state, so a
# rejected ball never leaves a half-applied innings behind.
# -----------------------------------------------------------------------------

import copy
import logging
from typing import Any, Dict, Optional, Tuple

from engine.errors import IllegalStateTransitionError, InvalidBallOutcomeError
from engine.innings import BALLS_PER_OVER, InningsState
from engine.player import BOWLER_CREDITED_DISMISSALS, DISMISSAL_TYPES

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# 1) Vocabulary
# -----------------------------------------------------------------------------

WIDE = "wide"
NO_BALL = "no_ball"
BYE = "bye"
LEG_BYE = "leg_bye"
EXTRA_TYPES = (WIDE, NO_BALL, BYE, LEG_BYE)

_EXTRA_ALIASES = {
    "wd": WIDE, "wide": WIDE,
    "nb": NO_BALL, "no_ball": NO_BALL, "noball": NO_BALL, "no-ball": NO_BALL,
    "b": BYE, "bye": BYE, "byes": BYE,
    "lb": LEG_BYE, "leg_bye": LEG_BYE, "legbye": LEG_BYE, "leg-bye": LEG_BYE, "leg_byes": LEG_BYE,
}

STRIKER = "striker"
NON_STRIKER = "non_striker"

ALL_OUT = "all_out"
OVERS_COMPLETE = "overs_complete"
TARGET_REACHED = "target_reached"

# Dismissals that can happen off an illegal delivery.
_WIDE_DISMISSALS = {"Run Out", "Stumped"}
_NO_BALL_DISMISSALS = {"Run Out"}


def _normalise_extra(extra_type) -> Optional[str]:
    if extra_type in (None, ""):
        return None
    key = str(extra_type).strip().lower().replace(" ", "_")
    if key not in _EXTRA_ALIASES:
        raise InvalidBallOutcomeError(f"Unknown extra type {extra_type!r}")
    return _EXTRA_ALIASES[key]


def _non_negative_int(value, label: str) -> int:
    if isinstance(value, bool):
        raise InvalidBallOutcomeError(f"{label} must be a whole number")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidBallOutcomeError(f"{label} must be a whole number, got {value!r}")
    if number != value and not isinstance(value, str):
        raise InvalidBallOutcomeError(f"{label} must be a whole number, got {value!r}")
    if number < 0:
        raise InvalidBallOutcomeError(f"{label} cannot be negative")
    return number


# -----------------------------------------------------------------------------
# 2) BallOutcome
# -----------------------------------------------------------------------------

class BallOutcome:
    """
    What happened on one delivery, as entered by the scorer.

    runs_off_bat : runs struck by the batter (0 for wides/byes/leg byes).
    extra_type   : None, "wide", "no_ball", "bye" or "leg_bye".
    extra_runs   : byes/leg byes run, or runs taken on top of a wide/no-ball penalty.
    is_wicket    : a batter was dismissed on this delivery.
    wicket_method: one of DISMISSAL_TYPES when is_wicket.
    dismissed    : "striker" or "non_striker", by position when the ball was bowled.
    fielder      : bowling-side roster index of the catcher / run-out fielder / keeper.
    """

    def __init__(self, runs_off_bat=0, extra_type=None, extra_runs=0,
                 is_wicket=False, wicket_method=None, dismissed=STRIKER,
                 fielder=None):
        self.runs_off_bat = _non_negative_int(runs_off_bat, "runs_off_bat")
        self.extra_type = _normalise_extra(extra_type)
        self.extra_runs = _non_negative_int(extra_runs, "extra_runs")
        self.is_wicket = bool(is_wicket)
        self.wicket_method = wicket_method if self.is_wicket else None
        self.dismissed = (dismissed or STRIKER) if self.is_wicket else None
        self.fielder = None if fielder is None else _non_negative_int(fielder, "fielder")
        self._validate()

    def _validate(self) -> None:
        if self.extra_type in (WIDE, BYE, LEG_BYE) and self.runs_off_bat:
            raise InvalidBallOutcomeError(f"No runs off the bat on a {self.extra_type.replace('_', ' ')}")
        if self.extra_type in (BYE, LEG_BYE) and not self.extra_runs:
            raise InvalidBallOutcomeError(f"A {self.extra_type.replace('_', ' ')} needs at least one run")
        if self.extra_type is None and self.extra_runs:
            raise InvalidBallOutcomeError("extra_runs given without an extra type")

        if not self.is_wicket:
            if self.fielder is not None:
                raise InvalidBallOutcomeError("A fielder is only recorded for a dismissal")
            return

        if self.wicket_method not in DISMISSAL_TYPES:
            raise InvalidBallOutcomeError(
                f"wicket_method must be one of {DISMISSAL_TYPES}, got {self.wicket_method!r}"
            )
        if self.dismissed not in (STRIKER, NON_STRIKER):
            raise InvalidBallOutcomeError(f"dismissed must be 'striker' or 'non_striker', got {self.dismissed!r}")
        if self.dismissed == NON_STRIKER and self.wicket_method != "Run Out":
            raise InvalidBallOutcomeError("Only a run out can dismiss the non-striker")
        if self.extra_type == WIDE and self.wicket_method not in _WIDE_DISMISSALS:
            raise InvalidBallOutcomeError(f"{self.wicket_method} is not possible off a wide")
        if self.extra_type == NO_BALL and self.wicket_method not in _NO_BALL_DISMISSALS:
            raise InvalidBallOutcomeError(f"{self.wicket_method} is not possible off a no ball")
        if self.wicket_method != "Run Out" and (self.runs_off_bat or self.extra_runs):
            raise InvalidBallOutcomeError(f"No runs can be completed on a {self.wicket_method} dismissal")

    # ------------------------------------------------------------------ #

    @property
    def is_legal(self) -> bool:
        return self.extra_type not in (WIDE, NO_BALL)

    @property
    def runs_run(self) -> int:
        """Runs physically run or struck; decides the strike swap."""
        return self.runs_off_bat + self.extra_runs

    @property
    def team_runs(self) -> int:
        penalty = 1 if self.extra_type in (WIDE, NO_BALL) else 0
        return penalty + self.runs_off_bat + self.extra_runs

    @property
    def bowler_runs(self) -> int:
        if self.extra_type in (BYE, LEG_BYE):
            return 0
        return self.team_runs

    @property
    def bowler_credited(self) -> bool:
        return self.is_wicket and self.wicket_method in BOWLER_CREDITED_DISMISSALS

    def symbol(self) -> str:
        if self.is_wicket:
            if self.wicket_method == "Run Out":
                return f"RO+{self.runs_run}" if self.runs_run else "RO"
            return "W"
        if self.extra_type == WIDE:
            return f"WD+{self.extra_runs}" if self.extra_runs else "WD"
        if self.extra_type == NO_BALL:
            return f"NB+{self.runs_run}" if self.runs_run else "NB"
        if self.extra_type == BYE:
            return f"B{self.extra_runs}"
        if self.extra_type == LEG_BYE:
            return f"LB{self.extra_runs}"
        return str(self.runs_off_bat)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runs_off_bat": self.runs_off_bat,
            "extra_type": self.extra_type,
            "extra_runs": self.extra_runs,
            "is_wicket": self.is_wicket,
            "wicket_method": self.wicket_method,
            "dismissed": self.dismissed,
            "fielder": self.fielder,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BallOutcome":
        if not isinstance(data, dict):
            raise InvalidBallOutcomeError("Ball outcome must be an object")
        return cls(
            runs_off_bat=data.get("runs_off_bat", 0),
            extra_type=data.get("extra_type"),
            extra_runs=data.get("extra_runs", 0),
            is_wicket=data.get("is_wicket", False),
            wicket_method=data.get("wicket_method"),
            dismissed=data.get("dismissed") or STRIKER,
            fielder=data.get("fielder"),
        )

    def __repr__(self) -> str:
        return f"BallOutcome({self.symbol()})"


# -----------------------------------------------------------------------------
# 3) BallResult - what the caller needs to decide the next state
# -----------------------------------------------------------------------------

class BallResult:
    def __init__(self, outcome: BallOutcome, over_completed: bool,
                 dismissed_player: Optional[int], completion_reason: Optional[str]):
        self.outcome = outcome
        self.over_completed = over_completed
        self.dismissed_player = dismissed_player
        self.completion_reason = completion_reason

    @property
    def innings_complete(self) -> bool:
        return self.completion_reason is not None

    @property
    def needs_new_batsman(self) -> bool:
        return self.dismissed_player is not None and not self.innings_complete

    @property
    def needs_new_bowler(self) -> bool:
        return self.over_completed and not self.innings_complete


# -----------------------------------------------------------------------------
# 4) Processor
# -----------------------------------------------------------------------------

def _check_ready(innings: InningsState) -> None:
    if innings.is_complete:
        raise IllegalStateTransitionError(f"Innings {innings.number} is already complete")
    if innings.strike_batsman is None or innings.non_strike_batsman is None:
        raise IllegalStateTransitionError("Both batters must be at the crease before a ball is bowled")
    if innings.current_bowler is None:
        raise IllegalStateTransitionError("A bowler must be selected before a ball is bowled")


def completion_reason_for(innings: InningsState) -> Optional[str]:
    if innings.target is not None and innings.total_runs >= innings.target:
        return TARGET_REACHED
    if innings.wickets_lost >= innings.max_wickets:
        return ALL_OUT
    if innings.completed_overs >= innings.match_overs:
        return OVERS_COMPLETE
    return None


def apply_ball(innings: InningsState, outcome: BallOutcome) -> Tuple[InningsState, BallResult]:
    """
    Apply ``outcome`` to a copy of ``innings``.

    Returns the updated copy and a BallResult.  The input state is left
    untouched, so the caller can commit the copy in one assignment.
    """
    _check_ready(innings)
    state = copy.deepcopy(innings)

    striker = state.strike_batsman
    non_striker = state.non_strike_batsman
    batter = state.batter_figures[striker]
    bowler = state.ensure_bowler(state.current_bowler)

    # Team total and extras
    state.total_runs += outcome.team_runs
    if outcome.extra_type == WIDE:
        state.extras.wides += outcome.team_runs
        bowler.wides += 1
    elif outcome.extra_type == NO_BALL:
        state.extras.no_balls += 1 + outcome.extra_runs
        bowler.no_balls += 1
    elif outcome.extra_type == BYE:
        state.extras.byes += outcome.extra_runs
    elif outcome.extra_type == LEG_BYE:
        state.extras.leg_byes += outcome.extra_runs

    # Batter
    batter.runs_scored += outcome.runs_off_bat
    if outcome.runs_off_bat == 4:
        batter.fours += 1
    elif outcome.runs_off_bat == 6:
        batter.sixes += 1
    if outcome.is_legal:
        batter.balls_faced += 1
        if outcome.runs_off_bat == 0:
            batter.dots += 1

    # Bowler
    bowler.runs_conceded += outcome.bowler_runs
    state.runs_this_over += outcome.bowler_runs
    if outcome.is_legal:
        bowler.legal_balls_bowled += 1

    # Strike rotation for runs actually run
    if outcome.runs_run % 2 == 1:
        state.swap_strike()

    # Dismissal
    dismissed_player = None
    if outcome.is_wicket:
        dismissed_player = striker if outcome.dismissed == STRIKER else non_striker
        out = state.batter_figures[dismissed_player]
        out.is_out = True
        out.out_method = outcome.wicket_method
        out.fielder = outcome.fielder
        if outcome.bowler_credited:
            out.dismissed_by = state.current_bowler
            bowler.wickets_taken += 1
        state.wickets_lost += 1
        if state.strike_batsman == dismissed_player:
            state.strike_batsman = None
        else:
            state.non_strike_batsman = None

    state.this_over.append(outcome.symbol())

    # Over accounting
    over_completed = False
    if outcome.is_legal:
        state.balls_in_current_over += 1
        if state.balls_in_current_over == BALLS_PER_OVER:
            over_completed = True
            state.completed_overs += 1
            state.balls_in_current_over = 0
            if state.runs_this_over == 0:
                bowler.maidens += 1
            state.runs_this_over = 0
            state.last_over = state.this_over
            state.this_over = []
            state.swap_strike()

    reason = completion_reason_for(state)
    if reason:
        state.is_complete = True
        state.completion_reason = reason
        logger.info("Innings %d complete (%s): %d/%d in %s overs",
                    state.number, reason, state.total_runs, state.wickets_lost, state.overs)

    logger.debug("Ball %s: %s -> %d/%d (%s)", outcome.symbol(), striker,
                 state.total_runs, state.wickets_lost, state.overs)
    return state, BallResult(outcome, over_completed, dismissed_player, reason)
