"""
engine/match.py
===============

The Match controller: single owner of one locally scored match.

Named states and the commands that move between them::

    AwaitingOpening --select_opening x3--> AwaitingBall
    AwaitingBall    --record_ball--------> AwaitingBall | AwaitingBatsman
                                           | AwaitingBowler | InningsBreak
                                           | MatchComplete
    AwaitingBatsman --select_new_batsman-> AwaitingBowler (wicket on the last
                                           ball of an over) | AwaitingBall
    AwaitingBowler  --select_bowler------> AwaitingBall
    InningsBreak    --start_second_innings-> AwaitingOpening
    (any live state) --abandon-----------> Abandoned

Every command runs under the match lock, works on a copy of the innings and
commits it in one assignment.  After each accepted command a fresh snapshot
dict is published; readers take it without touching the lock.
"""

import copy
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from engine.ball_outcome import BallOutcome, apply_ball
from engine.bowler_manager import BowlerManager
from engine.errors import (
    DuplicateSelectionError,
    IllegalStateTransitionError,
    InvalidBallOutcomeError,
)
from engine.innings import InningsState
from engine.opening import OpeningSelection
from engine.player import Player, other_side
from engine.result import MatchResult, MatchSummary, evaluate_result
from engine.toss import MatchSetup

logger = logging.getLogger(__name__)

AWAITING_OPENING = "AwaitingOpening"
AWAITING_BALL = "AwaitingBall"
AWAITING_BATSMAN = "AwaitingBatsman"
AWAITING_BOWLER = "AwaitingBowler"
INNINGS_BREAK = "InningsBreak"
MATCH_COMPLETE = "MatchComplete"
ABANDONED = "Abandoned"

TERMINAL_STATES = (MATCH_COMPLETE, ABANDONED)

DEFAULT_POLL_INTERVAL = 5


class Match:
    """
    Drives one match from opening selection to result.

    Parameters
    ----------
    setup         : resolved MatchSetup (rosters, overs, toss).
    poll_interval : seconds, advertised to spectators in every snapshot.
    """

    def __init__(self, setup: MatchSetup, poll_interval: int = DEFAULT_POLL_INTERVAL):
        self.setup = setup
        self.match_id = setup.match_id
        self.poll_interval = poll_interval

        self._lock = threading.RLock()
        self.innings: List[InningsState] = []
        self.state: Optional[str] = None
        self.opening: Optional[OpeningSelection] = None
        self.bowler_manager: Optional[BowlerManager] = None
        self.result: Optional[MatchResult] = None
        self.summary: Optional[MatchSummary] = None
        self.abandon_reason: Optional[str] = None
        self.events: List[Dict[str, Any]] = []
        self.version = 0
        self.created_at = time.time()
        self.updated_at = self.created_at

        self._change_listeners: List[Callable] = []
        self._complete_listeners: List[Callable] = []
        self._snapshot: Dict[str, Any] = {}

        with self._lock:
            self._start_innings(1, setup.first_batting_side, target=None)
            self._publish()

    # ------------------------------------------------------------------ #
    # Listeners                                                            #
    # ------------------------------------------------------------------ #

    def on_change(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        """callback(snapshot) after every accepted command."""
        self._change_listeners.append(callback)

    def on_complete(self, callback: Callable[[MatchSummary], None]) -> None:
        """callback(summary) once, when the result is decided."""
        self._complete_listeners.append(callback)

    def _notify(self, listeners: List[Callable], payload) -> None:
        for callback in list(listeners):
            try:
                callback(payload)
            except Exception:
                logger.error("Match %s: listener %r failed", self.match_id, callback, exc_info=True)

    # ------------------------------------------------------------------ #
    # Accessors                                                            #
    # ------------------------------------------------------------------ #

    @property
    def current_innings(self) -> InningsState:
        return self.innings[-1]

    @property
    def batting_roster(self) -> List[Player]:
        return self.setup.roster(self.current_innings.batting_side)

    @property
    def bowling_roster(self) -> List[Player]:
        return self.setup.roster(self.current_innings.bowling_side)

    @property
    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def _require_state(self, *allowed: str) -> None:
        if self.state not in allowed:
            raise IllegalStateTransitionError(
                f"Cannot do that while the match is {self.state}; expected {' or '.join(allowed)}"
            )

    def _next_live_state(self, innings: InningsState) -> str:
        if innings.strike_batsman is None or innings.non_strike_batsman is None:
            return AWAITING_BATSMAN
        if innings.current_bowler is None:
            return AWAITING_BOWLER
        return AWAITING_BALL

    # ------------------------------------------------------------------ #
    # Innings transition                                                   #
    # ------------------------------------------------------------------ #

    def _start_innings(self, number: int, batting_side: str, target: Optional[int]) -> None:
        bowling_side = other_side(batting_side)
        batting = self.setup.roster(batting_side)
        bowling = self.setup.roster(bowling_side)
        self.innings.append(InningsState(
            number=number,
            batting_side=batting_side,
            bowling_side=bowling_side,
            batting_roster_size=len(batting),
            match_overs=self.setup.match_overs,
            target=target,
        ))
        self.opening = OpeningSelection(batting, bowling)
        self.bowler_manager = BowlerManager(bowling)
        self.state = AWAITING_OPENING
        logger.info("Match %s: innings %d, %s batting%s", self.match_id, number,
                    self.setup.team_name(batting_side),
                    f", target {target}" if target is not None else "")

    def _record(self, event: Dict[str, Any]) -> None:
        self.events.append(event)
        self.version += 1

    # ------------------------------------------------------------------ #
    # Commands                                                             #
    # ------------------------------------------------------------------ #

    def select_opening(self, player_index: int) -> str:
        """Pick for the current opening step; returns the next step name."""
        with self._lock:
            self._require_state(AWAITING_OPENING)
            step = self.opening.select(player_index)
            if self.opening.is_complete:
                innings = copy.deepcopy(self.current_innings)
                innings.strike_batsman = self.opening.strike_batsman
                innings.non_strike_batsman = self.opening.non_strike_batsman
                innings.bring_in_batter(innings.strike_batsman)
                innings.bring_in_batter(innings.non_strike_batsman)
                innings.current_bowler = self.opening.bowler
                innings.ensure_bowler(innings.current_bowler)
                self.innings[-1] = innings
                self.state = AWAITING_BALL
            self._record({"type": "opening", "player_index": player_index})
            snapshot = self._publish()
        self._notify(self._change_listeners, snapshot)
        return step

    def opening_back(self) -> str:
        with self._lock:
            self._require_state(AWAITING_OPENING)
            step = self.opening.back()
            self._record({"type": "opening_back"})
            snapshot = self._publish()
        self._notify(self._change_listeners, snapshot)
        return step

    def record_ball(self, outcome) -> Dict[str, Any]:
        """
        Apply one delivery.  ``outcome`` is a BallOutcome or its dict form.
        Returns the published snapshot.
        """
        if not isinstance(outcome, BallOutcome):
            outcome = BallOutcome.from_dict(outcome)

        completed_summary = None
        with self._lock:
            self._require_state(AWAITING_BALL)
            if outcome.fielder is not None and outcome.fielder >= len(self.bowling_roster):
                raise InvalidBallOutcomeError(
                    f"Fielder index {outcome.fielder} is not on the bowling side"
                )

            innings, result = apply_ball(self.current_innings, outcome)
            if result.needs_new_bowler:
                self.bowler_manager.close_over(innings)
            self.innings[-1] = innings

            if result.innings_complete:
                if innings.number == 1:
                    self.state = INNINGS_BREAK
                else:
                    completed_summary = self._finish()
            else:
                self.state = self._next_live_state(innings)
                if result.over_completed:
                    logger.debug("Match %s: over %d complete, %d/%d", self.match_id,
                                 innings.completed_overs, innings.total_runs, innings.wickets_lost)

            self._record({"type": "ball", "outcome": outcome.to_dict()})
            snapshot = self._publish()

        self._notify(self._change_listeners, snapshot)
        if completed_summary is not None:
            self._notify(self._complete_listeners, completed_summary)
        return copy.deepcopy(snapshot)

    def select_new_batsman(self, player_index: int) -> Player:
        """Send in a batter who has not batted yet, at the vacated end."""
        with self._lock:
            self._require_state(AWAITING_BATSMAN)
            innings = copy.deepcopy(self.current_innings)
            roster = self.batting_roster
            if not isinstance(player_index, int) or not 0 <= player_index < len(roster):
                raise IllegalStateTransitionError(f"Player index {player_index!r} is not on the batting side")
            player = roster[player_index]
            if player_index in innings.batter_figures:
                logger.warning("Match %s: rejected %s as new batsman, already batted", self.match_id, player.name)
                raise DuplicateSelectionError(f"{player.name} has already batted this innings")

            if innings.strike_batsman is None:
                innings.strike_batsman = player_index
            else:
                innings.non_strike_batsman = player_index
            innings.bring_in_batter(player_index)
            self.innings[-1] = innings
            self.state = self._next_live_state(innings)
            self._record({"type": "batsman", "player_index": player_index})
            snapshot = self._publish()
        self._notify(self._change_listeners, snapshot)
        return player

    def available_batsmen(self) -> List[Player]:
        innings = self.current_innings
        return [p for p in self.batting_roster if p.index not in innings.batter_figures]

    def eligible_bowlers(self) -> List[Player]:
        with self._lock:
            self._require_state(AWAITING_BOWLER)
            return self.bowler_manager.get_eligible_bowlers(self.current_innings)

    def select_bowler(self, player_index: int) -> Player:
        with self._lock:
            self._require_state(AWAITING_BOWLER)
            innings = copy.deepcopy(self.current_innings)
            player = self.bowler_manager.select_bowler(innings, player_index)
            self.innings[-1] = innings
            self.state = AWAITING_BALL
            self._record({"type": "bowler", "player_index": player_index})
            snapshot = self._publish()
        self._notify(self._change_listeners, snapshot)
        return player

    def start_second_innings(self) -> int:
        """Leave the innings break; returns the target."""
        with self._lock:
            self._require_state(INNINGS_BREAK)
            first = self.innings[0]
            target = first.total_runs + 1
            self._start_innings(2, first.bowling_side, target=target)
            self._record({"type": "second_innings"})
            snapshot = self._publish()
        self._notify(self._change_listeners, snapshot)
        return target

    def abandon(self, reason: str = "") -> None:
        with self._lock:
            if self.is_finished:
                raise IllegalStateTransitionError(f"Match is already {self.state}")
            self.state = ABANDONED
            self.abandon_reason = reason or None
            self._record({"type": "abandon", "reason": reason or ""})
            logger.info("Match %s abandoned%s", self.match_id, f": {reason}" if reason else "")
            snapshot = self._publish()
        self._notify(self._change_listeners, snapshot)

    def _finish(self) -> MatchSummary:
        first, second = self.innings
        self.result = evaluate_result(first, second, self.setup.team_names)
        self.summary = MatchSummary.build(
            match_id=self.match_id,
            match_overs=self.setup.match_overs,
            match_format=self.setup.match_format,
            team_names=self.setup.team_names,
            rosters=self.setup.rosters,
            toss=self.setup.toss.to_dict(),
            innings_list=self.innings,
            result=self.result,
        )
        self.state = MATCH_COMPLETE
        logger.info("Match %s complete: %s", self.match_id, self.result.description)
        return self.summary

    def get_summary(self) -> MatchSummary:
        if self.summary is None:
            raise IllegalStateTransitionError("The match has no result yet")
        return self.summary

    # ------------------------------------------------------------------ #
    # Event log & replay                                                   #
    # ------------------------------------------------------------------ #

    def apply_event(self, event: Dict[str, Any]) -> None:
        kind = event.get("type")
        if kind == "opening":
            self.select_opening(event["player_index"])
        elif kind == "opening_back":
            self.opening_back()
        elif kind == "ball":
            self.record_ball(event["outcome"])
        elif kind == "batsman":
            self.select_new_batsman(event["player_index"])
        elif kind == "bowler":
            self.select_bowler(event["player_index"])
        elif kind == "second_innings":
            self.start_second_innings()
        elif kind == "abandon":
            self.abandon(event.get("reason", ""))
        else:
            raise IllegalStateTransitionError(f"Unknown match event {kind!r}")

    @classmethod
    def replay(cls, setup: MatchSetup, events: List[Dict[str, Any]],
               poll_interval: int = DEFAULT_POLL_INTERVAL) -> "Match":
        """Rebuild a match from its setup and recorded events."""
        match = cls(setup, poll_interval=poll_interval)
        for event in events:
            match.apply_event(event)
        return match

    def export(self) -> Dict[str, Any]:
        with self._lock:
            return {"setup": self.setup.to_dict(), "events": copy.deepcopy(self.events)}

    # ------------------------------------------------------------------ #
    # Snapshot                                                             #
    # ------------------------------------------------------------------ #

    def snapshot(self) -> Dict[str, Any]:
        """Latest published snapshot.  Never blocks on the scorer."""
        return copy.deepcopy(self._snapshot)

    def _publish(self) -> Dict[str, Any]:
        self.updated_at = time.time()
        self._snapshot = self._build_snapshot()
        return self._snapshot

    def _status_line(self, innings: InningsState) -> str:
        batting_team = self.setup.team_name(innings.batting_side)
        score = f"{batting_team} {innings.total_runs}/{innings.wickets_lost} ({innings.overs} ov)"
        if self.state == ABANDONED:
            return "Match abandoned" + (f": {self.abandon_reason}" if self.abandon_reason else "")
        if self.state == MATCH_COMPLETE:
            return self.result.description
        if self.state == INNINGS_BREAK:
            chasing = self.setup.team_name(innings.bowling_side)
            return f"Innings break: {score}. {chasing} need {innings.total_runs + 1} to win"
        if self.state == AWAITING_OPENING:
            step = self.opening.step.replace("_", " ")
            return f"{batting_team} to bat: select {step}"
        if innings.target is not None:
            need = innings.runs_needed
            score += f", need {need} run{'s' if need != 1 else ''} from {innings.balls_remaining} balls"
        if self.state == AWAITING_BATSMAN:
            return f"{score}. Wicket! Select the next batsman"
        if self.state == AWAITING_BOWLER:
            return f"{score}. End of over {innings.completed_overs}: select a bowler"
        return score

    def _player_name(self, side: str, index: Optional[int]) -> Optional[str]:
        if index is None:
            return None
        return self.setup.roster(side)[index].name

    def _build_snapshot(self) -> Dict[str, Any]:
        innings = self.current_innings
        batting = self.setup.roster(innings.batting_side)
        bowling = self.setup.roster(innings.bowling_side)

        batters = []
        for idx in (innings.strike_batsman, innings.non_strike_batsman):
            if idx is None:
                continue
            fig = innings.batter_figures[idx]
            batters.append({
                "index": idx,
                "name": batting[idx].name,
                "runs": fig.runs_scored,
                "balls": fig.balls_faced,
                "fours": fig.fours,
                "sixes": fig.sixes,
                "strike_rate": fig.strike_rate,
                "on_strike": idx == innings.strike_batsman,
            })

        bowler = None
        if innings.current_bowler is not None:
            fig = innings.bowler_figures[innings.current_bowler]
            bowler = {
                "index": innings.current_bowler,
                "name": bowling[innings.current_bowler].name,
                "overs": fig.overs,
                "runs": fig.runs_conceded,
                "wickets": fig.wickets_taken,
                "maidens": fig.maidens,
                "economy": fig.economy,
            }

        first = self.innings[0]
        snapshot = {
            "match_id": self.match_id,
            "version": self.version,
            "state": self.state,
            "status_line": self._status_line(innings),
            "match_overs": self.setup.match_overs,
            "match_format": self.setup.match_format,
            "team_names": dict(self.setup.team_names),
            "toss": self.setup.toss.to_dict(),
            "innings_number": innings.number,
            "batting_side": innings.batting_side,
            "bowling_side": innings.bowling_side,
            "batting_team": self.setup.team_name(innings.batting_side),
            "bowling_team": self.setup.team_name(innings.bowling_side),
            "score": {
                "runs": innings.total_runs,
                "wickets": innings.wickets_lost,
                "overs": innings.overs,
                "legal_balls": innings.legal_balls,
                "run_rate": innings.run_rate,
            },
            "target": innings.target,
            "runs_needed": innings.runs_needed,
            "balls_remaining": innings.balls_remaining,
            "required_run_rate": innings.required_run_rate,
            "batters": batters,
            "bowler": bowler,
            "previous_over_bowler": self._player_name(innings.bowling_side, innings.previous_over_bowler),
            "this_over": list(innings.this_over),
            "last_over": list(innings.last_over),
            "extras": innings.extras.to_dict(),
            "first_innings": None,
            "opening": self.opening.to_dict() if self.state == AWAITING_OPENING else None,
            "result": self.result.to_dict() if self.result else None,
            "poll_interval_seconds": self.poll_interval,
        }
        if innings.number == 2:
            snapshot["first_innings"] = {
                "batting_team": self.setup.team_name(first.batting_side),
                "runs": first.total_runs,
                "wickets": first.wickets_lost,
                "overs": first.overs,
            }
        return snapshot
