"""
engine/bowler_manager.py
========================

Over/Bowler Rotation Manager.  Runs once per completed over that does not end
the innings, and owns the "who may bowl next" rule.

Rules enforced
--------------
1. No-consecutive  - the bowler who just completed an over may not bowl the
                     next one.
2. Minimal window  - only that immediately preceding bowler is excluded.  A
                     bowler rested for one over is eligible again; no quota or
                     "last K overs" rule is applied.
3. No fallback     - if nobody is eligible (a one-player bowling side) the
                     manager raises NoEligibleBowlerError instead of relaxing
                     rule 1.

Usage (in match.py)
-------------------
    manager = BowlerManager(bowling_roster)

    # At the end of an over that does not end the innings
    manager.close_over(innings)          # previous <- current, current <- None

    eligible = manager.get_eligible_bowlers(innings)
    manager.select_bowler(innings, player_index)
"""

import logging
from typing import Dict, List

from engine.errors import IllegalStateTransitionError, NoEligibleBowlerError
from engine.innings import InningsState
from engine.player import Player

logger = logging.getLogger(__name__)


class BowlerManager:
    """
    Bowler rotation for one innings.

    Parameters
    ----------
    bowling_roster : players of the bowling side, in roster order.
    """

    def __init__(self, bowling_roster: List[Player]):
        self._roster: List[Player] = list(bowling_roster)
        self._by_index: Dict[int, Player] = {p.index: p for p in self._roster}

    # ------------------------------------------------------------------ #
    # Public query interface                                               #
    # ------------------------------------------------------------------ #

    def excluded(self, innings: InningsState) -> List[int]:
        """Indices barred from the next over."""
        barred = []
        if innings.current_bowler is not None:
            barred.append(innings.current_bowler)
        if innings.completed_overs > 0 and innings.previous_over_bowler is not None:
            if innings.previous_over_bowler not in barred:
                barred.append(innings.previous_over_bowler)
        return barred

    def get_eligible_bowlers(self, innings: InningsState) -> List[Player]:
        """
        Bowlers who may take the next over, in roster order.

        Raises NoEligibleBowlerError when the exclusion leaves nobody.
        """
        barred = set(self.excluded(innings))
        eligible = [p for p in self._roster if p.index not in barred]
        if not eligible:
            logger.warning(
                "BowlerManager: no eligible bowler for over %d (barred=%s, roster=%d)",
                innings.completed_overs + 1, sorted(barred), len(self._roster)
            )
            raise NoEligibleBowlerError(
                f"No bowler can take over {innings.completed_overs + 1}: "
                f"the bowling side has {len(self._roster)} player(s) and "
                f"{len(barred)} is barred from bowling consecutive overs"
            )
        return eligible

    def rotation_summary(self, innings: InningsState) -> Dict[str, Dict]:
        """
        {bowler_name: {overs, runs, wickets, eligible}} for the whole bowling
        side.  Used for the bowler-selection prompt.
        """
        barred = set(self.excluded(innings))
        summary = {}
        for p in self._roster:
            figures = innings.bowler_figures.get(p.index)
            summary[p.name] = {
                "index": p.index,
                "overs": figures.overs if figures else "0.0",
                "runs": figures.runs_conceded if figures else 0,
                "wickets": figures.wickets_taken if figures else 0,
                "eligible": p.index not in barred,
            }
        return summary

    # ------------------------------------------------------------------ #
    # State mutation                                                       #
    # ------------------------------------------------------------------ #

    def close_over(self, innings: InningsState) -> None:
        """
        Call once per completed over that does not end the innings.

        The bowler who just finished becomes ``previous_over_bowler`` before
        anyone new is recorded; ``current_bowler`` is vacated until selection.
        """
        finished = innings.current_bowler
        innings.previous_over_bowler = finished
        innings.current_bowler = None
        logger.debug(
            "BowlerManager: over %d closed by %s",
            innings.completed_overs,
            self._by_index[finished].name if finished in self._by_index else finished,
        )

    def select_bowler(self, innings: InningsState, player_index: int) -> Player:
        """Record the scorer's pick for the next over."""
        if innings.is_complete:
            raise IllegalStateTransitionError("Innings is complete; no bowler is needed")
        if innings.current_bowler is not None:
            raise IllegalStateTransitionError("A bowler is already bowling this over")

        eligible = self.get_eligible_bowlers(innings)
        chosen = next((p for p in eligible if p.index == player_index), None)
        if chosen is None:
            if player_index in self._by_index:
                raise IllegalStateTransitionError(
                    f"{self._by_index[player_index].name} bowled the previous over "
                    f"and cannot bowl consecutive overs"
                )
            raise IllegalStateTransitionError(f"Player index {player_index!r} is not on the bowling side")

        innings.current_bowler = chosen.index
        innings.ensure_bowler(chosen.index)
        logger.debug("BowlerManager: %s to bowl over %d", chosen.name, innings.completed_overs + 1)
        return chosen
