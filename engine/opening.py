"""
engine/opening.py
=================

Opening Selection: strike batsman, then non-strike batsman, then opening
bowler, strictly in that order.

Going back one step returns to the previous pick and clears everything
downstream of it.  The pick at the step returned to stays recorded until it is
re-made, so the scorer sees what they chose last time.
"""

import logging
from typing import Dict, List, Optional

from engine.errors import (
    DuplicateSelectionError,
    IllegalStateTransitionError,
    InsufficientPlayersError,
)
from engine.player import Player

logger = logging.getLogger(__name__)

STRIKE_BATSMAN = "strike_batsman"
NON_STRIKE_BATSMAN = "non_strike_batsman"
BOWLER = "bowler"
COMPLETE = "complete"

STEPS = (STRIKE_BATSMAN, NON_STRIKE_BATSMAN, BOWLER, COMPLETE)


class OpeningSelection:
    """
    Step machine for the three opening picks of one innings.

    Parameters
    ----------
    batting_roster : players of the side about to bat.
    bowling_roster : players of the side about to bowl.
    """

    def __init__(self, batting_roster: List[Player], bowling_roster: List[Player]):
        self.batting_roster = list(batting_roster)
        self.bowling_roster = list(bowling_roster)
        self._step = 0
        self._picks: Dict[str, Optional[int]] = {
            STRIKE_BATSMAN: None,
            NON_STRIKE_BATSMAN: None,
            BOWLER: None,
        }

    @property
    def step(self) -> str:
        return STEPS[self._step]

    @property
    def is_complete(self) -> bool:
        return self.step == COMPLETE

    @property
    def strike_batsman(self) -> Optional[int]:
        return self._picks[STRIKE_BATSMAN]

    @property
    def non_strike_batsman(self) -> Optional[int]:
        return self._picks[NON_STRIKE_BATSMAN]

    @property
    def bowler(self) -> Optional[int]:
        return self._picks[BOWLER]

    def eligible(self) -> List[Player]:
        """Players selectable at the current step; the striker is disabled for the non-striker pick."""
        step = self.step
        if step == STRIKE_BATSMAN:
            return list(self.batting_roster)
        if step == NON_STRIKE_BATSMAN:
            return [p for p in self.batting_roster if p.index != self.strike_batsman]
        if step == BOWLER:
            return list(self.bowling_roster)
        return []

    def _check_roster(self, roster: List[Player], required: int, label: str) -> None:
        if len(roster) < required:
            raise InsufficientPlayersError(
                f"{label} needs at least {required} eligible player(s), roster has {len(roster)}"
            )

    def _lookup(self, roster: List[Player], player_index) -> Player:
        for player in roster:
            if player.index == player_index:
                return player
        raise IllegalStateTransitionError(
            f"Player index {player_index!r} is not selectable for step {self.step}"
        )

    def _clear_downstream(self) -> None:
        for later in STEPS[self._step + 1:-1]:
            self._picks[later] = None

    def select(self, player_index: int) -> str:
        """Record the pick for the current step and advance; returns the new step."""
        step = self.step
        if step == COMPLETE:
            raise IllegalStateTransitionError("Opening selection is already complete")

        if step in (STRIKE_BATSMAN, NON_STRIKE_BATSMAN):
            self._check_roster(self.batting_roster, 2, "Batting side")
            player = self._lookup(self.batting_roster, player_index)
            if step == NON_STRIKE_BATSMAN and player.index == self.strike_batsman:
                logger.warning("Opening: rejected %s as non-striker, already on strike", player.name)
                raise DuplicateSelectionError(f"{player.name} is already the strike batsman")
        else:
            self._check_roster(self.bowling_roster, 1, "Bowling side")
            player = self._lookup(self.bowling_roster, player_index)

        self._picks[step] = player.index
        self._clear_downstream()
        self._step += 1
        logger.debug("Opening: %s -> %s", step, player.name)
        return self.step

    def back(self) -> str:
        if self._step == 0:
            raise IllegalStateTransitionError("Already at the first opening pick")
        self._step -= 1
        self._clear_downstream()
        return self.step

    def to_dict(self) -> Dict:
        return {
            "step": self.step,
            "strike_batsman": self.strike_batsman,
            "non_strike_batsman": self.non_strike_batsman,
            "bowler": self.bowler,
            "eligible": [p.to_dict() for p in self.eligible()],
        }
