"""
Test suite for opening selection
Tests engine/opening.py
"""

import pytest

from engine.errors import (
    DuplicateSelectionError,
    IllegalStateTransitionError,
    InsufficientPlayersError,
)
from engine.opening import BOWLER, COMPLETE, NON_STRIKE_BATSMAN, STRIKE_BATSMAN, OpeningSelection
from engine.player import AWAY, HOME, build_roster


@pytest.fixture
def opening():
    batting = build_roster(["A", "B", "C"], HOME)
    bowling = build_roster(["X", "Y"], AWAY)
    return OpeningSelection(batting, bowling)


class TestOpeningSelection:

    def test_strict_order(self, opening):
        assert opening.step == STRIKE_BATSMAN
        assert opening.select(0) == NON_STRIKE_BATSMAN
        assert opening.select(2) == BOWLER
        assert opening.select(1) == COMPLETE
        assert (opening.strike_batsman, opening.non_strike_batsman, opening.bowler) == (0, 2, 1)

    def test_same_player_cannot_take_both_ends(self, opening):
        opening.select(1)
        with pytest.raises(DuplicateSelectionError):
            opening.select(1)
        assert opening.step == NON_STRIKE_BATSMAN
        assert opening.non_strike_batsman is None

    def test_striker_disabled_for_non_striker_pick(self, opening):
        opening.select(0)
        assert [p.index for p in opening.eligible()] == [1, 2]

    def test_bowler_index_may_equal_a_batter_index(self, opening):
        opening.select(0)
        opening.select(1)
        assert opening.select(0) == COMPLETE

    def test_back_clears_only_downstream(self, opening):
        opening.select(0)
        opening.select(1)
        opening.select(1)
        assert opening.back() == BOWLER
        assert opening.bowler == 1
        assert opening.strike_batsman == 0 and opening.non_strike_batsman == 1

        assert opening.back() == NON_STRIKE_BATSMAN
        assert opening.bowler is None
        assert opening.non_strike_batsman == 1
        assert opening.strike_batsman == 0

    def test_reselecting_striker_clears_non_striker(self, opening):
        opening.select(0)
        opening.select(1)
        opening.back()
        opening.back()
        assert opening.step == STRIKE_BATSMAN
        opening.select(2)
        assert opening.non_strike_batsman is None
        assert opening.step == NON_STRIKE_BATSMAN

    def test_back_at_first_step_rejected(self, opening):
        with pytest.raises(IllegalStateTransitionError):
            opening.back()

    def test_unknown_player_rejected(self, opening):
        with pytest.raises(IllegalStateTransitionError):
            opening.select(7)

    def test_select_after_complete_rejected(self, opening):
        for idx in (0, 1, 0):
            opening.select(idx)
        with pytest.raises(IllegalStateTransitionError):
            opening.select(2)

    def test_single_batter_side_is_insufficient(self):
        opening = OpeningSelection(build_roster(["Solo"], HOME), build_roster(["X"], AWAY))
        with pytest.raises(InsufficientPlayersError):
            opening.select(0)
