"""
engine/errors.py
================

Validation failures raised by the scoring engine.  Every one of them is
recoverable: the caller re-prompts the scorer and tries again.  Nothing in
the engine auto-corrects a rejected command.
"""


class ScoringError(ValueError):
    """Base class for all engine validation failures."""

    code = "scoring_error"

    def to_dict(self):
        return {"error": self.code, "message": str(self)}


class InvalidRosterError(ScoringError):
    code = "invalid_roster"


class InvalidMatchSetupError(ScoringError):
    code = "invalid_match_setup"


class InsufficientPlayersError(ScoringError):
    code = "insufficient_players"


class DuplicateSelectionError(ScoringError):
    code = "duplicate_selection"


class NoEligibleBowlerError(ScoringError):
    code = "no_eligible_bowler"


class IllegalStateTransitionError(ScoringError):
    code = "illegal_state_transition"


class InvalidBallOutcomeError(ScoringError):
    code = "invalid_ball_outcome"
