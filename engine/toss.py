"""
engine/toss.py
==============

Roster & Toss Resolver.  Turns the setup form (team names, player lists,
overs) and a toss outcome into a ``MatchSetup``: who bats first, who bowls
first, and the two rosters.

Two toss paths are supported:

* manual  - the scorer declares the winner and their decision directly.
* random  - the away side calls heads or tails, a fair coin is flipped and the
            caller wins only if the call matches the coin.  The winner then
            declares bat or bowl.
"""

import logging
import random
from typing import Any, Dict, List, Optional

from engine.errors import InvalidMatchSetupError
from engine.player import AWAY, HOME, SIDES, Player, build_roster, other_side

logger = logging.getLogger(__name__)

COIN_FACES = ("heads", "tails")
TOSS_DECISIONS = ("bat", "bowl")
TOSS_METHODS = ("manual", "random")

DEFAULT_MAX_OVERS = 50

# Side that calls the coin on the random path.
CALLING_SIDE = AWAY


def flip_coin(rng: Optional[random.Random] = None) -> str:
    """Uniform 50/50 draw, independent of who calls."""
    rng = rng or random.SystemRandom()
    return COIN_FACES[rng.randrange(2)]


def toss_winner_for_call(calling_side: str, call: str, coin: str) -> str:
    """The caller wins iff the call matches the coin; otherwise the other side wins."""
    if call not in COIN_FACES:
        raise InvalidMatchSetupError(f"Toss call must be one of {COIN_FACES}, got {call!r}")
    if coin not in COIN_FACES:
        raise InvalidMatchSetupError(f"Coin result must be one of {COIN_FACES}, got {coin!r}")
    return calling_side if call == coin else other_side(calling_side)


class TossResult:
    """Outcome of the toss: winner side, decision, and how it was decided."""

    def __init__(self, winner_side: str, decision: str, method: str = "manual",
                 call: Optional[str] = None, coin: Optional[str] = None):
        if winner_side not in SIDES:
            raise InvalidMatchSetupError(f"Toss winner must be one of {SIDES}, got {winner_side!r}")
        decision = str(decision or "").strip().lower()
        if decision not in TOSS_DECISIONS:
            raise InvalidMatchSetupError(f"Toss decision must be one of {TOSS_DECISIONS}, got {decision!r}")
        if method not in TOSS_METHODS:
            raise InvalidMatchSetupError(f"Toss method must be one of {TOSS_METHODS}, got {method!r}")
        self.winner_side = winner_side
        self.decision = decision
        self.method = method
        self.call = call
        self.coin = coin

    @property
    def first_batting_side(self) -> str:
        if self.decision == "bat":
            return self.winner_side
        return other_side(self.winner_side)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "winner_side": self.winner_side,
            "decision": self.decision,
            "method": self.method,
            "call": self.call,
            "coin": self.coin,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TossResult":
        return cls(
            winner_side=data["winner_side"],
            decision=data["decision"],
            method=data.get("method", "manual"),
            call=data.get("call"),
            coin=data.get("coin"),
        )


def resolve_manual_toss(winner_side: str, decision: str) -> TossResult:
    return TossResult(winner_side, decision, method="manual")


def call_toss(call, coin=None, calling_side: str = CALLING_SIDE,
              rng: Optional[random.Random] = None) -> Dict[str, str]:
    """
    Settle the coin before anyone decides.  ``coin`` may be supplied when the
    flip already happened (e.g. the client animated it); otherwise a fresh
    fair flip is made.
    """
    call = str(call or "").strip().lower()
    coin = str(coin).strip().lower() if coin not in (None, "") else flip_coin(rng)
    winner = toss_winner_for_call(calling_side, call, coin)
    logger.info("Toss: %s called %s, coin landed %s, %s wins", calling_side, call, coin, winner)
    return {"winner_side": winner, "call": call, "coin": coin, "calling_side": calling_side}


def resolve_random_toss(call, decision: str, coin=None,
                        calling_side: str = CALLING_SIDE,
                        rng: Optional[random.Random] = None) -> TossResult:
    called = call_toss(call, coin, calling_side, rng)
    return decide_random_toss(called, decision)


def decide_random_toss(called: Dict[str, Any], decision: str) -> TossResult:
    """The winner of a settled coin toss chooses to bat or bowl."""
    return TossResult(called["winner_side"], decision, method="random",
                      call=called.get("call"), coin=called.get("coin"))


class MatchSetup:
    """
    Everything the controller needs to start a match: the two rosters, the
    team names, the overs per innings and the resolved toss.
    """

    def __init__(self, home_team_name: str, away_team_name: str,
                 home_players: List[Player], away_players: List[Player],
                 match_overs: int, toss: TossResult, match_id: str = "",
                 match_format: str = "T20"):
        self.match_id = match_id
        self.team_names = {HOME: home_team_name, AWAY: away_team_name}
        self.rosters = {HOME: list(home_players), AWAY: list(away_players)}
        self.match_overs = match_overs
        self.toss = toss
        self.match_format = match_format

    @property
    def first_batting_side(self) -> str:
        return self.toss.first_batting_side

    @property
    def first_bowling_side(self) -> str:
        return other_side(self.first_batting_side)

    def roster(self, side: str) -> List[Player]:
        return self.rosters[side]

    def team_name(self, side: str) -> str:
        return self.team_names[side]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_id": self.match_id,
            "home_team_name": self.team_names[HOME],
            "away_team_name": self.team_names[AWAY],
            "home_players": [p.to_dict() for p in self.rosters[HOME]],
            "away_players": [p.to_dict() for p in self.rosters[AWAY]],
            "match_overs": self.match_overs,
            "match_format": self.match_format,
            "toss": self.toss.to_dict(),
            "first_batting_side": self.first_batting_side,
            "first_bowling_side": self.first_bowling_side,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatchSetup":
        return cls(
            home_team_name=data["home_team_name"],
            away_team_name=data["away_team_name"],
            home_players=[Player.from_dict(p) for p in data["home_players"]],
            away_players=[Player.from_dict(p) for p in data["away_players"]],
            match_overs=int(data["match_overs"]),
            toss=TossResult.from_dict(data["toss"]),
            match_id=data.get("match_id", ""),
            match_format=data.get("match_format", "T20"),
        )


def validate_match_overs(match_overs, max_overs: int = DEFAULT_MAX_OVERS) -> int:
    try:
        overs = int(match_overs)
    except (TypeError, ValueError):
        raise InvalidMatchSetupError(f"Match overs must be an integer, got {match_overs!r}")
    if not 1 <= overs <= max_overs:
        raise InvalidMatchSetupError(f"Match overs must be between 1 and {max_overs}, got {overs}")
    return overs


def build_match_setup(roster_input: Dict[str, Any], toss: TossResult,
                      match_id: str = "", max_overs: int = DEFAULT_MAX_OVERS) -> MatchSetup:
    """
    Build a MatchSetup from a RosterInput mapping::

        {"my_team_name", "opponent_team_name", "my_team_players",
         "opponent_team_players", "match_overs"}

    The scorer's own team is the home side, the opponent is away.
    """
    home_name = (roster_input.get("my_team_name") or "").strip() or "Home"
    away_name = (roster_input.get("opponent_team_name") or "").strip() or "Away"
    home = build_roster(roster_input.get("my_team_players") or [], HOME, home_name)
    away = build_roster(roster_input.get("opponent_team_players") or [], AWAY, away_name)
    overs = validate_match_overs(roster_input.get("match_overs"), max_overs)

    setup = MatchSetup(home_name, away_name, home, away, overs, toss,
                       match_id=match_id,
                       match_format=roster_input.get("match_format") or "T20")
    logger.info("Match setup %s: %s (%d) vs %s (%d), %d overs, %s bat first",
                match_id or "-", home_name, len(home), away_name, len(away),
                overs, setup.team_name(setup.first_batting_side))
    return setup
