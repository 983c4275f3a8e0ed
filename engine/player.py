"""
player.py

Defines the Player class, a single roster entry for a locally scored match,
and the helpers that turn raw setup input into a batting-order roster.

Players are identified by their position in the roster (an integer index
assigned when the roster is built), never by name.  Two players may share a
display name in the raw input only if the caller accepts the rejection: a
built roster enforces unique names per side so scorecards stay readable.

We also expose SIDES, DISMISSAL_TYPES and BOWLER_CREDITED_DISMISSALS so the
route layer can validate requests against the same vocabulary.
"""

from typing import Any, Dict, List, Optional

from engine.errors import InvalidRosterError

# -----------------------------------------------------------------------------
# 0) Constants shared with the route layer
# -----------------------------------------------------------------------------

HOME = "home"
AWAY = "away"
SIDES: List[str] = [HOME, AWAY]

DISMISSAL_TYPES: List[str] = [
    "Bowled",
    "Caught",
    "LBW",
    "Run Out",
    "Stumped",
    "Hit Wicket",
]

# Run outs are the only dismissal the bowler is not credited with.
BOWLER_CREDITED_DISMISSALS = frozenset(d for d in DISMISSAL_TYPES if d != "Run Out")


def other_side(side: str) -> str:
    if side not in SIDES:
        raise InvalidRosterError(f"side must be one of {SIDES}, got {side!r}")
    return AWAY if side == HOME else HOME


# -----------------------------------------------------------------------------
# 1) Player class definition
# -----------------------------------------------------------------------------

class Player:
    """
    One roster entry.

    Attributes:
        index (int): Position in the side's batting order; the stable identity.
        name (str): Display name, unique within the side.
        side (str): "home" or "away".
        has_account (bool): True when the player is linked to a registered user.
        account_ref (str | None): Opaque user reference, only when has_account.
    """

    def __init__(
        self,
        index: int,
        name: str,
        side: str,
        has_account: bool = False,
        account_ref: Optional[str] = None,
    ) -> None:
        self.index = index
        self.name = name.strip()
        self.side = side
        self.has_account = bool(has_account) and bool(account_ref)
        self.account_ref = account_ref if self.has_account else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "side": self.side,
            "has_account": self.has_account,
            "account_ref": self.account_ref,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Player":
        return cls(
            index=int(data["index"]),
            name=data["name"],
            side=data["side"],
            has_account=data.get("has_account", False),
            account_ref=data.get("account_ref"),
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, Player):
            return NotImplemented
        return self.side == other.side and self.index == other.index

    def __hash__(self) -> int:
        return hash((self.side, self.index))

    def __repr__(self) -> str:
        return f"Player(index={self.index}, name={self.name!r}, side={self.side!r})"


# -----------------------------------------------------------------------------
# 2) Roster building
# -----------------------------------------------------------------------------

def _entry_name(entry) -> str:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        return str(entry.get("name") or "")
    raise InvalidRosterError(f"Unsupported roster entry: {entry!r}")


def build_roster(entries: List[Any], side: str, team_name: str = "") -> List[Player]:
    """
    Build an ordered roster for one side.

    Entries may be plain names or dicts with ``name``, ``has_account`` and
    ``account_ref``/``user_id``.  Blank names are dropped before indices are
    assigned, so the batting order is the order of the non-blank entries.

    Raises InvalidRosterError if nothing is left after filtering or a name
    repeats within the side.
    """
    if side not in SIDES:
        raise InvalidRosterError(f"side must be one of {SIDES}, got {side!r}")
    if entries is not None and not isinstance(entries, (list, tuple)):
        raise InvalidRosterError(f"{team_name or side} roster must be a list of players")

    roster: List[Player] = []
    seen = set()
    for entry in entries or []:
        name = _entry_name(entry).strip()
        if not name:
            continue
        key = name.casefold()
        if key in seen:
            raise InvalidRosterError(
                f"Duplicate player name {name!r} in {team_name or side} roster"
            )
        seen.add(key)

        has_account = False
        account_ref = None
        if isinstance(entry, dict):
            account_ref = entry.get("account_ref") or entry.get("user_id")
            has_account = bool(entry.get("has_account", account_ref is not None))
        roster.append(Player(len(roster), name, side, has_account, account_ref))

    if not roster:
        raise InvalidRosterError(
            f"{team_name or side} roster has no players with a non-blank name"
        )
    return roster
