"""
Odds-requirement alignment.

A watching signal becomes bet_taken once the live line is at least as good
as the line the strategy asks for. Which side's line is read depends on the
bet side, judged against the team that was leading when the signal opened:

    leading_team   -> the entry leader
    trailing_team  -> the other side
    home / away    -> fixed

Spreads are quoted from the home side, so the away spread is -spread.

"At least as good" per odds type:
  - spread:       actual >= required   (-3.5 beats -4.5: fewer points to cover)
  - moneyline:    actual >= required   (-140 beats -150, +160 beats +150)
  - total_over:   actual <= required   (a lower total is easier to go over)
  - total_under:  actual >= required   (a higher total is easier to stay under)
"""

from __future__ import annotations
import logging

from models.events import GameSnapshot
from models.strategy import BetSide, OddsRequirement, OddsType

log = logging.getLogger(__name__)


def bet_on_home(bet_side: BetSide, leading_team_at_entry: str | None) -> bool | None:
    """True/False for the side being bet; None when it depends on an unknown leader."""
    if bet_side is BetSide.HOME:
        return True
    if bet_side is BetSide.AWAY:
        return False
    if leading_team_at_entry not in ("home", "away"):
        return None
    leader_is_home = leading_team_at_entry == "home"
    return leader_is_home if bet_side is BetSide.LEADING_TEAM else not leader_is_home


def actual_odds_value(
    snapshot: GameSnapshot,
    requirement: OddsRequirement,
    leading_team_at_entry: str | None,
) -> float | None:
    """The live line for the bet side. None if the feed has no line or the side is unknown."""
    if requirement.type in (OddsType.TOTAL_OVER, OddsType.TOTAL_UNDER):
        return snapshot.total_line

    home = bet_on_home(requirement.bet_side, leading_team_at_entry)
    if home is None:
        return None
    if requirement.type is OddsType.SPREAD:
        if snapshot.spread is None:
            return None
        return snapshot.spread if home else -snapshot.spread
    return snapshot.moneyline_home if home else snapshot.moneyline_away


def line_meets_requirement(odds_type: OddsType, actual: float, required: float) -> bool:
    if odds_type is OddsType.TOTAL_OVER:
        return actual <= required
    return actual >= required


def odds_aligned(
    snapshot: GameSnapshot,
    requirement: OddsRequirement,
    leading_team_at_entry: str | None,
) -> tuple[bool, float | None]:
    """(aligned?, live line used). A missing line never aligns."""
    actual = actual_odds_value(snapshot, requirement, leading_team_at_entry)
    if actual is None:
        return False, None
    return line_meets_requirement(requirement.type, actual, requirement.value), actual
