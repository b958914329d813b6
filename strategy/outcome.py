"""
Outcome evaluator.

Grades a bet_taken signal once its game is final.

With win requirements configured, every requirement must pass for a win and
any failure is a loss (no partial credit, no push). A tie fails
leading_team_wins, home_wins and away_wins alike, so a tied game under any of
those resolves to a loss.

final_lead_gte / final_lead_lte measure the margin of the team that led when
the signal opened, not the final leader. Without a recorded leader they fail
with a "cannot evaluate" reason.

With no win requirements the strategy's odds requirement decides:
  - spread:       bet side margin + bet side line; 0 is a push
  - moneyline:    did the bet side win; a tie is a push
  - total_over/under: final combined score vs the total line; equal is a push
With neither, the result is a push.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Literal, Sequence

from models.events import GameSnapshot, ScorePair
from models.state import Signal
from models.strategy import OddsRequirement, OddsType, WinRequirement, WinRequirementType
from strategy.odds import bet_on_home

Outcome = Literal["win", "loss", "push"]


@dataclass(frozen=True, slots=True)
class RequirementResult:
    requirement: WinRequirement
    passed: bool
    reason: str


@dataclass(frozen=True, slots=True)
class OutcomeResult:
    outcome: Outcome
    requirement_results: tuple[RequirementResult, ...]
    summary: str
    final: ScorePair


def final_scores(snapshot: GameSnapshot) -> ScorePair:
    if snapshot.final is not None:
        return snapshot.final
    return ScorePair(snapshot.home_score, snapshot.away_score)


def _winner(final: ScorePair) -> str:
    if final.home > final.away:
        return "home"
    if final.away > final.home:
        return "away"
    return "tie"


def _fmt(value: float) -> str:
    return str(int(value)) if value == int(value) else str(value)


def evaluate_requirement(requirement: WinRequirement, signal: Signal, final: ScorePair) -> RequirementResult:
    kind = requirement.type
    winner = _winner(final)
    score = f"{final.home}-{final.away}"

    if kind in (WinRequirementType.HOME_WINS, WinRequirementType.AWAY_WINS):
        side = "home" if kind is WinRequirementType.HOME_WINS else "away"
        if winner == "tie":
            return RequirementResult(requirement, False, f"Game ended in tie ({score})")
        passed = winner == side
        verb = "won" if passed else "lost"
        return RequirementResult(requirement, passed, f"{side.capitalize()} team {verb} ({score})")

    leader = signal.leading_team_at_entry
    if leader not in ("home", "away"):
        return RequirementResult(
            requirement, False, "No leading team recorded at entry - cannot evaluate"
        )

    if kind is WinRequirementType.LEADING_TEAM_WINS:
        if winner == "tie":
            return RequirementResult(requirement, False, f"Game ended in tie ({score})")
        passed = winner == leader
        verb = "won" if passed else "lost"
        return RequirementResult(requirement, passed, f"Leading team ({leader}) {verb} the game ({score})")

    margin = final.differential if leader == "home" else -final.differential
    threshold = requirement.value if requirement.value is not None else 0
    if kind is WinRequirementType.FINAL_LEAD_GTE:
        passed = margin >= threshold
        op = ">=" if passed else "<"
    else:
        passed = margin <= threshold
        op = "<=" if passed else ">"
    return RequirementResult(
        requirement, passed, f"{leader} team's final margin ({margin}) {op} {_fmt(threshold)}"
    )


def grade_spread(margin: float, line: float) -> Outcome:
    """margin: bet side's final margin; line: bet side's spread (-3.5 = giving 3.5)."""
    covered = margin + line
    if covered == 0:
        return "push"
    return "win" if covered > 0 else "loss"


def _odds_fallback(signal: Signal, final: ScorePair, odds: OddsRequirement) -> tuple[Outcome, str]:
    if odds.type in (OddsType.TOTAL_OVER, OddsType.TOTAL_UNDER):
        line = signal.actual_odds
        if line is None:
            line = signal.entry_total
        if line is None:
            line = odds.value
        total = final.total
        if total == line:
            return "push", f"Total points ({total}) equals line ({_fmt(line)})"
        over = odds.type is OddsType.TOTAL_OVER
        hit = total > line if over else total < line
        label = "Over" if over else "Under"
        return ("win" if hit else "loss"), (
            f"{label} {'hit' if hit else 'missed'}: {total} vs line {_fmt(line)}"
        )

    home = bet_on_home(odds.bet_side, signal.leading_team_at_entry)
    if home is None:
        return "push", "Bet side unknown (no leading team at entry) - cannot evaluate"
    side = "Home" if home else "Away"
    margin = final.differential if home else -final.differential

    if odds.type is OddsType.SPREAD:
        line = signal.actual_odds if signal.actual_odds is not None else odds.value
        outcome = grade_spread(margin, line)
        verb = {"push": "pushed at", "win": "covered", "loss": "failed to cover"}[outcome]
        return outcome, f"{side} team {verb} spread {_fmt(line)} (final margin: {margin})"

    if final.home == final.away:
        return "push", f"Game ended in tie ({final.home}-{final.away})"
    won = margin > 0
    return ("win" if won else "loss"), (
        f"{side} team {'won' if won else 'lost'} ({final.home}-{final.away})"
    )


def evaluate_outcome(
    signal: Signal,
    final_snapshot: GameSnapshot,
    win_requirements: Sequence[WinRequirement] = (),
    odds_requirement: OddsRequirement | None = None,
) -> OutcomeResult:
    final = final_scores(final_snapshot)

    if win_requirements:
        results = tuple(evaluate_requirement(r, signal, final) for r in win_requirements)
        failed = sum(1 for r in results if not r.passed)
        if failed == 0:
            return OutcomeResult("win", results, f"All {len(results)} win requirements passed", final)
        return OutcomeResult("loss", results, f"{failed}/{len(results)} win requirements failed", final)

    if odds_requirement is None:
        return OutcomeResult(
            "push", (), "No win requirements or odds requirement defined - defaulting to push", final
        )

    outcome, summary = _odds_fallback(signal, final, odds_requirement)
    return OutcomeResult(outcome, (), summary, final)


_MARKS = {"win": "WIN", "loss": "LOSS", "push": "PUSH"}


def format_outcome(signal: Signal, result: OutcomeResult) -> str:
    """One-line text for logs and the alerting collaborator."""
    return (
        f"[{_MARKS[result.outcome]}] {signal.strategy_name} "
        f"game={signal.game_id} final={result.final.home}-{result.final.away}: {result.summary}"
    )
