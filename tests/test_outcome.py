from __future__ import annotations

import dataclasses

import pytest
from factories import final

from models.events import ScorePair
from models.state import Signal, SignalStatus
from models.strategy import BetSide, OddsRequirement, OddsType, WinRequirement, WinRequirementType
from strategy.outcome import evaluate_outcome, evaluate_requirement, format_outcome, grade_spread


def bet(leader: str | None = "home", actual_odds: float | None = None, entry_total: float | None = None,
        home: int = 60, away: int = 50) -> Signal:
    return Signal(
        game_id="g1",
        strategy_id="s1",
        strategy_name="Q4 Leader Holds",
        trigger_id="t",
        trigger_name="Big lead",
        status=SignalStatus.BET_TAKEN,
        leading_team_at_entry=leader,
        entry_home_score=home,
        entry_away_score=away,
        entry_quarter=3,
        entry_clock="2:00",
        entry_total=entry_total,
        actual_odds=actual_odds,
    )


def req(kind: WinRequirementType, value: float | None = None) -> WinRequirement:
    return WinRequirement(kind, value)


# ---------------------------------------------------------------------------
# Win requirements
# ---------------------------------------------------------------------------

def test_all_requirements_pass_is_win():
    result = evaluate_outcome(bet("home"), final(90, 80), [
        req(WinRequirementType.LEADING_TEAM_WINS),
        req(WinRequirementType.HOME_WINS),
        req(WinRequirementType.FINAL_LEAD_GTE, 5),
    ])
    assert result.outcome == "win"
    assert result.summary == "All 3 win requirements passed"
    assert all(r.passed for r in result.requirement_results)


def test_any_failed_requirement_is_loss():
    result = evaluate_outcome(bet("home"), final(90, 88), [
        req(WinRequirementType.LEADING_TEAM_WINS),
        req(WinRequirementType.FINAL_LEAD_GTE, 5),
    ])
    assert result.outcome == "loss"
    assert result.summary == "1/2 win requirements failed"
    assert [r.passed for r in result.requirement_results] == [True, False]


@pytest.mark.parametrize("kind", [
    WinRequirementType.HOME_WINS,
    WinRequirementType.AWAY_WINS,
    WinRequirementType.LEADING_TEAM_WINS,
])
def test_tie_fails_winner_requirements(kind):
    result = evaluate_outcome(bet("home"), final(85, 85), [req(kind)])
    assert result.outcome == "loss"
    assert "tie" in result.requirement_results[0].reason


def test_away_wins():
    result = evaluate_requirement(req(WinRequirementType.AWAY_WINS), bet("home"), ScorePair(80, 82))
    assert result.passed
    assert result.reason == "Away team won (80-82)"


def test_final_lead_measured_from_entry_leader():
    # away led at entry; home won the game by 3
    signal = bet("away", home=40, away=50)
    gte = evaluate_requirement(req(WinRequirementType.FINAL_LEAD_GTE, 1), signal, ScorePair(83, 80))
    assert not gte.passed
    assert "(-3)" in gte.reason

    lte = evaluate_requirement(req(WinRequirementType.FINAL_LEAD_LTE, 0), signal, ScorePair(83, 80))
    assert lte.passed


def test_final_lead_lte_boundary():
    result = evaluate_requirement(req(WinRequirementType.FINAL_LEAD_LTE, 5), bet("home"), ScorePair(85, 80))
    assert result.passed


@pytest.mark.parametrize("kind", [
    WinRequirementType.LEADING_TEAM_WINS,
    WinRequirementType.FINAL_LEAD_GTE,
    WinRequirementType.FINAL_LEAD_LTE,
])
def test_missing_entry_leader_cannot_evaluate(kind):
    result = evaluate_requirement(req(kind, 1), bet(None), ScorePair(90, 80))
    assert not result.passed
    assert "cannot evaluate" in result.reason


def test_home_wins_does_not_need_entry_leader():
    assert evaluate_requirement(req(WinRequirementType.HOME_WINS), bet(None), ScorePair(90, 80)).passed


# ---------------------------------------------------------------------------
# Odds fallback
# ---------------------------------------------------------------------------

SPREAD = OddsRequirement(OddsType.SPREAD, -3.5, BetSide.LEADING_TEAM)


@pytest.mark.parametrize("margin,expected", [(3.5, "push"), (4, "win"), (3, "loss")])
def test_grade_spread(margin, expected):
    assert grade_spread(margin, -3.5) == expected


@pytest.mark.parametrize("home,away,expected", [(84, 80, "win"), (83, 80, "loss"), (80, 84, "loss")])
def test_spread_fallback(home, away, expected):
    result = evaluate_outcome(bet("home", actual_odds=-3.5), final(home, away), odds_requirement=SPREAD)
    assert result.outcome == expected
    assert result.requirement_results == ()


def test_spread_push_on_whole_number_line():
    odds = OddsRequirement(OddsType.SPREAD, -4.0, BetSide.LEADING_TEAM)
    result = evaluate_outcome(bet("home", actual_odds=-4.0), final(84, 80), odds_requirement=odds)
    assert result.outcome == "push"


def test_spread_uses_requirement_when_no_line_captured():
    result = evaluate_outcome(bet("away"), final(76, 80), odds_requirement=SPREAD)
    assert result.outcome == "win"
    assert "Away team covered spread -3.5" in result.summary


def test_trailing_side_spread():
    odds = OddsRequirement(OddsType.SPREAD, 6.5, BetSide.TRAILING_TEAM)
    # home led at entry, bet away +6.5, away loses by 6
    result = evaluate_outcome(bet("home", actual_odds=6.5), final(86, 80), odds_requirement=odds)
    assert result.outcome == "win"


@pytest.mark.parametrize("home,away,expected", [(90, 80, "win"), (80, 90, "loss"), (85, 85, "push")])
def test_moneyline_fallback(home, away, expected):
    odds = OddsRequirement(OddsType.MONEYLINE, -200, BetSide.HOME)
    result = evaluate_outcome(bet("away"), final(home, away), odds_requirement=odds)
    assert result.outcome == expected


@pytest.mark.parametrize("kind,total,expected", [
    (OddsType.TOTAL_OVER, 170, "win"),
    (OddsType.TOTAL_OVER, 160, "loss"),
    (OddsType.TOTAL_UNDER, 160, "win"),
    (OddsType.TOTAL_UNDER, 165, "push"),
])
def test_total_fallback(kind, total, expected):
    odds = OddsRequirement(kind, 170.5, BetSide.LEADING_TEAM)
    result = evaluate_outcome(bet(actual_odds=165.0), final(total - 80, 80), odds_requirement=odds)
    assert result.outcome == expected


def test_total_line_falls_back_to_entry_then_requirement():
    odds = OddsRequirement(OddsType.TOTAL_OVER, 150.0)
    assert evaluate_outcome(bet(entry_total=170.0), final(85, 80), odds_requirement=odds).outcome == "loss"
    assert evaluate_outcome(bet(), final(85, 80), odds_requirement=odds).outcome == "win"


def test_unknown_bet_side_pushes():
    result = evaluate_outcome(bet(None), final(90, 80), odds_requirement=SPREAD)
    assert result.outcome == "push"
    assert "cannot evaluate" in result.summary


def test_nothing_configured_is_push():
    result = evaluate_outcome(bet(), final(90, 80))
    assert result.outcome == "push"
    assert result.summary == "No win requirements or odds requirement defined - defaulting to push"


def test_win_requirements_take_precedence_over_odds():
    result = evaluate_outcome(
        bet("home", actual_odds=-3.5), final(82, 80),
        [req(WinRequirementType.HOME_WINS)], SPREAD,
    )
    assert result.outcome == "win"


def test_final_scores_fall_back_to_live_scores():
    snapshot = final(90, 80)
    no_pair = dataclasses.replace(snapshot, final=None)
    result = evaluate_outcome(bet(), no_pair)
    assert result.final == ScorePair(90, 80)


def test_format_outcome():
    signal = bet("home")
    result = evaluate_outcome(signal, final(90, 80), [req(WinRequirementType.HOME_WINS)])
    assert format_outcome(signal, result) == (
        "[WIN] Q4 Leader Holds game=g1 final=90-80: All 1 win requirements passed"
    )
