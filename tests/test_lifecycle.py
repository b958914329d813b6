from __future__ import annotations

import threading
import warnings
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from factories import cond, final, snap, strategy, trigger

from models.state import OrphanedSignalError, Signal, SignalStatus
from models.strategy import (
    BetSide,
    OddsRequirement,
    OddsType,
    Rule,
    RuleType,
    TriggerRole,
    WinRequirement,
    WinRequirementType,
)
from strategy.context import build_context
from strategy import lifecycle as lifecycle_module
from strategy.lifecycle import past_expiry


def statuses(tick):
    return [(t.from_status, t.to_status) for t in tick.transitions]


SPREAD_LEADER = OddsRequirement(OddsType.SPREAD, -4.5, BetSide.LEADING_TEAM)


def two_stage_strategy(**kw):
    entry = trigger(cond("quarter", "equals", 3), cond("current_lead", "greater_than_or_equal", 8), id="entry")
    close = trigger(
        cond("quarter", "equals", 4),
        cond("prev_leader_still_leads", "equals", 1),
        id="close", order=2, role=TriggerRole.CLOSE,
    )
    kw.setdefault("odds", OddsRequirement(OddsType.MONEYLINE, -200, BetSide.LEADING_TEAM))
    return strategy(entry, close, two_stage=True, **kw)


# ---------------------------------------------------------------------------
# Opening signals
# ---------------------------------------------------------------------------

def test_single_stage_without_odds_goes_straight_to_bet_taken(engine, store):
    tick = engine.evaluate(snap(50, 40), [strategy()])
    assert statuses(tick) == [(None, "bet_taken")]
    signal = store.get("g1", "s1")
    assert signal.status is SignalStatus.BET_TAKEN
    assert signal.odds_aligned_at is not None
    assert signal.leading_team_at_entry == "home"
    assert (signal.entry_home_score, signal.entry_away_score, signal.entry_quarter) == (50, 40, 3)


def test_single_stage_with_odds_aligns_in_same_tick(engine, store):
    tick = engine.evaluate(snap(50, 40, spread=-3.5), [strategy(odds=SPREAD_LEADER)])
    assert statuses(tick) == [(None, "watching"), ("watching", "bet_taken")]
    signal = store.get("g1", "s1")
    assert signal.actual_odds == -3.5
    assert signal.required_odds == -4.5
    assert signal.bet_side == "leading_team"


def test_watching_until_line_improves(engine, store):
    s = strategy(odds=SPREAD_LEADER)
    assert statuses(engine.evaluate(snap(50, 40, spread=-6.5), [s])) == [(None, "watching")]
    assert store.get("g1", "s1").status is SignalStatus.WATCHING

    tick = engine.evaluate(snap(52, 44, clock="3:00", spread=-4.0), [s])
    assert statuses(tick) == [("watching", "bet_taken")]
    assert store.get("g1", "s1").actual_odds == -4.0


def test_trailing_side_reads_the_other_line(engine, store):
    odds = OddsRequirement(OddsType.SPREAD, 5.0, BetSide.TRAILING_TEAM)
    # home leads, spread -6.5 for home means +6.5 for the trailing away side
    engine.evaluate(snap(50, 40, spread=-6.5), [strategy(odds=odds)])
    signal = store.get("g1", "s1")
    assert signal.status is SignalStatus.BET_TAKEN
    assert signal.actual_odds == 6.5


def test_tie_at_entry_records_no_leader_and_never_aligns(engine, store):
    s = strategy(odds=SPREAD_LEADER)
    engine.evaluate(snap(45, 45, spread=0.0), [s])
    signal = store.get("g1", "s1")
    assert signal.leading_team_at_entry is None
    assert signal.status is SignalStatus.WATCHING


def test_rules_gate_entry(engine, store):
    s = strategy(rules=(Rule(RuleType.FIRST_HALF_ONLY),))
    tick = engine.evaluate(snap(50, 40, quarter=3), [s])
    assert tick.transitions == []
    assert tick.evaluations[0].gate.reason == "first_half_only: blocked in Q3 (first half only)"
    assert store.get("g1", "s1") is None


def test_no_entry_without_fired_trigger(engine, store):
    s = strategy(trigger(cond("current_lead", "greater_than", 20)))
    tick = engine.evaluate(snap(50, 40), [s])
    assert tick.transitions == []
    assert not tick.evaluations[0].trigger_results[0].fired
    assert len(store) == 0


@pytest.mark.parametrize("kw,reason", [
    ({"is_active": False}, "strategy inactive"),
    ({"config_errors": ("bad rules",)}, "strategy has configuration errors: bad rules"),
])
def test_inactive_or_inert_strategy_is_skipped(engine, store, kw, reason):
    tick = engine.evaluate(snap(), [strategy(**kw)])
    assert tick.evaluations[0].skipped == reason
    assert len(store) == 0


def test_non_live_snapshot_is_skipped(engine, store):
    tick = engine.evaluate(snap(0, 0, quarter=0, clock="12:00", status="scheduled"), [strategy()])
    assert tick.evaluations[0].skipped == "game status is scheduled"


def test_halftime_snapshot_is_evaluated(engine, store):
    s = strategy(trigger(cond("status", "equals", "halftime")))
    engine.evaluate(snap(40, 30, quarter=2, clock="0:00", status="halftime"), [s])
    assert store.get("g1", "s1") is not None


def test_failing_strategy_does_not_stop_others(engine, store, monkeypatch):
    good = strategy(id="good")
    bad = strategy(id="bad")
    original = engine.lifecycle.advance

    def advance(strat, snapshot, context):
        if strat.id == "bad":
            raise RuntimeError("boom")
        return original(strat, snapshot, context)

    monkeypatch.setattr(engine.lifecycle, "advance", advance)
    tick = engine.evaluate(snap(), [bad, good])
    assert [ev.strategy_id for ev in tick.evaluations] == ["good"]
    assert store.get("g1", "good") is not None


# ---------------------------------------------------------------------------
# One signal per key
# ---------------------------------------------------------------------------

def test_duplicate_entry_is_ignored(engine, store):
    s = strategy()
    engine.evaluate(snap(50, 40, clock="5:00"), [s])
    first = store.get("g1", "s1")

    tick = engine.evaluate(snap(52, 40, clock="4:30"), [s])
    assert tick.transitions == []
    assert [ev.strategy_id for ev in tick.duplicate_entries] == ["s1"]
    assert store.get("g1", "s1") is first
    assert len(store) == 1


def test_concurrent_entries_open_exactly_one_signal(engine, store):
    s = strategy(odds=SPREAD_LEADER)
    barrier = threading.Barrier(8)

    def hit(i: int):
        snapshot = snap(50, 40, clock=f"5:{i:02d}", spread=-6.5)
        context = build_context(snapshot)
        barrier.wait()
        return engine.lifecycle.advance(s, snapshot, context)

    with ThreadPoolExecutor(max_workers=8) as pool:
        evaluations = list(pool.map(hit, range(8)))

    created = [t for ev in evaluations for t in ev.transitions if t.from_status is None]
    assert len(created) == 1
    assert len(store) == 1
    assert len(store.active()) == 1


def test_signals_are_independent_per_game_and_strategy(engine, store):
    a, b = strategy(id="a"), strategy(id="b")
    engine.evaluate(snap(game_id="g1"), [a, b])
    engine.evaluate(snap(game_id="g2"), [a, b])
    assert len(store) == 4
    assert store.game_ids() == ["g1", "g2"]


def test_terminal_signal_blocks_reentry_until_game_cleared(engine, store):
    s = strategy(trigger(cond("quarter", "greater_than", 0)), odds=SPREAD_LEADER)
    engine.evaluate(snap(50, 40, quarter=4, clock="5:00", spread=-9.5), [s])
    engine.evaluate(snap(52, 40, quarter=4, clock="2:00", spread=-9.5), [s])
    assert store.get("g1", "s1").status is SignalStatus.EXPIRED

    tick = engine.evaluate(snap(54, 40, quarter=4, clock="1:00", spread=-2.5), [s])
    assert tick.transitions == []
    assert tick.evaluations[0].skipped == "signal already expired"


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("quarter,clock,expected", [
    (3, "1:00", False),
    (4, "2:21", False),
    (4, "2:20", True),
    (4, "0:30", True),
    (5, "4:00", True),
])
def test_past_expiry(quarter, clock, expected):
    assert past_expiry("2:20", build_context(snap(quarter=quarter, clock=clock))) is expected


def test_watching_signal_expires_at_q4_clock(engine, store):
    s = strategy(trigger(cond("quarter", "greater_than_or_equal", 3)), odds=SPREAD_LEADER)
    engine.evaluate(snap(50, 40, quarter=3, clock="1:00", spread=-8.0), [s])
    tick = engine.evaluate(snap(60, 48, quarter=4, clock="2:10", spread=-8.0), [s])
    assert statuses(tick) == [("watching", "expired")]
    signal = store.get("g1", "s1")
    assert signal.expired_at is not None
    assert "before odds aligned" in signal.notes[-1]


def test_custom_expiry_clock(engine, store):
    s = strategy(trigger(cond("quarter", "greater_than_or_equal", 3)), odds=SPREAD_LEADER, expiry_clock="5:00")
    engine.evaluate(snap(50, 40, quarter=3, spread=-8.0), [s])
    tick = engine.evaluate(snap(60, 48, quarter=4, clock="4:59", spread=-8.0), [s])
    assert statuses(tick) == [("watching", "expired")]


def test_bet_taken_signal_does_not_expire(engine, store):
    s = strategy(trigger(cond("quarter", "greater_than_or_equal", 3)))
    engine.evaluate(snap(50, 40, quarter=3), [s])
    engine.evaluate(snap(60, 48, quarter=4, clock="1:00"), [s])
    assert store.get("g1", "s1").status is SignalStatus.BET_TAKEN


@pytest.mark.parametrize("quarter,clock", [(4, "1:00"), (4, "2:20"), (5, "4:00")])
def test_no_pending_signal_opens_past_expiry(engine, store, quarter, clock):
    s = strategy(trigger(cond("quarter", "greater_than_or_equal", 4)), odds=SPREAD_LEADER)
    # line already good enough; would align on the spot
    tick = engine.evaluate(snap(60, 50, quarter=quarter, clock=clock, spread=-3.5), [s])
    assert tick.transitions == []
    assert "past expiry" in tick.evaluations[0].skipped
    assert store.get("g1", "s1") is None


def test_two_stage_does_not_open_past_expiry(engine, store):
    entry = trigger(cond("quarter", "greater_than_or_equal", 4), id="entry")
    close = trigger(cond("current_lead", "greater_than", 0), id="close", order=2, role=TriggerRole.CLOSE)
    s = strategy(entry, close, two_stage=True, expiry_clock="3:00")
    assert statuses(engine.evaluate(snap(60, 50, quarter=4, clock="3:00"), [s])) == []
    assert store.get("g1", "s1") is None
    # same strategy, earlier clock: opens and closes normally
    tick = engine.evaluate(snap(60, 50, quarter=4, clock="3:01", game_id="g2"), [s])
    assert statuses(tick) == [(None, "monitoring")]


def test_entry_without_odds_opens_past_expiry(engine, store):
    s = strategy(trigger(cond("quarter", "greater_than_or_equal", 4)))
    tick = engine.evaluate(snap(60, 50, quarter=4, clock="1:00"), [s])
    assert statuses(tick) == [(None, "bet_taken")]


# ---------------------------------------------------------------------------
# Two-stage
# ---------------------------------------------------------------------------

def test_two_stage_progression(engine, store):
    s = two_stage_strategy()

    tick = engine.evaluate(snap(50, 40, quarter=3, moneyline_home=-400), [s])
    assert statuses(tick) == [(None, "monitoring")]

    # still Q3: close trigger needs Q4
    tick = engine.evaluate(snap(52, 41, quarter=3, clock="2:00", moneyline_home=-400), [s])
    assert tick.transitions == []
    assert tick.evaluations[0].duplicate_entry

    # away took the lead: previous leader no longer leads
    tick = engine.evaluate(snap(60, 62, quarter=4, clock="8:00", moneyline_home=150), [s])
    assert tick.transitions == []

    # home back in front but line too short
    tick = engine.evaluate(snap(66, 64, quarter=4, clock="6:00", moneyline_home=-250), [s])
    assert statuses(tick) == [("monitoring", "watching")]
    signal = store.get("g1", "s1")
    assert signal.close_trigger_id == "close"
    assert signal.close_triggered_at is not None

    tick = engine.evaluate(snap(66, 65, quarter=4, clock="5:30", moneyline_home=-160), [s])
    assert statuses(tick) == [("watching", "bet_taken")]
    assert store.get("g1", "s1").actual_odds == -160


def test_two_stage_close_and_align_in_one_tick(engine, store):
    s = two_stage_strategy()
    engine.evaluate(snap(50, 40, quarter=3), [s])
    tick = engine.evaluate(snap(70, 60, quarter=4, clock="6:00", moneyline_home=-150), [s])
    assert statuses(tick) == [("monitoring", "watching"), ("watching", "bet_taken")]


def test_two_stage_without_odds_goes_to_bet_taken_on_close(engine, store):
    s = two_stage_strategy(odds=None)
    engine.evaluate(snap(50, 40, quarter=3), [s])
    tick = engine.evaluate(snap(70, 60, quarter=4, clock="6:00"), [s])
    assert statuses(tick) == [("monitoring", "bet_taken")]


def test_monitoring_signal_expires(engine, store):
    s = two_stage_strategy()
    engine.evaluate(snap(50, 40, quarter=3), [s])
    tick = engine.evaluate(snap(60, 64, quarter=4, clock="1:00"), [s])
    assert statuses(tick) == [("monitoring", "expired")]


# ---------------------------------------------------------------------------
# Orphans
# ---------------------------------------------------------------------------

def test_signal_closed_when_trigger_disappears(engine, store):
    engine.evaluate(snap(), [strategy(odds=SPREAD_LEADER)])
    renamed = strategy(trigger(cond("quarter", "equals", 3), id="new-trigger"), odds=SPREAD_LEADER)
    tick = engine.evaluate(snap(51, 40, clock="4:00"), [renamed])
    assert statuses(tick) == [("watching", "closed")]
    assert "t-entry" in store.get("g1", "s1").notes[-1]


def test_close_orphans_for_removed_strategy(engine, store):
    engine.evaluate(snap(), [strategy(odds=SPREAD_LEADER)])
    transitions = engine.close_orphans({})
    assert [(t.from_status, t.to_status) for t in transitions] == [("watching", "closed")]
    assert "no longer exists" in transitions[0].note
    assert engine.close_orphans({}) == []


def test_close_orphans_keeps_known_signals(engine, store):
    s = strategy(odds=SPREAD_LEADER)
    engine.evaluate(snap(), [s])
    assert engine.close_orphans({s.id: s}) == []


# ---------------------------------------------------------------------------
# End of game
# ---------------------------------------------------------------------------

def test_finalize_grades_and_clears(engine, store):
    s = strategy(wins=(WinRequirement(WinRequirementType.LEADING_TEAM_WINS),))
    engine.evaluate(snap(50, 40), [s])
    transitions = engine.settle_game(final(88, 80), {s.id: s})
    assert [(t.from_status, t.to_status) for t in transitions] == [("bet_taken", "won")]
    assert transitions[0].outcome.outcome == "win"
    assert transitions[0].record["final_home_score"] == 88
    assert transitions[0].record["resolved_at"] is not None
    assert len(store) == 0


def test_finalize_expires_pending_and_closes_unknown(engine, store):
    pending = strategy(id="pending", odds=SPREAD_LEADER)
    gone = strategy(id="gone")
    engine.evaluate(snap(50, 40, spread=-9.5), [pending, gone])
    transitions = engine.settle_game(final(80, 70), {pending.id: pending})
    by_strategy = {t.strategy_id: t.to_status for t in transitions}
    assert by_strategy == {"pending": "expired", "gone": "closed"}
    assert len(store) == 0


def test_finalize_game_without_signals(engine, store):
    assert engine.settle_game(final(80, 70), {}) == []


def test_remove_game(engine, store):
    pending = strategy(id="pending", odds=SPREAD_LEADER)
    taken = strategy(id="taken")
    engine.evaluate(snap(50, 40, spread=-9.5), [pending, taken])
    transitions = engine.remove_game("g1")
    by_strategy = {t.strategy_id: t.to_status for t in transitions}
    assert by_strategy == {"pending": "expired", "taken": "closed"}
    assert len(store) == 0


def test_new_signal_allowed_after_game_cleared(engine, store):
    s = strategy()
    engine.evaluate(snap(), [s])
    engine.settle_game(final(80, 70), {s.id: s})
    tick = engine.evaluate(snap(), [s])
    assert statuses(tick) == [(None, "bet_taken")]


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

def test_clear_game_refuses_non_terminal_signals(engine, store):
    engine.evaluate(snap(), [strategy(odds=SPREAD_LEADER)])
    with pytest.raises(OrphanedSignalError):
        store.clear_game("g1")
    assert len(store) == 1


def test_clear_game_only_touches_that_game(engine, store):
    s = strategy()
    engine.evaluate(snap(game_id="g1"), [s])
    engine.evaluate(snap(game_id="g2"), [s])
    engine.settle_game(final(80, 70, game_id="g1"), {s.id: s})
    assert store.game_ids() == ["g2"]


def test_clearing_a_game_keeps_serializing_its_keys(engine, store):
    s = strategy()
    engine.evaluate(snap(), [s])
    held = store._lock_for(("g1", "s1"))
    engine.settle_game(final(80, 70), {s.id: s})
    assert store._lock_for(("g1", "s1")) is held

    done = threading.Event()

    def late_tick():
        engine.lifecycle.advance(s, snap(), build_context(snap()))
        done.set()

    with held:
        worker = threading.Thread(target=late_tick)
        worker.start()
        # blocked on the same key lock
        assert not done.wait(0.2)
        assert len(store) == 0
    worker.join(5)
    assert done.is_set()
    assert len(store) == 1


def test_terminal_signal_cannot_transition():
    signal = Signal(
        game_id="g1", strategy_id="s1", strategy_name="S", trigger_id="t", trigger_name="T",
        status=SignalStatus.WATCHING, leading_team_at_entry="home",
        entry_home_score=10, entry_away_score=5, entry_quarter=1, entry_clock="5:00",
    )
    assert signal.transition(SignalStatus.EXPIRED, "late") is SignalStatus.WATCHING
    assert signal.expired_at is not None
    assert signal.notes == ["late"]
    with pytest.raises(ValueError):
        signal.transition(SignalStatus.CLOSED)


def test_lifecycle_module_compiles_without_warnings():
    path = lifecycle_module.__file__
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(Path(path).read_text(), path, "exec")
