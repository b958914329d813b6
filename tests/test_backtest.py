from __future__ import annotations

from factories import cond, final, snap, strategy, trigger

from models.strategy import BetSide, OddsRequirement, OddsType, WinRequirement, WinRequirementType
from strategy.backtest import StrategyTally, format_report, group_by_game, replay_game, run_backtest
from strategy.engine import SignalEngine

LEADER_WINS = (WinRequirement(WinRequirementType.LEADING_TEAM_WINS),)


def game(game_id: str, final_home: int, final_away: int, finished: bool = True):
    snaps = [
        snap(20, 18, quarter=1, clock="6:00", game_id=game_id),
        snap(50, 38, quarter=3, clock="4:00", game_id=game_id),
        snap(70, 60, quarter=4, clock="3:00", game_id=game_id),
    ]
    if finished:
        snaps.append(final(final_home, final_away, game_id=game_id))
    return snaps


def big_lead(**kw):
    return strategy(trigger(cond("current_lead", "greater_than_or_equal", 10)), wins=LEADER_WINS, **kw)


def test_tally_stats():
    t = StrategyTally("s", "S", wins=6, losses=4, pushes=1)
    assert t.win_rate == 60.0
    # (600 - 440) / 1100
    assert t.roi == 14.5
    assert t.bets == 11


def test_tally_without_decided_bets():
    t = StrategyTally("s", "S", pushes=2)
    assert t.win_rate == 0.0
    assert t.roi == 0.0


def test_group_by_game_keeps_arrival_order():
    a1, b1, a2 = snap(game_id="a"), snap(game_id="b"), snap(game_id="a", clock="4:00")
    grouped = group_by_game([a1, b1, a2])
    assert list(grouped) == ["a", "b"]
    assert grouped["a"] == [a1, a2]


def test_replay_game_settles_on_final():
    engine = SignalEngine()
    s = big_lead()
    terminal = replay_game(engine, game("g1", 90, 80), [s])
    assert [t.to_status for t in terminal] == ["won"]
    assert len(engine.store) == 0


def test_replay_game_without_final_removes_game():
    engine = SignalEngine()
    s = big_lead()
    terminal = replay_game(engine, game("g1", 0, 0, finished=False), [s])
    assert [t.to_status for t in terminal] == ["closed"]
    assert len(engine.store) == 0


def test_replay_game_reports_expiry_during_ticks():
    engine = SignalEngine()
    s = big_lead(odds=OddsRequirement(OddsType.SPREAD, -2.5, BetSide.LEADING_TEAM))
    snaps = [
        snap(50, 38, quarter=3, clock="4:00", spread=-10.5),
        snap(70, 60, quarter=4, clock="1:00", spread=-8.5),
        final(80, 70),
    ]
    terminal = replay_game(engine, snaps, [s])
    assert [t.to_status for t in terminal] == ["expired"]


def test_run_backtest():
    games = group_by_game(game("g1", 90, 80) + game("g2", 85, 88) + game("g3", 80, 80))
    winners = big_lead(id="winners")
    inert = big_lead(id="inert", config_errors=("bad",))
    report = run_backtest(games, [winners, inert])

    assert report.games == 3
    assert set(report.tallies) == {"winners"}
    tally = report.tallies["winners"]
    assert tally.games_analyzed == 3
    # a tied final fails leading_team_wins
    assert (tally.wins, tally.losses, tally.pushes) == (1, 2, 0)
    assert tally.win_rate == 33.3
    entry = tally.entries[0]
    assert entry.entry_score == "50-38"
    assert entry.lead_at_entry == 12
    assert entry.final_score == "90-80"
    assert report.best_by_roi() is tally


def test_format_report():
    games = group_by_game(game("g1", 90, 80))
    text = format_report(run_backtest(games, [big_lead()]))
    assert "Backtest over 1 game(s)" in text
    assert "W/L/P=1/0/0" in text
    assert "win_rate=100.0%" in text
    assert "best by ROI" in text
