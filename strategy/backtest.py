"""
Backtester: replay recorded games through a fresh engine.

Each game's snapshots are fed in order exactly as the live Evaluator would
see them; the final snapshot settles the game. A recording that stops before
the game ends is removed the same way the live system drops an abandoned
game (pending signals expire, bets are closed ungraded).

Stats follow the usual -110 convention: risk 110 to win 100.
  win_rate = wins / (wins + losses)            pushes excluded
  roi      = (100*wins - 110*losses) / (110 * (wins + losses))
Both are percentages rounded to one decimal.
"""

from __future__ import annotations
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from models.events import GameSnapshot, PlayerStats, SignalTransition
from models.strategy import Strategy
from strategy.engine import SignalEngine

log = logging.getLogger(__name__)

_JUICE = 110
_PAYOUT = 100


@dataclass(frozen=True, slots=True)
class BacktestEntry:
    game_id: str
    home_team: str
    away_team: str
    entry_quarter: int
    entry_clock: str
    entry_score: str
    lead_at_entry: int
    final_score: str
    result: str                 # won / lost / pushed / expired / closed
    summary: str | None


@dataclass(slots=True)
class StrategyTally:
    strategy_id: str
    strategy_name: str
    games_analyzed: int = 0
    wins: int = 0
    losses: int = 0
    pushes: int = 0
    expired: int = 0
    closed: int = 0
    entries: list[BacktestEntry] = field(default_factory=list)

    @property
    def signals(self) -> int:
        return len(self.entries)

    @property
    def bets(self) -> int:
        return self.wins + self.losses + self.pushes

    @property
    def win_rate(self) -> float:
        decided = self.wins + self.losses
        return round(self.wins / decided * 100, 1) if decided else 0.0

    @property
    def roi(self) -> float:
        decided = self.wins + self.losses
        if not decided:
            return 0.0
        profit = self.wins * _PAYOUT - self.losses * _JUICE
        return round(profit / (decided * _JUICE) * 100, 1)

    def record(self, entry: BacktestEntry) -> None:
        self.entries.append(entry)
        if entry.result == "won":
            self.wins += 1
        elif entry.result == "lost":
            self.losses += 1
        elif entry.result == "pushed":
            self.pushes += 1
        elif entry.result == "expired":
            self.expired += 1
        else:
            self.closed += 1


@dataclass(slots=True)
class BacktestReport:
    games: int
    tallies: dict[str, StrategyTally]

    def best_by_win_rate(self) -> StrategyTally | None:
        return max(self.tallies.values(), key=lambda t: t.win_rate, default=None)

    def best_by_roi(self) -> StrategyTally | None:
        return max(self.tallies.values(), key=lambda t: t.roi, default=None)


def group_by_game(snapshots: Iterable[GameSnapshot]) -> "OrderedDict[str, list[GameSnapshot]]":
    """Split an interleaved recording into per-game sequences, keeping arrival order."""
    games: OrderedDict[str, list[GameSnapshot]] = OrderedDict()
    for snap in snapshots:
        games.setdefault(snap.game_id, []).append(snap)
    return games


def _entry(transition: SignalTransition, first: GameSnapshot, last: GameSnapshot) -> BacktestEntry:
    rec = transition.record
    home, away = rec["entry_home_score"], rec["entry_away_score"]
    final_home = rec["final_home_score"] if rec["final_home_score"] is not None else last.home_score
    final_away = rec["final_away_score"] if rec["final_away_score"] is not None else last.away_score
    return BacktestEntry(
        game_id=transition.game_id,
        home_team=first.home_team,
        away_team=first.away_team,
        entry_quarter=rec["entry_quarter"],
        entry_clock=rec["entry_clock"],
        entry_score=f"{home}-{away}",
        lead_at_entry=abs(home - away),
        final_score=f"{final_home}-{final_away}",
        result=transition.to_status,
        summary=rec["outcome_summary"] or transition.note,
    )


def replay_game(engine: SignalEngine, snapshots: Sequence[GameSnapshot],
                strategies: Sequence[Strategy]) -> list[SignalTransition]:
    """Run one game to completion; returns the terminal transition of every signal it opened."""
    by_id = {s.id: s for s in strategies}
    game_id = snapshots[0].game_id
    terminal: list[SignalTransition] = []
    for snap in snapshots:
        if snap.is_final:
            terminal.extend(engine.settle_game(snap, by_id))
            return terminal
        tick = engine.evaluate(snap, strategies)
        terminal.extend(t for t in tick.transitions if t.to_status in ("expired", "closed"))
    log.debug("Backtest: recording for game=%s ends before final; removing", game_id)
    terminal.extend(engine.remove_game(game_id))
    return terminal


def run_backtest(
    games: Mapping[str, Sequence[GameSnapshot]],
    strategies: Sequence[Strategy],
    players: Mapping[str, PlayerStats] | None = None,
) -> BacktestReport:
    runnable = [s for s in strategies if not s.inert]
    tallies = {s.id: StrategyTally(s.id, s.name) for s in runnable}
    engine = SignalEngine(players=players)

    for game_id, snapshots in games.items():
        if not snapshots:
            continue
        for tally in tallies.values():
            tally.games_analyzed += 1
        for transition in replay_game(engine, snapshots, runnable):
            tally = tallies.get(transition.strategy_id)
            if tally is not None:
                tally.record(_entry(transition, snapshots[0], snapshots[-1]))

    log.info("Backtest: %d games, %d strategies", len(games), len(tallies))
    return BacktestReport(games=len(games), tallies=tallies)


def format_report(report: BacktestReport) -> str:
    lines = [f"Backtest over {report.games} game(s)"]
    for t in report.tallies.values():
        lines.append(
            f"  {t.strategy_name} [{t.strategy_id}]: signals={t.signals} "
            f"W/L/P={t.wins}/{t.losses}/{t.pushes} expired={t.expired} closed={t.closed} "
            f"win_rate={t.win_rate:.1f}% roi={t.roi:+.1f}%"
        )
    best = report.best_by_roi()
    if best is not None and best.bets:
        lines.append(f"  best by ROI: {best.strategy_name} ({best.roi:+.1f}%)")
    return "\n".join(lines)
