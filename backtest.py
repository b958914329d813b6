"""
Backtest: replay a recorded snapshot file through every strategy in a catalog.

Usage:
    python backtest.py recordings/2024-11-02.jsonl
    python backtest.py recordings/*.jsonl --strategies config/strategies.yaml --players config/players.yaml

Each recording is a JSON-lines file of canonical snapshot payloads (the same
shape the live feed delivers). Prints per-strategy wins / losses / pushes,
win rate and ROI at -110.
"""

from __future__ import annotations
import argparse
import sys

from dotenv import load_dotenv
load_dotenv()

from config.settings import settings
from sports.players import load_players
from sports.replay import read_recording
from strategy.backtest import format_report, group_by_game, run_backtest
from strategy.catalog import FileStrategySource
from strategy.loader import load_strategies
from utils.logger import setup_logging


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Replay recorded games through the strategy catalog.")
    parser.add_argument("recordings", nargs="+", help="JSON-lines snapshot recordings")
    parser.add_argument("--strategies", default=settings.strategies_path, help="strategy catalog (YAML/JSON)")
    parser.add_argument("--players", default=settings.players_path, help="optional player side table (YAML)")
    parser.add_argument("--include-inactive", action="store_true", help="also run strategies marked inactive")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    strategies = load_strategies(
        FileStrategySource(args.strategies).read(), settings.default_expiry_clock
    )
    if not args.include_inactive:
        strategies = [s for s in strategies if s.is_active]
    if not strategies:
        print(f"No runnable strategies in {args.strategies}")
        return 1

    snapshots = [snap for path in args.recordings for snap in read_recording(path)]
    games = group_by_game(snapshots)
    print(f"Loaded {len(snapshots)} snapshots across {len(games)} game(s), {len(strategies)} strategies\n")

    players = load_players(args.players) if args.players else None
    report = run_backtest(games, strategies, players)
    print(format_report(report))
    return 0


if __name__ == "__main__":
    sys.exit(main())
