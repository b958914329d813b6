"""
SignalCaller — Main Entrypoint

Boots the asyncio event loop, wires all agents together, and runs until
SIGINT/SIGTERM is received (or, in replay-only mode, until the recording has
been fully evaluated and settled).

Startup sequence:
  1. Load settings from environment (.env honoured)
  2. Load the strategy catalog and the optional player side table
  3. Initialize snapshot feeds (HTTP poller and/or replay)
  4. Start Intake, Evaluator, Settler, Catalog, Reporter as asyncio tasks
  5. Wait for shutdown signal

Shutdown sequence:
  1. Signal all agents via shutdown_event
  2. Cancel running tasks
  3. Close network connections
"""

from __future__ import annotations
import asyncio
import logging
import signal

from dotenv import load_dotenv

# Load .env before importing settings (settings reads env vars at import time)
load_dotenv()

from bus.event_bus import EventBus
from config.settings import settings
from models.state import SignalStore
from sports.base import SnapshotFeed
from sports.players import load_players
from sports.poller import PollingSnapshotFeed
from sports.replay import ReplaySnapshotFeed
from strategy.catalog import FileStrategySource, HttpStrategySource, StrategyCatalog, StrategySource
from strategy.engine import SignalEngine
from agents.intake import IntakeAgent
from agents.evaluator import EvaluatorAgent
from agents.settler import SettlerAgent
from agents.catalog import CatalogAgent
from agents.reporter import ReporterAgent
from utils.logger import setup_logging

log = logging.getLogger(__name__)


def _strategy_source() -> StrategySource:
    if settings.strategies_url:
        return HttpStrategySource(settings.strategies_url)
    return FileStrategySource(settings.strategies_path)


def _feeds() -> list[SnapshotFeed]:
    feeds: list[SnapshotFeed] = []
    if settings.feed_url:
        feeds.append(PollingSnapshotFeed(
            url=settings.feed_url,
            poll_interval_s=settings.feed_poll_interval_s,
            timeout_s=settings.feed_timeout_s,
        ))
    if settings.replay_path:
        feeds.append(ReplaySnapshotFeed(settings.replay_path, interval_s=settings.replay_speed))
    return feeds


async def _drain(bus: EventBus) -> None:
    """Replay-only mode: wait until every queued snapshot and transition is processed."""
    while not (bus.game_snapshots.empty() and bus.finished_games.empty() and bus.signal_updates.empty()):
        await asyncio.sleep(0.05)


async def run() -> None:
    setup_logging(settings.log_level)
    log.info("SignalCaller starting")

    # -----------------------------------------------------------------------
    # Infrastructure
    # -----------------------------------------------------------------------
    bus = EventBus(snapshots_maxsize=settings.snapshot_queue_size)
    players = load_players(settings.players_path) if settings.players_path else {}
    engine = SignalEngine(store=SignalStore(), players=players)
    catalog = StrategyCatalog(default_expiry=settings.default_expiry_clock)

    feeds = _feeds()
    if not feeds:
        log.warning("No FEED_URL or REPLAY_PATH configured; nothing will be evaluated")

    # -----------------------------------------------------------------------
    # Agents
    # -----------------------------------------------------------------------
    intake = IntakeAgent(bus=bus, feeds=feeds)
    evaluator = EvaluatorAgent(bus=bus, engine=engine, catalog=catalog, stale_game_s=settings.stale_game_s)
    settler = SettlerAgent(bus=bus, engine=engine, catalog=catalog)
    catalog_agent = CatalogAgent(
        bus=bus,
        engine=engine,
        catalog=catalog,
        source=_strategy_source(),
        refresh_s=settings.catalog_refresh_s,
    )
    reporter = ReporterAgent(bus=bus, sink_path=settings.signals_log_path or None)

    # -----------------------------------------------------------------------
    # Startup: load catalog, pre-warm connections
    # -----------------------------------------------------------------------
    log.info("Starting up...")
    await catalog_agent.startup()
    await intake.startup()

    # -----------------------------------------------------------------------
    # Launch all agent tasks
    # -----------------------------------------------------------------------
    shutdown_event = asyncio.Event()

    def _handle_signal(sig: signal.Signals) -> None:
        log.info("Received %s — initiating graceful shutdown", sig.name)
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    intake_task = asyncio.create_task(intake.run(), name="intake")
    tasks = [
        intake_task,
        asyncio.create_task(evaluator.run(), name="evaluator"),
        asyncio.create_task(settler.run(), name="settler"),
        asyncio.create_task(catalog_agent.run(), name="catalog"),
        asyncio.create_task(reporter.run(), name="reporter"),
    ]
    log.info("All agents launched. SignalCaller is live.")

    if feeds and not settings.feed_url:
        # Replay only: stop once the recording has been consumed
        waiter = asyncio.create_task(shutdown_event.wait())
        await asyncio.wait({intake_task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        await _drain(bus)
        waiter.cancel()
    else:
        await shutdown_event.wait()

    # -----------------------------------------------------------------------
    # Graceful shutdown
    # -----------------------------------------------------------------------
    log.info("Shutting down...")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await intake.shutdown()
    await catalog_agent.shutdown()
    log.info(
        "SignalCaller stopped cleanly (%d snapshots, %d games settled, signals: %s)",
        intake.published, settler.games_settled, reporter.summary(),
    )


def main() -> None:
    try:
        import uvloop  # type: ignore
        uvloop.run(run())
    except ImportError:
        asyncio.run(run())


if __name__ == "__main__":
    main()
