"""
Intake Agent — Snapshot Ingestion.

Runs every configured SnapshotFeed in parallel and fans their output into the
EventBus game_snapshots queue.

Deduplicates across feeds by snapshot fingerprint (status, quarter, clock,
scores, lines): when two feeds deliver the same tick the first delivery wins.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Sequence

from bus.event_bus import EventBus
from models.events import GameSnapshot
from sports.base import SnapshotFeed
from sports.poller import Fingerprint, fingerprint

log = logging.getLogger(__name__)


class IntakeAgent:
    def __init__(self, bus: EventBus, feeds: Sequence[SnapshotFeed]) -> None:
        self._bus = bus
        self._feeds = feeds
        # Global dedup cache across all feeds
        self._seen: dict[str, Fingerprint] = {}  # game_id -> last published fingerprint
        self._tasks: list[asyncio.Task] = []
        self.published = 0

    async def startup(self) -> None:
        for feed in self._feeds:
            await feed.startup()
        log.info("Intake started %d feed(s): %s", len(self._feeds), [f.name for f in self._feeds])

    async def shutdown(self) -> None:
        for task in self._tasks:
            task.cancel()
        for feed in self._feeds:
            await feed.shutdown()

    async def run(self) -> None:
        """
        Launch one streaming task per feed and wait for all.
        If one feed dies it is logged and the others continue.
        """
        self._tasks = [
            asyncio.create_task(self._run_feed(feed), name=f"intake-{feed.name}")
            for feed in self._feeds
        ]
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _run_feed(self, feed: SnapshotFeed) -> None:
        log.info("Intake starting feed: %s", feed.name)
        try:
            async for snapshot in feed.stream():
                self.maybe_publish(snapshot)
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            log.exception("Intake feed %s died: %s", feed.name, exc)

    def maybe_publish(self, snapshot: GameSnapshot) -> bool:
        fp = fingerprint(snapshot)
        if self._seen.get(snapshot.game_id) == fp:
            return False  # duplicate, drop silently
        self._seen[snapshot.game_id] = fp
        if snapshot.is_final:
            # Nothing follows a final; keep the cache from growing all season
            self._seen.pop(snapshot.game_id, None)
        if not self._bus.publish_snapshot(snapshot):
            return False
        self.published += 1
        log.debug(
            "Intake published game=%s Q%d %s %d-%d status=%s",
            snapshot.game_id, snapshot.quarter, snapshot.clock,
            snapshot.home_score, snapshot.away_score, snapshot.status,
        )
        return True
