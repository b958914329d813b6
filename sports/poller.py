"""
HTTP polling feed for canonical game snapshots.

Polls the ingestion collaborator's snapshot endpoint, which returns either a
JSON list of canonical payloads or {"games": [...]}. Emits a GameSnapshot
only when something the engine reads has changed since the last poll for
that game (score, clock, quarter, status or any line).
"""

from __future__ import annotations
import asyncio
import logging
import time
from typing import Any, AsyncIterator

import aiohttp

from models.events import GameSnapshot
from sports.base import SnapshotFeed
from sports.normalizer import snapshot_from_payload

log = logging.getLogger(__name__)

Fingerprint = tuple[Any, ...]


def fingerprint(snapshot: GameSnapshot) -> Fingerprint:
    return (
        snapshot.status,
        snapshot.quarter,
        snapshot.clock,
        snapshot.home_score,
        snapshot.away_score,
        snapshot.spread,
        snapshot.moneyline_home,
        snapshot.moneyline_away,
        snapshot.total_line,
    )


class PollingSnapshotFeed(SnapshotFeed):
    def __init__(self, url: str, poll_interval_s: float = 2.0, timeout_s: float = 4.0) -> None:
        self._url = url
        self._poll_interval_s = poll_interval_s
        self._timeout_s = timeout_s
        self._session: aiohttp.ClientSession | None = None
        # game_id -> fingerprint of the last emitted snapshot
        self._last: dict[str, Fingerprint] = {}

    @property
    def name(self) -> str:
        return f"poll:{self._url}"

    async def startup(self) -> None:
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self._timeout_s, connect=2),
            connector=aiohttp.TCPConnector(limit=5, keepalive_timeout=30),
        )
        log.info("%s feed client initialized", self.name)

    async def shutdown(self) -> None:
        if self._session:
            await self._session.close()

    async def stream(self) -> AsyncIterator[GameSnapshot]:  # type: ignore[override]
        assert self._session, "Call startup() first"
        consecutive_errors = 0
        while True:
            poll_start = time.monotonic()
            try:
                snapshots = await self._fetch()
                consecutive_errors = 0
                for snapshot in snapshots:
                    yield snapshot
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                consecutive_errors += 1
                if consecutive_errors == 1 or consecutive_errors % 100 == 0:
                    log.warning("%s poll error (×%d): %s", self.name, consecutive_errors, exc)

            elapsed = time.monotonic() - poll_start
            await asyncio.sleep(max(0.0, self._poll_interval_s - elapsed))

    async def _fetch(self) -> list[GameSnapshot]:
        received_at = time.monotonic_ns()
        async with self._session.get(self._url) as resp:  # type: ignore[union-attr]
            resp.raise_for_status()
            data = await resp.json(content_type=None)
        return self.changed(data, received_at)

    def changed(self, data: Any, received_at_ns: int | None = None) -> list[GameSnapshot]:
        """Normalize a poll response and keep only games that moved."""
        payloads = data.get("games", []) if isinstance(data, dict) else data
        results: list[GameSnapshot] = []
        for raw in payloads or []:
            if not isinstance(raw, dict):
                continue
            snapshot = snapshot_from_payload(raw, received_at_ns)
            if snapshot is None:
                continue
            fp = fingerprint(snapshot)
            if self._last.get(snapshot.game_id) == fp:
                continue
            self._last[snapshot.game_id] = fp
            results.append(snapshot)
        return results
