"""
Replay feed: yields snapshots from a JSON-lines recording.

One canonical payload per line, in arrival order, games interleaved as they
were recorded. Blank lines and lines starting with '#' are skipped; a line
that is not valid JSON is logged and skipped.
"""

from __future__ import annotations
import asyncio
import json
import logging
from pathlib import Path
from typing import AsyncIterator, Iterator

from models.events import GameSnapshot
from sports.base import SnapshotFeed
from sports.normalizer import snapshot_from_payload

log = logging.getLogger(__name__)


def read_recording(path: str | Path) -> Iterator[GameSnapshot]:
    with open(path) as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError as exc:
                log.warning("%s:%d: bad JSON skipped (%s)", path, lineno, exc.msg)
                continue
            if not isinstance(raw, dict):
                log.warning("%s:%d: expected an object, skipped", path, lineno)
                continue
            snapshot = snapshot_from_payload(raw)
            if snapshot is not None:
                yield snapshot


class ReplaySnapshotFeed(SnapshotFeed):
    def __init__(self, path: str | Path, interval_s: float = 0.0) -> None:
        self._path = Path(path)
        self._interval_s = interval_s
        self._snapshots: list[GameSnapshot] = []

    @property
    def name(self) -> str:
        return f"replay:{self._path.name}"

    async def startup(self) -> None:
        self._snapshots = await asyncio.to_thread(lambda: list(read_recording(self._path)))
        log.info("%s loaded %d snapshots", self.name, len(self._snapshots))

    async def shutdown(self) -> None:
        self._snapshots = []

    async def stream(self) -> AsyncIterator[GameSnapshot]:  # type: ignore[override]
        for snapshot in self._snapshots:
            yield snapshot
            await asyncio.sleep(self._interval_s)
        log.info("%s finished", self.name)
