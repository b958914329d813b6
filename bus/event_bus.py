"""
Typed multi-channel event bus.

All inter-agent communication goes through this module.
Uses asyncio.Queue — zero network hops, minimal latency.

Queue sizing:
  game_snapshots: 200 — one entry per game tick; a backlog this deep is stale anyway
  finished_games:  50 — final snapshots waiting for the Settler
  signal_updates: 500 — every transition of every signal; Reporter drains in bulk
"""

from __future__ import annotations
import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from models.events import GameSnapshot, SignalTransition

log = logging.getLogger(__name__)


class EventBus:
    __slots__ = (
        "game_snapshots",
        "finished_games",
        "signal_updates",
    )

    def __init__(
        self,
        snapshots_maxsize: int = 200,
        finished_maxsize: int = 50,
        updates_maxsize: int = 500,
    ) -> None:
        self.game_snapshots: asyncio.Queue[GameSnapshot] = asyncio.Queue(maxsize=snapshots_maxsize)
        self.finished_games: asyncio.Queue[GameSnapshot] = asyncio.Queue(maxsize=finished_maxsize)
        self.signal_updates: asyncio.Queue[SignalTransition] = asyncio.Queue(maxsize=updates_maxsize)

    def publish_snapshot(self, snapshot: "GameSnapshot") -> bool:
        """Non-blocking publish. Drops and logs if queue is full (stale data)."""
        try:
            self.game_snapshots.put_nowait(snapshot)
            return True
        except asyncio.QueueFull:
            log.warning("game_snapshots queue full — dropping stale snapshot for game=%s", snapshot.game_id)
            return False

    def publish_finished(self, snapshot: "GameSnapshot") -> bool:
        try:
            self.finished_games.put_nowait(snapshot)
            return True
        except asyncio.QueueFull:
            log.error(
                "finished_games queue full — final for game=%s DROPPED. Settler may be stuck.",
                snapshot.game_id,
            )
            return False

    def publish_transition(self, transition: "SignalTransition") -> bool:
        try:
            self.signal_updates.put_nowait(transition)
            return True
        except asyncio.QueueFull:
            log.warning(
                "signal_updates queue full — dropping %s -> %s for signal=%s",
                transition.from_status, transition.to_status, transition.signal_id,
            )
            return False
