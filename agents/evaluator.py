"""
Evaluator Agent — Strategy Evaluation.

Consumes GameSnapshot from the EventBus and runs every active strategy
against it through the SignalEngine. Each resulting signal transition is
published to signal_updates.

Hot path (called on every live snapshot):
  1. Build the evaluation context once
  2. Per strategy: rule gate, triggers, lifecycle step under the key lock
  3. put_nowait each transition to signal_updates

Final snapshots are forwarded to the Settler untouched. Games that stop
sending snapshots without ever going final are dropped after stale_game_s
(pending signals expire, open bets are closed ungraded). Live snapshots that
arrive after a game's final are dropped.
"""

from __future__ import annotations
import asyncio
import logging
import time
from collections import OrderedDict

from bus.event_bus import EventBus
from models.events import GameSnapshot
from strategy.catalog import StrategyCatalog
from strategy.engine import EngineTick, SignalEngine

log = logging.getLogger(__name__)


class EvaluatorAgent:
    def __init__(
        self,
        bus: EventBus,
        engine: SignalEngine,
        catalog: StrategyCatalog,
        stale_game_s: float = 1800.0,
        sweep_interval_s: float = 60.0,
        finished_cache_size: int = 2048,
    ) -> None:
        self._bus = bus
        self._engine = engine
        self._catalog = catalog
        self._stale_game_s = stale_game_s
        self._sweep_interval_s = sweep_interval_s
        # game_id -> monotonic time of the last live snapshot
        self._last_seen: dict[str, float] = {}
        self._last_sweep = time.monotonic()
        # Games already sent to the Settler; later live ticks for them are late or retried
        self._finished: OrderedDict[str, None] = OrderedDict()
        self._finished_cache_size = finished_cache_size

    async def run(self) -> None:
        log.info("Evaluator agent running (%d strategies in catalog)", len(self._catalog))
        while True:
            try:
                try:
                    snapshot = await asyncio.wait_for(
                        self._bus.game_snapshots.get(), timeout=self._sweep_interval_s
                    )
                except asyncio.TimeoutError:
                    self.sweep_stale()
                    continue
                self.process(snapshot)
                if time.monotonic() - self._last_sweep >= self._sweep_interval_s:
                    self.sweep_stale()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                log.exception("Evaluator error processing snapshot: %s", exc)

    def process(self, snapshot: GameSnapshot) -> EngineTick | None:
        if snapshot.is_final:
            self._last_seen.pop(snapshot.game_id, None)
            self._remember_finished(snapshot.game_id)
            self._bus.publish_finished(snapshot)
            return None
        if not snapshot.is_live:
            return None
        if snapshot.game_id in self._finished:
            log.debug(
                "Evaluator: dropping %s snapshot for finished game=%s (Q%d %s)",
                snapshot.status, snapshot.game_id, snapshot.quarter, snapshot.clock,
            )
            return None

        self._last_seen[snapshot.game_id] = time.monotonic()
        tick = self._engine.evaluate(snapshot, self._catalog.active())

        for ev in tick.duplicate_entries:
            log.info(
                "Evaluator: duplicate entry ignored game=%s strategy=%s (signal already %s)",
                ev.game_id, ev.strategy_id, (ev.signal or {}).get("status"),
            )
        for ev in tick.evaluations:
            if ev.gate is not None and not ev.gate.passed:
                log.debug("Evaluator: game=%s strategy=%s gated: %s", ev.game_id, ev.strategy_id, ev.gate.reason)
        for transition in tick.transitions:
            self._bus.publish_transition(transition)
        return tick

    def sweep_stale(self, now: float | None = None) -> list[str]:
        now = time.monotonic() if now is None else now
        self._last_sweep = now
        stale = [gid for gid, seen in self._last_seen.items() if now - seen >= self._stale_game_s]
        for game_id in stale:
            self._last_seen.pop(game_id, None)
            transitions = self._engine.remove_game(game_id)
            log.warning(
                "Evaluator: game=%s silent for %.0fs without a final; removed (%d signal(s) closed)",
                game_id, self._stale_game_s, len(transitions),
            )
            for transition in transitions:
                self._bus.publish_transition(transition)
        return stale

    def _remember_finished(self, game_id: str) -> None:
        self._finished[game_id] = None
        self._finished.move_to_end(game_id)
        while len(self._finished) > self._finished_cache_size:
            self._finished.popitem(last=False)
