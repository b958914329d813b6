"""
Settler Agent — Outcome Grading.

Consumes final GameSnapshots and settles the game:
  - bet_taken signals are graded won / lost / pushed by the outcome evaluator
  - monitoring / watching signals expire
  - signals whose strategy has left the catalog are closed ungraded
Then the game is cleared from the SignalStore.

Settling one game only takes the locks of that game's keys, so it never holds
up evaluation of other games.
"""

from __future__ import annotations
import asyncio
import logging

from bus.event_bus import EventBus
from models.events import GameSnapshot, SignalTransition
from strategy.catalog import StrategyCatalog
from strategy.engine import SignalEngine

log = logging.getLogger(__name__)


class SettlerAgent:
    def __init__(self, bus: EventBus, engine: SignalEngine, catalog: StrategyCatalog) -> None:
        self._bus = bus
        self._engine = engine
        self._catalog = catalog
        self.games_settled = 0

    async def run(self) -> None:
        log.info("Settler agent running")
        while True:
            try:
                snapshot: GameSnapshot = await self._bus.finished_games.get()
                self.settle(snapshot)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                log.exception("Settler unexpected error: %s", exc)

    def settle(self, snapshot: GameSnapshot) -> list[SignalTransition]:
        transitions = self._engine.settle_game(snapshot, self._catalog.by_id())
        self.games_settled += 1
        graded = [t for t in transitions if t.outcome is not None]
        log.info(
            "Settler: game=%s final %d-%d settled (%d graded, %d other)",
            snapshot.game_id, snapshot.home_score, snapshot.away_score,
            len(graded), len(transitions) - len(graded),
        )
        for transition in transitions:
            self._bus.publish_transition(transition)
        return transitions
