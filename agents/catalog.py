"""
Catalog Agent — Strategy Refresh.

Reloads the strategy catalog from its source on a fixed cadence. After every
successful reload, in-flight signals whose strategy or trigger disappeared
are closed with a diagnostic note.
"""

from __future__ import annotations
import asyncio
import logging

from bus.event_bus import EventBus
from strategy.catalog import StrategyCatalog, StrategySource
from strategy.engine import SignalEngine

log = logging.getLogger(__name__)


class CatalogAgent:
    def __init__(
        self,
        bus: EventBus,
        engine: SignalEngine,
        catalog: StrategyCatalog,
        source: StrategySource,
        refresh_s: float = 60.0,
    ) -> None:
        self._bus = bus
        self._engine = engine
        self._catalog = catalog
        self._source = source
        self._refresh_s = refresh_s

    async def startup(self) -> None:
        await self._source.startup()
        await self.refresh_once()

    async def shutdown(self) -> None:
        await self._source.shutdown()

    async def run(self) -> None:
        log.info("Catalog agent running (source=%s every %.0fs)", self._source.name, self._refresh_s)
        while True:
            try:
                await asyncio.sleep(self._refresh_s)
                await self.refresh_once()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                log.exception("Catalog refresh error: %s", exc)

    async def refresh_once(self) -> bool:
        if not await self._catalog.refresh(self._source):
            return False
        for transition in self._engine.close_orphans(self._catalog.by_id()):
            self._bus.publish_transition(transition)
        return True
