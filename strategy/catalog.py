"""
Strategy catalog.

Holds the parsed strategies the engine evaluates. A refresh builds a fresh
tuple and swaps it in with a single assignment, so readers always see either
the old catalog or the new one, never a mix.

Sources:
  - FileStrategySource: YAML (or JSON, which YAML also reads) on local disk
  - HttpStrategySource: JSON list served by the persistence collaborator
"""

from __future__ import annotations
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable

import aiohttp
import yaml

from models.strategy import Strategy
from strategy.loader import DEFAULT_EXPIRY_CLOCK, load_strategies

log = logging.getLogger(__name__)


class StrategySource(ABC):
    @abstractmethod
    async def fetch(self) -> list[dict[str, Any]]:
        """Raw strategy records."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    async def startup(self) -> None:
        return None

    async def shutdown(self) -> None:
        return None


def _records(data: Any) -> list[dict[str, Any]]:
    """Accept a bare list or {"strategies": [...]}."""
    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("strategies", [])
    if not isinstance(data, list):
        raise ValueError(f"strategy catalog must be a list, got {type(data).__name__}")
    return data


class FileStrategySource(StrategySource):
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def name(self) -> str:
        return f"file:{self._path}"

    def read(self) -> list[dict[str, Any]]:
        with open(self._path) as f:
            return _records(yaml.safe_load(f))

    async def fetch(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self.read)


class HttpStrategySource(StrategySource):
    def __init__(self, url: str, timeout_s: float = 5.0) -> None:
        self._url = url
        self._timeout_s = timeout_s
        self._session: aiohttp.ClientSession | None = None

    @property
    def name(self) -> str:
        return f"http:{self._url}"

    async def startup(self) -> None:
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self._timeout_s, connect=2),
            connector=aiohttp.TCPConnector(limit=2, keepalive_timeout=30),
        )

    async def shutdown(self) -> None:
        if self._session:
            await self._session.close()

    async def fetch(self) -> list[dict[str, Any]]:
        assert self._session, "Call startup() first"
        async with self._session.get(self._url) as resp:
            resp.raise_for_status()
            return _records(await resp.json(content_type=None))


class StrategyCatalog:
    def __init__(self, strategies: Iterable[Strategy] = (), default_expiry: str = DEFAULT_EXPIRY_CLOCK) -> None:
        self._default_expiry = default_expiry
        self._strategies: tuple[Strategy, ...] = ()
        self._by_id: dict[str, Strategy] = {}
        self._refreshed_at: float = 0.0
        self.replace(strategies)

    def replace(self, strategies: Iterable[Strategy]) -> None:
        items = tuple(strategies)
        by_id = {s.id: s for s in items}
        self._by_id = by_id
        self._strategies = items
        self._refreshed_at = time.monotonic()

    def load_records(self, records: Iterable[dict[str, Any]]) -> None:
        self.replace(load_strategies(records, self._default_expiry))

    async def refresh(self, source: StrategySource) -> bool:
        """Reload from the source. On failure the current catalog stays in place."""
        try:
            records = await source.fetch()
        except Exception as exc:
            log.warning("Catalog refresh from %s failed, keeping %d strategies: %s",
                        source.name, len(self._strategies), exc)
            return False
        self.load_records(records)
        log.info("Catalog refreshed from %s: %d strategies", source.name, len(self._strategies))
        return True

    def all(self) -> tuple[Strategy, ...]:
        return self._strategies

    def active(self) -> list[Strategy]:
        return [s for s in self._strategies if s.is_active and not s.inert]

    def by_id(self) -> dict[str, Strategy]:
        return self._by_id

    def get(self, strategy_id: str) -> Strategy | None:
        return self._by_id.get(strategy_id)

    def age_s(self) -> float:
        return time.monotonic() - self._refreshed_at

    def __len__(self) -> int:
        return len(self._strategies)
