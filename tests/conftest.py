from __future__ import annotations

import pytest

from models.state import SignalStore
from strategy.engine import SignalEngine


@pytest.fixture
def store() -> SignalStore:
    return SignalStore()


@pytest.fixture
def engine(store: SignalStore) -> SignalEngine:
    return SignalEngine(store=store)
