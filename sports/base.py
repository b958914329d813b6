"""
Abstract interface for game snapshot feeds.

All feed adapters (HTTP polling, recorded replay) implement this interface.
The Intake agent depends only on this abstract class, so switching from a
live feed to a replay is a configuration change.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import AsyncIterator

from models.events import GameSnapshot


class SnapshotFeed(ABC):
    """
    Base class for all snapshot providers.

    Concrete implementations:
        - PollingSnapshotFeed  (aiohttp polling of the ingestion collaborator)
        - ReplaySnapshotFeed   (JSON-lines recording on disk)
    """

    @abstractmethod
    async def startup(self) -> None:
        """
        Initialize connections, pre-warm sessions, open files.
        Called once by the Intake agent before entering the main loop.
        """
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        """Clean up connections."""
        ...

    @abstractmethod
    def stream(self) -> AsyncIterator[GameSnapshot]:
        """
        Async generator that yields GameSnapshot objects as they arrive.
        Must yield control back to the event loop between snapshots.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name for logging."""
        ...
