"""
Mutable signal state and the keyed store that owns it.

The SignalStore is the only shared mutable resource in the engine. Every
(game_id, strategy_id) key has its own lock; the lifecycle holds that lock
for the whole check-then-transition step, so two concurrent snapshots for the
same game can never open two signals for one strategy. Locks for different
keys are independent: settling one game never waits on another game's keys.
"""

from __future__ import annotations
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator

log = logging.getLogger(__name__)

SignalKey = tuple[str, str]   # (game_id, strategy_id)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrphanedSignalError(RuntimeError):
    """Raised when a game is cleared while it still holds non-terminal signals."""


class SignalStatus(str, Enum):
    MONITORING = "monitoring"
    WATCHING = "watching"
    BET_TAKEN = "bet_taken"
    WON = "won"
    LOST = "lost"
    PUSHED = "pushed"
    EXPIRED = "expired"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def is_pending(self) -> bool:
        """Opened but odds not yet aligned."""
        return self in (SignalStatus.MONITORING, SignalStatus.WATCHING)


_TERMINAL = frozenset({
    SignalStatus.WON,
    SignalStatus.LOST,
    SignalStatus.PUSHED,
    SignalStatus.EXPIRED,
    SignalStatus.CLOSED,
})

# Which timestamp field is stamped on entering each status
_STAMP_FIELD = {
    SignalStatus.WATCHING: "close_triggered_at",
    SignalStatus.BET_TAKEN: "odds_aligned_at",
    SignalStatus.EXPIRED: "expired_at",
    SignalStatus.CLOSED: "closed_at",
    SignalStatus.WON: "resolved_at",
    SignalStatus.LOST: "resolved_at",
    SignalStatus.PUSHED: "resolved_at",
}


@dataclass(slots=True)
class Signal:
    """
    One betting signal for a (game, strategy) pair.
    Mutated only by strategy.lifecycle while the key lock is held.
    """
    game_id: str
    strategy_id: str
    strategy_name: str
    trigger_id: str
    trigger_name: str
    status: SignalStatus
    leading_team_at_entry: str | None      # "home" | "away" | None on a tie
    entry_home_score: int
    entry_away_score: int
    entry_quarter: int
    entry_clock: str
    entry_spread: float | None = None      # home perspective, as quoted at entry
    entry_total: float | None = None
    odds_type: str | None = None
    required_odds: float | None = None
    bet_side: str | None = None
    actual_odds: float | None = None       # line captured when odds aligned
    close_trigger_id: str | None = None
    final_home_score: int | None = None
    final_away_score: int | None = None
    outcome: str | None = None             # "win" | "loss" | "push"
    outcome_summary: str | None = None
    notes: list[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)
    close_triggered_at: str | None = None
    odds_aligned_at: str | None = None
    expired_at: str | None = None
    resolved_at: str | None = None
    closed_at: str | None = None

    @property
    def key(self) -> SignalKey:
        return (self.game_id, self.strategy_id)

    def transition(self, to: SignalStatus, note: str | None = None) -> SignalStatus:
        """Move to a new status, stamping the matching timestamp. Returns the old status."""
        if self.status.is_terminal:
            raise ValueError(f"signal {self.id} is already {self.status.value}")
        previous = self.status
        now = utcnow_iso()
        self.status = to
        self.updated_at = now
        stamp = _STAMP_FIELD.get(to)
        if stamp is not None:
            setattr(self, stamp, now)
        if note:
            self.notes.append(note)
        return previous

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "game_id": self.game_id,
            "strategy_id": self.strategy_id,
            "strategy_name": self.strategy_name,
            "trigger_id": self.trigger_id,
            "trigger_name": self.trigger_name,
            "close_trigger_id": self.close_trigger_id,
            "status": self.status.value,
            "leading_team_at_entry": self.leading_team_at_entry,
            "entry_home_score": self.entry_home_score,
            "entry_away_score": self.entry_away_score,
            "entry_quarter": self.entry_quarter,
            "entry_clock": self.entry_clock,
            "entry_spread": self.entry_spread,
            "entry_total": self.entry_total,
            "odds_type": self.odds_type,
            "required_odds": self.required_odds,
            "bet_side": self.bet_side,
            "actual_odds": self.actual_odds,
            "final_home_score": self.final_home_score,
            "final_away_score": self.final_away_score,
            "outcome": self.outcome,
            "outcome_summary": self.outcome_summary,
            "notes": list(self.notes),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "close_triggered_at": self.close_triggered_at,
            "odds_aligned_at": self.odds_aligned_at,
            "expired_at": self.expired_at,
            "resolved_at": self.resolved_at,
            "closed_at": self.closed_at,
        }


@dataclass(slots=True)
class SignalSlot:
    """Handle yielded by SignalStore.locked(). Assign .signal to create or replace."""
    signal: Signal | None


class SignalStore:
    """
    Maps (game_id, strategy_id) -> Signal.

    Terminal signals stay in the store until their game is cleared, which is
    what keeps a strategy from re-entering the same game after a loss or an
    expiry.
    """

    def __init__(self) -> None:
        self._signals: dict[SignalKey, Signal] = {}
        self._locks: dict[SignalKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: SignalKey) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def locked(self, game_id: str, strategy_id: str) -> Iterator[SignalSlot]:
        """
        Hold the key lock for the duration of the block.
        The slot is written back on normal exit; an exception discards the
        assignment (in-place mutation of an existing signal still sticks).
        """
        key = (game_id, strategy_id)
        with self._lock_for(key):
            with self._registry_lock:
                slot = SignalSlot(self._signals.get(key))
            yield slot
            with self._registry_lock:
                if slot.signal is None:
                    self._signals.pop(key, None)
                else:
                    self._signals[key] = slot.signal

    def get(self, game_id: str, strategy_id: str) -> Signal | None:
        with self._registry_lock:
            return self._signals.get((game_id, strategy_id))

    def signals_for_game(self, game_id: str) -> list[Signal]:
        with self._registry_lock:
            return [s for k, s in self._signals.items() if k[0] == game_id]

    def game_ids(self) -> list[str]:
        with self._registry_lock:
            return sorted({k[0] for k in self._signals})

    def all(self) -> list[Signal]:
        with self._registry_lock:
            return list(self._signals.values())

    def active(self) -> list[Signal]:
        return [s for s in self.all() if not s.status.is_terminal]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._signals)

    def clear_game(self, game_id: str) -> list[Signal]:
        """
        Drop every signal of a finished or abandoned game.
        Raises OrphanedSignalError if any of them is still non-terminal; the
        caller must finalize or expire them first.
        """
        with self._registry_lock:
            keys = [k for k in self._signals if k[0] == game_id]
        for key in keys:
            with self._lock_for(key), self._registry_lock:
                signal = self._signals.get(key)
                if signal is not None and not signal.status.is_terminal:
                    raise OrphanedSignalError(
                        f"game {game_id} still has {signal.status.value} signal {signal.id} "
                        f"for strategy {signal.strategy_id}"
                    )

        # Key locks are kept: a caller may already hold or wait on one.
        removed: list[Signal] = []
        for key in keys:
            with self._lock_for(key), self._registry_lock:
                signal = self._signals.pop(key, None)
            if signal is not None:
                removed.append(signal)
        if removed:
            log.info("SignalStore: cleared game=%s (%d signal(s))", game_id, len(removed))
        return removed
