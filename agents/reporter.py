"""
Reporter Agent — Signal Transition Log.

Drains signal_updates and logs one line per transition. Resolutions are
logged with their outcome summary, the same text the alerting collaborator
posts. When a sink path is configured every transition's signal record is
also appended there as a JSON line for the persistence collaborator.
"""

from __future__ import annotations
import asyncio
import json
import logging
from collections import Counter
from pathlib import Path

from bus.event_bus import EventBus
from models.events import SignalTransition

log = logging.getLogger(__name__)

_OUTCOME_MARKS = {"win": "WIN", "loss": "LOSS", "push": "PUSH"}


def format_transition(t: SignalTransition) -> str:
    rec = t.record
    head = (
        f"{rec.get('strategy_name', t.strategy_id)} game={t.game_id} "
        f"{t.from_status or 'new'} -> {t.to_status}"
    )
    if t.outcome is not None:
        return (
            f"[{_OUTCOME_MARKS[t.outcome.outcome]}] {head} "
            f"final={t.outcome.final.home}-{t.outcome.final.away}: {t.outcome.summary}"
        )
    if t.from_status is None:
        return (
            f"{head} at Q{rec['entry_quarter']} {rec['entry_clock']} "
            f"{rec['entry_home_score']}-{rec['entry_away_score']} leader={rec['leading_team_at_entry']}"
        )
    return f"{head}" + (f" ({t.note})" if t.note else "")


class ReporterAgent:
    def __init__(self, bus: EventBus, sink_path: str | Path | None = None) -> None:
        self._bus = bus
        self._sink_path = Path(sink_path) if sink_path else None
        self.counts: Counter[str] = Counter()

    async def run(self) -> None:
        log.info("Reporter agent running (sink=%s)", self._sink_path or "none")
        while True:
            try:
                transition: SignalTransition = await self._bus.signal_updates.get()
                await self.report(transition)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                log.exception("Reporter error: %s", exc)

    async def report(self, transition: SignalTransition) -> None:
        self.counts[transition.to_status] += 1
        level = logging.WARNING if transition.to_status == "closed" else logging.INFO
        log.log(level, "Reporter: %s", format_transition(transition))
        if self._sink_path is not None:
            await asyncio.to_thread(self._append, transition)

    def _append(self, transition: SignalTransition) -> None:
        line = json.dumps({
            "at": transition.at,
            "from": transition.from_status,
            "to": transition.to_status,
            "note": transition.note,
            "signal": transition.record,
        })
        with open(self._sink_path, "a") as f:  # type: ignore[arg-type]
            f.write(line + "\n")

    def summary(self) -> str:
        if not self.counts:
            return "no signal activity"
        return ", ".join(f"{status}={n}" for status, n in sorted(self.counts.items()))
