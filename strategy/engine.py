"""
Signal engine: runs every strategy against one snapshot.

The evaluation context is built once per snapshot and shared by all
strategies. A strategy that blows up is logged and skipped; it never stops
the remaining strategies from being evaluated.

Synchronous and I/O free. Callers (the Evaluator and Settler agents, the
backtester) own the strategy catalog and decide when games end.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from models.events import GameSnapshot, PlayerMatchup, PlayerStats, SignalTransition
from models.state import SignalStore
from models.strategy import Strategy
from strategy.context import EvaluationContext, build_context
from strategy.lifecycle import SignalLifecycle, StrategyEvaluation

log = logging.getLogger(__name__)


@dataclass(slots=True)
class EngineTick:
    snapshot: GameSnapshot
    context: EvaluationContext
    evaluations: list[StrategyEvaluation] = field(default_factory=list)

    @property
    def transitions(self) -> list[SignalTransition]:
        return [t for ev in self.evaluations for t in ev.transitions]

    @property
    def duplicate_entries(self) -> list[StrategyEvaluation]:
        return [ev for ev in self.evaluations if ev.duplicate_entry]


class SignalEngine:
    def __init__(
        self,
        store: SignalStore | None = None,
        players: Mapping[str, PlayerStats] | None = None,
    ) -> None:
        self._lifecycle = SignalLifecycle(store if store is not None else SignalStore())
        # team id or display name -> player record
        self._players: dict[str, PlayerStats] = dict(players or {})

    @property
    def store(self) -> SignalStore:
        return self._lifecycle.store

    @property
    def lifecycle(self) -> SignalLifecycle:
        return self._lifecycle

    def set_players(self, players: Mapping[str, PlayerStats]) -> None:
        self._players = dict(players)

    def matchup(self, snapshot: GameSnapshot) -> PlayerMatchup:
        return PlayerMatchup(
            home=self._players.get(snapshot.home_team_id) or self._players.get(snapshot.home_team),
            away=self._players.get(snapshot.away_team_id) or self._players.get(snapshot.away_team),
        )

    def evaluate(self, snapshot: GameSnapshot, strategies: Iterable[Strategy]) -> EngineTick:
        context = build_context(snapshot, self.matchup(snapshot))
        tick = EngineTick(snapshot=snapshot, context=context)
        for strategy in strategies:
            try:
                tick.evaluations.append(self._lifecycle.advance(strategy, snapshot, context))
            except Exception as exc:
                log.exception(
                    "Engine: strategy %s failed on game=%s: %s", strategy.id, snapshot.game_id, exc
                )
        return tick

    def settle_game(self, snapshot: GameSnapshot, strategies: Mapping[str, Strategy]) -> list[SignalTransition]:
        return self._lifecycle.finalize_game(snapshot, strategies)

    def remove_game(self, game_id: str) -> list[SignalTransition]:
        return self._lifecycle.remove_game(game_id)

    def close_orphans(self, strategies: Mapping[str, Strategy]) -> list[SignalTransition]:
        return self._lifecycle.close_orphans(strategies)
