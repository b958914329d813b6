r"""
Signal lifecycle state machine.

    monitoring -> watching -> bet_taken -> won | lost | pushed
         \            \
          +------------+--> expired          (Q4 expiry clock, or game over)
    any non-terminal  ----> closed           (orphaned, or game removed)

Two-stage strategies open in monitoring and need a close trigger to reach
watching. Single-stage strategies open in watching when they carry an odds
requirement and go straight to bet_taken when they do not. A watching signal
becomes bet_taken as soon as the live line meets the odds requirement; that
check is not subject to the strategy's rules. An entry that would open in
monitoring or watching once the expiry clock has passed opens nothing.

Every step for one (game, strategy) key runs inside SignalStore.locked(), so
the read of the current signal and the transition it leads to are one atomic
step. At most one signal exists per key for the lifetime of a game.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Mapping

from models.events import GameSnapshot, SignalTransition
from models.state import OrphanedSignalError, Signal, SignalStatus, SignalStore
from models.strategy import Strategy, Trigger
from strategy.context import EvaluationContext, parse_clock
from strategy.odds import odds_aligned
from strategy.outcome import OutcomeResult, evaluate_outcome, format_outcome
from strategy.rules import RuleGateResult, passes_rules
from strategy.triggers import TriggerResult, evaluate_triggers, first_fired

log = logging.getLogger(__name__)

_OUTCOME_STATUS = {
    "win": SignalStatus.WON,
    "loss": SignalStatus.LOST,
    "push": SignalStatus.PUSHED,
}

_FINALIZE_ATTEMPTS = 3


@dataclass(slots=True)
class StrategyEvaluation:
    """What happened for one strategy on one snapshot. Diagnostic only."""
    game_id: str
    strategy_id: str
    skipped: str | None = None
    gate: RuleGateResult | None = None
    trigger_results: list[TriggerResult] = field(default_factory=list)
    transitions: list[SignalTransition] = field(default_factory=list)
    duplicate_entry: bool = False
    signal: dict | None = None


def past_expiry(expiry_clock: str, context: EvaluationContext) -> bool:
    """Q4 expiry clock reached or passed, or the game is in overtime."""
    if context.quarter > 4:
        return True
    return context.quarter == 4 and context.time_remaining_seconds <= parse_clock(expiry_clock)


def _opening_status(strategy: Strategy) -> SignalStatus:
    if strategy.two_stage:
        return SignalStatus.MONITORING
    if strategy.odds_requirement is not None:
        return SignalStatus.WATCHING
    return SignalStatus.BET_TAKEN


def _transition(signal: Signal, to: SignalStatus, note: str | None = None,
                outcome: OutcomeResult | None = None) -> SignalTransition:
    previous = signal.transition(to, note)
    log.info(
        "Signal %s %s -> %s game=%s strategy=%s%s",
        signal.id, previous.value, to.value, signal.game_id, signal.strategy_id,
        f" ({note})" if note else "",
    )
    return SignalTransition(
        signal_id=signal.id,
        game_id=signal.game_id,
        strategy_id=signal.strategy_id,
        from_status=previous.value,
        to_status=to.value,
        at=signal.updated_at,
        note=note,
        record=signal.to_record(),
        outcome=outcome,
    )


def _created(signal: Signal) -> SignalTransition:
    log.info(
        "Signal %s opened as %s game=%s strategy=%s trigger=%s leader=%s",
        signal.id, signal.status.value, signal.game_id, signal.strategy_id,
        signal.trigger_name, signal.leading_team_at_entry,
    )
    return SignalTransition(
        signal_id=signal.id,
        game_id=signal.game_id,
        strategy_id=signal.strategy_id,
        from_status=None,
        to_status=signal.status.value,
        at=signal.created_at,
        note=None,
        record=signal.to_record(),
    )


class SignalLifecycle:
    """Owns every transition on the SignalStore."""

    def __init__(self, store: SignalStore) -> None:
        self._store = store

    @property
    def store(self) -> SignalStore:
        return self._store

    # ------------------------------------------------------------------
    # Per snapshot
    # ------------------------------------------------------------------

    def advance(self, strategy: Strategy, snapshot: GameSnapshot, context: EvaluationContext) -> StrategyEvaluation:
        ev = StrategyEvaluation(game_id=snapshot.game_id, strategy_id=strategy.id)
        if not strategy.is_active:
            ev.skipped = "strategy inactive"
            return ev
        if strategy.inert:
            ev.skipped = "strategy has configuration errors: " + "; ".join(strategy.config_errors)
            return ev
        if not snapshot.is_live:
            ev.skipped = f"game status is {snapshot.status}"
            return ev

        with self._store.locked(snapshot.game_id, strategy.id) as slot:
            opened = self._step(strategy, snapshot, context, slot.signal, ev)
            if opened is not None:
                slot.signal = opened
            if slot.signal is not None:
                ev.signal = slot.signal.to_record()
        return ev

    def _step(self, strategy: Strategy, snapshot: GameSnapshot, context: EvaluationContext,
              signal: Signal | None, ev: StrategyEvaluation) -> Signal | None:
        """One tick for one key. Returns the signal opened this tick, if any."""
        if signal is not None:
            if signal.status.is_terminal:
                ev.skipped = f"signal already {signal.status.value}"
                return None
            if strategy.trigger_by_id(signal.trigger_id) is None:
                ev.transitions.append(_transition(
                    signal, SignalStatus.CLOSED,
                    f"orphaned: trigger {signal.trigger_id} no longer exists on strategy {strategy.id}",
                ))
                return None
            if signal.status.is_pending and past_expiry(strategy.expiry_clock, context):
                ev.transitions.append(_transition(
                    signal, SignalStatus.EXPIRED,
                    f"expiry reached at Q{context.quarter} {snapshot.clock} "
                    f"(limit Q4 {strategy.expiry_clock}) before odds aligned",
                ))
                return None
            if signal.status is SignalStatus.WATCHING:
                self._try_align(strategy, snapshot, signal, ev)

        ev.gate = passes_rules(strategy.rules, context)
        if not ev.gate.passed:
            return None

        if signal is None:
            return self._try_open(strategy, snapshot, context, ev)

        if signal.status is SignalStatus.MONITORING:
            close_ctx = context.with_previous_leader(signal.leading_team_at_entry)
            results = evaluate_triggers(strategy.close_triggers(), close_ctx, strategy.trigger_mode)
            ev.trigger_results.extend(results)
            fired = first_fired(results)
            if fired is not None:
                signal.close_trigger_id = fired.trigger.id
                if strategy.odds_requirement is None:
                    ev.transitions.append(_transition(
                        signal, SignalStatus.BET_TAKEN,
                        f"close trigger {fired.trigger.name!r} fired; no odds requirement",
                    ))
                    return None
                ev.transitions.append(_transition(
                    signal, SignalStatus.WATCHING, f"close trigger {fired.trigger.name!r} fired",
                ))
                self._try_align(strategy, snapshot, signal, ev)
                return None

        entry = evaluate_triggers(strategy.entry_triggers(), context, strategy.trigger_mode)
        if first_fired(entry) is not None:
            ev.duplicate_entry = True
        return None

    def _try_open(self, strategy: Strategy, snapshot: GameSnapshot, context: EvaluationContext,
                  ev: StrategyEvaluation) -> Signal | None:
        results = evaluate_triggers(strategy.entry_triggers(), context, strategy.trigger_mode)
        ev.trigger_results.extend(results)
        fired = first_fired(results)
        if fired is None:
            return None
        if _opening_status(strategy).is_pending and past_expiry(strategy.expiry_clock, context):
            ev.skipped = (
                f"entry trigger {fired.trigger.name!r} fired at Q{context.quarter} {snapshot.clock}, "
                f"past expiry (limit Q4 {strategy.expiry_clock}); no signal opened"
            )
            log.debug("Lifecycle: game=%s strategy=%s %s", snapshot.game_id, strategy.id, ev.skipped)
            return None

        signal = self._new_signal(strategy, snapshot, context, fired.trigger)
        ev.transitions.append(_created(signal))
        if signal.status is SignalStatus.WATCHING:
            self._try_align(strategy, snapshot, signal, ev)
        return signal

    def _new_signal(self, strategy: Strategy, snapshot: GameSnapshot, context: EvaluationContext,
                    trigger: Trigger) -> Signal:
        odds = strategy.odds_requirement
        status = _opening_status(strategy)

        signal = Signal(
            game_id=snapshot.game_id,
            strategy_id=strategy.id,
            strategy_name=strategy.name,
            trigger_id=trigger.id,
            trigger_name=trigger.name,
            status=status,
            leading_team_at_entry=None if context.leading_team == "tie" else context.leading_team,
            entry_home_score=snapshot.home_score,
            entry_away_score=snapshot.away_score,
            entry_quarter=snapshot.quarter,
            entry_clock=snapshot.clock,
            entry_spread=snapshot.spread,
            entry_total=snapshot.total_line,
            odds_type=odds.type.value if odds else None,
            required_odds=odds.value if odds else None,
            bet_side=odds.bet_side.value if odds else None,
        )
        if status is SignalStatus.BET_TAKEN:
            signal.odds_aligned_at = signal.created_at
        return signal

    def _try_align(self, strategy: Strategy, snapshot: GameSnapshot, signal: Signal,
                   ev: StrategyEvaluation) -> None:
        odds = strategy.odds_requirement
        if odds is None:
            ev.transitions.append(_transition(signal, SignalStatus.BET_TAKEN, "no odds requirement"))
            return
        aligned, actual = odds_aligned(snapshot, odds, signal.leading_team_at_entry)
        if not aligned:
            return
        signal.actual_odds = actual
        signal.bet_side = odds.bet_side.value
        ev.transitions.append(_transition(
            signal, SignalStatus.BET_TAKEN,
            f"odds aligned: {odds.type.value} {actual} vs required {odds.value} ({odds.bet_side.value})",
        ))

    # ------------------------------------------------------------------
    # Per game
    # ------------------------------------------------------------------

    def finalize_game(self, snapshot: GameSnapshot, strategies: Mapping[str, Strategy]) -> list[SignalTransition]:
        """
        Grade every bet_taken signal of a finished game, expire the pending
        ones, then clear the game from the store.
        """
        transitions: list[SignalTransition] = []
        for _ in range(_FINALIZE_ATTEMPTS):
            for signal in self._store.signals_for_game(snapshot.game_id):
                with self._store.locked(signal.game_id, signal.strategy_id) as slot:
                    current = slot.signal
                    if current is None or current.status.is_terminal:
                        continue
                    transitions.append(self._settle(current, snapshot, strategies.get(current.strategy_id)))
            try:
                self._store.clear_game(snapshot.game_id)
                return transitions
            except OrphanedSignalError as exc:
                # A late snapshot opened a signal between the settle pass and the clear
                log.warning("finalize_game retrying: %s", exc)
        raise OrphanedSignalError(f"could not finalize game {snapshot.game_id}")

    def _settle(self, signal: Signal, snapshot: GameSnapshot, strategy: Strategy | None) -> SignalTransition:
        if signal.status.is_pending:
            return _transition(
                signal, SignalStatus.EXPIRED,
                f"game ended at {snapshot.home_score}-{snapshot.away_score} before odds aligned",
            )
        if strategy is None:
            return _transition(
                signal, SignalStatus.CLOSED,
                f"orphaned: strategy {signal.strategy_id} no longer exists; cannot grade",
            )

        result = evaluate_outcome(signal, snapshot, strategy.win_requirements, strategy.odds_requirement)
        signal.final_home_score = result.final.home
        signal.final_away_score = result.final.away
        signal.outcome = result.outcome
        signal.outcome_summary = result.summary
        log.info("%s", format_outcome(signal, result))
        return _transition(signal, _OUTCOME_STATUS[result.outcome], result.summary, outcome=result)

    def remove_game(self, game_id: str, reason: str = "game removed from tracking") -> list[SignalTransition]:
        """Stop tracking a game that never produced a final snapshot."""
        transitions: list[SignalTransition] = []
        for signal in self._store.signals_for_game(game_id):
            with self._store.locked(signal.game_id, signal.strategy_id) as slot:
                current = slot.signal
                if current is None or current.status.is_terminal:
                    continue
                to = SignalStatus.EXPIRED if current.status.is_pending else SignalStatus.CLOSED
                transitions.append(_transition(current, to, reason))
        self._store.clear_game(game_id)
        return transitions

    def close_orphans(self, strategies: Mapping[str, Strategy]) -> list[SignalTransition]:
        """Close in-flight signals whose strategy or trigger has disappeared from the catalog."""
        transitions: list[SignalTransition] = []
        for signal in self._store.active():
            with self._store.locked(signal.game_id, signal.strategy_id) as slot:
                current = slot.signal
                if current is None or current.status.is_terminal:
                    continue
                strategy = strategies.get(current.strategy_id)
                if strategy is None:
                    note = f"orphaned: strategy {current.strategy_id} no longer exists"
                elif strategy.trigger_by_id(current.trigger_id) is None:
                    note = f"orphaned: trigger {current.trigger_id} no longer exists on strategy {strategy.id}"
                else:
                    continue
                transitions.append(_transition(current, SignalStatus.CLOSED, note))
        return transitions

