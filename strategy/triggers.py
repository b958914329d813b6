"""
Trigger evaluator.

A trigger fires iff every one of its conditions holds (AND). A trigger with
no conditions never fires. Results keep the actual value behind every
condition so the debug surfaces can show why a trigger did or did not fire.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Iterable

from models.strategy import Trigger, TriggerMode
from strategy.conditions import ConditionCheck, check_condition
from strategy.context import EvaluationContext

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TriggerResult:
    trigger: Trigger
    fired: bool
    matched: tuple[ConditionCheck, ...] = ()
    failed: tuple[ConditionCheck, ...] = ()

    @property
    def trigger_id(self) -> str:
        return self.trigger.id

    def explain(self) -> str:
        parts = [
            f"{'ok' if c.passed else 'FAIL'} {c.condition.describe()} (actual={c.actual!r})"
            for c in (*self.matched, *self.failed)
        ]
        verdict = "fired" if self.fired else "not fired"
        return f"trigger {self.trigger.name!r} {verdict}: " + ("; ".join(parts) or "no conditions")


def evaluate_trigger(trigger: Trigger, context: EvaluationContext) -> TriggerResult:
    if not trigger.conditions:
        log.warning("Trigger %r (%s) has no conditions and will never fire", trigger.name, trigger.id)
        return TriggerResult(trigger=trigger, fired=False)

    matched: list[ConditionCheck] = []
    failed: list[ConditionCheck] = []
    for condition in trigger.conditions:
        check = check_condition(condition, context)
        (matched if check.passed else failed).append(check)

    return TriggerResult(
        trigger=trigger,
        fired=not failed,
        matched=tuple(matched),
        failed=tuple(failed),
    )


def evaluate_triggers(
    triggers: Iterable[Trigger],
    context: EvaluationContext,
    mode: TriggerMode = TriggerMode.SEQUENTIAL,
) -> list[TriggerResult]:
    """
    Evaluate triggers in ascending order.
    Sequential mode stops at the first trigger that fires; parallel evaluates all.
    """
    results: list[TriggerResult] = []
    for trigger in sorted(triggers, key=lambda t: t.order):
        result = evaluate_trigger(trigger, context)
        results.append(result)
        if result.fired and mode is TriggerMode.SEQUENTIAL:
            break
    return results


def first_fired(results: Iterable[TriggerResult]) -> TriggerResult | None:
    return next((r for r in results if r.fired), None)
