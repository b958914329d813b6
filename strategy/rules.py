"""
Strategy-level rule gate.

Rules are evaluated in the order they were authored and the first failing
rule short-circuits: a strategy blocked for the current game phase never has
its triggers looked at. An empty rule list always passes.

A rule whose value cannot be interpreted is skipped with a warning; the
loader normally rejects such rules before they get here.
"""

from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from typing import Sequence

from models.strategy import Rule, RuleType, Scalar
from strategy.conditions import to_number
from strategy.context import EvaluationContext, format_clock

log = logging.getLogger(__name__)

_STOP_AT_RE = re.compile(r"Q(\d+)\s+(\d+):(\d+)", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class RuleGateResult:
    passed: bool
    failed_rule: Rule | None = None
    reason: str | None = None


PASSED = RuleGateResult(passed=True)


def parse_stop_at(value: Scalar | None) -> tuple[int, int] | None:
    """'Q4 2:20' -> (4, 140). None if the value is not in that form."""
    if not isinstance(value, str):
        return None
    m = _STOP_AT_RE.search(value)
    if m is None:
        return None
    return int(m.group(1)), int(m.group(2)) * 60 + int(m.group(3))


def _as_int(value: Scalar | None) -> int | None:
    number = to_number(value)
    if number is None or number != int(number):
        return None
    return int(number)


def _check(rule: Rule, context: EvaluationContext) -> str | None:
    """Failure reason for one rule, or None when it passes (or is skipped)."""
    quarter = context.quarter

    if rule.type is RuleType.FIRST_HALF_ONLY:
        if quarter > 2:
            return f"first_half_only: blocked in Q{quarter} (first half only)"
        return None

    if rule.type is RuleType.SECOND_HALF_ONLY:
        if quarter < 3:
            return f"second_half_only: blocked in Q{quarter} (second half only)"
        return None

    if rule.type is RuleType.SPECIFIC_QUARTER:
        required = _as_int(rule.value)
        if required is None:
            log.warning("specific_quarter rule has invalid value %r: skipped", rule.value)
            return None
        if quarter != required:
            return f"specific_quarter: game is in Q{quarter} (required Q{required})"
        return None

    if rule.type is RuleType.EXCLUDE_OVERTIME:
        if quarter > 4:
            return f"exclude_overtime: game is in Q{quarter} (overtime not allowed)"
        return None

    if rule.type is RuleType.STOP_AT:
        target = parse_stop_at(rule.value)
        if target is None:
            log.warning("stop_at rule has invalid value %r: skipped", rule.value)
            return None
        target_quarter, target_seconds = target
        stop = f"Q{target_quarter} {format_clock(target_seconds)}"
        if quarter > target_quarter:
            return f"stop_at: game is past Q{target_quarter} (stopped at {stop})"
        if quarter == target_quarter and context.time_remaining_seconds < target_seconds:
            return (
                f"stop_at: game has passed {stop} "
                f"({context.snapshot.clock} remaining)"
            )
        return None

    if rule.type is RuleType.MINIMUM_SCORE:
        threshold = to_number(rule.value)
        if threshold is None:
            log.warning("minimum_score rule has invalid value %r: skipped", rule.value)
            return None
        total = context.total_score
        if total < threshold:
            shown = int(threshold) if threshold == int(threshold) else threshold
            return f"minimum_score: total score {total} is below threshold {shown}"
        return None

    log.warning("Unknown rule type %r: skipped", rule.type)
    return None


def passes_rules(rules: Sequence[Rule] | None, context: EvaluationContext) -> RuleGateResult:
    if not rules:
        return PASSED
    for rule in rules:
        reason = _check(rule, context)
        if reason is not None:
            return RuleGateResult(passed=False, failed_rule=rule, reason=reason)
    return PASSED
