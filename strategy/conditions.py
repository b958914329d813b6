"""
Condition evaluator.

A condition compares one context field against a configured value. Every
failure path (unknown field, field not available for this game, non-numeric
value under a numeric operator) evaluates to False; nothing here raises.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass

from models.strategy import Condition, Operator, Scalar
from strategy.context import BOOLEAN_FIELDS, EvaluationContext, FieldValue

log = logging.getLogger(__name__)

_NUMERIC_OPERATORS = frozenset({
    Operator.GREATER_THAN,
    Operator.LESS_THAN,
    Operator.GREATER_THAN_OR_EQUAL,
    Operator.LESS_THAN_OR_EQUAL,
    Operator.BETWEEN,
    Operator.NOT_BETWEEN,
})


@dataclass(frozen=True, slots=True)
class ConditionCheck:
    """Diagnostic result: the condition, the value it actually saw, and the verdict."""
    condition: Condition
    actual: FieldValue
    passed: bool


def to_number(value: Scalar | None) -> float | None:
    """Numeric view of a configured value; numeric strings count, booleans do not."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def _is_number(value: FieldValue) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_bool(value: Scalar | None) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    return None


def _equals(condition: Condition, actual: FieldValue) -> bool:
    if condition.field in BOOLEAN_FIELDS:
        return _to_bool(condition.value) is actual
    if actual == condition.value:
        return True
    if _is_number(actual):
        expected = to_number(condition.value)
        return expected is not None and actual == expected
    if isinstance(actual, str) and condition.value is not None:
        return actual == str(condition.value).strip()
    return False


def _compare(condition: Condition, actual: FieldValue) -> bool:
    op = condition.operator
    if op is Operator.EQUALS:
        return _equals(condition, actual)
    if op is Operator.NOT_EQUALS:
        return not _equals(condition, actual)
    if op is Operator.CONTAINS:
        return isinstance(actual, str) and condition.value is not None and str(condition.value) in actual

    if op not in _NUMERIC_OPERATORS or not _is_number(actual):
        return False
    value = to_number(condition.value)
    if value is None:
        return False
    if op is Operator.GREATER_THAN:
        return actual > value
    if op is Operator.LESS_THAN:
        return actual < value
    if op is Operator.GREATER_THAN_OR_EQUAL:
        return actual >= value
    if op is Operator.LESS_THAN_OR_EQUAL:
        return actual <= value

    value2 = to_number(condition.value2)
    if value2 is None:
        return False
    inside = value <= actual <= value2
    return inside if op is Operator.BETWEEN else not inside


def check_condition(condition: Condition, context: EvaluationContext) -> ConditionCheck:
    if condition.field is None:
        log.debug("Unknown field %r in condition: failing closed", condition.field_name)
        return ConditionCheck(condition, None, False)
    actual = context.get(condition.field)
    if actual is None:
        # Field exists but has no value for this game (no odds, no player record)
        return ConditionCheck(condition, None, False)
    return ConditionCheck(condition, actual, _compare(condition, actual))


def evaluate_condition(condition: Condition, context: EvaluationContext) -> bool:
    return check_condition(condition, context).passed
