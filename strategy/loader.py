"""
Strategy loader: raw catalog records -> validated Strategy values.

Records come from the persistence collaborator, where conditions, rules and
win requirements are stored as JSON strings; native lists (YAML catalogs)
are accepted too. Everything is parsed and validated here, once, so the
evaluation path only ever sees typed values.

Degradation, never propagation:
  - malformed conditions      -> that trigger gets no conditions (never fires)
  - malformed rules           -> strategy inert (config_errors set)
  - malformed win requirements -> none; grading falls back to the odds requirement
  - malformed odds requirement -> none
  - two_stage inconsistent with the trigger roles -> strategy inert
Each case is logged as a warning. One broken strategy never affects another.
"""

from __future__ import annotations
import json
import logging
from typing import Any, Callable, Iterable, TypeVar

from models.strategy import (
    BetSide,
    Condition,
    OddsRequirement,
    OddsType,
    Operator,
    Rule,
    RuleType,
    Strategy,
    Trigger,
    TriggerMode,
    TriggerRole,
    WinRequirement,
    WinRequirementType,
)
from strategy.conditions import to_number
from strategy.context import ContextField, parse_clock
from strategy.rules import parse_stop_at

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_EXPIRY_CLOCK = "2:20"


class ConfigError(ValueError):
    """One configuration entry could not be parsed."""


def _first(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _json_list(raw: Any, what: str) -> list[Any]:
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{what}: invalid JSON ({exc.msg})") from exc
    if not isinstance(raw, list):
        raise ConfigError(f"{what}: expected a list, got {type(raw).__name__}")
    return raw


def parse_list(raw: Any, parse_one: Callable[[Any], T], what: str, owner: str) -> tuple[list[T], str | None]:
    """
    Parse a JSON-or-list config field. Any bad entry discards the whole list.
    Returns (items, error message or None).
    """
    try:
        return [parse_one(item) for item in _json_list(raw, what)], None
    except (ConfigError, ValueError, TypeError, KeyError) as exc:
        message = f"{what} for {owner} ignored: {exc}"
        log.warning("Loader: %s", message)
        return [], message


def _scalar(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    raise ConfigError(f"value {value!r} is not a scalar")


def parse_condition(raw: Any) -> Condition:
    if not isinstance(raw, dict):
        raise ConfigError(f"condition must be an object, got {raw!r}")
    name = raw.get("field")
    if not isinstance(name, str) or not name:
        raise ConfigError(f"condition has no field: {raw!r}")
    op_raw = raw.get("operator")
    try:
        operator = Operator.parse(str(op_raw))
    except ValueError:
        raise ConfigError(f"unknown operator {op_raw!r}") from None

    value = _scalar(raw.get("value"))
    value2 = _scalar(raw.get("value2"))
    if operator.is_range and (value is None or value2 is None):
        raise ConfigError(f"{operator.value} on {name} needs value and value2")

    field = ContextField.lookup(name)
    if field is None:
        # Could be a field from a newer release; it simply never matches
        log.warning("Loader: condition references unknown field %r; it will never match", name)
    return Condition(field_name=name, operator=operator, value=value, value2=value2, field=field)


def parse_rule(raw: Any) -> Rule:
    if not isinstance(raw, dict):
        raise ConfigError(f"rule must be an object, got {raw!r}")
    try:
        kind = RuleType(str(raw.get("type")))
    except ValueError:
        raise ConfigError(f"unknown rule type {raw.get('type')!r}") from None
    value = _scalar(raw.get("value"))

    if kind is RuleType.SPECIFIC_QUARTER:
        number = to_number(value)
        if number is None or number != int(number) or number < 1:
            raise ConfigError(f"specific_quarter needs a quarter number, got {value!r}")
    elif kind is RuleType.STOP_AT:
        if parse_stop_at(value) is None:
            raise ConfigError(f"stop_at needs 'Q<N> M:SS', got {value!r}")
    elif kind is RuleType.MINIMUM_SCORE:
        if to_number(value) is None:
            raise ConfigError(f"minimum_score needs a number, got {value!r}")
    return Rule(type=kind, value=value)


def parse_win_requirement(raw: Any) -> WinRequirement:
    if not isinstance(raw, dict):
        raise ConfigError(f"win requirement must be an object, got {raw!r}")
    try:
        kind = WinRequirementType(str(raw.get("type")))
    except ValueError:
        raise ConfigError(f"unknown win requirement type {raw.get('type')!r}") from None
    value = to_number(_scalar(raw.get("value")))
    if kind in (WinRequirementType.FINAL_LEAD_GTE, WinRequirementType.FINAL_LEAD_LTE) and value is None:
        raise ConfigError(f"{kind.value} needs a numeric value")
    return WinRequirement(type=kind, value=value)


def parse_odds_requirement(raw: dict[str, Any]) -> OddsRequirement | None:
    """
    Accepts a nested odds_requirement object or the flat
    odds_type / odds_value / bet_side columns.
    """
    nested = _first(raw, "odds_requirement", "oddsRequirement")
    if isinstance(nested, str):
        nested = json.loads(nested) if nested.strip() else None
    if isinstance(nested, dict):
        kind = nested.get("type")
        value = nested.get("value")
        side = _first(nested, "bet_side", "betSide")
    else:
        kind = _first(raw, "odds_type", "oddsType")
        value = _first(raw, "odds_value", "oddsValue")
        side = _first(raw, "bet_side", "betSide")
    if kind is None or value is None:
        return None

    number = to_number(value)
    if number is None:
        raise ConfigError(f"odds value {value!r} is not a number")
    try:
        return OddsRequirement(
            type=OddsType(str(kind)),
            value=number,
            bet_side=BetSide(str(side)) if side else BetSide.LEADING_TEAM,
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from None


def parse_trigger(raw: dict[str, Any], owner: str) -> Trigger:
    trigger_id = str(_first(raw, "id", default=""))
    if not trigger_id:
        raise ConfigError(f"trigger without id on {owner}")
    name = str(_first(raw, "name", default="Unnamed Trigger"))
    role_raw = str(_first(raw, "role", "entry_or_close", "entryOrClose", default="entry")).lower()
    try:
        role = TriggerRole(role_raw)
    except ValueError:
        raise ConfigError(f"trigger {trigger_id} has unknown role {role_raw!r}") from None

    conditions, _ = parse_list(raw.get("conditions"), parse_condition, "conditions", f"trigger {trigger_id}")
    return Trigger(
        id=trigger_id,
        name=name,
        order=int(to_number(_first(raw, "order", default=0)) or 0),
        role=role,
        conditions=tuple(conditions),
        is_active=_as_bool(_first(raw, "is_active", "isActive"), default=True),
    )


def load_strategy(raw: dict[str, Any], default_expiry: str = DEFAULT_EXPIRY_CLOCK) -> Strategy:
    """Build one Strategy. Never raises for bad content; bad pieces are dropped or make it inert."""
    strategy_id = str(_first(raw, "id", default=""))
    if not strategy_id:
        raise ConfigError("strategy without id")
    name = str(_first(raw, "name", default="Unnamed Strategy"))
    owner = f"strategy {strategy_id} ({name})"
    errors: list[str] = []

    triggers: list[Trigger] = []
    for item in _first(raw, "triggers", default=[]) or []:
        try:
            triggers.append(parse_trigger(item, owner))
        except (ConfigError, ValueError, TypeError, AttributeError) as exc:
            log.warning("Loader: trigger dropped from %s: %s", owner, exc)
    triggers.sort(key=lambda t: t.order)

    rules, rule_error = parse_list(raw.get("rules"), parse_rule, "rules", owner)
    if rule_error:
        errors.append(rule_error)

    win_requirements, _ = parse_list(
        _first(raw, "win_requirements", "winRequirements"), parse_win_requirement, "win requirements", owner
    )

    try:
        odds_requirement = parse_odds_requirement(raw)
    except (ConfigError, ValueError) as exc:
        log.warning("Loader: odds requirement for %s ignored: %s", owner, exc)
        odds_requirement = None

    has_entry = any(t.role is TriggerRole.ENTRY for t in triggers)
    has_close = any(t.role is TriggerRole.CLOSE for t in triggers)
    two_stage = _as_bool(_first(raw, "two_stage", "is_two_stage", "isTwoStage"), default=False)
    if two_stage and not (has_entry and has_close):
        errors.append(
            f"marked two-stage but entry={'yes' if has_entry else 'no'} close={'yes' if has_close else 'no'}"
        )
    elif not two_stage and has_close:
        errors.append("single-stage strategy has close triggers; set two_stage to use them")

    expiry = str(_first(raw, "expiry_clock", "expiry_time_q4", "expiryTimeQ4", default=default_expiry))
    if parse_clock(expiry) == 0 and expiry.strip() not in ("0", "0:00"):
        log.warning("Loader: %s has unreadable expiry clock %r; using %s", owner, expiry, default_expiry)
        expiry = default_expiry

    mode_raw = str(_first(raw, "trigger_mode", "triggerMode", default=TriggerMode.SEQUENTIAL.value))
    try:
        mode = TriggerMode(mode_raw)
    except ValueError:
        log.warning("Loader: %s has unknown trigger mode %r; using sequential", owner, mode_raw)
        mode = TriggerMode.SEQUENTIAL

    is_active = _as_bool(_first(raw, "is_active", "isActive"), default=False)
    if errors:
        log.warning("Loader: %s is inert: %s", owner, "; ".join(errors))
    elif is_active and not triggers:
        log.warning("Loader: active %s has no triggers configured", owner)

    return Strategy(
        id=strategy_id,
        name=name,
        description=str(_first(raw, "description", default="")),
        triggers=tuple(triggers),
        rules=tuple(rules),
        odds_requirement=odds_requirement,
        win_requirements=tuple(win_requirements),
        two_stage=two_stage,
        expiry_clock=expiry,
        trigger_mode=mode,
        is_active=is_active,
        config_errors=tuple(errors),
    )


def load_strategies(
    records: Iterable[dict[str, Any]], default_expiry: str = DEFAULT_EXPIRY_CLOCK
) -> list[Strategy]:
    strategies: list[Strategy] = []
    seen: set[str] = set()
    for raw in records:
        try:
            strategy = load_strategy(raw, default_expiry)
        except (ConfigError, AttributeError, TypeError) as exc:
            log.warning("Loader: strategy record skipped: %s", exc)
            continue
        if strategy.id in seen:
            log.warning("Loader: duplicate strategy id %s; keeping the first", strategy.id)
            continue
        seen.add(strategy.id)
        strategies.append(strategy)
    log.info(
        "Loader: %d strateg%s loaded (%d active, %d inert)",
        len(strategies), "y" if len(strategies) == 1 else "ies",
        sum(1 for s in strategies if s.is_active and not s.inert),
        sum(1 for s in strategies if s.inert),
    )
    return strategies
