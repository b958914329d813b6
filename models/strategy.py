"""
Strategy configuration types.

Everything an operator authors (conditions, rules, triggers, odds and win
requirements) is parsed once by strategy.loader into these frozen values.
The evaluation path never sees raw JSON: a Condition whose field name is not
in the registry keeps field=None and simply never matches.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from strategy.context import ContextField

Scalar = Union[int, float, str, bool]


class Operator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    BETWEEN = "between"
    NOT_BETWEEN = "not_between"
    CONTAINS = "contains"

    @classmethod
    def parse(cls, raw: str) -> "Operator":
        key = raw.strip().lower()
        # Builder UI historically saved the plural spelling
        if key.endswith("_or_equals"):
            key = key[:-1]
        return cls(key)

    @property
    def is_range(self) -> bool:
        return self in (Operator.BETWEEN, Operator.NOT_BETWEEN)


@dataclass(frozen=True, slots=True)
class Condition:
    field_name: str                  # As authored; kept for diagnostics
    operator: Operator
    value: Scalar | None
    value2: Scalar | None = None
    field: "ContextField | None" = None   # None = unknown field, fails closed

    def describe(self) -> str:
        if self.operator.is_range:
            return f"{self.field_name} {self.operator.value} {self.value}..{self.value2}"
        return f"{self.field_name} {self.operator.value} {self.value}"


class RuleType(str, Enum):
    FIRST_HALF_ONLY = "first_half_only"
    SECOND_HALF_ONLY = "second_half_only"
    SPECIFIC_QUARTER = "specific_quarter"
    EXCLUDE_OVERTIME = "exclude_overtime"
    STOP_AT = "stop_at"
    MINIMUM_SCORE = "minimum_score"


@dataclass(frozen=True, slots=True)
class Rule:
    type: RuleType
    value: Scalar | None = None


class TriggerRole(str, Enum):
    ENTRY = "entry"
    CLOSE = "close"


@dataclass(frozen=True, slots=True)
class Trigger:
    id: str
    name: str
    order: int
    role: TriggerRole
    conditions: tuple[Condition, ...] = ()
    is_active: bool = True


class OddsType(str, Enum):
    SPREAD = "spread"
    MONEYLINE = "moneyline"
    TOTAL_OVER = "total_over"
    TOTAL_UNDER = "total_under"


class BetSide(str, Enum):
    LEADING_TEAM = "leading_team"
    TRAILING_TEAM = "trailing_team"
    HOME = "home"
    AWAY = "away"


@dataclass(frozen=True, slots=True)
class OddsRequirement:
    type: OddsType
    value: float
    bet_side: BetSide = BetSide.LEADING_TEAM


class WinRequirementType(str, Enum):
    LEADING_TEAM_WINS = "leading_team_wins"
    HOME_WINS = "home_wins"
    AWAY_WINS = "away_wins"
    FINAL_LEAD_GTE = "final_lead_gte"
    FINAL_LEAD_LTE = "final_lead_lte"


@dataclass(frozen=True, slots=True)
class WinRequirement:
    type: WinRequirementType
    value: float | None = None


class TriggerMode(str, Enum):
    SEQUENTIAL = "sequential"   # stop at first fired trigger
    PARALLEL = "parallel"       # evaluate every trigger


@dataclass(frozen=True, slots=True)
class Strategy:
    """
    One operator-authored betting strategy.

    two_stage is authoritative: the loader validates that a two-stage strategy
    has both entry and close triggers and that a single-stage one has no close
    triggers. A strategy with config_errors is inert and never evaluated.
    """
    id: str
    name: str
    triggers: tuple[Trigger, ...] = ()
    rules: tuple[Rule, ...] = ()
    odds_requirement: OddsRequirement | None = None
    win_requirements: tuple[WinRequirement, ...] = ()
    two_stage: bool = False
    expiry_clock: str = "2:20"
    trigger_mode: TriggerMode = TriggerMode.SEQUENTIAL
    is_active: bool = True
    description: str = ""
    config_errors: tuple[str, ...] = field(default=())

    @property
    def inert(self) -> bool:
        return bool(self.config_errors)

    def entry_triggers(self) -> list[Trigger]:
        return [t for t in self.triggers if t.role is TriggerRole.ENTRY and t.is_active]

    def close_triggers(self) -> list[Trigger]:
        return [t for t in self.triggers if t.role is TriggerRole.CLOSE and t.is_active]

    def trigger_by_id(self, trigger_id: str | None) -> Trigger | None:
        if trigger_id is None:
            return None
        return next((t for t in self.triggers if t.id == trigger_id), None)
