from __future__ import annotations

from models.events import GameSnapshot, QuarterScores, ScorePair
from models.strategy import (
    Condition,
    OddsRequirement,
    Operator,
    Rule,
    Strategy,
    Trigger,
    TriggerMode,
    TriggerRole,
    WinRequirement,
)
from strategy.context import ContextField


def snap(
    home: int = 50,
    away: int = 40,
    quarter: int = 3,
    clock: str = "5:00",
    game_id: str = "g1",
    status: str = "live",
    **kw,
) -> GameSnapshot:
    kw.setdefault("home_team", "Lakers (Alex)")
    kw.setdefault("away_team", "Celtics (Sam)")
    return GameSnapshot.make(
        game_id=game_id,
        home_score=home,
        away_score=away,
        quarter=quarter,
        clock=clock,
        status=status,  # type: ignore[arg-type]
        **kw,
    )


def final(home: int, away: int, game_id: str = "g1", **kw) -> GameSnapshot:
    return snap(home, away, quarter=4, clock="0:00", game_id=game_id, status="final",
                final=ScorePair(home, away), **kw)


def quarters(*pairs: tuple[int, int]) -> QuarterScores:
    padded = list(pairs) + [(0, 0)] * (4 - len(pairs))
    return QuarterScores(*(ScorePair(h, a) for h, a in padded))


def cond(field: str, op: str, value=None, value2=None) -> Condition:
    return Condition(
        field_name=field,
        operator=Operator.parse(op),
        value=value,
        value2=value2,
        field=ContextField.lookup(field),
    )


def trigger(*conditions: Condition, id: str = "t-entry", order: int = 1,
            role: TriggerRole = TriggerRole.ENTRY, name: str | None = None,
            is_active: bool = True) -> Trigger:
    return Trigger(
        id=id,
        name=name or id,
        order=order,
        role=role,
        conditions=tuple(conditions),
        is_active=is_active,
    )


def strategy(
    *triggers: Trigger,
    id: str = "s1",
    rules: tuple[Rule, ...] = (),
    odds: OddsRequirement | None = None,
    wins: tuple[WinRequirement, ...] = (),
    two_stage: bool = False,
    expiry_clock: str = "2:20",
    mode: TriggerMode = TriggerMode.SEQUENTIAL,
    is_active: bool = True,
    config_errors: tuple[str, ...] = (),
) -> Strategy:
    if not triggers:
        triggers = (trigger(cond("quarter", "equals", 3)),)
    return Strategy(
        id=id,
        name=f"Strategy {id}",
        triggers=tuple(triggers),
        rules=rules,
        odds_requirement=odds,
        win_requirements=wins,
        two_stage=two_stage,
        expiry_clock=expiry_clock,
        trigger_mode=mode,
        is_active=is_active,
        config_errors=config_errors,
    )
