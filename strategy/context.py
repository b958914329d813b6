"""
Evaluation context builder.

Turns one GameSnapshot (plus the optional player side table and the leader
recorded when a signal was opened) into a flat, read-only set of named
fields that conditions and rules are evaluated against.

Field lookup goes through FIELD_RESOLVERS, a closed registry from ContextField
to a resolver function. Operator-authored configuration may name a field by
its snake_case id ("time_remaining_seconds") or by the camelCase alias the
strategy builder has always written ("timeRemainingSeconds"); anything else
resolves to None and every condition on it fails closed.

Pure and allocation-light: safe to call from any number of threads.
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Literal, Union

from models.events import GameSnapshot, PlayerMatchup, PlayerStats

Leader = Literal["home", "away", "tie"]
FieldValue = Union[int, float, str, bool, None]

_CLOCK_RE = re.compile(r"^\s*(\d+)(?::(\d+))?")


def parse_clock(clock: str | None) -> int:
    """
    "M:SS" -> seconds remaining in the quarter.
    A bare minutes value ("5") reads as 5:00. Malformed input is 0, never an error.
    """
    if not clock:
        return 0
    m = _CLOCK_RE.match(str(clock))
    if m is None:
        return 0
    return int(m.group(1)) * 60 + int(m.group(2) or 0)


def format_clock(seconds: int) -> str:
    return f"{seconds // 60}:{seconds % 60:02d}"


def leader_of(home_score: int, away_score: int) -> Leader:
    if home_score > away_score:
        return "home"
    if away_score > home_score:
        return "away"
    return "tie"


class ContextField(str, Enum):
    QUARTER = "quarter"
    TIME_REMAINING = "time_remaining"
    TIME_REMAINING_SECONDS = "time_remaining_seconds"
    HOME_TEAM = "home_team"
    AWAY_TEAM = "away_team"
    HOME_SCORE = "home_score"
    AWAY_SCORE = "away_score"
    TOTAL_SCORE = "total_score"
    SCORE_DIFFERENTIAL = "score_differential"
    ABS_SCORE_DIFFERENTIAL = "abs_score_differential"
    CURRENT_LEAD = "current_lead"
    HOME_LEADING = "home_leading"
    AWAY_LEADING = "away_leading"
    LEADING_TEAM = "leading_team"
    STATUS = "status"
    SPREAD = "spread"
    TOTAL = "total"
    HALFTIME_LEAD = "halftime_lead"

    Q1_HOME = "q1_home"
    Q1_AWAY = "q1_away"
    Q1_TOTAL = "q1_total"
    Q1_DIFFERENTIAL = "q1_differential"
    Q2_HOME = "q2_home"
    Q2_AWAY = "q2_away"
    Q2_TOTAL = "q2_total"
    Q2_DIFFERENTIAL = "q2_differential"
    Q3_HOME = "q3_home"
    Q3_AWAY = "q3_away"
    Q3_TOTAL = "q3_total"
    Q3_DIFFERENTIAL = "q3_differential"
    Q4_HOME = "q4_home"
    Q4_AWAY = "q4_away"
    Q4_TOTAL = "q4_total"
    Q4_DIFFERENTIAL = "q4_differential"
    HALFTIME_HOME = "halftime_home"
    HALFTIME_AWAY = "halftime_away"
    HALFTIME_TOTAL = "halftime_total"
    HALFTIME_DIFFERENTIAL = "halftime_differential"
    FIRST_HALF_TOTAL = "first_half_total"
    SECOND_HALF_TOTAL = "second_half_total"

    HOME_PLAYER_WIN_PCT = "home_player_win_pct"
    AWAY_PLAYER_WIN_PCT = "away_player_win_pct"
    HOME_PLAYER_PPM = "home_player_ppm"
    AWAY_PLAYER_PPM = "away_player_ppm"
    HOME_PLAYER_GAMES = "home_player_games"
    AWAY_PLAYER_GAMES = "away_player_games"
    HOME_PLAYER_FORM_WINS = "home_player_form_wins"
    AWAY_PLAYER_FORM_WINS = "away_player_form_wins"
    WIN_PCT_DIFF = "win_pct_diff"
    PPM_DIFF = "ppm_diff"
    EXPERIENCE_DIFF = "experience_diff"

    LEADING_TEAM_SPREAD = "leading_team_spread"
    LOSING_TEAM_SPREAD = "losing_team_spread"
    LEADING_TEAM_MONEYLINE = "leading_team_moneyline"
    LOSING_TEAM_MONEYLINE = "losing_team_moneyline"
    HOME_SPREAD = "home_spread"
    AWAY_SPREAD = "away_spread"
    HOME_MONEYLINE = "home_moneyline"
    AWAY_MONEYLINE = "away_moneyline"

    PREV_LEADER_STILL_LEADS = "prev_leader_still_leads"
    PREV_LEADER_CURRENT_SCORE = "prev_leader_current_score"
    PREV_TRAILER_CURRENT_SCORE = "prev_trailer_current_score"
    PREV_LEADER_CURRENT_MARGIN = "prev_leader_current_margin"
    PREV_LEADER_WAS_HOME = "prev_leader_was_home"

    @classmethod
    def lookup(cls, name: str) -> "ContextField | None":
        """Resolve an authored field name; None for anything not in the registry."""
        if not isinstance(name, str):
            return None
        return _BY_NAME.get(name.strip())


def _camel(snake: str) -> str:
    head, *rest = snake.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


_BY_NAME: dict[str, ContextField] = {}
for _f in ContextField:
    _BY_NAME[_f.value] = _f
    _BY_NAME[_camel(_f.value)] = _f

# Fields whose values are booleans; "true"/"false" configured values compare against them
BOOLEAN_FIELDS: frozenset[ContextField] = frozenset({
    ContextField.HOME_LEADING,
    ContextField.AWAY_LEADING,
})


@dataclass(frozen=True, slots=True)
class EvaluationContext:
    """
    Derived, read-only view over one snapshot.
    previous_leader is the leading team recorded when the signal was opened;
    it feeds the prev_leader_* fields used by close triggers.
    """
    snapshot: GameSnapshot
    time_remaining_seconds: int
    leading_team: Leader
    players: PlayerMatchup
    previous_leader: Leader | None = None

    @property
    def quarter(self) -> int:
        return self.snapshot.quarter

    @property
    def total_score(self) -> int:
        return self.snapshot.total_score

    def get(self, field: ContextField) -> FieldValue:
        return FIELD_RESOLVERS[field](self)

    def with_previous_leader(self, leader: str | None) -> "EvaluationContext":
        prev = leader if leader in ("home", "away") else None
        if prev == self.previous_leader:
            return self
        return EvaluationContext(
            snapshot=self.snapshot,
            time_remaining_seconds=self.time_remaining_seconds,
            leading_team=self.leading_team,
            players=self.players,
            previous_leader=prev,  # type: ignore[arg-type]
        )

    def as_dict(self) -> dict[str, Any]:
        return {f.value: self.get(f) for f in ContextField}


def build_context(
    snapshot: GameSnapshot,
    players: PlayerMatchup | None = None,
    previous_leader: str | None = None,
) -> EvaluationContext:
    ctx = EvaluationContext(
        snapshot=snapshot,
        time_remaining_seconds=parse_clock(snapshot.clock),
        leading_team=leader_of(snapshot.home_score, snapshot.away_score),
        players=players if players is not None else PlayerMatchup(),
    )
    return ctx.with_previous_leader(previous_leader)


def resolve_field(name: str | ContextField | None, ctx: EvaluationContext) -> FieldValue:
    """Value of a field by authored name; None when unknown or unavailable."""
    if name is None:
        return None
    field = name if isinstance(name, ContextField) else ContextField.lookup(name)
    if field is None:
        return None
    return ctx.get(field)


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------

def _player(ctx: EvaluationContext, side: str, attr: Callable[[PlayerStats], Any]) -> FieldValue:
    p = ctx.players.home if side == "home" else ctx.players.away
    return attr(p) if p is not None else None


def _h2h(ctx: EvaluationContext, attr: Callable[[PlayerStats], Any]) -> FieldValue:
    home, away = ctx.players.home, ctx.players.away
    if home is None or away is None:
        return None
    return attr(home) - attr(away)


def _away_spread(ctx: EvaluationContext) -> float | None:
    s = ctx.snapshot.spread
    return -s if s is not None else None


def _by_leader(ctx: EvaluationContext, leading: bool, home_val: FieldValue, away_val: FieldValue) -> FieldValue:
    if ctx.leading_team == "tie":
        return None
    is_home = (ctx.leading_team == "home") == leading
    return home_val if is_home else away_val


def _prev_scores(ctx: EvaluationContext) -> tuple[int, int] | None:
    """(previous leader's current score, previous trailer's current score)."""
    snap = ctx.snapshot
    if ctx.previous_leader == "home":
        return snap.home_score, snap.away_score
    if ctx.previous_leader == "away":
        return snap.away_score, snap.home_score
    return None


def _prev(ctx: EvaluationContext, pick: Callable[[int, int], FieldValue]) -> FieldValue:
    scores = _prev_scores(ctx)
    return pick(*scores) if scores is not None else None


def _quarter_resolvers(n: int) -> dict[ContextField, Callable[[EvaluationContext], FieldValue]]:
    def pair(ctx: EvaluationContext):
        return ctx.snapshot.quarter_scores.get(n)
    return {
        ContextField(f"q{n}_home"): lambda ctx: pair(ctx).home,
        ContextField(f"q{n}_away"): lambda ctx: pair(ctx).away,
        ContextField(f"q{n}_total"): lambda ctx: pair(ctx).total,
        ContextField(f"q{n}_differential"): lambda ctx: pair(ctx).differential,
    }


FIELD_RESOLVERS: dict[ContextField, Callable[[EvaluationContext], FieldValue]] = {
    ContextField.QUARTER: lambda ctx: ctx.snapshot.quarter,
    ContextField.TIME_REMAINING: lambda ctx: ctx.snapshot.clock,
    ContextField.TIME_REMAINING_SECONDS: lambda ctx: ctx.time_remaining_seconds,
    ContextField.HOME_TEAM: lambda ctx: ctx.snapshot.home_team,
    ContextField.AWAY_TEAM: lambda ctx: ctx.snapshot.away_team,
    ContextField.HOME_SCORE: lambda ctx: ctx.snapshot.home_score,
    ContextField.AWAY_SCORE: lambda ctx: ctx.snapshot.away_score,
    ContextField.TOTAL_SCORE: lambda ctx: ctx.snapshot.total_score,
    ContextField.SCORE_DIFFERENTIAL: lambda ctx: ctx.snapshot.home_score - ctx.snapshot.away_score,
    ContextField.ABS_SCORE_DIFFERENTIAL: lambda ctx: abs(ctx.snapshot.home_score - ctx.snapshot.away_score),
    ContextField.CURRENT_LEAD: lambda ctx: abs(ctx.snapshot.home_score - ctx.snapshot.away_score),
    ContextField.HOME_LEADING: lambda ctx: ctx.leading_team == "home",
    ContextField.AWAY_LEADING: lambda ctx: ctx.leading_team == "away",
    ContextField.LEADING_TEAM: lambda ctx: ctx.leading_team,
    ContextField.STATUS: lambda ctx: ctx.snapshot.status,
    ContextField.SPREAD: lambda ctx: ctx.snapshot.spread,
    ContextField.TOTAL: lambda ctx: ctx.snapshot.total_line,
    ContextField.HALFTIME_LEAD: lambda ctx: abs(ctx.snapshot.halftime.differential),

    **_quarter_resolvers(1),
    **_quarter_resolvers(2),
    **_quarter_resolvers(3),
    **_quarter_resolvers(4),

    ContextField.HALFTIME_HOME: lambda ctx: ctx.snapshot.halftime.home,
    ContextField.HALFTIME_AWAY: lambda ctx: ctx.snapshot.halftime.away,
    ContextField.HALFTIME_TOTAL: lambda ctx: ctx.snapshot.halftime.total,
    ContextField.HALFTIME_DIFFERENTIAL: lambda ctx: ctx.snapshot.halftime.differential,
    ContextField.FIRST_HALF_TOTAL: lambda ctx: (
        ctx.snapshot.quarter_scores.q1.total + ctx.snapshot.quarter_scores.q2.total
    ),
    ContextField.SECOND_HALF_TOTAL: lambda ctx: (
        ctx.snapshot.quarter_scores.q3.total + ctx.snapshot.quarter_scores.q4.total
    ),

    ContextField.HOME_PLAYER_WIN_PCT: lambda ctx: _player(ctx, "home", lambda p: p.win_rate),
    ContextField.AWAY_PLAYER_WIN_PCT: lambda ctx: _player(ctx, "away", lambda p: p.win_rate),
    ContextField.HOME_PLAYER_PPM: lambda ctx: _player(ctx, "home", lambda p: p.avg_points_for),
    ContextField.AWAY_PLAYER_PPM: lambda ctx: _player(ctx, "away", lambda p: p.avg_points_for),
    ContextField.HOME_PLAYER_GAMES: lambda ctx: _player(ctx, "home", lambda p: p.games_played),
    ContextField.AWAY_PLAYER_GAMES: lambda ctx: _player(ctx, "away", lambda p: p.games_played),
    ContextField.HOME_PLAYER_FORM_WINS: lambda ctx: _player(ctx, "home", lambda p: p.form_wins),
    ContextField.AWAY_PLAYER_FORM_WINS: lambda ctx: _player(ctx, "away", lambda p: p.form_wins),
    ContextField.WIN_PCT_DIFF: lambda ctx: _h2h(ctx, lambda p: p.win_rate),
    ContextField.PPM_DIFF: lambda ctx: _h2h(ctx, lambda p: p.avg_points_for),
    ContextField.EXPERIENCE_DIFF: lambda ctx: _h2h(ctx, lambda p: p.games_played),

    ContextField.LEADING_TEAM_SPREAD: lambda ctx: _by_leader(ctx, True, ctx.snapshot.spread, _away_spread(ctx)),
    ContextField.LOSING_TEAM_SPREAD: lambda ctx: _by_leader(ctx, False, ctx.snapshot.spread, _away_spread(ctx)),
    ContextField.LEADING_TEAM_MONEYLINE: lambda ctx: _by_leader(
        ctx, True, ctx.snapshot.moneyline_home, ctx.snapshot.moneyline_away
    ),
    ContextField.LOSING_TEAM_MONEYLINE: lambda ctx: _by_leader(
        ctx, False, ctx.snapshot.moneyline_home, ctx.snapshot.moneyline_away
    ),
    ContextField.HOME_SPREAD: lambda ctx: ctx.snapshot.spread,
    ContextField.AWAY_SPREAD: _away_spread,
    ContextField.HOME_MONEYLINE: lambda ctx: ctx.snapshot.moneyline_home,
    ContextField.AWAY_MONEYLINE: lambda ctx: ctx.snapshot.moneyline_away,

    ContextField.PREV_LEADER_STILL_LEADS: lambda ctx: _prev(ctx, lambda lead, trail: 1 if lead > trail else 0),
    ContextField.PREV_LEADER_CURRENT_SCORE: lambda ctx: _prev(ctx, lambda lead, trail: lead),
    ContextField.PREV_TRAILER_CURRENT_SCORE: lambda ctx: _prev(ctx, lambda lead, trail: trail),
    ContextField.PREV_LEADER_CURRENT_MARGIN: lambda ctx: _prev(ctx, lambda lead, trail: lead - trail),
    ContextField.PREV_LEADER_WAS_HOME: lambda ctx: (
        None if ctx.previous_leader is None else int(ctx.previous_leader == "home")
    ),
}

assert set(FIELD_RESOLVERS) == set(ContextField), "every ContextField needs a resolver"
