"""
Normalizes canonical snapshot payloads into GameSnapshot objects.

The ingestion collaborator has already mapped vendor field names onto the
canonical shape below; this module only coerces types and fills defaults so
the engine never sees a raw dict.

    {
      "game_id": "...", "event_id": "...", "league": "...",
      "home_team": "...", "away_team": "...", "home_team_id": "...", "away_team_id": "...",
      "home_score": 54, "away_score": 49, "quarter": 3, "clock": "4:12",
      "quarter_scores": {"q1": {"home": 20, "away": 18}, ...},   # or flat q1_home / q1_away
      "halftime": {"home": 40, "away": 37},                      # or halftime_home / halftime_away
      "final": {"home": 88, "away": 80},                         # only once the game is over
      "spread": -4.5, "moneyline_home": -180, "moneyline_away": 150, "total": 165.5,
      "status": "live"
    }

A bad individual field falls back to its default; a payload with no game id
returns None.
"""

from __future__ import annotations
import logging
from typing import Any

from models.events import GameSnapshot, GameStatus, QuarterScores, ScorePair

log = logging.getLogger(__name__)

_STATUS_ALIASES: dict[str, GameStatus] = {
    "live": "live",
    "in_progress": "live",
    "inprogress": "live",
    "in progress": "live",
    "halftime": "halftime",
    "half_time": "halftime",
    "ht": "halftime",
    "final": "final",
    "finished": "final",
    "ended": "final",
    "complete": "final",
    "completed": "final",
    "scheduled": "scheduled",
    "not_started": "scheduled",
    "pre": "scheduled",
}


def _int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _pair(raw: dict[str, Any], nested_key: str, flat_prefix: str) -> ScorePair | None:
    nested = raw.get(nested_key)
    if isinstance(nested, dict):
        return ScorePair(_int(nested.get("home")), _int(nested.get("away")))
    home, away = raw.get(f"{flat_prefix}_home"), raw.get(f"{flat_prefix}_away")
    if home is None and away is None:
        return None
    return ScorePair(_int(home), _int(away))


def _quarters(raw: dict[str, Any]) -> QuarterScores:
    nested = raw.get("quarter_scores")
    source = nested if isinstance(nested, dict) else raw
    pairs = [_pair(source, f"q{n}", f"q{n}") or ScorePair() for n in range(1, 5)]
    return QuarterScores(*pairs)


def normalize_status(raw_status: Any, quarter: int, has_final: bool) -> GameStatus:
    if isinstance(raw_status, str):
        status = _STATUS_ALIASES.get(raw_status.strip().lower())
        if status is not None:
            return status
        log.debug("Unrecognised status %r; inferring from payload", raw_status)
    if has_final:
        return "final"
    return "live" if quarter > 0 else "scheduled"


def snapshot_from_payload(raw: dict[str, Any], received_at_ns: int | None = None) -> GameSnapshot | None:
    game_id = raw.get("game_id") or raw.get("event_id") or raw.get("id")
    if not game_id:
        log.warning("Snapshot payload without game id dropped: keys=%s", sorted(raw)[:10])
        return None
    game_id = str(game_id)

    quarter = _int(raw.get("quarter"))
    clock = raw.get("clock") or raw.get("time_remaining") or "0:00"
    quarter_scores = _quarters(raw)
    halftime = _pair(raw, "halftime", "halftime")
    if halftime is None:
        halftime = ScorePair(
            quarter_scores.q1.home + quarter_scores.q2.home,
            quarter_scores.q1.away + quarter_scores.q2.away,
        )
    final = _pair(raw, "final", "final")
    home_team = str(raw.get("home_team") or "")
    away_team = str(raw.get("away_team") or "")

    return GameSnapshot.make(
        game_id=game_id,
        event_id=str(raw["event_id"]) if raw.get("event_id") else None,
        league=str(raw.get("league") or ""),
        home_team=home_team,
        away_team=away_team,
        home_team_id=str(raw.get("home_team_id") or ""),
        away_team_id=str(raw.get("away_team_id") or ""),
        home_score=_int(raw.get("home_score")),
        away_score=_int(raw.get("away_score")),
        quarter=quarter,
        clock=str(clock),
        quarter_scores=quarter_scores,
        halftime=halftime,
        final=final,
        spread=_float(raw.get("spread")),
        moneyline_home=_float(raw.get("moneyline_home")),
        moneyline_away=_float(raw.get("moneyline_away")),
        total_line=_float(raw.get("total")),
        status=normalize_status(raw.get("status"), quarter, final is not None),
        received_at_ns=received_at_ns,
    )
