"""
Player side table.

Simulated-league teams are driven by a single player, so per-player season
records feed the head-to-head context fields. The table is a YAML mapping
keyed by team id or team display name:

    "Lakers (Alex)":
      name: Alex
      win_rate: 61.5
      avg_points_for: 78.2
      games_played: 140
      recent_form: [W, W, L, W, L]

Entries that cannot be read are logged and skipped.
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Any

import yaml

from models.events import PlayerStats

log = logging.getLogger(__name__)


def player_from_dict(key: str, raw: dict[str, Any]) -> PlayerStats:
    form = raw.get("recent_form") or []
    if isinstance(form, str):
        form = list(form.replace(",", "").replace(" ", ""))
    return PlayerStats(
        name=str(raw.get("name") or key),
        win_rate=float(raw["win_rate"]),
        avg_points_for=float(raw["avg_points_for"]),
        games_played=int(raw["games_played"]),
        recent_form=tuple(str(r).upper() for r in form),
    )


def load_players(path: str | Path) -> dict[str, PlayerStats]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: player table must be a mapping")
    players: dict[str, PlayerStats] = {}
    for key, raw in data.items():
        try:
            players[str(key)] = player_from_dict(str(key), raw)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            log.warning("Player entry %r skipped: %s", key, exc)
    log.info("Loaded %d player record(s) from %s", len(players), path)
    return players
