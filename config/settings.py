"""
Environment-based configuration.
Every setting comes from an environment variable (or .env, loaded by main.py).
Nothing is required: with no configuration at all the bot evaluates the bundled
config/strategies.yaml against whatever feed is configured.

Usage:
    from config.settings import settings
    print(settings.catalog_refresh_s)
"""

from __future__ import annotations
import os
from dataclasses import dataclass


def _optional(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


def _number(key: str, default: str, cast=float):
    raw = _optional(key, default)
    try:
        return cast(raw)
    except ValueError:
        raise EnvironmentError(f"Environment variable '{key}' must be a number, got {raw!r}.") from None


@dataclass(frozen=True)
class Settings:
    # --- Logging ---
    log_level: str

    # --- Strategy catalog ---
    strategies_path: str                  # YAML/JSON catalog on disk
    strategies_url: str                   # If set, catalog is fetched over HTTP instead
    catalog_refresh_s: float              # How often the catalog is reloaded
    default_expiry_clock: str             # Q4 clock at which unconfirmed signals expire

    # --- Player side table ---
    players_path: str                     # Optional YAML of player stats; empty = none

    # --- Feeds ---
    feed_url: str                         # Canonical snapshot endpoint; empty = no live feed
    feed_poll_interval_s: float
    feed_timeout_s: float
    replay_path: str                      # JSON-lines recording to replay; empty = none
    replay_speed: float                   # Seconds between replayed snapshots (0 = as fast as possible)

    # --- Runtime ---
    snapshot_queue_size: int
    stale_game_s: float                   # Drop a game that sends nothing for this long
    signals_log_path: str                 # JSON-lines sink for signal transitions; empty = log only


def load_settings() -> Settings:
    return Settings(
        log_level=_optional("LOG_LEVEL", "INFO"),
        strategies_path=_optional("STRATEGIES_PATH", "config/strategies.yaml"),
        strategies_url=_optional("STRATEGIES_URL"),
        catalog_refresh_s=_number("CATALOG_REFRESH_S", "60"),
        default_expiry_clock=_optional("DEFAULT_EXPIRY_CLOCK", "2:20"),
        players_path=_optional("PLAYERS_PATH"),
        feed_url=_optional("FEED_URL"),
        feed_poll_interval_s=_number("FEED_POLL_INTERVAL_S", "2.0"),
        feed_timeout_s=_number("FEED_TIMEOUT_S", "4"),
        replay_path=_optional("REPLAY_PATH"),
        replay_speed=_number("REPLAY_SPEED", "0"),
        snapshot_queue_size=_number("SNAPSHOT_QUEUE_SIZE", "200", int),
        stale_game_s=_number("STALE_GAME_S", "1800"),
        signals_log_path=_optional("SIGNALS_LOG_PATH"),
    )


# Module-level singleton, loaded once at startup
settings = load_settings()
