"""
Structured, async-safe logging setup.
Call setup_logging() once at startup in main.py (or backtest.py).

Every record carries a monotonic nanosecond stamp so transitions logged by
different agents can be ordered exactly. Two third-party loggers are held at
WARNING unless the level is DEBUG: aiohttp.access, which the polling feed
and the HTTP strategy source would otherwise fill with one line per request,
and asyncio, whose slow-callback notices drown out signal transitions.
"""

from __future__ import annotations
import logging
import sys
import time

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s | mono_ns=%(mono_ns)d | %(message)s"

_QUIET = ("aiohttp.access", "asyncio")


class _NsFormatter(logging.Formatter):
    """Adds monotonic nanosecond timestamp to every log record."""

    def format(self, record: logging.LogRecord) -> str:
        record.mono_ns = time.monotonic_ns()
        return super().format(record)


def setup_logging(level: str = "INFO") -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_NsFormatter(fmt=_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
    root = logging.getLogger()
    root.setLevel(numeric)
    root.handlers.clear()
    root.addHandler(handler)
    quiet_level = numeric if numeric <= logging.DEBUG else max(numeric, logging.WARNING)
    for name in _QUIET:
        logging.getLogger(name).setLevel(quiet_level)
