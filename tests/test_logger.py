from __future__ import annotations

import logging

import pytest

from utils.logger import _NsFormatter, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    saved = (root.level, list(root.handlers))
    quiet = {name: logging.getLogger(name).level for name in ("aiohttp.access", "asyncio")}
    yield
    root.setLevel(saved[0])
    root.handlers[:] = saved[1]
    for name, level in quiet.items():
        logging.getLogger(name).setLevel(level)


def test_third_party_loggers_quieted_outside_debug(restore_logging):
    setup_logging("info")
    assert logging.getLogger().level == logging.INFO
    assert logging.getLogger("aiohttp.access").level == logging.WARNING
    assert logging.getLogger("asyncio").level == logging.WARNING


def test_debug_leaves_third_party_loggers_verbose(restore_logging):
    setup_logging("DEBUG")
    assert logging.getLogger("aiohttp.access").level == logging.DEBUG


def test_unknown_level_falls_back_to_info(restore_logging):
    setup_logging("chatty")
    assert logging.getLogger().level == logging.INFO
    assert len(logging.getLogger().handlers) == 1


def test_records_carry_monotonic_stamp():
    formatter = _NsFormatter(fmt="%(mono_ns)d %(message)s")
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
    stamp, message = formatter.format(record).split(" ", 1)
    assert int(stamp) > 0
    assert message == "hello"
