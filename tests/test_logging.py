import json
import logging
import sys

import pytest

from crefy import config, logging_config
from crefy.logging_config import JsonFormatter


@pytest.fixture
def restore_levels():
    names = ("sqlalchemy.engine",) + logging_config._CHATTY
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


def test_records_render_as_json_lines():
    record = logging.LogRecord("crefy.campaigns", logging.INFO, __file__, 10, "minted token %s", ("7",), None)
    record.campaign_id = "c1"

    entry = json.loads(JsonFormatter().format(record))

    assert entry["level"] == "info"
    assert entry["logger"] == "crefy.campaigns"
    assert entry["msg"] == "minted token 7"
    assert entry["campaign_id"] == "c1"
    assert "args" not in entry and "exc" not in entry


def test_exceptions_are_included():
    try:
        raise ValueError("bad nonce")
    except ValueError:
        record = logging.LogRecord("crefy.auth", logging.ERROR, __file__, 20, "login failed", None, sys.exc_info())

    entry = json.loads(JsonFormatter().format(record))
    assert "ValueError: bad nonce" in entry["exc"]


@pytest.mark.parametrize("echo,level", [(False, logging.WARNING), (True, logging.INFO)])
def test_sql_logging_follows_echo_setting(monkeypatch, restore_levels, echo, level):
    monkeypatch.setattr(config, "SQL_ECHO", echo)
    logging_config.quiet_libraries()
    assert logging.getLogger("sqlalchemy.engine").level == level
    assert logging.getLogger("web3").level == logging.WARNING
