"""Logging for the API process: one JSON object per line on stdout, and
optionally in ``LOG_FILE``."""

import json
import logging
import sys
from datetime import datetime, timezone

from . import config

# attributes every LogRecord carries; anything else arrived through ``extra=``
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# third party loggers that are noisy below WARNING
_CHATTY = ("web3", "urllib3", "passlib")


class JsonFormatter(logging.Formatter):

    def format(self, record):
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                entry[key] = value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def quiet_libraries():
    # SQL_ECHO already makes the engine log every statement; otherwise keep it to warnings
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if config.SQL_ECHO else logging.WARNING)
    for name in _CHATTY:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging():
    root = logging.getLogger()
    if any(isinstance(h.formatter, JsonFormatter) for h in root.handlers):
        return

    handlers = [logging.StreamHandler(sys.stdout)]
    if config.LOG_FILE:
        handlers.append(logging.FileHandler(config.LOG_FILE))
    for handler in handlers:
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)

    root.setLevel(config.LOG_LEVEL)
    quiet_libraries()
