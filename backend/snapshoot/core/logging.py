"""
Logging setup for the API process.

`setup_logging(settings)` applies a dictConfig with a single console handler.
LOG_FORMAT=json emits one JSON object per line (for log collectors), text emits
a compact human readable line for local development.
"""

import json
import logging
import logging.config
from typing import Any, Dict

from snapshoot.core.config import Settings

SERVICE_NAME = "snapshoot-api"

# Attributes every LogRecord has; anything else on the record came from `extra=`.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """
    Structured JSON formatter.

    Emits timestamp, level, logger, message, service and env, plus any keys
    passed through `extra={...}`. Values that are not JSON serializable are
    converted with str() so formatting never raises.
    """

    def __init__(self, *, env: str | None = None, service: str = SERVICE_NAME, datefmt: str | None = None):
        super().__init__(datefmt=datefmt)
        self.env = env
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service,
            "env": self.env,
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_record["stack_info"] = self.formatStack(record.stack_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            log_record[key] = value

        return json.dumps(log_record, default=str)


def make_dict_config(settings: Settings) -> dict:
    formatter = "json" if settings.LOG_FORMAT == "json" else "standard"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            },
            "json": {
                "()": JsonFormatter,
                "env": settings.ENV,
                "service": SERVICE_NAME,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": settings.LOG_LEVEL,
            },
            "uvicorn.error": {
                "handlers": ["console"],
                "level": settings.LOG_LEVEL,
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["console"],
                "level": "INFO",
                "propagate": False,
            },
            # driver heartbeats / topology chatter
            "pymongo": {
                "level": "WARNING",
            },
        },
    }


def setup_logging(settings: Settings) -> None:
    logging.config.dictConfig(make_dict_config(settings))
