"""
Logging for benchmark runs.

Stage and unit log lines carry their numbers as `extra=` fields; the JSON
formatter lifts those fields to top-level keys so a run can be replayed from
its log stream:

    log.info("[BATCH 2] 10/10 successful", extra={"batch": 2, "mb_per_sec": 41.7})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

# Anything not on a bare LogRecord came in through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}

# Pool and driver chatter is only useful when debugging connectivity.
NOISY_LOGGERS = ("psycopg", "psycopg.pool")


def _json_formatter(record: logging.LogRecord) -> str:
    payload: Dict[str, Any] = {
        "ts": round(record.created, 3),
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    payload.update((k, v) for k, v in vars(record).items() if k not in _RESERVED_ATTRS)
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Install one stderr handler on the root logger."""
    library_level = level if level.upper() == "DEBUG" else "WARNING"
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%H:%M:%S",
                },
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_logs else "console",
                    "level": level,
                }
            },
            "loggers": {name: {"level": library_level} for name in NOISY_LOGGERS},
            "root": {"handlers": ["default"], "level": level},
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
