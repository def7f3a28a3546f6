"""
Logging setup for sqlcmd-pg.

Library modules only obtain loggers; they never install handlers. The
`Connection`, `PooledExecutor`, `DatabaseLifecycle` and `QueryStream`
classes take an optional ``logger`` so an application can route one
connection's query and stream events wherever it likes, and fall back to
their module logger otherwise.

Structured context (row counts, portal names, lease ids, pool host) is
passed through ``extra=``. The console format drops it; the JSON format
lifts every such field to the top level of the payload.

The CLI configures logging once at start-up:

    configure_logging(level=settings.log_level, json_logs=False)
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
CONSOLE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else arrived through `extra`.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


def _json_formatter(record: logging.LogRecord) -> str:
    """Serialize a record, promoting `extra` fields; unknown types are repr()'d."""
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    payload.update(
        (key, value)
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and key != "extra"
    )
    # callers that pass a nested dict as a single `extra` attribute
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        payload.update(nested)
    return json.dumps(payload, default=repr)


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def _handler_config(level: str, json_logs: bool) -> Dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "formatter": "json" if json_logs else "console",
        "level": level,
    }


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
) -> None:
    """
    Install a single stderr handler on the root logger.

    Parameters
    ----------
    level : str
        Level name applied to both the root logger and its handler, e.g. the
        ``LOG_LEVEL`` setting.
    json_logs : bool
        Emit one JSON object per record instead of the pipe-separated console
        line.
    force : bool
        Replace whatever handlers the root logger already has. With False,
        an application that configured logging itself is left untouched.
    """
    if not force and logging.getLogger().handlers:
        return

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {"format": CONSOLE_FORMAT, "datefmt": CONSOLE_DATEFMT},
                "json": {"()": JsonFormatter},
            },
            "handlers": {"default": _handler_config(level, json_logs)},
            "root": {"handlers": ["default"], "level": level},
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Module loggers live under the ``sqlcmd_pg`` hierarchy; None is the root."""
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
