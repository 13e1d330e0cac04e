"""
Logging setup shared by the CLI, the orchestrator, the workload engine and
the storage backends.

Everything goes through the standard library. The console format names the
worker thread so per-worker retries and window averages can be told apart;
the JSON format emits one object per line with every ``extra=`` field as a
top-level key, ready for post-processing.

Usage:
    from iotbench.utils.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_logs=True)
    log = get_logger(__name__)
    log.info("Latest time interval", extra={"sensor": "cor_1_Flow", "average": 0.42})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"
CONSOLE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "extra"}


def _json_formatter(record: logging.LogRecord) -> str:
    """Serialize ``record`` and its ``extra=`` fields as a JSON object."""
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "thread": record.threadName,
        "message": record.getMessage(),
    }
    payload.update(
        (key, value)
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    )
    # Older call sites attach a dict as ``record.extra``.
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        payload.update(nested)
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def _dict_config(level: str, formatter: str) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": CONSOLE_FORMAT, "datefmt": CONSOLE_DATEFMT},
            "json": {"()": JsonFormatter},
        },
        "handlers": {
            "stderr": {"class": "logging.StreamHandler", "formatter": formatter, "level": level},
        },
        "root": {"handlers": ["stderr"], "level": level},
    }


def configure_logging(level: str = "INFO", json_logs: bool = False, force: bool = True) -> None:
    """
    Install the root handler.

    Parameters
    ----------
    level : str
        Level name applied to the root logger and its handler.
    json_logs : bool
        Emit one JSON object per record instead of the console format.
    force : bool
        Replace whatever is configured already. With ``force=False`` an
        existing configuration is kept and only its level changes.
    """
    root = logging.getLogger()
    if root.handlers and not force:
        root.setLevel(level)
        return
    logging.config.dictConfig(_dict_config(level, "json" if json_logs else "console"))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Module logger (root logger when ``name`` is None)."""
    return logging.getLogger(name)


__all__ = ["CONSOLE_FORMAT", "JsonFormatter", "configure_logging", "get_logger"]
