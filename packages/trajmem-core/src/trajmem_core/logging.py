"""Logging for the ``trajmem`` logger tree.

Every module logs through ``get_logger("<area>.<module>")``. Output goes
to stderr only, since stdout carries CLI results and the MCP stdio
transport.
"""
from __future__ import annotations

import datetime
import json
import logging
import sys
from typing import TextIO

ROOT_LOGGER = "trajmem"

_PLAIN_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with a UTC ISO-8601 timestamp."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.datetime.fromtimestamp(
                record.created, tz=datetime.UTC
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class _TrajmemHandler(logging.StreamHandler):
    """Marks the handler installed by :func:`setup_logging`."""


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Configure and return the root trajmem logger.

    Calling it again replaces the previous trajmem handler, so the level,
    format and stream always follow the latest configuration. Unknown
    level names fall back to INFO.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for existing in [h for h in logger.handlers if isinstance(h, _TrajmemHandler)]:
        logger.removeHandler(existing)

    resolved = logging.getLevelNamesMapping().get(level.upper())
    logger.setLevel(logging.INFO if resolved is None else resolved)

    handler = _TrajmemHandler(sys.stderr if stream is None else stream)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(handler)

    if resolved is None:
        logger.warning("Unknown log level %r, using INFO", level)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the trajmem namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
