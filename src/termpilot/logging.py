"""Logging setup for termpilot.

Every module logs under the ``termpilot`` logger tree via ``get_logger``.
Stdout carries the MCP stream, so records go to the file named by
``logging.file`` (or ``TERMPILOT_LOG``) and to stderr otherwise.

Verbosity runs from 0 (errors only) to 4 (trace), with the custom VERBOSE
level sitting between INFO and DEBUG.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from termpilot.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

LOG_FILE_ENV = "TERMPILOT_LOG"
LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

logger = logging.getLogger("termpilot")

# Index is the verbosity setting
VERBOSITY_LEVELS = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)

_handler: logging.Handler | None = None


class _LowercaseLevelFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = record.levelname.lower()
        return super().format(record)


def resolve_level(config: LoggingConfig | None) -> int:
    """Effective level for ``config``: ``verbose`` beats ``level``, INFO by default."""
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        index = min(max(config.verbose, 0), len(VERBOSITY_LEVELS) - 1)
        return VERBOSITY_LEVELS[index]
    if config.level:
        level = logging.getLevelName(config.level.upper())
        if isinstance(level, int):
            return level
    return logging.INFO


def _open_handler(path: str | None) -> logging.Handler:
    if path:
        try:
            return logging.FileHandler(os.path.expanduser(path), mode="a", encoding="utf-8")
        except OSError as e:
            print(f"[termpilot] cannot open log file {path}: {e}", file=sys.stderr)
    return logging.StreamHandler(sys.stderr)


def setup_logging(config: LoggingConfig | None = None) -> logging.Handler:
    """Attach the termpilot handler once and return it.

    Later calls only adjust the level, so the entry point and tests can both
    call this safely.
    """
    global _handler
    level = resolve_level(config)
    logger.setLevel(level)

    if _handler is None:
        path = config.file if config is not None and config.file else os.environ.get(LOG_FILE_ENV)
        _handler = _open_handler(path)
        _handler.setFormatter(_LowercaseLevelFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(_handler)
    _handler.setLevel(level)
    return _handler


def get_logger(name: str | None = None) -> logging.Logger:
    """The termpilot logger, or its child ``termpilot.<name>``."""
    return logger.getChild(name) if name else logger
