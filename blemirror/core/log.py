"""
Core logging functionality for blemirror.

Every record goes to a per-category file under ``config.LOG_DIR``; the
``print_and_log`` helper additionally echoes user-facing categories to stdout.
Module code should prefer ``get_logger(__name__)`` for plain diagnostics.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

from . import config

# Re-export log type constants for external modules
LOG__GENERAL = config.LOG__GENERAL
LOG__DEBUG = config.LOG__DEBUG
LOG__USER = config.LOG__USER

_LOG_PATHS: Dict[str, Path] = {
    LOG__GENERAL: config.LOG_DIR / "general.log",
    LOG__DEBUG: config.LOG_DIR / "debug.log",
    LOG__USER: config.LOG_DIR / "usermode.log",
}

config.LOG_DIR.mkdir(parents=True, exist_ok=True)

# Timestamped records; the category is the logger-name suffix
_formatter = logging.Formatter(
    "%(asctime)s.%(msecs)03d %(levelname)s (%(threadName)s) [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Create and configure handlers
_handlers: Dict[str, logging.Handler] = {}
for log_type, path in _LOG_PATHS.items():
    handler = logging.FileHandler(path, mode="a", encoding="utf-8", delay=True)
    handler.setFormatter(_formatter)
    _handlers[log_type] = handler

# Root logger for blemirror; module loggers end up in the general log
_logger = logging.getLogger("blemirror")
_logger.setLevel(logging.INFO)
_logger.addHandler(_handlers[LOG__GENERAL])

# Clean up temporary variables
del log_type, path, handler


def _emit(line: str, log_type: str) -> None:
    """Internal helper to emit a record straight to the category handler."""
    record = logging.LogRecord(
        name=f"blemirror.{log_type.lower()}",
        level=logging.INFO,
        pathname=__file__,
        lineno=0,
        msg=line.rstrip("\n"),
        args=(),
        exc_info=None,
    )
    _handlers.get(log_type, _handlers[LOG__GENERAL]).handle(record)


def logging__debug_log(msg: str) -> None:
    """Write to debug log."""
    _emit(msg, LOG__DEBUG)


def logging__general_log(msg: str) -> None:
    """Write to general log."""
    _emit(msg, LOG__GENERAL)


def logging__usermode_log(msg: str) -> None:
    """Write to usermode log."""
    _emit(msg, LOG__USER)


_log_func_map = {
    LOG__GENERAL: logging__general_log,
    LOG__DEBUG: logging__debug_log,
    LOG__USER: logging__usermode_log,
}


def logging__log_event(log_type: str, string_to_log: str) -> None:
    """Log an event to the specified log type."""
    _log_func_map.get(log_type, logging__general_log)(string_to_log)


def print_and_log(output_string: str, log_type: str = LOG__GENERAL) -> None:
    """Print to stdout and log to the specified log type.

    Debug records are only written to the debug log.
    """
    if log_type != LOG__DEBUG:
        print(output_string)
    logging__log_event(log_type, output_string)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger with the specified name.

    Names outside the ``blemirror`` namespace are nested under it so records
    reach the package handlers.
    """
    if not name:
        return _logger
    if name == "blemirror" or name.startswith("blemirror."):
        return logging.getLogger(name)
    return _logger.getChild(name)


def set_level(level) -> None:
    """Adjust the package log level (accepts names like ``"debug"``)."""
    if isinstance(level, str):
        level = level.upper()
    _logger.setLevel(level)
