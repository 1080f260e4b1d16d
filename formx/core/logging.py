# formx/core/logging.py
"""
Logging for the formx engine.

Engine modules do:
    from formx.core.logging import get_logger
    logger = get_logger(__name__)

Everything hangs off the "formx" logger. Messages start with a bracketed
area tag ("[EVAL]", "[ACTION]", ...) which is coloured on a terminal, and
carry the current CLI session id when one is set.
"""
from __future__ import annotations

import contextvars
import logging
import os
import re
import sys
from typing import Optional

_LOGGER_NAME = "formx"

_RESET = "\033[0m"
_RED, _GREEN, _YELLOW, _CYAN = "\033[31m", "\033[32m", "\033[33m", "\033[36m"
_ORANGE = "\033[38;5;208m"

session_id_cv = contextvars.ContextVar("session_id", default="-")


class StructuredFormatter(logging.Formatter):
    """`<time> : <LEVEL> : <logger> [<session>] : <message>`"""

    USE_COLOR = sys.stderr.isatty() or os.getenv("FORCE_COLOR") == "1"

    TAG_COLORS = {
        "ERROR": _RED,
        "EVAL": _CYAN,
        "DEPENDENCY": _CYAN,
        "RENDER": _CYAN,
        "SIGNAL": _CYAN,
        "VALIDATE": _YELLOW,
        "MIGRATE": _YELLOW,
        "ACTION": _ORANGE,
        "DATASOURCE": _ORANGE,
        "STORE": _GREEN,
        "CONVERT": _GREEN,
        "RUNTIME": _GREEN,
    }

    TAG_REGEX = re.compile(r"\[([A-Z_]+)\]")

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if self.USE_COLOR:
            message = self._colorize_tags(message)

        origin = record.name
        session = session_id_cv.get()
        if session != "-":
            origin = f"{origin} [{session[:8]}]"

        line = f"{self.formatTime(record, self.datefmt)} : {record.levelname:<5} : {origin} : {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    def _colorize_tags(self, message: str) -> str:
        return self.TAG_REGEX.sub(
            lambda m: f"{self.TAG_COLORS.get(m.group(1), _RESET)}{m.group(0)}{_RESET}",
            message,
        )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Child logger named after the last dotted part of `name`:
    "formx.lib.dependencies" logs as "formx.dependencies".
    """
    if not name or name == _LOGGER_NAME:
        return logging.getLogger(_LOGGER_NAME)
    return logging.getLogger(f"{_LOGGER_NAME}.{name.rsplit('.', 1)[-1]}")


def configure_logging(level: str = "INFO", *, verbose: bool = False, quiet: bool = False) -> None:
    """Attach the stderr handler once; later calls only change the level."""
    if verbose:
        numeric_level = logging.DEBUG
    elif quiet:
        numeric_level = logging.WARNING
    else:
        numeric_level = logging.getLevelName(level.upper())
        if not isinstance(numeric_level, int):
            numeric_level = logging.INFO

    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(numeric_level)
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(numeric_level)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(StructuredFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    # httpx logs every request at DEBUG
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.INFO))

    logger.debug("[RUNTIME] Logging initialized: level=%s", logging.getLevelName(numeric_level))


def set_session_id(value: str) -> contextvars.Token:
    return session_id_cv.set(value)
