"""Logging utilities for Easyflow.

Every module logs through ``logging.getLogger(__name__)`` under the ``easyflow``
namespace. Nothing is printed until the application installs a handler, for
example with configure_logging().
"""

import logging
import os
import sys
from typing import Any

LOG_LEVEL_ENV = "EASYFLOW_LOG_LEVEL"
DEFAULT_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] %(message)s"

# Marks handlers installed by configure_logging so a second call replaces them.
_HANDLER_FLAG = "_easyflow_handler"


def configure_logging(
    level: int | str | None = None,
    format_string: str | None = None,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """Send Easyflow logs to a handler.

    Args:
        level: Level name or number. Defaults to $EASYFLOW_LOG_LEVEL, else INFO.
        format_string: Record format. Defaults to DEFAULT_FORMAT.
        handler: Target handler. Defaults to a StreamHandler on stdout.

    Returns:
        The configured ``easyflow`` logger.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = handler or logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
    setattr(handler, _HANDLER_FLAG, True)

    logger = logging.getLogger("easyflow")
    for previous in [h for h in logger.handlers if getattr(h, _HANDLER_FLAG, False)]:
        logger.removeHandler(previous)
    logger.setLevel(level)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for an Easyflow component, e.g. ``get_logger("debug.debugger")``."""
    return logging.getLogger(f"easyflow.{name}")


class StructuredLogger:
    """Logger that appends key=value pairs to every message.

    Example:
        log = StructuredLogger("debug.debugger").bind(debugger="story")
        log.info("Session started", session="session-1a2b")
        # Session started | debugger=story session=session-1a2b
    """

    def __init__(self, name: str, **context: Any):
        self._name = name
        self._logger = get_logger(name)
        self._context = dict(context)

    def bind(self, **context: Any) -> "StructuredLogger":
        """New logger carrying this logger's context plus the given pairs."""
        return StructuredLogger(self._name, **{**self._context, **context})

    @property
    def context(self) -> dict[str, Any]:
        return dict(self._context)

    def _format_message(self, message: str, fields: dict[str, Any]) -> str:
        data = {**self._context, **fields}
        pairs = " ".join(f"{k}={v}" for k, v in data.items() if v is not None)
        return f"{message} | {pairs}" if pairs else message

    def log(self, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, self._format_message(message, fields), exc_info=exc_info)

    def debug(self, message: str, **fields: Any) -> None:
        self.log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self.log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self.log(logging.WARNING, message, **fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self.log(logging.ERROR, message, exc_info=exc_info, **fields)
