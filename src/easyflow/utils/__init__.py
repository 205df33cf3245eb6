"""Easyflow utilities."""

from .logging import StructuredLogger, configure_logging, get_logger
from .templates import escape_newlines, expand, has_placeholders, placeholders

__all__ = [
    "StructuredLogger",
    "configure_logging",
    "escape_newlines",
    "expand",
    "get_logger",
    "has_placeholders",
    "placeholders",
]
