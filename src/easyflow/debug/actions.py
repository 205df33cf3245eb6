"""Ready-made breakpoint actions."""

import logging
from pathlib import Path
from typing import Any, Mapping

from ..utils.templates import escape_newlines, expand
from .breakpoints import Action, Breakpoint

logger = logging.getLogger(__name__)


def log(template: str) -> Action:
    """Log the expanded template at INFO and return the expanded text."""

    def _action(bp: Breakpoint, ctx: Mapping[str, Any]) -> str:
        text = expand(template, ctx) if ctx is not None else template
        logger.info(escape_newlines(text))
        return text

    return _action


def toggle_breakpoints(enabled: bool, *breakpoints: Breakpoint) -> Action:
    """Set the enabled flag of other breakpoints.

    Attached to SESSION_STARTED, this arms breakpoints for one session only;
    the flags are restored when the session stops.
    """

    def _action(bp: Breakpoint, ctx: Mapping[str, Any]) -> None:
        for target in breakpoints:
            target.enabled = enabled

    return _action


def write_summary(path: str | Path) -> Action:
    """Write the debugger's text summary of the current session to a file."""

    def _action(bp: Breakpoint, ctx: Mapping[str, Any]) -> str:
        debugger = _require_debugger(bp)
        Path(path).write_text(debugger.summary(), encoding="utf-8")
        return str(path)

    return _action


def write_report(path: str | Path) -> Action:
    """Write the debugger's JSON session report to a file."""

    def _action(bp: Breakpoint, ctx: Mapping[str, Any]) -> str:
        debugger = _require_debugger(bp)
        Path(path).write_text(debugger.report_json(), encoding="utf-8")
        return str(path)

    return _action


def _require_debugger(bp: Breakpoint):
    if bp.debugger is None:
        raise RuntimeError(f"{bp!r} is not registered with a debugger")
    return bp.debugger
