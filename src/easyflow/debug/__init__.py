"""Easyflow Debug Layer.

Components:
- breakpoints: Breakpoint and BreakpointBuilder
- actions: ready-made breakpoint actions
- trace: trace entries, tool invocations and session archives
- debugger: WorkflowDebugger
- summary: text and JSON session summaries
"""

from .actions import log, toggle_breakpoints, write_report, write_summary
from .breakpoints import Breakpoint, BreakpointBuilder
from .debugger import (
    KEY_INPUT,
    KEY_NODE,
    KEY_OUTPUT,
    KEY_OUTPUT_NAME,
    KEY_SESSION_ID,
    KEY_TOOL,
    KEY_TOOL_REQUEST,
    KEY_TOOL_RESPONSE,
    KEY_TRACE_ENTRY,
    KEY_UNIT,
    WorkflowDebugger,
)
from .summary import build_report, format_entry, render_summary
from .trace import LeafInvocation, SessionArchive, ToolInvocation, Trace, TraceEntry

__all__ = [
    "Breakpoint",
    "BreakpointBuilder",
    "WorkflowDebugger",
    "TraceEntry",
    "LeafInvocation",
    "ToolInvocation",
    "Trace",
    "SessionArchive",
    "log",
    "toggle_breakpoints",
    "write_report",
    "write_summary",
    "render_summary",
    "format_entry",
    "build_report",
    "KEY_INPUT",
    "KEY_OUTPUT",
    "KEY_OUTPUT_NAME",
    "KEY_UNIT",
    "KEY_NODE",
    "KEY_TRACE_ENTRY",
    "KEY_TOOL",
    "KEY_TOOL_REQUEST",
    "KEY_TOOL_RESPONSE",
    "KEY_SESSION_ID",
]
