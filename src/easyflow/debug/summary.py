"""Human-readable and machine-readable session summaries.

Text layout::

    ↓ IN > "topic": dragons
    -----------------------
          ↓ IN: {'topic': 'dragons'}
    1. ▷︎ write_story
          ↓ OUT > "story": Once upon a time...
    -----------------------
    ◼ RESULT: Once upon a time...
"""

import json
from typing import Any, Mapping, Sequence

from ..exceptions import root_cause
from ..utils.templates import escape_newlines
from .trace import TraceEntry

SEPARATOR = "-----------------------"


def describe_failure(failure: BaseException) -> str:
    cause = root_cause(failure)
    return f"{type(cause).__name__}: {cause}"


def format_entry(entry: TraceEntry, index: int | None = None) -> str:
    """Render one trace entry; index is shown as ``N.`` when given."""
    prefix = f"{index}. " if index is not None and index > 0 else ""
    output = escape_newlines(str(entry.output)) if entry.output is not None else "N/A"
    lines = [
        f"      ↓ IN: {escape_newlines(str(entry.input))}",
        f"{prefix}▷︎ {entry.unit_name}",
        f"      ↓ OUT > \"{entry.output_name or 'N/A'}\": {output}",
    ]
    for invocation in entry.tool_invocations:
        status = (
            f"✘ {describe_failure(invocation.error)}"
            if invocation.failed
            else escape_newlines(str(invocation.result))
        )
        lines.append(f"      ⚒ TOOL {invocation.tool}({invocation.request}): {status}")
    if entry.failure is not None:
        lines.append(f"      ↯ FAIL: {escape_newlines(describe_failure(entry.failure))}")
    return "\n".join(lines)


def render_summary(
    inputs: Mapping[str, Any],
    entries: Sequence[TraceEntry],
    result: Any = None,
    failure: BaseException | None = None,
    running: bool = False,
) -> str:
    """Render a session: inputs, the ordered trace, then the outcome."""
    lines = [f"↓ IN > \"{name}\": {escape_newlines(str(value))}" for name, value in inputs.items()]
    lines.append(SEPARATOR)
    for index, entry in enumerate(entries, start=1):
        lines.append(format_entry(entry, index))
        lines.append(SEPARATOR)

    if running:
        lines.append("▶ RUNNING...")
    elif failure is None:
        lines.append(f"◼ RESULT: {escape_newlines(str(result)) if result is not None else 'N/A'}")
    else:
        lines.append(f"✘ ERROR: {escape_newlines(describe_failure(failure))}")
    return "\n".join(lines) + "\n"


def build_report(
    session_id: str | None,
    inputs: Mapping[str, Any],
    entries: Sequence[TraceEntry],
    result: Any = None,
    failure: BaseException | None = None,
    running: bool = False,
) -> dict[str, Any]:
    """Machine-readable session report, grouping node ids by outcome."""
    if running:
        status = "running"
    elif failure is not None:
        status = "failed"
    else:
        status = "completed"

    return {
        "session_id": session_id,
        "status": status,
        "inputs": dict(inputs),
        "result": result,
        "error": describe_failure(failure) if failure is not None else None,
        "completed": [e.node_id for e in entries if e.completed and e.failure is None],
        "failed": [e.node_id for e in entries if e.failure is not None],
        "running": [e.node_id for e in entries if e.running],
        "entries": [e.to_dict() for e in entries],
    }


def report_to_json(report: Mapping[str, Any], indent: int = 2) -> str:
    return json.dumps(report, indent=indent, default=str, ensure_ascii=False)
