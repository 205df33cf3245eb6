"""Execution trace: one entry per leaf invocation of a session."""

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..runtime.scope import Scope


@dataclass
class ToolInvocation:
    """A tool call made while a leaf was running."""

    tool: str
    request: dict[str, Any]
    result: Any = None
    error: BaseException | None = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "request": self.request,
            "result": self.result,
            "error": repr(self.error) if self.error is not None else None,
        }


@dataclass(eq=False)
class TraceEntry:
    """Record of one leaf invocation."""

    unit_name: str
    node_id: str
    input: dict[str, Any]
    uid: str = field(default_factory=lambda: uuid.uuid4().hex)
    output_name: str | None = None
    output: Any = None
    failure: BaseException | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    last_access_time: float = field(default_factory=time.monotonic)
    tool_invocations: list[ToolInvocation] = field(default_factory=list)
    completed: bool = False

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def add_output(self, output_name: str | None, output: Any) -> None:
        with self._lock:
            self.output_name = output_name
            self.output = output
            self.completed = True
            self.last_access_time = time.monotonic()

    def set_failure(self, failure: BaseException) -> None:
        with self._lock:
            self.failure = failure
            self.last_access_time = time.monotonic()

    def add_tool_invocation(self, invocation: ToolInvocation) -> None:
        with self._lock:
            self.tool_invocations.append(invocation)
            self.last_access_time = time.monotonic()

    @property
    def failed_tool_invocations(self) -> list[ToolInvocation]:
        with self._lock:
            return [t for t in self.tool_invocations if t.failed]

    @property
    def running(self) -> bool:
        return not self.completed and self.failure is None

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "uid": self.uid,
                "node_id": self.node_id,
                "unit": self.unit_name,
                "input": self.input,
                "output_name": self.output_name,
                "output": self.output,
                "failure": repr(self.failure) if self.failure is not None else None,
                "timestamp": self.timestamp.isoformat(),
                "tools": [t.to_dict() for t in self.tool_invocations],
            }

    def __repr__(self) -> str:
        return f"TraceEntry(unit={self.unit_name!r}, node={self.node_id!r}, output_name={self.output_name!r})"


@dataclass(frozen=True)
class LeafInvocation:
    """A running leaf as seen by the tools it calls."""

    entry: TraceEntry
    scope: Scope
    session_id: str | None = None


class Trace:
    """Append-only, thread-safe list of trace entries."""

    def __init__(self) -> None:
        self._entries: list[TraceEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: TraceEntry) -> TraceEntry:
        with self._lock:
            self._entries.append(entry)
        return entry

    def entries(self) -> list[TraceEntry]:
        with self._lock:
            return list(self._entries)

    def latest(self) -> TraceEntry | None:
        """Most recently touched entry."""
        with self._lock:
            if not self._entries:
                return None
            return max(self._entries, key=lambda e: e.last_access_time)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __bool__(self) -> bool:
        return len(self) > 0


@dataclass(frozen=True)
class SessionArchive:
    """A finished session kept after the next one starts."""

    session_id: str
    inputs: dict[str, Any]
    result: Any
    failure: BaseException | None
    entries: tuple[TraceEntry, ...]
    state: dict[str, Any]
    started_at: datetime
