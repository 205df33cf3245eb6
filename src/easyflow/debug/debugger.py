"""Workflow debugger: breakpoint registry, tracer and session bookkeeping.

The compiled pipeline reports every session and leaf boundary to an attached
debugger. The debugger records a trace entry per leaf invocation and fires
the breakpoints whose type, filters and condition match the event.
"""

import threading
import uuid
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

from ..exceptions import BreakpointActionError
from ..runtime.scope import Scope, safe_deepcopy
from ..types import BreakpointType
from ..utils.logging import StructuredLogger
from .breakpoints import Breakpoint
from .summary import build_report, render_summary, report_to_json
from .trace import LeafInvocation, SessionArchive, ToolInvocation, Trace, TraceEntry

KEY_INPUT = "$input"
KEY_OUTPUT = "$output"
KEY_OUTPUT_NAME = "$outputName"
KEY_UNIT = "$unit"
KEY_NODE = "$node"
KEY_TRACE_ENTRY = "$traceEntry"
KEY_TOOL = "$tool"
KEY_TOOL_REQUEST = "$toolRequest"
KEY_TOOL_RESPONSE = "$toolResponse"
KEY_SESSION_ID = "$sessionId"


class WorkflowDebugger:
    """Observes pipeline sessions.

    Example:
        debugger = WorkflowDebugger()
        debugger.add_breakpoint(
            Breakpoint(BreakpointType.AGENT_OUTPUT, "{{$outputName}}: {{$output}}")
        )

        pipeline = WorkflowBuilder("story", inputs=["topic"]).debugger(debugger)...build()
        pipeline(topic="dragons")

        print(debugger.summary())
    """

    def __init__(self, name: str | None = None):
        self._name = name or "debugger"
        self._log = StructuredLogger("debug.debugger", debugger=self._name)

        self._breakpoints: list[Breakpoint] = []
        self._breakpoints_lock = threading.Lock()
        self._breakpoints_enabled = True

        self._trace = Trace()
        self._archives: list[SessionArchive] = []
        self._state_lock = threading.RLock()
        # Serializes leaf and tool events against session_stopped(); taken before _state_lock.
        self._events_lock = threading.RLock()

        # Held by the pipeline for the whole session; one session at a time.
        self.session_lock = threading.RLock()

        self._session_id: str | None = None
        self._started = False
        self._started_at: datetime | None = None
        self._inputs: dict[str, Any] = {}
        self._result: Any = None
        self._failure: BaseException | None = None
        self._scope: Scope | None = None

    @property
    def name(self) -> str:
        return self._name

    # -------------------------------------------------------------------------
    # Breakpoint registry
    # -------------------------------------------------------------------------

    def add_breakpoint(self, breakpoint: Breakpoint) -> Breakpoint:
        """Register a breakpoint. Breakpoints fire in registration order."""
        with self._breakpoints_lock:
            if breakpoint not in self._breakpoints:
                self._breakpoints.append(breakpoint)
        breakpoint.debugger = self
        return breakpoint

    def remove_breakpoint(self, breakpoint: Breakpoint) -> None:
        with self._breakpoints_lock:
            if breakpoint in self._breakpoints:
                self._breakpoints.remove(breakpoint)
        breakpoint.debugger = None

    def clear_breakpoints(self) -> None:
        with self._breakpoints_lock:
            removed, self._breakpoints = self._breakpoints, []
        for breakpoint in removed:
            breakpoint.debugger = None

    @property
    def breakpoints(self) -> list[Breakpoint]:
        with self._breakpoints_lock:
            return list(self._breakpoints)

    def set_enabled(self, breakpoint: Breakpoint, enabled: bool) -> None:
        breakpoint.enabled = enabled

    @property
    def breakpoints_enabled(self) -> bool:
        """Global switch; when False no breakpoint fires."""
        return self._breakpoints_enabled

    @breakpoints_enabled.setter
    def breakpoints_enabled(self, enabled: bool) -> None:
        self._breakpoints_enabled = enabled

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    def session_started(
        self,
        inputs: Mapping[str, Any],
        scope: Scope,
        session_id: str | None = None,
    ) -> str:
        """Archive the previous session and start a new one.

        Returns:
            The new session id.
        """
        with self._state_lock:
            self._archive_previous()
            self._session_id = session_id or f"session-{uuid.uuid4().hex[:8]}"
            self._started = True
            self._started_at = datetime.now()
            self._inputs = dict(inputs)
            self._result = None
            self._failure = None
            self._scope = scope
            self._trace.clear()

        for breakpoint in self.breakpoints:
            breakpoint.save_state()

        self._log.info("Session started", session=self._session_id)
        self._fire(BreakpointType.SESSION_STARTED, scope)
        return self._session_id

    def session_failed(self, failure: BaseException) -> None:
        """Record a failure; the last touched entry without an outcome gets it too."""
        with self._state_lock:
            self._failure = failure
        entry = self._trace.latest()
        if entry is not None and entry.failure is None and not entry.completed:
            entry.set_failure(failure)

        self._log.warning(f"Session failed: {failure}", session=self._session_id)
        self._fire(BreakpointType.SESSION_FAILED, self._scope)

    def session_stopped(self, result: Any = None) -> None:
        """Finish the session and restore breakpoint flags saved at its start.

        Leaf and tool events arriving afterwards, e.g. from parallel branches
        discarded by a failure, are dropped.
        """
        with self._events_lock, self._state_lock:
            self._result = result
            self._started = False
        self._fire(BreakpointType.SESSION_STOPPED, self._scope, extra={KEY_OUTPUT: result})

        for breakpoint in self.breakpoints:
            breakpoint.reset()
        self._log.info("Session stopped", session=self._session_id, entries=len(self._trace))

    def _archive_previous(self) -> None:
        if not self._trace:
            return
        self._archives.append(
            SessionArchive(
                session_id=self._session_id or "",
                inputs=safe_deepcopy(self._inputs),
                result=self._result,
                failure=self._failure,
                entries=tuple(self._trace.entries()),
                state=self._scope.state() if self._scope is not None else {},
                started_at=self._started_at or datetime.now(),
            )
        )

    @property
    def started(self) -> bool:
        with self._state_lock:
            return self._started

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def inputs(self) -> dict[str, Any]:
        with self._state_lock:
            return dict(self._inputs)

    @property
    def result(self) -> Any:
        return self._result

    @property
    def failure(self) -> BaseException | None:
        return self._failure

    @property
    def scope(self) -> Scope | None:
        return self._scope

    @property
    def archives(self) -> list[SessionArchive]:
        with self._state_lock:
            return list(self._archives)

    # -------------------------------------------------------------------------
    # Leaf events
    # -------------------------------------------------------------------------

    def _accepts(self, session_id: str | None) -> bool:
        """Whether an event from the given session may still be recorded."""
        return self._started and (session_id is None or session_id == self._session_id)

    def input_received(
        self,
        node_id: str,
        unit_name: str,
        inputs: Mapping[str, Any],
        scope: Scope | None = None,
        session_id: str | None = None,
    ) -> TraceEntry | None:
        """Append a trace entry for a leaf about to run and fire AGENT_INPUT.

        Returns None, recording nothing, once the session has stopped.
        """
        with self._events_lock:
            if not self._accepts(session_id):
                return None
            entry = self._trace.append(
                TraceEntry(unit_name=unit_name, node_id=node_id, input=safe_deepcopy(dict(inputs)))
            )
            self._fire(
                BreakpointType.AGENT_INPUT,
                scope or self._scope,
                unit_name=unit_name,
                extra={
                    KEY_INPUT: entry.input,
                    KEY_UNIT: unit_name,
                    KEY_NODE: node_id,
                    KEY_TRACE_ENTRY: entry,
                },
            )
            return entry

    def output_produced(
        self,
        entry: TraceEntry,
        output_name: str | None,
        output: Any,
        scope: Scope | None = None,
        session_id: str | None = None,
    ) -> None:
        """Record a leaf's output on its entry and fire AGENT_OUTPUT."""
        with self._events_lock:
            if not self._accepts(session_id):
                return
            entry.add_output(output_name, output)
            extra: dict[str, Any] = {
                KEY_INPUT: entry.input,
                KEY_OUTPUT: output,
                KEY_UNIT: entry.unit_name,
                KEY_NODE: entry.node_id,
                KEY_TRACE_ENTRY: entry,
            }
            if output_name is not None:
                extra[output_name] = output
                extra[KEY_OUTPUT_NAME] = output_name
            self._fire(
                BreakpointType.AGENT_OUTPUT,
                scope or self._scope,
                unit_name=entry.unit_name,
                output_name=output_name,
                extra=extra,
            )

    def failure_recorded(
        self, entry: TraceEntry, failure: BaseException, session_id: str | None = None
    ) -> None:
        with self._events_lock:
            if self._accepts(session_id):
                entry.set_failure(failure)

    def line_reached(
        self,
        breakpoint: Breakpoint,
        node_id: str,
        scope: Scope | None = None,
        session_id: str | None = None,
    ) -> Any:
        """Fire an inline breakpoint. Line breakpoints leave no trace entry."""
        with self._events_lock:
            if not self._breakpoints_enabled or not self._accepts(session_id):
                return None
            context = self._context(scope or self._scope, {KEY_NODE: node_id})
            return self._run(breakpoint, context)

    # -------------------------------------------------------------------------
    # Tool events
    # -------------------------------------------------------------------------

    def before_tool(self, invocation: Any, tool_name: str, arguments: dict[str, Any]) -> None:
        leaf: LeafInvocation = invocation
        with self._events_lock:
            if not self._accepts(leaf.session_id):
                return
            self._fire(
                BreakpointType.TOOL_INPUT,
                leaf.scope,
                unit_name=leaf.entry.unit_name,
                extra={
                    KEY_UNIT: leaf.entry.unit_name,
                    KEY_TRACE_ENTRY: leaf.entry,
                    KEY_TOOL: tool_name,
                    KEY_TOOL_REQUEST: arguments,
                },
            )

    def after_tool(
        self,
        invocation: Any,
        tool_name: str,
        arguments: dict[str, Any],
        result: Any,
        error: BaseException | None,
    ) -> None:
        leaf: LeafInvocation = invocation
        with self._events_lock:
            if not self._accepts(leaf.session_id):
                return
            leaf.entry.add_tool_invocation(
                ToolInvocation(
                    tool=tool_name,
                    request=arguments,
                    result=result,
                    error=error,
                    completed_at=datetime.now(),
                )
            )
            self._fire(
                BreakpointType.TOOL_OUTPUT,
                leaf.scope,
                unit_name=leaf.entry.unit_name,
                extra={
                    KEY_UNIT: leaf.entry.unit_name,
                    KEY_TRACE_ENTRY: leaf.entry,
                    KEY_TOOL: tool_name,
                    KEY_TOOL_REQUEST: arguments,
                    KEY_TOOL_RESPONSE: result if error is None else error,
                },
            )

    # -------------------------------------------------------------------------
    # Breakpoint evaluation
    # -------------------------------------------------------------------------

    def _context(self, scope: Scope | None, extra: Mapping[str, Any] | None) -> Mapping[str, Any]:
        context = scope.state() if scope is not None else {}
        if self._session_id is not None:
            context[KEY_SESSION_ID] = self._session_id
        if extra:
            context.update(extra)
        return MappingProxyType(context)

    def _fire(
        self,
        type: BreakpointType,
        scope: Scope | None,
        unit_name: str | None = None,
        output_name: str | None = None,
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        if not self._breakpoints_enabled:
            return
        matching = [bp for bp in self.breakpoints if bp.matches(type, unit_name, output_name)]
        if not matching:
            return
        context = self._context(scope, extra)
        for breakpoint in matching:
            self._run(breakpoint, context)

    def _run(self, breakpoint: Breakpoint, context: Mapping[str, Any]) -> Any:
        try:
            if not breakpoint.should_fire(context):
                return None
            return breakpoint.execute(context)
        except Exception as e:
            error = BreakpointActionError(breakpoint.type.name, e)
            self._log.error(str(error), exc_info=True, session=self._session_id)
            return None

    # -------------------------------------------------------------------------
    # Trace and summaries
    # -------------------------------------------------------------------------

    def get_agent_invocation_trace_entries(self) -> list[TraceEntry]:
        """Ordered trace of the current (or last) session."""
        return self._trace.entries()

    def summary(self) -> str:
        """Text summary of the current (or last) session."""
        with self._state_lock:
            return render_summary(
                self._inputs,
                self._trace.entries(),
                result=self._result,
                failure=self._failure,
                running=self._started,
            )

    def report(self) -> dict[str, Any]:
        """Machine-readable report of the current (or last) session."""
        with self._state_lock:
            return build_report(
                self._session_id,
                self._inputs,
                self._trace.entries(),
                result=self._result,
                failure=self._failure,
                running=self._started,
            )

    def report_json(self, indent: int = 2) -> str:
        return report_to_json(self.report(), indent=indent)

    def __repr__(self) -> str:
        return f"WorkflowDebugger(name={self._name!r}, breakpoints={len(self.breakpoints)})"
