"""Breakpoints: conditional actions attached to workflow events."""

import fnmatch
import threading
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping

from ..runtime.units import Unit
from ..types import BreakpointType

if TYPE_CHECKING:
    from .debugger import WorkflowDebugger

Action = Callable[["Breakpoint", Mapping[str, Any]], Any]
BreakpointCondition = Callable[[Mapping[str, Any]], Any]

_UNIT_EVENTS = frozenset(
    {
        BreakpointType.AGENT_INPUT,
        BreakpointType.AGENT_OUTPUT,
        BreakpointType.TOOL_INPUT,
        BreakpointType.TOOL_OUTPUT,
    }
)


class Breakpoint:
    """An action fired when a workflow event matches.

    Conditions and actions receive a read-only context: the Scope state plus
    event keys such as ``$input``, ``$output`` and ``$outputName``.

    Example:
        bp = Breakpoint(
            BreakpointType.AGENT_OUTPUT,
            "Story scored {{score}}",
            output_names=["score"],
            condition=lambda ctx: ctx["score"] >= 0.8,
        )
        debugger.add_breakpoint(bp)
    """

    def __init__(
        self,
        type: BreakpointType,
        action: Action | str,
        *,
        units: Iterable[Unit | str | Callable[..., Any]] | None = None,
        output_names: Iterable[str] | None = None,
        condition: BreakpointCondition | None = None,
        enabled: bool = True,
        label: str | None = None,
    ):
        """Initialize a breakpoint.

        Args:
            type: Event the breakpoint is attached to.
            action: Callable ``(breakpoint, context)``, or a template that is
                expanded and logged.
            units: Only fire for these units (names, units or functions).
            output_names: Only fire for outputs matching these wildcard
                patterns (``*`` and ``?``). Ignored for AGENT_INPUT.
            condition: Predicate over the context.
            enabled: Initial enabled flag.
            label: Display label. Defaults to the template, if one is given.
        """
        self._label = label or (action if isinstance(action, str) else None)
        if isinstance(action, str):
            from .actions import log

            action = log(action)
        self._type = BreakpointType(type)
        self._action = action
        self._units = frozenset(_unit_name(u) for u in units) if units else frozenset()
        self._output_names = tuple(output_names) if output_names else ()
        self._condition = condition
        self._enabled = enabled
        self._saved_enabled = enabled
        self._lock = threading.Lock()
        self._debugger: "WorkflowDebugger | None" = None

    @classmethod
    def builder(cls, type: BreakpointType, action: Action | str) -> "BreakpointBuilder":
        return BreakpointBuilder(type, action)

    @property
    def label(self) -> str | None:
        return self._label

    @property
    def type(self) -> BreakpointType:
        return self._type

    @property
    def action(self) -> Action:
        return self._action

    @property
    def condition(self) -> BreakpointCondition | None:
        return self._condition

    @property
    def units(self) -> frozenset[str]:
        return self._units

    @property
    def output_names(self) -> tuple[str, ...]:
        return self._output_names

    @property
    def debugger(self) -> "WorkflowDebugger | None":
        return self._debugger

    @debugger.setter
    def debugger(self, debugger: "WorkflowDebugger | None") -> None:
        self._debugger = debugger

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        with self._lock:
            self._enabled = value

    def save_state(self) -> None:
        """Remember the enabled flag so reset() can restore it."""
        with self._lock:
            self._saved_enabled = self._enabled

    def reset(self) -> None:
        """Restore the enabled flag saved by save_state()."""
        with self._lock:
            self._enabled = self._saved_enabled

    def matches(
        self,
        type: BreakpointType,
        unit_name: str | None = None,
        output_name: str | None = None,
    ) -> bool:
        """Check whether an event passes this breakpoint's type and filters."""
        if type != self._type:
            return False
        if type not in _UNIT_EVENTS:
            return True
        if self._units and unit_name not in self._units:
            return False
        if type == BreakpointType.AGENT_INPUT or not self._output_names:
            return True
        return output_name is not None and any(
            fnmatch.fnmatchcase(output_name, pattern) for pattern in self._output_names
        )

    def should_fire(self, context: Mapping[str, Any]) -> bool:
        return self.enabled and (self._condition is None or bool(self._condition(context)))

    def execute(self, context: Mapping[str, Any]) -> Any:
        return self._action(self, context)

    def __repr__(self) -> str:
        return f"Breakpoint(type={self._type.name}, enabled={self.enabled})"


class BreakpointBuilder:
    """Fluent construction of breakpoints.

    Example:
        bp = (
            Breakpoint.builder(BreakpointType.AGENT_OUTPUT, "{{$outputName}} = {{$output}}")
            .for_units("score_story")
            .with_output_names("score*")
            .build()
        )
    """

    def __init__(self, type: BreakpointType, action: Action | str):
        self._type = type
        self._action = action
        self._units: list[Unit | str | Callable[..., Any]] = []
        self._output_names: list[str] = []
        self._condition: BreakpointCondition | None = None
        self._enabled = True

    def for_units(self, *units: Unit | str | Callable[..., Any]) -> "BreakpointBuilder":
        """Restrict to the given units."""
        self._units.extend(units)
        return self

    def with_output_names(self, *patterns: str) -> "BreakpointBuilder":
        """Restrict to outputs matching the wildcard patterns."""
        self._output_names.extend(patterns)
        return self

    def with_condition(self, condition: BreakpointCondition) -> "BreakpointBuilder":
        self._condition = condition
        return self

    def with_enabled(self, enabled: bool) -> "BreakpointBuilder":
        self._enabled = enabled
        return self

    def build(self) -> Breakpoint:
        return Breakpoint(
            self._type,
            self._action,
            units=self._units,
            output_names=self._output_names,
            condition=self._condition,
            enabled=self._enabled,
        )


def _unit_name(target: Unit | str | Callable[..., Any]) -> str:
    if isinstance(target, str):
        return target
    if isinstance(target, Unit):
        return target.name
    return getattr(target, "__name__", type(target).__name__)
