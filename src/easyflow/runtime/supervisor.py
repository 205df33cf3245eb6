"""Supervised dispatch for workflow groups.

A group exposes its children to a supervisor, which asks a pluggable planner
which member to run next until the planner stops or the step cap is reached.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from ..exceptions import EasyflowError, WorkflowExecutionError
from .scope import Scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupMember:
    """A child of a group, exposed to the supervisor by name."""

    name: str
    run: Callable[[Scope], Any]
    description: str | None = None


class Planner(Protocol):
    """Dispatch strategy choosing the next group member."""

    def next(self, scope: Scope, members: list[str], history: list[str]) -> str | None:
        """Return the name of the member to run next, or None to stop."""
        ...


class FreeFormPlanner:
    """Default strategy: every member once, in declaration order."""

    def next(self, scope: Scope, members: list[str], history: list[str]) -> str | None:
        for name in members:
            if name not in history:
                return name
        return None

    def __repr__(self) -> str:
        return "FreeFormPlanner()"


class FunctionPlanner:
    """Strategy backed by a callable ``(scope, members, history) -> name | None``."""

    def __init__(self, func: Callable[[Scope, list[str], list[str]], str | None], name: str | None = None):
        self._func = func
        self._name = name or getattr(func, "__name__", "planner")

    def next(self, scope: Scope, members: list[str], history: list[str]) -> str | None:
        return self._func(scope, members, history)

    def __repr__(self) -> str:
        return f"FunctionPlanner({self._name})"


class Supervisor:
    """Runs group members as directed by a planner.

    Example:
        supervisor = Supervisor(max_steps=4)
        result = supervisor.dispatch(members, scope, FreeFormPlanner())
    """

    def __init__(self, max_steps: int = 10):
        if max_steps < 1:
            raise ValueError("max_steps must be positive")
        self._max_steps = max_steps

    @property
    def max_steps(self) -> int:
        return self._max_steps

    def dispatch(
        self,
        members: list[GroupMember],
        scope: Scope,
        planner: Planner | None = None,
        node_id: str | None = None,
    ) -> Any:
        """Dispatch members until the planner stops.

        Args:
            members: Members available to the planner.
            scope: Scope shared by all members.
            planner: Strategy; FreeFormPlanner when omitted.
            node_id: Group node reported in errors.

        Returns:
            The value produced by the last member run, or None.

        Raises:
            WorkflowExecutionError: If the planner fails or picks an unknown member.
        """
        planner = planner or FreeFormPlanner()
        by_name = {member.name: member for member in members}
        names = list(by_name)
        history: list[str] = []
        result: Any = None

        for step in range(self._max_steps):
            try:
                choice = planner.next(scope, names, list(history))
            except EasyflowError:
                raise
            except Exception as e:
                raise WorkflowExecutionError(
                    f"Planner {planner!r} failed: {e}", node_id=node_id, original_error=e
                ) from e
            if choice is None:
                break
            member = by_name.get(choice)
            if member is None:
                raise WorkflowExecutionError(
                    f"Planner {planner!r} selected unknown member '{choice}'. "
                    f"Available members: {', '.join(names)}",
                    node_id=node_id,
                )
            logger.debug(f"Supervisor step {step}: dispatching '{choice}'")
            result = member.run(scope)
            history.append(choice)
        else:
            logger.info(f"Supervisor stopped after reaching max steps ({self._max_steps})")

        return result
