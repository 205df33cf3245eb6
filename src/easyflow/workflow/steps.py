"""Compiled steps: the executable form of statement nodes.

Each step runs against a Scope and an ExecutionContext carrying the attached
debugger, the worker pool and the runtime configuration.
"""

import logging
import threading
from collections.abc import Mapping
from concurrent.futures import FIRST_EXCEPTION, Executor, wait
from dataclasses import dataclass, replace
from typing import Any, Callable

from ..debug.debugger import WorkflowDebugger
from ..debug.trace import LeafInvocation
from ..exceptions import (
    BranchDiscardedError,
    DelegateInvocationError,
    EasyflowError,
    ParallelTimeoutError,
    UnmatchedBranchError,
    WorkflowExecutionError,
)
from ..runtime.pool import get_shared_executor, running_on, worker_of
from ..runtime.scope import Scope
from ..runtime.supervisor import GroupMember, Planner, Supervisor
from ..runtime.tools import listening
from ..runtime.units import Unit
from ..types import RuntimeConfig
from ..utils.templates import expand, has_placeholders
from .conditions import describe

logger = logging.getLogger(__name__)


@dataclass
class ExecutionContext:
    """Per-session collaborators shared by every step."""

    config: RuntimeConfig
    debugger: WorkflowDebugger | None = None
    executor: Executor | None = None
    log_input: bool = False
    log_output: bool = False
    session_id: str | None = None
    # Set by the enclosing parallel blocks once their results are discarded.
    discard_flags: tuple[threading.Event, ...] = ()

    def pool(self) -> Executor:
        return self.executor or get_shared_executor(self.config.parallel_workers)

    @property
    def discarded(self) -> bool:
        return any(flag.is_set() for flag in self.discard_flags)

    def for_branches(self, flag: threading.Event) -> "ExecutionContext":
        """Context for the children of a fan-out, discarded when the flag is set."""
        return replace(self, discard_flags=self.discard_flags + (flag,))


class Step:
    """Base class for compiled steps."""

    # False for steps that report no value to the enclosing sequence.
    produces_value = True

    def __init__(self, node_id: str):
        self.node_id = node_id

    def run(self, scope: Scope, ctx: ExecutionContext) -> Any:
        raise NotImplementedError

    def _call(self, what: str, func: Callable[[Scope], Any], scope: Scope) -> Any:
        """Invoke a predicate, selector or combiner, naming the node on failure."""
        try:
            return func(scope)
        except EasyflowError:
            raise
        except Exception as e:
            raise WorkflowExecutionError(
                f"{what} '{describe(func)}' failed: {e}",
                node_id=self.node_id,
                original_error=e,
            ) from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.node_id})"


class LeafStep(Step):
    def __init__(self, node_id: str, unit: Unit, output_name: str | None):
        super().__init__(node_id)
        self.unit = unit
        self.output_name = output_name
        self._spread = unit.spread_output and output_name is None

    def _resolve_inputs(self, scope: Scope) -> dict[str, Any]:
        signature = self.unit.signature
        inputs: dict[str, Any] = {}
        for name in signature.inputs:
            if scope.contains(name):
                inputs[name] = scope.read(name)
            elif name not in signature.optional:
                raise DelegateInvocationError(
                    self.unit.name, f"missing argument '{name}'", node_id=self.node_id
                )
        return inputs

    def run(self, scope: Scope, ctx: ExecutionContext) -> Any:
        if ctx.discarded:
            raise BranchDiscardedError(self.node_id)
        inputs = self._resolve_inputs(scope)
        debugger = ctx.debugger
        entry = None
        if debugger is not None:
            entry = debugger.input_received(
                self.node_id, self.unit.name, inputs, scope, session_id=ctx.session_id
            )
        if ctx.log_input:
            logger.info(f"Agent '{self.unit.name}' input: {inputs}")

        invocation = LeafInvocation(entry, scope, ctx.session_id) if entry is not None else None
        try:
            with listening(debugger if invocation is not None else None, invocation):
                value = self.unit.invoke(inputs)
        except Exception as e:
            error = DelegateInvocationError(
                self.unit.name, str(e) or type(e).__name__, node_id=self.node_id, original_error=e
            )
            if entry is not None and not ctx.discarded:
                debugger.failure_recorded(entry, error, session_id=ctx.session_id)
            raise error from e

        if ctx.discarded:
            raise BranchDiscardedError(self.node_id)

        if self._spread and isinstance(value, Mapping):
            scope.write_all(value)
            produced = list(value.items()) or [(None, value)]
        else:
            name = self.output_name
            if name is not None and has_placeholders(name):
                name = expand(name, scope.to_dict())
            if name is not None:
                scope.write(name, value)
            produced = [(name, value)]

        for name, produced_value in produced:
            if entry is not None:
                debugger.output_produced(entry, name, produced_value, scope, session_id=ctx.session_id)
            if ctx.log_output:
                logger.info(f"Agent '{self.unit.name}' output: '{name}' -> {produced_value}")
        return value


class SequenceStep(Step):
    def __init__(self, node_id: str, children: list[Step]):
        super().__init__(node_id)
        self.children = children

    def run(self, scope: Scope, ctx: ExecutionContext) -> Any:
        result = None
        for child in self.children:
            value = child.run(scope, ctx)
            if child.produces_value:
                result = value
        return result


class ConditionalStep(Step):
    def __init__(
        self,
        node_id: str,
        branches: list[tuple[Callable[[Scope], Any], Step]],
        otherwise: Step | None,
    ):
        super().__init__(node_id)
        self.branches = branches
        self.otherwise = otherwise

    def run(self, scope: Scope, ctx: ExecutionContext) -> Any:
        for predicate, body in self.branches:
            if self._call("Predicate", predicate, scope):
                return body.run(scope, ctx)
        if self.otherwise is not None:
            return self.otherwise.run(scope, ctx)
        if ctx.config.strict_branching:
            raise UnmatchedBranchError("conditional", node_id=self.node_id)
        logger.debug(f"Conditional {self.node_id}: no branch matched")
        return None


class SwitchStep(Step):
    def __init__(
        self,
        node_id: str,
        selector: Callable[[Scope], Any],
        cases: list[tuple[tuple[Any, ...], Step]],
        default: Step | None,
    ):
        super().__init__(node_id)
        self.selector = selector
        self.cases = cases
        self.default = default

    def run(self, scope: Scope, ctx: ExecutionContext) -> Any:
        key = self._call("Selector", self.selector, scope)
        for keys, body in self.cases:
            if key in keys:
                return body.run(scope, ctx)
        if self.default is not None:
            return self.default.run(scope, ctx)
        if ctx.config.strict_branching:
            raise UnmatchedBranchError("switch", node_id=self.node_id, key=key)
        logger.debug(f"Switch {self.node_id}: no case matched {key!r}")
        return None


class ParallelStep(Step):
    def __init__(
        self,
        node_id: str,
        children: list[Step],
        combiner: Callable[[Scope], Any],
        output_name: str,
        timeout: float | None,
    ):
        super().__init__(node_id)
        self.children = children
        self.combiner = combiner
        self.output_name = output_name
        self.timeout = timeout

    def run(self, scope: Scope, ctx: ExecutionContext) -> Any:
        executor = ctx.pool()
        branches = [scope.branch() for _ in self.children]

        if running_on(executor):
            # Nested block on a worker of the same pool: run inline.
            for child, branch in zip(self.children, branches):
                child.run(branch, ctx)
        else:
            self._fan_out(executor, branches, ctx)

        for branch in branches:
            scope.merge(branch)

        result = self._call("Combiner", self.combiner, scope)
        scope.write(self.output_name, result)
        return result

    def _fan_out(self, executor: Executor, branches: list[Scope], ctx: ExecutionContext) -> None:
        discard = threading.Event()
        branch_ctx = ctx.for_branches(discard)

        def _run_child(child: Step, branch: Scope) -> Any:
            with worker_of(executor):
                return child.run(branch, branch_ctx)

        futures = [
            executor.submit(_run_child, child, branch)
            for child, branch in zip(self.children, branches)
        ]
        done, pending = wait(futures, timeout=self.timeout, return_when=FIRST_EXCEPTION)

        for future in futures:
            if future in done and future.exception() is not None:
                self._discard(discard, pending)
                raise future.exception()

        if pending:
            self._discard(discard, pending)
            raise ParallelTimeoutError(self.timeout or 0.0, len(pending), node_id=self.node_id)

    def _discard(self, discard: threading.Event, pending: set) -> None:
        # Branches still running stop at their next leaf and report nothing further.
        discard.set()
        for other in pending:
            other.cancel()
        logger.debug(f"Parallel {self.node_id}: discarded {len(pending)} pending branch(es)")


class LoopStep(Step):
    def __init__(
        self,
        node_id: str,
        body: Step,
        continue_while: Callable[[Scope], Any],
        max_iterations: int,
    ):
        super().__init__(node_id)
        self.body = body
        self.continue_while = continue_while
        self.max_iterations = max_iterations

    def run(self, scope: Scope, ctx: ExecutionContext) -> Any:
        result = None
        iterations = 0
        while iterations < self.max_iterations and self._call("Predicate", self.continue_while, scope):
            result = self.body.run(scope, ctx)
            iterations += 1
        if iterations == self.max_iterations:
            logger.debug(f"Loop {self.node_id} stopped at max iterations ({self.max_iterations})")
        return result


class GroupStep(Step):
    def __init__(
        self,
        node_id: str,
        members: list[tuple[str, Step]],
        output_name: str,
        planner: Planner | None,
    ):
        super().__init__(node_id)
        self.members = members
        self.output_name = output_name
        self.planner = planner

    def run(self, scope: Scope, ctx: ExecutionContext) -> Any:
        members = [
            GroupMember(name=name, run=lambda s, step=step: step.run(s, ctx))
            for name, step in self.members
        ]
        supervisor = Supervisor(max_steps=ctx.config.group_max_steps)
        result = supervisor.dispatch(members, scope, self.planner, node_id=self.node_id)
        scope.write(self.output_name, result)
        return result


class LineBreakpointStep(Step):
    produces_value = False

    def __init__(self, node_id: str, breakpoint: Any):
        super().__init__(node_id)
        self.breakpoint = breakpoint

    def run(self, scope: Scope, ctx: ExecutionContext) -> Any:
        if ctx.debugger is not None and not ctx.discarded:
            ctx.debugger.line_reached(self.breakpoint, self.node_id, scope, session_id=ctx.session_id)
        return None
