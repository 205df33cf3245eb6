"""Fluent workflow builder.

The builder keeps every container under construction in an arena and tracks
the open blocks with a stack of arena indices. Opening a block pushes, end()
pops exactly one block, and build() requires the stack to be empty. The
finished tree is immutable and is compiled into a Pipeline.
"""

import itertools
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from ..debug.breakpoints import Breakpoint, BreakpointCondition
from ..debug.debugger import WorkflowDebugger
from ..exceptions import MalformedWorkflowError
from ..runtime.supervisor import Planner
from ..runtime.units import HumanInputUnit, StateUnit, Unit, as_unit
from ..types import BreakpointType, NodeKind, RuntimeConfig
from .compiler import Compiler
from .conditions import Condition
from .export import export_node
from .nodes import (
    Conditional,
    Group,
    GuardedBranch,
    Leaf,
    LineBreakpoint,
    Loop,
    Node,
    Parallel,
    Sequence,
    Switch,
    SwitchCase,
)
from .pipeline import Pipeline

_always = Condition(lambda scope: True, "always")


@dataclass
class _Branch:
    """Branch under construction: a predicate or a tuple of switch keys."""

    guard: Any
    children: list[Any] = field(default_factory=list)


@dataclass
class _Block:
    """Container under construction. Children are nodes or arena indices."""

    id: str
    kind: NodeKind
    method: str
    children: list[Any] = field(default_factory=list)
    branches: list[_Branch] = field(default_factory=list)
    otherwise: list[Any] | None = None
    options: dict[str, Any] = field(default_factory=dict)


class WorkflowBuilder:
    """Builds workflows with a nested fluent grammar.

    Example:
        pipeline = (
            WorkflowBuilder("story", inputs=["topic"], output_name="story")
            .agent(write_story)
            .repeat(lambda s: s.read("score", 0) < 0.8, max_iterations=3)
                .agent(edit_story)
                .agent(score_story)
            .end()
            .if_then(lambda s: s.read("score", 0) >= 0.8)
                .agent(publish)
            .otherwise()
                .set_state(status="rejected")
            .end()
            .build()
        )
    """

    def __init__(
        self,
        name: str = "workflow",
        inputs: tuple[str, ...] | list[str] | str = (),
        output_name: str | None = None,
        config: RuntimeConfig | None = None,
    ):
        """Initialize the builder.

        Args:
            name: Workflow name.
            inputs: Names the pipeline must be called with.
            output_name: Scope key returned as the pipeline result.
            config: Runtime configuration. Defaults to RuntimeConfig.from_env().
        """
        self._name = name
        self._inputs = (inputs,) if isinstance(inputs, str) else tuple(inputs)
        self._output_name = output_name
        self._config = config or RuntimeConfig.from_env()

        self._ids = itertools.count()
        self._arena: list[_Block] = []
        self._stack: list[int] = []
        self._root = self._new_block(NodeKind.SEQUENCE, "root")

        self._composer: Callable[..., Any] | None = None
        self._debugger: WorkflowDebugger | None = None
        self._executor: Executor | None = None
        self._log_input = self._config.log_input
        self._log_output = self._config.log_output
        self._line_breakpoints: list[Breakpoint] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    @property
    def depth(self) -> int:
        """Number of blocks currently open."""
        return len(self._stack)

    @property
    def line_breakpoints(self) -> list[Breakpoint]:
        return list(self._line_breakpoints)

    # -------------------------------------------------------------------------
    # Arena and stack
    # -------------------------------------------------------------------------

    def _next_id(self) -> str:
        return f"node-{next(self._ids)}"

    def _new_block(self, kind: NodeKind, method: str, **options: Any) -> int:
        self._arena.append(_Block(id=self._next_id(), kind=kind, method=method, options=options))
        return len(self._arena) - 1

    def _target(self, method: str) -> list[Any]:
        """Child list new statements are appended to."""
        index = self._stack[-1] if self._stack else self._root
        block = self._arena[index]
        if block.kind in (NodeKind.CONDITIONAL, NodeKind.SWITCH):
            if block.otherwise is not None:
                return block.otherwise
            if not block.branches:
                raise MalformedWorkflowError("add a 'match' case before adding statements", method)
            return block.branches[-1].children
        return block.children

    def _open(self, kind: NodeKind, method: str, **options: Any) -> int:
        target = self._target(method)
        index = self._new_block(kind, method, **options)
        target.append(index)
        self._stack.append(index)
        return index

    def _top(self, method: str, *kinds: NodeKind) -> _Block:
        if not self._stack or self._arena[self._stack[-1]].kind not in kinds:
            openers = " or ".join(f"'{_OPENERS[k]}'" for k in kinds)
            raise MalformedWorkflowError(f"'{method}' without matching {openers}", method)
        return self._arena[self._stack[-1]]

    def _add(self, node: Node, method: str) -> "WorkflowBuilder":
        self._target(method).append(node)
        return self

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def agent(self, target: Unit | Callable[..., Any], output_name: str | None = None) -> "WorkflowBuilder":
        """Add a leaf delegating to a unit or plain callable.

        Args:
            target: Unit, or callable wrapped into a FunctionUnit.
            output_name: Scope key for the produced value. May contain
                ``{{name}}`` placeholders expanded against the Scope.
        """
        unit = as_unit(target)
        return self._add(Leaf(self._next_id(), unit, output_name), "agent")

    def set_state(
        self,
        values: Mapping[str, Any] | Callable[[], Mapping[str, Any]] | None = None,
        **states: Any,
    ) -> "WorkflowBuilder":
        """Add a leaf writing fixed values, or values from a supplier, to the Scope."""
        if callable(values):
            if states:
                raise MalformedWorkflowError("pass either a supplier or values, not both", "set_state")
            unit = StateUnit(values)
        else:
            merged = dict(values or {})
            merged.update(states)
            if not merged:
                raise MalformedWorkflowError("no states given", "set_state")
            unit = StateUnit(merged)
        return self._add(Leaf(self._next_id(), unit), "set_state")

    def human_input(
        self,
        output_name: str,
        description: str,
        request_writer: Callable[[str], None] | None = None,
        response_reader: Callable[[], str] | None = None,
    ) -> "WorkflowBuilder":
        """Add a leaf asking a human and writing the answer to output_name."""
        unit = HumanInputUnit(output_name, description, request_writer, response_reader)
        return self._add(Leaf(self._next_id(), unit), "human_input")

    def breakpoint(
        self,
        action: Callable[..., Any] | str,
        condition: BreakpointCondition | None = None,
        enabled: bool = True,
    ) -> "WorkflowBuilder":
        """Add an inline breakpoint firing when execution reaches it.

        Args:
            action: Callable ``(breakpoint, context)``, or a template to log.
            condition: Predicate over the context.
            enabled: Initial enabled flag.
        """
        bp = Breakpoint(BreakpointType.LINE, action, condition=condition, enabled=enabled)
        self._line_breakpoints.append(bp)
        return self._add(LineBreakpoint(self._next_id(), bp), "breakpoint")

    # -------------------------------------------------------------------------
    # Blocks
    # -------------------------------------------------------------------------

    def if_then(self, predicate: Callable[..., Any]) -> "WorkflowBuilder":
        """Open a conditional; its first branch runs when predicate(scope) holds."""
        index = self._open(NodeKind.CONDITIONAL, "if_then")
        self._arena[index].branches.append(_Branch(predicate))
        return self

    def else_if(self, predicate: Callable[..., Any]) -> "WorkflowBuilder":
        block = self._top("else_if", NodeKind.CONDITIONAL)
        if block.otherwise is not None:
            raise MalformedWorkflowError("'else_if' after 'otherwise'", "else_if")
        block.branches.append(_Branch(predicate))
        return self

    def otherwise(self) -> "WorkflowBuilder":
        """Open the fallback branch of a conditional or the default case of a switch."""
        block = self._top("otherwise", NodeKind.CONDITIONAL, NodeKind.SWITCH)
        if block.otherwise is not None:
            raise MalformedWorkflowError("duplicate 'otherwise'", "otherwise")
        block.otherwise = []
        return self

    def do_when(self, selector: Callable[..., Any]) -> "WorkflowBuilder":
        """Open a switch on selector(scope); add cases with match()."""
        self._open(NodeKind.SWITCH, "do_when", selector=selector)
        return self

    def match(self, *keys: Any) -> "WorkflowBuilder":
        """Open a switch case matching any of the keys by equality."""
        block = self._top("match", NodeKind.SWITCH)
        if not keys:
            raise MalformedWorkflowError("at least one key is required", "match")
        if block.otherwise is not None:
            raise MalformedWorkflowError("'match' after 'otherwise'", "match")
        seen = [key for branch in block.branches for key in branch.guard]
        for key in keys:
            if key in seen:
                raise MalformedWorkflowError(f"duplicate switch key {key!r}", "match")
            seen.append(key)
        block.branches.append(_Branch(tuple(keys)))
        return self

    def do_parallel(
        self,
        output_name: str | None = None,
        combiner: Callable[..., Any] | None = None,
        timeout: float | None = None,
    ) -> "WorkflowBuilder":
        """Open a parallel block; each statement inside runs on its own branch.

        Args:
            output_name: Scope key for the combined result.
            combiner: Function of the merged Scope. Defaults to a dict of the
                children's output names.
            timeout: Seconds to wait for all children.
        """
        if timeout is not None and timeout <= 0:
            raise MalformedWorkflowError("timeout must be positive", "do_parallel")
        self._open(
            NodeKind.PARALLEL,
            "do_parallel",
            output_name=output_name or self._config.default_output_name,
            combiner=combiner,
            timeout=timeout if timeout is not None else self._config.parallel_timeout,
        )
        return self

    def repeat(
        self,
        continue_while: Callable[..., Any] | None = None,
        max_iterations: int | None = None,
    ) -> "WorkflowBuilder":
        """Open a loop running while continue_while(scope) holds.

        Args:
            continue_while: Checked before every iteration. Without one the
                body runs exactly max_iterations times.
            max_iterations: Iteration bound, 1 to ``max_iterations_limit``.
        """
        bound = self._config.default_max_iterations if max_iterations is None else max_iterations
        limit = self._config.max_iterations_limit
        if not isinstance(bound, int) or bound < 1 or bound > limit:
            raise MalformedWorkflowError(
                f"max_iterations must be between 1 and {limit}, got {bound!r}", "repeat"
            )
        self._open(
            NodeKind.LOOP,
            "repeat",
            continue_while=continue_while or _always,
            max_iterations=bound,
        )
        return self

    def group(self, output_name: str | None = None, planner: Planner | None = None) -> "WorkflowBuilder":
        """Open a group whose members are dispatched by a supervisor."""
        self._open(
            NodeKind.GROUP,
            "group",
            output_name=output_name or self._config.default_output_name,
            planner=planner,
        )
        return self

    def end(self) -> "WorkflowBuilder":
        """Close the innermost open block."""
        if not self._stack:
            raise MalformedWorkflowError("'end' without a matching block", "end")
        block = self._arena[self._stack[-1]]
        if block.kind in (NodeKind.LOOP, NodeKind.GROUP) and not block.children:
            raise MalformedWorkflowError(f"empty '{block.method}' block", "end")
        if block.kind == NodeKind.SWITCH and not block.branches and block.otherwise is None:
            raise MalformedWorkflowError("'do_when' block without cases", "end")
        self._stack.pop()
        return self

    # -------------------------------------------------------------------------
    # Pipeline options
    # -------------------------------------------------------------------------

    def output(self, composer: Callable[..., Any]) -> "WorkflowBuilder":
        """Set the function of the final Scope returned as the pipeline result."""
        self._composer = composer
        return self

    def debugger(self, debugger: WorkflowDebugger) -> "WorkflowBuilder":
        """Attach a debugger to every session of the built pipeline."""
        self._debugger = debugger
        return self

    def executor(self, executor: Executor) -> "WorkflowBuilder":
        """Use this pool for parallel blocks instead of the shared one."""
        self._executor = executor
        return self

    def log_input(self, enabled: bool = True) -> "WorkflowBuilder":
        self._log_input = enabled
        return self

    def log_output(self, enabled: bool = True) -> "WorkflowBuilder":
        self._log_output = enabled
        return self

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------

    def tree(self) -> Sequence:
        """Freeze the statements into an immutable tree.

        Raises:
            MalformedWorkflowError: If a block is still open.
        """
        if self._stack:
            opened = self._arena[self._stack[-1]].method
            raise MalformedWorkflowError(
                f"{len(self._stack)} block(s) not closed, e.g. '{opened}' without matching 'end'",
                "build",
            )
        return self._freeze(self._root)

    def to_json(self, indent: int | None = 2) -> str:
        return export_node(self.tree()).model_dump_json(indent=indent, exclude_none=True)

    def build(self) -> Pipeline:
        """Build the pipeline.

        Raises:
            MalformedWorkflowError: If a block is still open.
            CompilationError: If the tree is inconsistent.
        """
        tree = self.tree()
        if self._debugger is not None:
            for bp in self._line_breakpoints:
                self._debugger.add_breakpoint(bp)
        return Compiler(self._config).compile(
            tree,
            name=self._name,
            inputs=self._inputs,
            output_name=self._output_name,
            composer=self._composer,
            debugger=self._debugger,
            executor=self._executor,
            log_input=self._log_input,
            log_output=self._log_output,
        )

    def _freeze(self, index: int) -> Node:
        block = self._arena[index]
        options = block.options

        if block.kind == NodeKind.SEQUENCE:
            return Sequence(block.id, self._freeze_all(block.children))
        if block.kind == NodeKind.CONDITIONAL:
            return Conditional(
                block.id,
                tuple(
                    GuardedBranch(branch.guard, self._body(f"{block.id}/then-{i}", branch.children))
                    for i, branch in enumerate(block.branches)
                ),
                self._body(f"{block.id}/else", block.otherwise) if block.otherwise is not None else None,
            )
        if block.kind == NodeKind.SWITCH:
            return Switch(
                block.id,
                options["selector"],
                tuple(
                    SwitchCase(branch.guard, self._body(f"{block.id}/case-{i}", branch.children))
                    for i, branch in enumerate(block.branches)
                ),
                self._body(f"{block.id}/default", block.otherwise) if block.otherwise is not None else None,
            )
        if block.kind == NodeKind.PARALLEL:
            return Parallel(
                block.id,
                self._freeze_all(block.children),
                options["output_name"],
                options["combiner"],
                options["timeout"],
            )
        if block.kind == NodeKind.LOOP:
            return Loop(
                block.id,
                self._body(f"{block.id}/body", block.children),
                options["continue_while"],
                options["max_iterations"],
            )
        if block.kind == NodeKind.GROUP:
            return Group(
                block.id,
                self._freeze_all(block.children),
                options["output_name"],
                options["planner"],
            )
        raise MalformedWorkflowError(f"unexpected block kind '{block.kind.value}'", block.method)

    def _freeze_all(self, children: list[Any]) -> tuple[Node, ...]:
        return tuple(self._freeze(c) if isinstance(c, int) else c for c in children)

    def _body(self, body_id: str, children: list[Any]) -> Sequence:
        return Sequence(body_id, self._freeze_all(children))


_OPENERS = {
    NodeKind.CONDITIONAL: "if_then",
    NodeKind.SWITCH: "do_when",
    NodeKind.PARALLEL: "do_parallel",
    NodeKind.LOOP: "repeat",
    NodeKind.GROUP: "group",
}
