"""Compiler: turns a statement tree into an executable pipeline.

Compilation walks the tree once and maps every node kind to a step class.
It never mutates the tree, so compiling the same tree twice yields
equivalent pipelines.
"""

import logging
from collections import Counter
from concurrent.futures import Executor
from typing import Any, Callable

from ..debug.debugger import WorkflowDebugger
from ..exceptions import CompilationError
from ..types import NodeKind, RuntimeConfig
from .composers import as_map
from .nodes import (
    Conditional,
    Group,
    Leaf,
    LineBreakpoint,
    Loop,
    Node,
    Parallel,
    Sequence,
    Switch,
    static_output_names,
)
from .pipeline import Pipeline
from .steps import (
    ConditionalStep,
    GroupStep,
    LeafStep,
    LineBreakpointStep,
    LoopStep,
    ParallelStep,
    SequenceStep,
    Step,
    SwitchStep,
)

logger = logging.getLogger(__name__)


class Compiler:
    """Compiles statement trees.

    Example:
        compiler = Compiler(RuntimeConfig(strict_branching=True))
        pipeline = compiler.compile(builder.tree(), name="story")
    """

    def __init__(self, config: RuntimeConfig | None = None):
        self._config = config or RuntimeConfig()
        self._handlers: dict[NodeKind, Callable[[Any], Step]] = {
            NodeKind.LEAF: self._leaf,
            NodeKind.SEQUENCE: self._sequence,
            NodeKind.CONDITIONAL: self._conditional,
            NodeKind.SWITCH: self._switch,
            NodeKind.PARALLEL: self._parallel,
            NodeKind.LOOP: self._loop,
            NodeKind.GROUP: self._group,
            NodeKind.LINE_BREAKPOINT: self._line_breakpoint,
        }
        missing = set(NodeKind) - set(self._handlers)
        if missing:
            raise CompilationError(f"No compiler handler for: {sorted(k.value for k in missing)}")

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    def compile(
        self,
        root: Sequence,
        *,
        name: str = "workflow",
        inputs: tuple[str, ...] | list[str] = (),
        output_name: str | None = None,
        composer: Callable[..., Any] | None = None,
        debugger: WorkflowDebugger | None = None,
        executor: Executor | None = None,
        log_input: bool | None = None,
        log_output: bool | None = None,
    ) -> Pipeline:
        """Compile a tree into a pipeline.

        Args:
            root: Root sequence of the tree.
            name: Pipeline name used in logs and errors.
            inputs: Declared input names, required on every call.
            output_name: Scope key read as the pipeline result.
            composer: Output composer applied to the final Scope.
            debugger: Debugger observing every session.
            executor: Pool for parallel blocks; the shared pool when omitted.
            log_input: Log every leaf input. Defaults to the config flag.
            log_output: Log every leaf output. Defaults to the config flag.

        Returns:
            The invocable pipeline.

        Raises:
            CompilationError: If the tree is inconsistent.
        """
        if not isinstance(root, Sequence):
            raise CompilationError(f"Root must be a sequence, got {type(root).__name__}")
        step = self.compile_node(root)
        logger.debug(f"Compiled workflow '{name}'")
        return Pipeline(
            name=name,
            tree=root,
            root=step,
            inputs=tuple(inputs),
            output_name=output_name,
            composer=composer,
            config=self._config,
            debugger=debugger,
            executor=executor,
            log_input=self._config.log_input if log_input is None else log_input,
            log_output=self._config.log_output if log_output is None else log_output,
        )

    def compile_node(self, node: Node) -> Step:
        handler = self._handlers.get(node.kind)
        if handler is None:
            raise CompilationError(f"Unsupported node kind '{node.kind}'", node_id=node.id)
        return handler(node)

    def _leaf(self, node: Leaf) -> Step:
        return LeafStep(node.id, node.unit, node.effective_output_name)

    def _sequence(self, node: Sequence) -> Step:
        return SequenceStep(node.id, [self.compile_node(c) for c in node.children])

    def _conditional(self, node: Conditional) -> Step:
        if not node.branches:
            raise CompilationError("Conditional without branches", node_id=node.id)
        return ConditionalStep(
            node.id,
            [(b.predicate, self.compile_node(b.body)) for b in node.branches],
            self.compile_node(node.otherwise) if node.otherwise is not None else None,
        )

    def _switch(self, node: Switch) -> Step:
        seen: list[Any] = []
        for case in node.cases:
            for key in case.keys:
                if key in seen:
                    raise CompilationError(f"Duplicate switch key {key!r}", node_id=node.id)
                seen.append(key)
        return SwitchStep(
            node.id,
            node.selector,
            [(case.keys, self.compile_node(case.body)) for case in node.cases],
            self.compile_node(node.default) if node.default is not None else None,
        )

    def _parallel(self, node: Parallel) -> Step:
        if not node.children:
            raise CompilationError("Parallel block has no children", node_id=node.id)

        names = [name for child in node.children for name in static_output_names(child)]
        combiner = node.combiner
        if combiner is None:
            duplicates = sorted(name for name, count in Counter(names).items() if count > 1)
            if duplicates:
                raise CompilationError(
                    f"Parallel children write the same output {duplicates} without a combiner",
                    node_id=node.id,
                )
            combiner = as_map(*names)

        return ParallelStep(
            node.id,
            [self.compile_node(c) for c in node.children],
            combiner,
            node.output_name,
            node.timeout,
        )

    def _loop(self, node: Loop) -> Step:
        if node.max_iterations < 1:
            raise CompilationError("Loop bound must be positive", node_id=node.id)
        return LoopStep(node.id, self.compile_node(node.body), node.continue_while, node.max_iterations)

    def _group(self, node: Group) -> Step:
        if not node.children:
            raise CompilationError("Group has no members", node_id=node.id)
        members: list[tuple[str, Step]] = []
        used: set[str] = set()
        for child in node.children:
            member = child.unit.name if isinstance(child, Leaf) else child.id
            if member in used:
                member = f"{member}#{child.id}"
            used.add(member)
            members.append((member, self.compile_node(child)))
        return GroupStep(node.id, members, node.output_name, node.planner)

    def _line_breakpoint(self, node: LineBreakpoint) -> Step:
        return LineBreakpointStep(node.id, node.breakpoint)


def compile_workflow(root: Sequence, config: RuntimeConfig | None = None, **options: Any) -> Pipeline:
    """Compile a tree with a fresh Compiler; see Compiler.compile for options."""
    return Compiler(config).compile(root, **options)
