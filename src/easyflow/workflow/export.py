"""Machine-readable export of a statement tree."""

from typing import Any, Callable

from ..exceptions import CompilationError
from ..types import BranchExport, NodeExport, NodeKind
from .conditions import describe
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
)


def _leaf(node: Leaf) -> NodeExport:
    return NodeExport(
        id=node.id,
        kind=node.kind,
        label=node.unit.signature.description,
        unit=node.unit.name,
        inputs=list(node.unit.signature.inputs),
        output_name=node.effective_output_name,
    )


def _sequence(node: Sequence) -> NodeExport:
    return NodeExport(id=node.id, kind=node.kind, children=[export_node(c) for c in node.children])


def _conditional(node: Conditional) -> NodeExport:
    return NodeExport(
        id=node.id,
        kind=node.kind,
        branches=[
            BranchExport(label=describe(b.predicate), body=export_node(b.body)) for b in node.branches
        ],
        otherwise=export_node(node.otherwise) if node.otherwise is not None else None,
    )


def _switch(node: Switch) -> NodeExport:
    return NodeExport(
        id=node.id,
        kind=node.kind,
        label=describe(node.selector),
        branches=[
            BranchExport(
                label=" | ".join(repr(k) for k in case.keys),
                keys=list(case.keys),
                body=export_node(case.body),
            )
            for case in node.cases
        ],
        otherwise=export_node(node.default) if node.default is not None else None,
    )


def _parallel(node: Parallel) -> NodeExport:
    return NodeExport(
        id=node.id,
        kind=node.kind,
        label=describe(node.combiner) if node.combiner is not None else None,
        output_name=node.output_name,
        children=[export_node(c) for c in node.children],
        timeout=node.timeout,
    )


def _loop(node: Loop) -> NodeExport:
    return NodeExport(
        id=node.id,
        kind=node.kind,
        label=describe(node.continue_while),
        children=[export_node(node.body)],
        max_iterations=node.max_iterations,
    )


def _group(node: Group) -> NodeExport:
    return NodeExport(
        id=node.id,
        kind=node.kind,
        output_name=node.output_name,
        children=[export_node(c) for c in node.children],
        planner=repr(node.planner) if node.planner is not None else "FreeFormPlanner()",
    )


def _line_breakpoint(node: LineBreakpoint) -> NodeExport:
    return NodeExport(
        id=node.id,
        kind=node.kind,
        label=node.breakpoint.label,
        enabled=node.breakpoint.enabled,
    )


_EXPORTERS: dict[NodeKind, Callable[[Any], NodeExport]] = {
    NodeKind.LEAF: _leaf,
    NodeKind.SEQUENCE: _sequence,
    NodeKind.CONDITIONAL: _conditional,
    NodeKind.SWITCH: _switch,
    NodeKind.PARALLEL: _parallel,
    NodeKind.LOOP: _loop,
    NodeKind.GROUP: _group,
    NodeKind.LINE_BREAKPOINT: _line_breakpoint,
}

_missing = set(NodeKind) - set(_EXPORTERS)
if _missing:
    raise CompilationError(f"No exporter for node kinds: {sorted(k.value for k in _missing)}")


def export_node(node: Node) -> NodeExport:
    """Export a node and its subtree."""
    return _EXPORTERS[node.kind](node)


def to_json(node: Node, indent: int | None = 2) -> str:
    return export_node(node).model_dump_json(indent=indent, exclude_none=True)
