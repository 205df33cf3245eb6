"""Statement tree: the closed set of workflow node kinds.

Nodes are produced by the builder and never mutated afterwards. Every node
carries a stable id used by the compiler, the debugger and tree exports.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Union

from ..runtime.scope import Scope
from ..runtime.supervisor import Planner
from ..runtime.units import Unit
from ..types import NodeKind

Predicate = Callable[[Scope], Any]
Selector = Callable[[Scope], Any]
Combiner = Callable[[Scope], Any]


@dataclass(frozen=True)
class Leaf:
    """A single delegated unit, optionally renaming its produced value."""

    kind: ClassVar[NodeKind] = NodeKind.LEAF

    id: str
    unit: Unit
    output_name: str | None = None

    @property
    def effective_output_name(self) -> str | None:
        if self.output_name or self.unit.spread_output:
            return self.output_name
        return self.unit.signature.output


@dataclass(frozen=True)
class Sequence:
    """Children executed in order."""

    kind: ClassVar[NodeKind] = NodeKind.SEQUENCE

    id: str
    children: tuple["Node", ...] = ()


@dataclass(frozen=True)
class GuardedBranch:
    """A Conditional branch: runs its body when the predicate holds."""

    predicate: Predicate
    body: Sequence


@dataclass(frozen=True)
class Conditional:
    """First branch whose predicate holds wins, else the otherwise branch."""

    kind: ClassVar[NodeKind] = NodeKind.CONDITIONAL

    id: str
    branches: tuple[GuardedBranch, ...]
    otherwise: Sequence | None = None


@dataclass(frozen=True)
class SwitchCase:
    """A Switch case matching any of its keys by equality."""

    keys: tuple[Any, ...]
    body: Sequence


@dataclass(frozen=True)
class Switch:
    """Multi-way branch on a selector evaluated once."""

    kind: ClassVar[NodeKind] = NodeKind.SWITCH

    id: str
    selector: Selector
    cases: tuple[SwitchCase, ...]
    default: Sequence | None = None

    def case_for(self, key: Any) -> Sequence | None:
        for case in self.cases:
            if key in case.keys:
                return case.body
        return self.default


@dataclass(frozen=True)
class Parallel:
    """Children executed concurrently on isolated scope branches."""

    kind: ClassVar[NodeKind] = NodeKind.PARALLEL

    id: str
    children: tuple["Node", ...]
    output_name: str
    combiner: Combiner | None = None
    timeout: float | None = None


@dataclass(frozen=True)
class Loop:
    """Body repeated while a predicate holds, up to a fixed bound."""

    kind: ClassVar[NodeKind] = NodeKind.LOOP

    id: str
    body: Sequence
    continue_while: Predicate
    max_iterations: int


@dataclass(frozen=True)
class Group:
    """Children handed to a supervisor that decides what runs and when."""

    kind: ClassVar[NodeKind] = NodeKind.GROUP

    id: str
    children: tuple["Node", ...]
    output_name: str
    planner: Planner | None = None


@dataclass(frozen=True)
class LineBreakpoint:
    """Zero-work marker that only fires the debugger."""

    kind: ClassVar[NodeKind] = NodeKind.LINE_BREAKPOINT

    id: str
    breakpoint: Any = field(compare=False)


Node = Union[Leaf, Sequence, Conditional, Switch, Parallel, Loop, Group, LineBreakpoint]


def static_output_name(node: Node) -> str | None:
    """Scope key a node is known to write at build time, if any."""
    if isinstance(node, Leaf):
        return node.effective_output_name
    if isinstance(node, (Parallel, Group)):
        return node.output_name
    return None


def static_output_names(node: Node) -> tuple[str, ...]:
    """Every Scope key a node is known to write at build time.

    Spread leaves (``set_state`` and multi-output units) write each declared output.
    """
    name = static_output_name(node)
    if name is not None:
        return (name,)
    if isinstance(node, Leaf) and node.unit.spread_output:
        return tuple(node.unit.signature.outputs)
    return ()


def walk(node: Node):
    """Yield a node and all of its descendants, depth first."""
    yield node
    if isinstance(node, (Sequence, Parallel, Group)):
        for child in node.children:
            yield from walk(child)
    elif isinstance(node, Conditional):
        for branch in node.branches:
            yield from walk(branch.body)
        if node.otherwise is not None:
            yield from walk(node.otherwise)
    elif isinstance(node, Switch):
        for case in node.cases:
            yield from walk(case.body)
        if node.default is not None:
            yield from walk(node.default)
    elif isinstance(node, Loop):
        yield from walk(node.body)
