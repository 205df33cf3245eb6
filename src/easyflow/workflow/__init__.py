"""Easyflow Workflow Layer.

Components:
- nodes: the statement tree
- builder: fluent WorkflowBuilder
- compiler: tree to Pipeline compilation
- pipeline: the invocable Pipeline and WorkflowResult
- composers: output composers and parallel combiners
- export: machine-readable tree export
"""

from .builder import WorkflowBuilder
from .compiler import Compiler, compile_workflow
from .composers import FieldMapping, as_list, as_map, as_model, as_model_list, mapping_of
from .conditions import Condition, condition
from .export import export_node, to_json
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
from .pipeline import Pipeline, WorkflowResult
from .steps import ExecutionContext

__all__ = [
    "WorkflowBuilder",
    "Compiler",
    "compile_workflow",
    "Pipeline",
    "WorkflowResult",
    "ExecutionContext",
    "Condition",
    "condition",
    "as_map",
    "as_list",
    "as_model",
    "as_model_list",
    "mapping_of",
    "FieldMapping",
    "export_node",
    "to_json",
    "Node",
    "Leaf",
    "Sequence",
    "Conditional",
    "GuardedBranch",
    "Switch",
    "SwitchCase",
    "Parallel",
    "Loop",
    "Group",
    "LineBreakpoint",
]
