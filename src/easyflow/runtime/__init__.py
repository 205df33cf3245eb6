"""Default in-process runtime: scope, units, tools, supervision and pooling."""

from .pool import get_shared_executor, shutdown_shared_executor
from .scope import Scope
from .supervisor import FreeFormPlanner, FunctionPlanner, GroupMember, Planner, Supervisor
from .tools import Tool, ToolListener, listening, tool
from .units import FunctionUnit, HumanInputUnit, StateUnit, Unit, as_unit, unit

__all__ = [
    "Scope",
    "Unit",
    "FunctionUnit",
    "StateUnit",
    "HumanInputUnit",
    "unit",
    "as_unit",
    "Tool",
    "ToolListener",
    "tool",
    "listening",
    "Supervisor",
    "Planner",
    "FreeFormPlanner",
    "FunctionPlanner",
    "GroupMember",
    "get_shared_executor",
    "shutdown_shared_executor",
]
