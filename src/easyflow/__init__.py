"""Easyflow - fluent workflow definition, compilation and debugging.

Simple usage:
    from easyflow import WorkflowBuilder

    pipeline = (
        WorkflowBuilder("story", inputs=["topic"], output_name="story")
        .agent(write_story, output_name="story")
        .build()
    )
    story = pipeline(topic="dragons")

Debugging:
    from easyflow import Breakpoint, BreakpointType, WorkflowDebugger
"""

__version__ = "0.1.0"

# =============================================================================
# WORKFLOW API (start here)
# =============================================================================

from .workflow import (
    Compiler,
    Condition,
    FieldMapping,
    Pipeline,
    WorkflowBuilder,
    WorkflowResult,
    as_list,
    as_map,
    as_model,
    as_model_list,
    compile_workflow,
    condition,
    mapping_of,
)

# =============================================================================
# ADVANCED API
# =============================================================================

# Types
from .types import (
    BranchExport,
    BreakpointType,
    NodeExport,
    NodeKind,
    RuntimeConfig,
    UnitSignature,
    WorkflowStatus,
)

# Exceptions
from .exceptions import (
    BranchDiscardedError,
    BreakpointActionError,
    CompilationError,
    DelegateInvocationError,
    EasyflowError,
    MalformedWorkflowError,
    MissingInputError,
    ParallelTimeoutError,
    UnmatchedBranchError,
    WorkflowError,
    WorkflowExecutionError,
    root_cause,
)

# Runtime
from .runtime import (
    FreeFormPlanner,
    FunctionPlanner,
    FunctionUnit,
    HumanInputUnit,
    Scope,
    StateUnit,
    Supervisor,
    Tool,
    Unit,
    get_shared_executor,
    shutdown_shared_executor,
    tool,
    unit,
)

# Debug Layer
from .debug import (
    Breakpoint,
    SessionArchive,
    ToolInvocation,
    TraceEntry,
    WorkflowDebugger,
    log,
    toggle_breakpoints,
    write_report,
    write_summary,
)

# Utils
from .utils import configure_logging, expand, get_logger

__all__ = [
    # Version
    "__version__",
    # Workflow
    "WorkflowBuilder",
    "Compiler",
    "compile_workflow",
    "Pipeline",
    "WorkflowResult",
    "Condition",
    "condition",
    "as_map",
    "as_list",
    "as_model",
    "as_model_list",
    "mapping_of",
    "FieldMapping",
    # Types
    "BranchExport",
    "BreakpointType",
    "NodeExport",
    "NodeKind",
    "RuntimeConfig",
    "UnitSignature",
    "WorkflowStatus",
    # Exceptions
    "BranchDiscardedError",
    "BreakpointActionError",
    "CompilationError",
    "DelegateInvocationError",
    "EasyflowError",
    "MalformedWorkflowError",
    "MissingInputError",
    "ParallelTimeoutError",
    "UnmatchedBranchError",
    "WorkflowError",
    "WorkflowExecutionError",
    "root_cause",
    # Runtime
    "FreeFormPlanner",
    "FunctionPlanner",
    "FunctionUnit",
    "HumanInputUnit",
    "Scope",
    "StateUnit",
    "Supervisor",
    "Tool",
    "Unit",
    "get_shared_executor",
    "shutdown_shared_executor",
    "tool",
    "unit",
    # Debug
    "Breakpoint",
    "SessionArchive",
    "ToolInvocation",
    "TraceEntry",
    "WorkflowDebugger",
    "log",
    "toggle_breakpoints",
    "write_report",
    "write_summary",
    # Utils
    "configure_logging",
    "expand",
    "get_logger",
]
