"""Core types and configuration models for Easyflow."""

import os
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class NodeKind(str, Enum):
    """Kinds of statement nodes in a workflow tree."""

    LEAF = "leaf"
    SEQUENCE = "sequence"
    CONDITIONAL = "conditional"
    SWITCH = "switch"
    PARALLEL = "parallel"
    LOOP = "loop"
    GROUP = "group"
    LINE_BREAKPOINT = "line_breakpoint"


class BreakpointType(str, Enum):
    """Events a breakpoint can be attached to."""

    AGENT_INPUT = "agent_input"
    AGENT_OUTPUT = "agent_output"
    TOOL_INPUT = "tool_input"
    TOOL_OUTPUT = "tool_output"
    SESSION_STARTED = "session_started"
    SESSION_STOPPED = "session_stopped"
    SESSION_FAILED = "session_failed"
    LINE = "line"


class WorkflowStatus(str, Enum):
    """Status of a workflow session."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# Runtime Configuration
# =============================================================================


_ENV_PREFIX = "EASYFLOW_"


class RuntimeConfig(BaseModel):
    """Defaults and limits applied when building and running workflows."""

    default_output_name: str = Field(
        default="response", description="Output name for blocks and pipelines that declare none"
    )
    default_max_iterations: int = Field(
        default=5, ge=1, description="Loop bound used when repeat() is given none"
    )
    max_iterations_limit: int = Field(
        default=100, ge=1, description="Largest loop bound the builder accepts"
    )
    parallel_workers: int = Field(default=2, ge=1, description="Threads in the shared worker pool")
    parallel_timeout: float | None = Field(
        default=None, gt=0, description="Default parallel block timeout in seconds"
    )
    group_max_steps: int = Field(default=10, ge=1, description="Max supervised dispatch steps")
    strict_branching: bool = Field(
        default=False, description="Fail when no conditional/switch branch matches"
    )
    log_input: bool = Field(default=False, description="Log every leaf input")
    log_output: bool = Field(default=False, description="Log every leaf output")

    @classmethod
    def from_env(cls, **overrides: Any) -> "RuntimeConfig":
        """Build a config from EASYFLOW_* environment variables.

        Args:
            **overrides: Explicit values, taking priority over the environment.

        Returns:
            Validated RuntimeConfig.
        """
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{_ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update(overrides)
        return cls.model_validate(values)


# =============================================================================
# Unit Signatures
# =============================================================================


class UnitSignature(BaseModel):
    """Declared interface of a delegated unit: the Scope keys it reads and writes."""

    inputs: tuple[str, ...] = Field(default_factory=tuple)
    optional: tuple[str, ...] = Field(
        default_factory=tuple, description="Inputs that may be absent from the Scope"
    )
    outputs: tuple[str, ...] = Field(default_factory=tuple)
    description: str | None = None

    @field_validator("inputs", "optional", "outputs", mode="before")
    @classmethod
    def _as_tuple(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        return value

    @property
    def output(self) -> str | None:
        """The single output name, if the unit declares exactly one."""
        return self.outputs[0] if len(self.outputs) == 1 else None


# =============================================================================
# Tree Export
# =============================================================================


class BranchExport(BaseModel):
    """A guarded branch of a conditional or a case of a switch."""

    label: str
    keys: list[Any] = Field(default_factory=list)
    body: "NodeExport"


class NodeExport(BaseModel):
    """Machine-readable structure of one statement node."""

    id: str
    kind: NodeKind
    label: str | None = None
    unit: str | None = None
    inputs: list[str] = Field(default_factory=list)
    output_name: str | None = None
    children: list["NodeExport"] = Field(default_factory=list)
    branches: list[BranchExport] = Field(default_factory=list)
    otherwise: "NodeExport | None" = None
    max_iterations: int | None = None
    timeout: float | None = None
    planner: str | None = None
    enabled: bool | None = None


BranchExport.model_rebuild()
NodeExport.model_rebuild()
