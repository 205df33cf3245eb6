"""Custom exceptions for Easyflow."""


class EasyflowError(Exception):
    """Base exception for all Easyflow errors."""

    pass


# =============================================================================
# Build-time Exceptions
# =============================================================================


class MalformedWorkflowError(EasyflowError):
    """Raised when the fluent builder is used in a structurally invalid way."""

    def __init__(self, message: str, method: str | None = None):
        self.method = method
        prefix = f"Syntax error in '{method}': " if method else "Syntax error: "
        super().__init__(f"{prefix}{message}")


class CompilationError(EasyflowError):
    """Raised when a statement tree cannot be compiled into a pipeline."""

    def __init__(self, message: str, node_id: str | None = None):
        self.node_id = node_id
        prefix = f"[Node {node_id}] " if node_id else ""
        super().__init__(f"{prefix}{message}")


# =============================================================================
# Debugger Exceptions
# =============================================================================


class BreakpointActionError(EasyflowError):
    """Raised when a breakpoint action fails.

    Never propagated to the running workflow; the debugger logs it and moves on.
    """

    def __init__(self, breakpoint_type: str, original_error: Exception):
        self.breakpoint_type = breakpoint_type
        self.original_error = original_error
        super().__init__(f"Breakpoint action for {breakpoint_type} failed: {original_error}")


# =============================================================================
# Workflow Exceptions
# =============================================================================


class WorkflowError(EasyflowError):
    """Base exception for workflow runtime errors."""

    pass


class MissingInputError(WorkflowError):
    """Raised when a pipeline is invoked without one of its declared inputs."""

    def __init__(self, workflow: str, missing: list[str]):
        self.workflow = workflow
        self.missing = missing
        super().__init__(f"Workflow '{workflow}' is missing inputs: {', '.join(missing)}")


class WorkflowExecutionError(WorkflowError):
    """Raised when a workflow block fails during execution."""

    def __init__(
        self,
        message: str,
        node_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.node_id = node_id
        self.original_error = original_error
        prefix = f"[Node {node_id}] " if node_id else ""
        super().__init__(f"{prefix}{message}")


class DelegateInvocationError(WorkflowExecutionError):
    """Raised when a leaf's delegated unit fails."""

    def __init__(
        self,
        unit_name: str,
        message: str,
        node_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.unit_name = unit_name
        super().__init__(
            f"[Agent: {unit_name}] {message}",
            node_id=node_id,
            original_error=original_error,
        )


class UnmatchedBranchError(WorkflowExecutionError):
    """Raised in strict mode when no branch of a Conditional or Switch matched."""

    def __init__(self, kind: str, node_id: str | None = None, key: object = None):
        self.kind = kind
        self.key = key
        detail = f" for key {key!r}" if key is not None else ""
        super().__init__(f"No {kind} branch matched{detail}", node_id=node_id)


class ParallelTimeoutError(WorkflowExecutionError):
    """Raised when a parallel block does not finish within its timeout."""

    def __init__(self, timeout: float, pending: int, node_id: str | None = None):
        self.timeout = timeout
        self.pending = pending
        super().__init__(
            f"Parallel block timed out after {timeout:.2f}s with {pending} branch(es) pending",
            node_id=node_id,
        )


class BranchDiscardedError(WorkflowExecutionError):
    """Raised inside a parallel branch whose block already failed or timed out."""

    def __init__(self, node_id: str | None = None):
        super().__init__("Parallel branch discarded", node_id=node_id)


def root_cause(error: BaseException) -> BaseException:
    """Unwrap delegate wrappers down to the error a unit actually raised."""
    cause = error
    while isinstance(cause, WorkflowExecutionError) and cause.original_error is not None:
        cause = cause.original_error
    return cause
