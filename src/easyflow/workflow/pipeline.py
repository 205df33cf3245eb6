"""Pipeline - the invocable entry point of a compiled workflow."""

import asyncio
import functools
import logging
from concurrent.futures import Executor
from datetime import datetime
from typing import Any, Callable, Mapping

from ..debug.debugger import WorkflowDebugger
from ..debug.trace import TraceEntry
from ..exceptions import EasyflowError, MissingInputError, WorkflowError, WorkflowExecutionError
from ..runtime.scope import Scope
from ..types import NodeExport, RuntimeConfig, WorkflowStatus
from .export import export_node
from .nodes import Sequence
from .steps import ExecutionContext, Step

logger = logging.getLogger(__name__)


class WorkflowResult:
    """Result of a pipeline session."""

    def __init__(
        self,
        workflow: str,
        status: WorkflowStatus,
        output: Any,
        state: dict[str, Any],
        trace: list[TraceEntry],
        session_id: str | None = None,
        error: str | None = None,
        exception: BaseException | None = None,
    ):
        self.workflow = workflow
        self.status = status
        self.output = output
        self.state = state
        self.trace = trace
        self.session_id = session_id
        self.error = error
        self.exception = exception
        self.completed_at = datetime.now()

    @property
    def success(self) -> bool:
        return self.status == WorkflowStatus.COMPLETED

    def __repr__(self) -> str:
        return f"WorkflowResult(workflow={self.workflow!r}, status={self.status.value})"


class Pipeline:
    """A compiled, invocable workflow.

    Example:
        pipeline = builder.build()

        story = pipeline(topic="dragons")

        result = pipeline.run({"topic": "dragons"})
        if result.success:
            print(result.output)
    """

    def __init__(
        self,
        name: str,
        tree: Sequence,
        root: Step,
        *,
        inputs: tuple[str, ...] = (),
        output_name: str | None = None,
        composer: Callable[[Scope], Any] | None = None,
        config: RuntimeConfig | None = None,
        debugger: WorkflowDebugger | None = None,
        executor: Executor | None = None,
        log_input: bool = False,
        log_output: bool = False,
    ):
        self._name = name
        self._tree = tree
        self._root = root
        self._inputs = inputs
        self._output_name = output_name
        self._composer = composer
        self._config = config or RuntimeConfig()
        self._debugger = debugger
        self._executor = executor
        self._log_input = log_input
        self._log_output = log_output

    @property
    def name(self) -> str:
        return self._name

    @property
    def tree(self) -> Sequence:
        return self._tree

    @property
    def inputs(self) -> tuple[str, ...]:
        return self._inputs

    @property
    def output_name(self) -> str | None:
        return self._output_name

    @property
    def debugger(self) -> WorkflowDebugger | None:
        return self._debugger

    def __call__(self, **inputs: Any) -> Any:
        """Run one session and return its result; failures propagate."""
        self._check_inputs(inputs)
        return self._execute(inputs, None, Scope(inputs))

    def run(self, inputs: Mapping[str, Any] | None = None, executor: Executor | None = None) -> WorkflowResult:
        """Run one session and report its outcome instead of raising.

        Args:
            inputs: Values for the declared inputs, plus any extra Scope seeds.
            executor: Pool for parallel blocks in this session only.

        Returns:
            WorkflowResult with status, output, final state and trace.
        """
        inputs = dict(inputs or {})
        scope = Scope(inputs)
        try:
            self._check_inputs(inputs)
            output = self._execute(inputs, executor, scope)
        except WorkflowError as e:
            logger.error(f"Workflow '{self._name}' failed: {e}")
            return WorkflowResult(
                workflow=self._name,
                status=WorkflowStatus.FAILED,
                output=None,
                state=scope.state(),
                trace=self._trace(),
                session_id=self._debugger.session_id if self._debugger else None,
                error=str(e),
                exception=e,
            )

        return WorkflowResult(
            workflow=self._name,
            status=WorkflowStatus.COMPLETED,
            output=output,
            state=scope.state(),
            trace=self._trace(),
            session_id=self._debugger.session_id if self._debugger else None,
        )

    async def arun(
        self, inputs: Mapping[str, Any] | None = None, executor: Executor | None = None
    ) -> WorkflowResult:
        """Async variant of run(); the session runs on the event loop's default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self.run, inputs, executor))

    def _check_inputs(self, inputs: Mapping[str, Any]) -> None:
        missing = [name for name in self._inputs if name not in inputs]
        if missing:
            raise MissingInputError(self._name, missing)

    def _execute(self, inputs: Mapping[str, Any], executor: Executor | None, scope: Scope) -> Any:
        ctx = ExecutionContext(
            config=self._config,
            debugger=self._debugger,
            executor=executor or self._executor,
            log_input=self._log_input,
            log_output=self._log_output,
        )
        logger.debug(f"Running workflow '{self._name}'")

        debugger = self._debugger
        if debugger is None:
            return self._result(scope, self._root.run(scope, ctx))

        with debugger.session_lock:
            ctx.session_id = debugger.session_started(inputs, scope)
            try:
                result = self._result(scope, self._root.run(scope, ctx))
            except Exception as e:
                debugger.session_failed(e)
                debugger.session_stopped(None)
                raise
            debugger.session_stopped(result)
            return result

    def _result(self, scope: Scope, last_value: Any) -> Any:
        if self._composer is not None:
            try:
                return self._composer(scope)
            except EasyflowError:
                raise
            except Exception as e:
                raise WorkflowExecutionError(f"Output composer failed: {e}", original_error=e) from e
        if self._output_name is not None:
            return scope.read(self._output_name)
        return last_value

    def _trace(self) -> list[TraceEntry]:
        return self._debugger.get_agent_invocation_trace_entries() if self._debugger else []

    def export(self) -> NodeExport:
        """Machine-readable structure of the compiled tree."""
        return export_node(self._tree)

    def to_json(self, indent: int | None = 2) -> str:
        return self.export().model_dump_json(indent=indent, exclude_none=True)

    def render(self, renderer: Callable[[NodeExport], Any]) -> Any:
        """Pass the exported tree to an external renderer and return its output."""
        return renderer(self.export())

    def __repr__(self) -> str:
        return f"Pipeline(name={self._name!r}, inputs={list(self._inputs)!r})"
