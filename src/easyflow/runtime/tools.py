"""Tools callable from inside a unit.

A leaf publishes the active debugger for the duration of its delegated call.
Tools invoked during that call report their requests and responses to it, so
TOOL_INPUT and TOOL_OUTPUT breakpoints fire and the leaf's trace entry records
each tool invocation.
"""

import contextvars
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Protocol


class ToolListener(Protocol):
    """Receives tool events for the leaf currently executing."""

    def before_tool(self, invocation: Any, tool_name: str, arguments: dict[str, Any]) -> None: ...

    def after_tool(
        self,
        invocation: Any,
        tool_name: str,
        arguments: dict[str, Any],
        result: Any,
        error: BaseException | None,
    ) -> None: ...


_current: contextvars.ContextVar[tuple[ToolListener, Any] | None] = contextvars.ContextVar(
    "easyflow_tool_listener", default=None
)


@contextmanager
def listening(listener: ToolListener | None, invocation: Any) -> Iterator[None]:
    """Route tool events raised in this context to the listener."""
    if listener is None:
        yield
        return
    token = _current.set((listener, invocation))
    try:
        yield
    finally:
        _current.reset(token)


class Tool:
    """A named callable that reports its invocations.

    Example:
        search = Tool(lambda query: ["result"], name="web_search")

        def researcher(topic: str) -> str:
            return str(search(query=topic))
    """

    def __init__(
        self,
        func: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
    ):
        self._func = func
        self._name = name or getattr(func, "__name__", "tool")
        self._description = description

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str | None:
        return self._description

    def __call__(self, **arguments: Any) -> Any:
        active = _current.get()
        if active is None:
            return self._func(**arguments)

        listener, invocation = active
        listener.before_tool(invocation, self._name, dict(arguments))
        try:
            result = self._func(**arguments)
        except Exception as e:
            listener.after_tool(invocation, self._name, dict(arguments), None, e)
            raise
        listener.after_tool(invocation, self._name, dict(arguments), result, None)
        return result


def tool(
    func: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
) -> Any:
    """Decorator turning a function into a Tool."""

    def _wrap(f: Callable[..., Any]) -> Tool:
        return Tool(f, name=name, description=description)

    if func is not None:
        return _wrap(func)
    return _wrap
