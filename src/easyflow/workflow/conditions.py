"""Named predicates and selectors."""

from typing import Any, Callable

from ..runtime.scope import Scope


class Condition:
    """A Scope predicate or selector carrying a human-readable description.

    Descriptions show up in tree exports and logs where a bare lambda would
    only print as ``<lambda>``.

    Example:
        good_enough = condition(lambda s: s.read("score", 0) >= 0.8, "score >= 0.8")
    """

    def __init__(self, func: Callable[[Scope], Any], description: str | None = None):
        if not callable(func):
            raise TypeError(f"Expected a callable, got {type(func).__name__}")
        self._func = func
        self._description = description or describe(func)

    @property
    def description(self) -> str:
        return self._description

    def __call__(self, scope: Scope) -> Any:
        return self._func(scope)

    def __repr__(self) -> str:
        return f"Condition({self._description!r})"


def condition(func: Callable[[Scope], Any], description: str | None = None) -> Condition:
    """Attach a description to a predicate or selector."""
    return Condition(func, description)


def describe(func: Callable[..., Any]) -> str:
    """Best label for a callable: its description, else its name."""
    if isinstance(func, Condition):
        return func.description
    return getattr(func, "__name__", None) or type(func).__name__
