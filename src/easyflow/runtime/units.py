"""Delegated work units.

A unit is the smallest piece of work a workflow leaf hands off. Every unit
declares its interface up front (the Scope keys it reads and the keys it
produces) so the compiler resolves inputs once at build time instead of
inspecting callables on every invocation.
"""

import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping

from ..types import UnitSignature
from ..utils.templates import expand, placeholders


class Unit(ABC):
    """Base class for delegated work units."""

    # When True, a Mapping result is written key by key instead of as one value.
    spread_output: bool = False

    def __init__(self, name: str, signature: UnitSignature | None = None):
        if not name:
            raise ValueError("Unit name can't be empty")
        self._name = name
        self._signature = signature or UnitSignature()

    @property
    def name(self) -> str:
        return self._name

    @property
    def signature(self) -> UnitSignature:
        return self._signature

    @abstractmethod
    def invoke(self, inputs: dict[str, Any]) -> Any:
        """Run the unit.

        Args:
            inputs: Values for the declared inputs, keyed by name.

        Returns:
            The produced value, or a mapping of output name to value for
            units that declare several outputs.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"


class FunctionUnit(Unit):
    """Unit backed by a plain callable.

    Example:
        def write_story(topic: str) -> str:
            return f"A story about {topic}"

        writer = FunctionUnit(write_story, output="story")
    """

    def __init__(
        self,
        func: Callable[..., Any],
        name: str | None = None,
        inputs: tuple[str, ...] | list[str] | str | None = None,
        output: str | tuple[str, ...] | list[str] | None = None,
        description: str | None = None,
    ):
        """Initialize a function unit.

        Args:
            func: Callable doing the work; called with keyword arguments.
            name: Unit name. Defaults to the function name.
            inputs: Scope keys passed as arguments. Defaults to the function's
                named parameters.
            output: Output name, or several names for a mapping result.
            description: Human-readable description.
        """
        if not callable(func):
            raise TypeError(f"Expected a callable, got {type(func).__name__}")
        optional: tuple[str, ...] = ()
        if inputs is None:
            inputs, optional = _parameter_names(func)
        outputs = () if output is None else output
        super().__init__(
            name or getattr(func, "__name__", type(func).__name__),
            UnitSignature(
                inputs=inputs,
                optional=optional,
                outputs=outputs,
                description=description or inspect.getdoc(func),
            ),
        )
        self._func = func
        self.spread_output = len(self.signature.outputs) > 1

    @property
    def func(self) -> Callable[..., Any]:
        return self._func

    def invoke(self, inputs: dict[str, Any]) -> Any:
        return self._func(**inputs)


def unit(
    func: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    inputs: tuple[str, ...] | list[str] | str | None = None,
    output: str | tuple[str, ...] | list[str] | None = None,
    description: str | None = None,
) -> Any:
    """Decorator turning a function into a FunctionUnit.

    Usage:
        @unit(output="score")
        def score_story(story: str) -> float:
            ...
    """

    def _wrap(f: Callable[..., Any]) -> FunctionUnit:
        return FunctionUnit(f, name=name, inputs=inputs, output=output, description=description)

    if func is not None:
        return _wrap(func)
    return _wrap


class StateUnit(Unit):
    """Unit that writes fixed or supplied values into the Scope."""

    spread_output = True

    def __init__(
        self,
        values: Mapping[str, Any] | Callable[[], Mapping[str, Any]],
        name: str = "set_state",
    ):
        """Initialize a state unit.

        Args:
            values: Mapping to write, or a supplier called on each invocation.
            name: Unit name.
        """
        if callable(values):
            self._supplier = values
            outputs: tuple[str, ...] = ()
        else:
            frozen = dict(values)
            self._supplier = lambda: frozen
            outputs = tuple(sorted(frozen))
        super().__init__(name, UnitSignature(outputs=outputs))

    def list_states(self) -> list[str]:
        """Names of the states this unit writes."""
        return sorted(self._supplier().keys())

    def invoke(self, inputs: dict[str, Any]) -> Any:
        return dict(self._supplier())


class HumanInputUnit(Unit):
    """Unit that asks a human for a value.

    The description may reference Scope values with ``{{name}}``; those names
    become the unit's declared inputs.
    """

    def __init__(
        self,
        output_name: str,
        description: str,
        request_writer: Callable[[str], None] | None = None,
        response_reader: Callable[[], str] | None = None,
        name: str = "human_input",
    ):
        super().__init__(
            name,
            UnitSignature(
                inputs=tuple(dict.fromkeys(placeholders(description))),
                outputs=(output_name,),
                description=description,
            ),
        )
        self._description = description
        self._request_writer = request_writer or _console_writer
        self._response_reader = response_reader or _console_reader

    def invoke(self, inputs: dict[str, Any]) -> Any:
        self._request_writer(expand(self._description, inputs))
        return self._response_reader()


def as_unit(target: Any, output: str | None = None) -> Unit:
    """Coerce a unit or plain callable into a Unit."""
    if isinstance(target, Unit):
        return target
    if callable(target):
        return FunctionUnit(target, output=output)
    raise TypeError(f"Cannot use {type(target).__name__} as a workflow unit")


def _parameter_names(func: Callable[..., Any]) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Named parameters of a callable, and the subset that have defaults."""
    try:
        parameters = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        return (), ()
    named = [
        p
        for p in parameters
        if p.kind in (inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY)
    ]
    return (
        tuple(p.name for p in named),
        tuple(p.name for p in named if p.default is not inspect.Parameter.empty),
    )


def _console_writer(request: str) -> None:
    print(request)
    print("> ", end="", flush=True)


def _console_reader() -> str:
    response = input()
    print("Proceeding...")
    return response
