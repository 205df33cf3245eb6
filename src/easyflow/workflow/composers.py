"""Output composers: functions turning a Scope into a reported value.

Used as Parallel combiners and as pipeline output composers.
"""

from typing import Any, Callable, NamedTuple

from pydantic import BaseModel

from ..runtime.scope import Scope

Composer = Callable[[Scope], Any]


class FieldMapping(NamedTuple):
    """Copies a Scope value into a model field."""

    output_name: str
    field_name: str


def mapping_of(output_name: str, field_name: str | None = None) -> FieldMapping:
    return FieldMapping(output_name, field_name or output_name)


def as_map(*output_names: str) -> Composer:
    """Dict of the named Scope values, in the given order."""

    def _compose(scope: Scope) -> dict[str, Any] | None:
        if not output_names:
            return None
        return {name: scope.read(name) for name in output_names}

    _compose.__name__ = f"as_map({', '.join(output_names)})"
    return _compose


def as_list(*output_names: str) -> Composer:
    """List of the named Scope values, in the given order."""

    def _compose(scope: Scope) -> list[Any]:
        return [scope.read(name) for name in output_names]

    _compose.__name__ = f"as_list({', '.join(output_names)})"
    return _compose


def as_model(model_cls: type[BaseModel]) -> Composer:
    """Build a pydantic model from the Scope values named like its fields.

    Example:
        class Story(BaseModel):
            story: str
            score: float

        builder.output(as_model(Story))
    """

    def _compose(scope: Scope) -> BaseModel:
        state = scope.to_dict()
        values = {
            name: state[name]
            for name in model_cls.model_fields
            if state.get(name) is not None
        }
        return model_cls.model_validate(values)

    _compose.__name__ = f"as_model({model_cls.__name__})"
    return _compose


def as_model_list(model_cls: type[BaseModel], *mappings: FieldMapping | str) -> Composer:
    """Build one model per index of list-valued Scope outputs.

    A non-list value counts as a one-element list. The result has as many
    models as the longest mapped list; shorter lists leave fields unset.
    """
    resolved = [mapping_of(m) if isinstance(m, str) else m for m in mappings]

    def _compose(scope: Scope) -> list[BaseModel] | None:
        if not resolved:
            return None
        columns: dict[str, list[Any]] = {}
        for mapping in resolved:
            value = scope.read(mapping.output_name)
            columns[mapping.output_name] = list(value) if isinstance(value, (list, tuple)) else [value]
        size = max(len(column) for column in columns.values())

        models = []
        for index in range(size):
            values = {
                mapping.field_name: columns[mapping.output_name][index]
                for mapping in resolved
                if index < len(columns[mapping.output_name])
            }
            models.append(model_cls.model_validate(values))
        return models

    _compose.__name__ = f"as_model_list({model_cls.__name__})"
    return _compose
