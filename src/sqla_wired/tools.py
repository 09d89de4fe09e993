from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

import sqlalchemy as sa

from .exceptions import IncorrectModelError, InvalidArgumentError, NotModelError
from .model import Model, _resolve_relation


if TYPE_CHECKING:
    from .query import ModelQuery

M = TypeVar("M", bound=Model)
_O = TypeVar("_O")

RelativesFilter = Callable[[Model], "bool | Model"]


def check_model_class(name: str, value: Any) -> None:
    """Check that *value* is a model class.

    Args:
        name: What the value is, used in the error message.
        value: The value to check.

    Raises:
        NotModelError: If the value is not a ``Model`` subclass.
    """
    if isinstance(value, type) and issubclass(value, Model):
        return

    shown = value.__qualname__ if isinstance(value, type) else repr(value)
    raise NotModelError(f"{name} ({shown}) is not a model class")


def check_model_object(value: Any, model: type[Model]) -> None:
    """Check that *value* is an instance of the *model* class.

    Raises:
        NotModelError: If the value is not a model at all.
        IncorrectModelError: If the value is a model of another class.
    """
    if isinstance(value, model):
        return

    if isinstance(value, Model):
        raise IncorrectModelError(
            f"The given model {type(value).__qualname__} is not a {model.__qualname__} model"
        )

    raise NotModelError(f"The given value ({type(value).__name__}) is not a model")


def as_model_list(models: M | Iterable[M] | None) -> list[M]:
    """Normalize "one model or many models" arguments to a list."""
    if models is None:
        return []

    if isinstance(models, Model):
        return [models]

    return list(models)


def group_by_type(models: Iterable[Model]) -> dict[type[Model], list[Model]]:
    """Split models by their exact class keeping the original order.

    Raises:
        NotModelError: If one of the values is not a model.
    """
    grouped: dict[type[Model], list[Model]] = {}
    for index, model in enumerate(models):
        if not isinstance(model, Model):
            raise NotModelError(f"Argument models[{index}] is not a model")

        grouped.setdefault(type(model), []).append(model)

    return grouped


def get_field_values(objects: Iterable[Any], field: str, *, unique: bool = False) -> list[Any]:
    """Collect a field value of every object.

    With ``unique=True`` the result holds distinct non-null values in the
    order of first appearance. Such values are used as ``IN`` parameters and
    as grouping keys so they must be hashable.

    Raises:
        IncorrectModelError: If ``unique`` is requested and a value is not
            hashable.
    """
    if not unique:
        return [getattr(item, field, None) for item in objects]

    seen: dict[Any, None] = {}
    for item in objects:
        value = getattr(item, field, None)
        if value is None:
            continue
        if not isinstance(value, Hashable):
            raise IncorrectModelError(
                f"The `{field}` field value of {item!r} is a {type(value).__name__} "
                "which can't be used as a relation key"
            )
        seen.setdefault(value, None)

    return list(seen)


def index_by_field(objects: Iterable[_O], field: str) -> dict[Any, _O]:
    """Map field values to objects. The last object with a value wins."""
    return {getattr(item, field, None): item for item in objects}


def group_by_field(objects: Iterable[_O], field: str) -> dict[Any, list[_O]]:
    """Map field values to all the objects having them, in the original order."""
    grouped: dict[Any, list[_O]] = {}
    for item in objects:
        grouped.setdefault(getattr(item, field, None), []).append(item)

    return grouped


def group_rows_by_key(rows: Iterable[Mapping[str, Any]], key: str) -> dict[Any, list[Mapping[str, Any]]]:
    grouped: dict[Any, list[Mapping[str, Any]]] = {}
    for row in rows:
        grouped.setdefault(row[key], []).append(row)

    return grouped


def iter_slot(slot: Model | Sequence[Model] | None) -> Iterable[Model]:
    """Iterate over a loaded-relatives slot whatever its cardinality is."""
    if slot is None:
        return ()

    if isinstance(slot, Model):
        return (slot,)

    return slot


def collect_relatives(models: Iterable[Model], path: str) -> list[Model]:
    """Collect the loaded relatives of the models along a dotted path.

    Only already loaded relatives are visited. Every model appears once in
    the result even if several parents refer to it.
    """
    level = list(models)
    for name in path.split("."):
        found: dict[int, Model] = {}
        for model in level:
            for relative in iter_slot(model.get_loaded_relatives(name)):
                found.setdefault(id(relative), relative)
        level = list(found.values())

    return level


def collect_cyclic_relatives(models: Iterable[Model], path: str) -> list[Model]:
    """Collect the relatives reachable by following *path* any number of times.

    The given models are not included unless one of them is reachable
    from another.
    """
    found: dict[int, Model] = {}
    level = list(models)
    while level:
        next_level = []
        for relative in collect_relatives(level, path):
            if id(relative) not in found:
                found[id(relative)] = relative
                next_level.append(relative)
        level = next_level

    return list(found.values())


def filter_model_relatives(model: Model, name: str, fn: RelativesFilter) -> None:
    """Filter the loaded relatives of one model in place.

    *fn* gets every relative and returns ``True`` to keep it, ``False`` to
    remove it or a model to put in its place. The slot keeps its
    cardinality: a removed single relative becomes ``None``.
    """
    if not model.does_have_loaded_relatives(name):
        return

    slot = model.get_loaded_relatives(name)
    if slot is None:
        return

    if isinstance(slot, Model):
        result = _apply_relatives_filter(fn, slot)
        if result is not slot:
            model.set_loaded_relatives(name, result)
        return

    changed = False
    kept: list[Model] = []
    for relative in slot:
        result = _apply_relatives_filter(fn, relative)
        if result is not relative:
            changed = True
        if result is not None:
            kept.append(result)

    if changed:
        model.set_loaded_relatives(name, kept)


def filter_models_relatives(models: Iterable[Model], name: str, fn: RelativesFilter) -> None:
    for model in models:
        filter_model_relatives(model, name, fn)


def _apply_relatives_filter(fn: RelativesFilter, relative: Model) -> Model | None:
    result = fn(relative)
    if result is True:
        return relative
    if result is False:
        return None
    if isinstance(result, Model):
        return result

    raise InvalidArgumentError(
        f"A relatives filter must return a bool or a model, {type(result).__name__} given"
    )


def get_model_identifier_field(hint: Model | type[Model] | ModelQuery[Any]) -> str:
    """Get an identifier field name from a model, a model class or a model query."""
    from .exceptions import IncorrectQueryError
    from .query import ModelQuery

    if isinstance(hint, ModelQuery):
        if hint.model is None:
            raise IncorrectQueryError("The given query doesn't have a context model")
        return hint.model.get_identifier_field()

    if isinstance(hint, Model):
        return hint.get_identifier_field()

    check_model_class("The hint", hint)
    return hint.get_identifier_field()


def get_fields_to_update(old: Mapping[str, Any], new: Mapping[str, Any]) -> dict[str, Any]:
    """Return the items of *new* which are missing or different in *old*."""
    return {key: value for key, value in new.items() if key not in old or old[key] != value}


def make_fields_criterion(table: sa.FromClause, row: Mapping[str, Any]) -> sa.ColumnElement[bool]:
    """Build ``AND`` of ``column = value`` (``IS NULL`` for ``None``) for every row item."""
    return sa.and_(*(
        table.c[key].is_(None) if value is None else table.c[key] == value
        for key, value in row.items()
    ))


def wired_cache_info() -> dict[str, Any]:
    """Return LRU cache statistics for all internal caches."""
    return {fn.__name__: fn.cache_info() for fn in (_resolve_relation,)}


def wired_cache_clear() -> None:
    """Clear all internal LRU caches."""
    for fn in (_resolve_relation,):
        fn.cache_clear()
