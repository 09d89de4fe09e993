"""Relation constraints.

A constraint tells a relation which relatives count when a query is
filtered by the relation existence.  Public methods accept the loose forms
(``None``, a model, a list of models, a callable) and normalize them with
:func:`as_constraint`; relations match on the variant classes.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from .exceptions import InvalidArgumentError
from .model import Model


if TYPE_CHECKING:
    from .query import ModelQuery


Clause = Callable[["ModelQuery[Any]"], "ModelQuery[Any] | None"]


@dataclass(slots=True, frozen=True)
class AnyRelated:
    """At least one relative exists."""


@dataclass(slots=True, frozen=True)
class RelatedTo:
    """Related to the given model."""

    model: Model


@dataclass(slots=True, frozen=True)
class RelatedToAny:
    """Related to at least one of the given models. Empty means nothing matches."""

    models: tuple[Model, ...]


@dataclass(slots=True, frozen=True)
class RelatedMatching:
    """At least one relative satisfies the clause."""

    clause: Clause


Constraint = Union[AnyRelated, RelatedTo, RelatedToAny, RelatedMatching]
ConstraintLike = Union[Constraint, Model, "list[Model]", "tuple[Model, ...]", Clause, None]

_VARIANTS = (AnyRelated, RelatedTo, RelatedToAny, RelatedMatching)


def as_constraint(value: ConstraintLike) -> Constraint:
    """Normalize a loose constraint value.

    Raises:
        InvalidArgumentError: If the value shape is not supported.
    """
    if isinstance(value, _VARIANTS):
        return value

    if value is None:
        return AnyRelated()

    if isinstance(value, Model):
        return RelatedTo(value)

    if isinstance(value, (list, tuple)):
        return RelatedToAny(tuple(value))

    if callable(value) and not isinstance(value, type):
        return RelatedMatching(value)

    raise InvalidArgumentError(
        "The constraint argument expected to be a model, a list of models, a callable or None, "
        f"{value!r} given"
    )
