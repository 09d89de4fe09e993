"""Predicate builders shared by the relation classes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from ..constraints import AnyRelated, RelatedMatching, RelatedTo, RelatedToAny
from ..exceptions import InvalidArgumentError
from ..tools import check_model_object, get_field_values


if TYPE_CHECKING:
    from collections.abc import Callable

    from ..constraints import Constraint
    from ..model import Model
    from ..query import ModelQuery


def _equals(left: sa.ColumnElement[Any], right: Any) -> sa.ColumnElement[bool]:
    return left == right


def _with_value(column: sa.ColumnElement[Any], criterion: sa.ColumnElement[bool]) -> sa.ColumnElement[bool]:
    # false rather than NULL for a NULL key, so the negation holds for it
    return sa.and_(column.is_not(None), criterion)


def make_constraint_criterion(
    query: ModelQuery[Any],
    parent_field: str,
    child_model: type[Model],
    child_field: str,
    constraint: Constraint,
    compare: Callable[[sa.ColumnElement[Any], Any], sa.ColumnElement[bool]] = _equals,
) -> sa.ColumnElement[bool]:
    """Build a predicate comparing a field of *query* rows to a field of the relatives.

    Models are compared directly, without sub-queries. A clause (or no
    constraint) turns into a correlated ``EXISTS`` over the child table; the
    clause is applied before the correlation so ``OR`` conditions it adds
    stay inside.

    Raises:
        NotModelError: If a constraint item is not a model.
        IncorrectModelError: If a constraint model has a wrong class.
    """
    parent_column = query.column(parent_field)

    match constraint:
        case RelatedTo(model=model):
            check_model_object(model, child_model)
            value = getattr(model, child_field, None)
            if value is None:
                return sa.false()
            return _with_value(parent_column, compare(parent_column, value))

        case RelatedToAny(models=models):
            for model in models:
                check_model_object(model, child_model)
            if compare is _equals:
                values = get_field_values(models, child_field, unique=True)
                return _with_value(parent_column, parent_column.in_(values)) if values else sa.false()
            criteria = [
                compare(parent_column, value)
                for value in get_field_values(models, child_field)
                if value is not None
            ]
            return _with_value(parent_column, sa.or_(*criteria)) if criteria else sa.false()

        case AnyRelated() | RelatedMatching():
            sub_query = query.make_sub_query(child_model)
            if isinstance(constraint, RelatedMatching):
                sub_query = sub_query.apply(constraint.clause)
            sub_query.where(compare(parent_column, sub_query.column(child_field)))
            return sub_query.exists()

    raise InvalidArgumentError(f"Unsupported constraint {constraint!r}")
