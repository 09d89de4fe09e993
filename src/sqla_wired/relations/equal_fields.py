from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from ..exceptions import IncorrectModelError
from ..tools import check_model_class, check_model_object, get_field_values, group_by_field, index_by_field
from .base import AssociableRelation, Relation
from .helpers import make_constraint_criterion


if TYPE_CHECKING:
    from ..constraints import Clause, Constraint
    from ..mapper import Mapper
    from ..model import Model
    from ..query import ModelQuery


logger = logging.getLogger(__name__)


class EqualFields(Relation):
    """Relatives are the child models whose field equals a field of the parent.

    Args:
        parent_field: The parent (owner) model field. ``None`` means the
            parent identifier field.
        child_model: The related model class.
        child_field: The child model field. ``None`` means the child
            identifier field.
        expects_many: ``True`` loads a list of relatives, ``False`` loads a
            single model or ``None``.
    """

    __slots__ = ("child_field", "child_model", "expects_many", "parent_field")

    def __init__(
        self,
        parent_field: str | None,
        child_model: type[Model],
        child_field: str | None,
        expects_many: bool,
    ) -> None:
        check_model_class("The child model class", child_model)

        self.parent_field = parent_field
        self.child_model = child_model
        self.child_field = child_field
        self.expects_many = expects_many

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(parent_field={self.parent_field!r}, "
            f"child_model={self.child_model.__qualname__}, child_field={self.child_field!r})"
        )

    def get_parent_field(self, parent_model: type[Model]) -> str:
        return self.parent_field or parent_model.get_identifier_field()

    def get_child_field(self) -> str:
        return self.child_field or self.child_model.get_identifier_field()

    def make_criterion(self, query: ModelQuery[Any], constraint: Constraint) -> sa.ColumnElement[bool]:
        return make_constraint_criterion(
            query,
            self.get_parent_field(query.require_model()),
            self.child_model,
            self.get_child_field(),
            constraint,
        )

    def load_relatives(
        self,
        mapper: Mapper,
        name: str,
        models: Sequence[Model],
        clause: Clause | None = None,
    ) -> None:
        if not models:
            return

        parent_field = self.get_parent_field(type(models[0]))
        child_field = self.get_child_field()
        search_values = get_field_values(models, parent_field, unique=True)

        children: list[Model] = []
        if search_values:
            query = mapper.model(self.child_model)
            if clause is not None:
                query = query.apply(clause)
            if not self.expects_many:
                # the last row per key is kept
                query.order_by(self.child_model.get_identifier_field())
            # the IN filter goes last so it's ANDed with whatever the clause did
            children = query.where_in(child_field, search_values).get()

        logger.debug(
            "Loaded %d %s relatives for %d %s models via `%s`",
            len(children),
            self.child_model.__qualname__,
            len(models),
            type(models[0]).__qualname__,
            name,
        )

        if self.expects_many:
            grouped = group_by_field(children, child_field)
            for model in models:
                model.set_loaded_relatives(name, list(grouped.get(getattr(model, parent_field, None), ())))
        else:
            indexed = index_by_field(children, child_field)
            for model in models:
                model.set_loaded_relatives(name, indexed.get(getattr(model, parent_field, None)))


class BelongsTo(EqualFields, AssociableRelation):
    """The parent refers to one child by a foreign field (``post.author_id``)."""

    __slots__ = ()

    def __init__(self, model: type[Model], foreign_field: str, identifier_field: str | None = None) -> None:
        super().__init__(foreign_field, model, identifier_field, False)

    def associate(self, name: str, parent: Model, child: Model | None) -> None:
        parent_field = self.get_parent_field(type(parent))
        if child is None:
            setattr(parent, parent_field, None)
        else:
            check_model_object(child, self.child_model)
            child_field = self.get_child_field()
            value = getattr(child, child_field, None)
            if value is None:
                raise IncorrectModelError(
                    f"The associated model doesn't have a value in the identifier field `{child_field}`"
                    "; perhaps it is not saved to the database"
                )
            setattr(parent, parent_field, value)

        parent.set_loaded_relatives(name, child)


class HasMany(EqualFields):
    """Many children refer to the parent by a foreign field (``user.posts``)."""

    __slots__ = ()

    def __init__(self, model: type[Model], foreign_field: str, identifier_field: str | None = None) -> None:
        super().__init__(identifier_field, model, foreign_field, True)


class HasOne(EqualFields):
    """One child refers to the parent by a foreign field (``user.profile``).

    When several children match, the last one is taken: the clause order
    first, then the child identifier.
    """

    __slots__ = ()

    def __init__(self, model: type[Model], foreign_field: str, identifier_field: str | None = None) -> None:
        super().__init__(identifier_field, model, foreign_field, False)
