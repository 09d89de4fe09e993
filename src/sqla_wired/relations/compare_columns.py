from __future__ import annotations

import logging
import operator
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Final

import sqlalchemy as sa

from ..exceptions import InvalidArgumentError
from ..tools import check_model_class, get_field_values
from .base import Relation
from .helpers import make_constraint_criterion


if TYPE_CHECKING:
    from ..constraints import Clause, Constraint
    from ..mapper import Mapper
    from ..model import Model
    from ..query import ModelQuery


logger = logging.getLogger(__name__)

COMPARE_RULES: Final[dict[str, Callable[[Any, Any], Any]]] = {
    "=": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class CompareColumns(Relation):
    """Relatives are the target models whose field compares to the current model field.

    ``CompareColumns("created_at", "<", Post, "created_at")`` declared on
    ``Post`` gives the posts created later than the current one. The rule is
    applied as ``current <rule> target`` both in SQL and in memory.

    Args:
        current_field: The owner model field. ``None`` means the identifier.
        rule: One of ``=``, ``!=``, ``<>``, ``<``, ``<=``, ``>``, ``>=``.
        target_model: The related model class.
        target_field: The related model field. ``None`` means the identifier.
        expects_many: Load a list (``True``) or a single model (``False``).
            A single model is the last match ordered by the target identifier.

    Raises:
        InvalidArgumentError: If the rule is unknown.
    """

    __slots__ = ("current_field", "expects_many", "rule", "target_field", "target_model")

    def __init__(
        self,
        current_field: str | None,
        rule: str,
        target_model: type[Model],
        target_field: str | None = None,
        expects_many: bool = True,
    ) -> None:
        check_model_class("The target model class", target_model)
        if rule not in COMPARE_RULES:
            raise InvalidArgumentError(
                f"Unknown compare rule {rule!r}, expected one of {', '.join(COMPARE_RULES)}"
            )

        self.current_field = current_field
        self.rule = rule
        self.target_model = target_model
        self.target_field = target_field
        self.expects_many = expects_many

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.current_field!r}, {self.rule!r}, "
            f"{self.target_model.__qualname__}, {self.target_field!r})"
        )

    def get_current_field(self, current_model: type[Model]) -> str:
        return self.current_field or current_model.get_identifier_field()

    def get_target_field(self) -> str:
        return self.target_field or self.target_model.get_identifier_field()

    def make_criterion(self, query: ModelQuery[Any], constraint: Constraint) -> sa.ColumnElement[bool]:
        return make_constraint_criterion(
            query,
            self.get_current_field(query.require_model()),
            self.target_model,
            self.get_target_field(),
            constraint,
            compare=COMPARE_RULES[self.rule],
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

        current_field = self.get_current_field(type(models[0]))
        target_field = self.get_target_field()
        compare = COMPARE_RULES[self.rule]
        values = get_field_values(models, current_field, unique=True)

        targets: list[Model] = []
        if values:
            query = mapper.model(self.target_model)
            if clause is not None:
                query = query.apply(clause)
            if not self.expects_many:
                # the last match is kept
                query.order_by(self.target_model.get_identifier_field())
            query.where(self._make_bound(query.column(target_field), values))
            targets = query.get()

        logger.debug(
            "Loaded %d %s candidates for %d models via `%s` (%s)",
            len(targets),
            self.target_model.__qualname__,
            len(models),
            name,
            self.rule,
        )

        for model in models:
            current = getattr(model, current_field, None)
            if current is None:
                matched = []
            else:
                matched = [
                    target
                    for target in targets
                    if getattr(target, target_field, None) is not None
                    and compare(current, getattr(target, target_field))
                ]

            if self.expects_many:
                model.set_loaded_relatives(name, matched)
            else:
                model.set_loaded_relatives(name, matched[-1] if matched else None)

    def _make_bound(self, column: sa.ColumnElement[Any], values: list[Any]) -> sa.ColumnElement[bool]:
        """Narrow the target rows to those that can match at least one value."""
        match self.rule:
            case "=":
                return column.in_(values)
            case "!=" | "<>":
                if len(values) == 1:
                    return column != values[0]
                return column.is_not(None)
            # the rule reads "current <op> target", so the bound is mirrored
            case "<":
                return column > min(values)
            case "<=":
                return column >= min(values)
            case ">":
                return column < max(values)
            case ">=":
                return column <= max(values)

        raise InvalidArgumentError(f"Unknown compare rule {self.rule!r}")
