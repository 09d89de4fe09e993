from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Final

import sqlalchemy as sa

from ..constraints import AnyRelated, RelatedMatching, RelatedTo, RelatedToAny
from ..exceptions import IncorrectModelError, InvalidArgumentError, InvalidReturnValueError
from ..tools import (
    check_model_class,
    check_model_object,
    get_field_values,
    get_fields_to_update,
    get_model_identifier_field,
    group_rows_by_key,
    make_fields_criterion,
)
from .base import AttachableRelation, AttachmentData, OnMatch


if TYPE_CHECKING:
    from ..constraints import Clause, Constraint
    from ..mapper import Mapper
    from ..model import Model
    from ..query import ModelQuery


logger = logging.getLogger(__name__)

PARENT_KEY_LABEL: Final[str] = "__wired_reserved_parent_model_id"
CHILD_KEY_LABEL: Final[str] = "__wired_reserved_child_model_id"
_KEY_LABELS: Final[frozenset[str]] = frozenset((PARENT_KEY_LABEL, CHILD_KEY_LABEL))


class BelongsToMany(AttachableRelation):
    """Many-to-many relation through a pivot (linking) table.

    Args:
        model: The related model class.
        pivot_parent_field: The pivot column referring to the parent.
        pivot_table: The pivot ``sa.Table`` or its name. A name is looked up
            in the metadata of the related model table; an unknown name
            becomes a lightweight ``sa.table`` with the two key columns.
        pivot_child_field: The pivot column referring to the child.
        parent_identifier_field: The parent field the pivot refers to.
            ``None`` means the parent identifier field.
        child_identifier_field: The child field the pivot refers to.
            ``None`` means the child identifier field.

    Example::

        class Post(Model):
            __table__ = posts_table

            tags = relation(lambda: BelongsToMany(Tag, "post_id", "post_tags", "tag_id"))
    """

    __slots__ = (
        "child_identifier_field",
        "child_model",
        "parent_identifier_field",
        "pivot_child_field",
        "pivot_parent_field",
        "pivot_table",
    )

    def __init__(
        self,
        model: type[Model],
        pivot_parent_field: str,
        pivot_table: str | sa.FromClause,
        pivot_child_field: str,
        parent_identifier_field: str | None = None,
        child_identifier_field: str | None = None,
    ) -> None:
        check_model_class("The child model class", model)

        self.child_model = model
        self.pivot_parent_field = pivot_parent_field
        self.pivot_table = pivot_table
        self.pivot_child_field = pivot_child_field
        self.parent_identifier_field = parent_identifier_field
        self.child_identifier_field = child_identifier_field

    def __repr__(self) -> str:
        name = self.pivot_table if isinstance(self.pivot_table, str) else getattr(self.pivot_table, "name", "?")
        return (
            f"{type(self).__name__}({self.child_model.__qualname__}, {self.pivot_parent_field!r}, "
            f"{name!r}, {self.pivot_child_field!r})"
        )

    def get_parent_identifier_field(self, hint: Model | type[Model] | ModelQuery[Any]) -> str:
        return self.parent_identifier_field or get_model_identifier_field(hint)

    def get_child_identifier_field(self) -> str:
        return self.child_identifier_field or self.child_model.get_identifier_field()

    def get_pivot_table(self, *extra_columns: str) -> sa.FromClause:
        """Resolve the pivot table.

        A lightweight table only knows the columns it's asked for, so pass
        the names of any extra columns a statement is going to touch.
        """
        if not isinstance(self.pivot_table, str):
            return self.pivot_table

        table = self.child_model.get_table().metadata.tables.get(self.pivot_table)
        if table is not None:
            return table

        names = dict.fromkeys((self.pivot_parent_field, self.pivot_child_field, *extra_columns))
        return sa.table(self.pivot_table, *(sa.column(name) for name in names))

    def make_criterion(self, query: ModelQuery[Any], constraint: Constraint) -> sa.ColumnElement[bool]:
        parent_field = self.get_parent_identifier_field(query.require_model())
        child_field = self.get_child_identifier_field()
        pivot_query = query.make_table_sub_query(self.get_pivot_table())
        pivot_child = pivot_query.column(self.pivot_child_field)

        match constraint:
            case RelatedTo(model=model):
                check_model_object(model, self.child_model)
                value = getattr(model, child_field, None)
                if value is None:
                    return sa.false()
                pivot_query.where(pivot_child == value)

            case RelatedToAny(models=models):
                for model in models:
                    check_model_object(model, self.child_model)
                values = get_field_values(models, child_field, unique=True)
                if not values:
                    return sa.false()
                pivot_query.where(pivot_child.in_(values))

            case AnyRelated() | RelatedMatching():
                target_query = pivot_query.make_sub_query(self.child_model)
                if isinstance(constraint, RelatedMatching):
                    target_query = target_query.apply(constraint.clause)
                target_query.where(pivot_child == target_query.column(child_field))
                pivot_query.where(target_query.exists())

            case _:
                raise InvalidArgumentError(f"Unsupported constraint {constraint!r}")

        pivot_query.where(query.column(parent_field) == pivot_query.column(self.pivot_parent_field))
        return pivot_query.exists()

    def load_relatives(
        self,
        mapper: Mapper,
        name: str,
        models: Sequence[Model],
        clause: Clause | None = None,
    ) -> None:
        if not models:
            return

        parent_field = self.get_parent_identifier_field(models[0])
        child_field = self.get_child_identifier_field()
        search_values = get_field_values(models, parent_field, unique=True)

        grouped: dict[Any, list[Model]] = {}
        if search_values:
            query = mapper.model(self.child_model)
            if clause is not None:
                query = query.apply(clause)

            pivot = self.get_pivot_table()
            # aliased so neither the target table nor a clause sub-query can clash with it
            pivot = pivot.alias(f"{pivot.name}_pivot")
            parent_column = pivot.c[self.pivot_parent_field]
            child_column = pivot.c[self.pivot_child_field]
            query.join(pivot, child_column == query.column(child_field))
            query.add_columns(parent_column.label(PARENT_KEY_LABEL), child_column.label(CHILD_KEY_LABEL))
            query.where(parent_column.in_(search_values))

            children: dict[Any, Model] = {}
            for parent_id, rows in group_rows_by_key(query.rows(), PARENT_KEY_LABEL).items():
                for row in rows:
                    fields = {key: value for key, value in row.items() if key not in _KEY_LABELS}
                    child = children.get(row[CHILD_KEY_LABEL])
                    if child is None:
                        child = children[row[CHILD_KEY_LABEL]] = self.child_model.create_from_row(fields)
                    grouped.setdefault(parent_id, []).append(child)

            logger.debug(
                "Loaded %d %s relatives through %s for %d models via `%s`",
                len(children),
                self.child_model.__qualname__,
                pivot.name,
                len(models),
                name,
            )

        for model in models:
            model.set_loaded_relatives(name, list(grouped.get(getattr(model, parent_field, None), ())))

    def attach(
        self,
        mapper: Mapper,
        parents: Sequence[Model],
        children: Sequence[Model],
        on_match: OnMatch,
        detach_other: bool,
        get_attachment_data: AttachmentData | None = None,
    ) -> None:
        if not parents or (not children and not detach_other):
            return

        try:
            on_match = OnMatch(on_match)
        except ValueError:
            raise InvalidArgumentError(f"An unexpected on_match value given ({on_match!r})") from None

        parent_field = self.get_parent_identifier_field(parents[0])
        child_field = self.get_child_identifier_field()
        for child in children:
            check_model_object(child, self.child_model)
        _require_identifiers(parents, parent_field)
        _require_identifiers(children, child_field)

        parent_ids = get_field_values(parents, parent_field, unique=True)
        child_ids = get_field_values(children, child_field, unique=True)

        if detach_other:
            self.detach_by_identifiers(mapper, parent_ids, child_ids, detach_other=True)

        if on_match is OnMatch.UPDATE:
            new_rows = self._update_attachments(
                mapper,
                parents,
                children,
                parent_field,
                child_field,
                detach_other,
                get_attachment_data,
            )
        else:
            if on_match is OnMatch.REPLACE:
                self.detach_by_identifiers(mapper, parent_ids, child_ids)
            new_rows = [
                self._make_attachment_row(
                    getattr(parent, parent_field),
                    getattr(child, child_field),
                    self._make_extra_fields(get_attachment_data, parent, child, parent_index, child_index),
                )
                for parent_index, parent in enumerate(parents)
                for child_index, child in enumerate(children)
            ]

        self._insert_rows(mapper, new_rows)

    def detach(self, mapper: Mapper, parents: Sequence[Model], children: Sequence[Model] | None) -> None:
        if not parents or (children is not None and not children):
            return

        parent_ids = get_field_values(parents, self.get_parent_identifier_field(parents[0]), unique=True)
        child_ids: list[Any] | None = None
        if children is not None:
            for child in children:
                check_model_object(child, self.child_model)
            child_ids = get_field_values(children, self.get_child_identifier_field(), unique=True)

        self.detach_by_identifiers(mapper, parent_ids, child_ids)

    def detach_by_identifiers(
        self,
        mapper: Mapper,
        parent_ids: Sequence[Any],
        child_ids: Sequence[Any] | None = None,
        *,
        detach_other: bool = False,
    ) -> None:
        """Delete the pivot rows of the parents.

        Args:
            mapper: The mapper to run queries with.
            parent_ids: The parent identifiers.
            child_ids: Limit the deletion to these children (or to all the
                other children if *detach_other* is set). ``None`` deletes
                every row of the parents.
            detach_other: Keep the given children, delete the rest.
        """
        if not parent_ids:
            return

        pivot = self.get_pivot_table()
        stmt = sa.delete(pivot).where(pivot.c[self.pivot_parent_field].in_(parent_ids))
        if child_ids is not None:
            child_column = pivot.c[self.pivot_child_field]
            if detach_other:
                if child_ids:
                    stmt = stmt.where(child_column.not_in(child_ids))
            elif child_ids:
                stmt = stmt.where(child_column.in_(child_ids))
            else:
                return

        mapper.execute(stmt)

    def _update_attachments(
        self,
        mapper: Mapper,
        parents: Sequence[Model],
        children: Sequence[Model],
        parent_field: str,
        child_field: str,
        detach_excess: bool,
        get_attachment_data: AttachmentData | None,
    ) -> list[dict[str, Any]]:
        """Reuse the existing pivot rows for the requested attachments.

        Every (parent id, child id) pair is handled separately: the n-th
        requested attachment of a pair reuses the n-th existing row, extra
        ones are inserted. When a pair's rows change, all of them are
        deleted and written back since duplicate rows can't be addressed
        one by one.

        Returns:
            The rows to insert afterwards.
        """
        parent_groups = _group_with_indexes(parents, parent_field)
        child_groups = _group_with_indexes(children, child_field)

        pivot = self.get_pivot_table()
        parent_column = pivot.c[self.pivot_parent_field]
        child_column = pivot.c[self.pivot_child_field]
        old_rows = mapper.fetch_rows(
            sa.select(pivot).where(parent_column.in_(list(parent_groups)), child_column.in_(list(child_groups)))
        )
        old_by_pair: dict[tuple[Any, Any], list[dict[str, Any]]] = {}
        for row in old_rows:
            old_by_pair.setdefault((row[self.pivot_parent_field], row[self.pivot_child_field]), []).append(dict(row))

        new_rows: list[dict[str, Any]] = []
        for parent_id, parent_group in parent_groups.items():
            for child_id, child_group in child_groups.items():
                old = old_by_pair.get((parent_id, child_id), [])
                kept: list[dict[str, Any]] = []
                changed = False
                for parent_index, parent in parent_group:
                    for child_index, child in child_group:
                        extra = self._make_extra_fields(get_attachment_data, parent, child, parent_index, child_index)
                        if len(kept) >= len(old):
                            new_rows.append(self._make_attachment_row(parent_id, child_id, extra))
                            continue
                        row = old[len(kept)]
                        if extra and get_fields_to_update(row, extra):
                            row = {**row, **extra}
                            changed = True
                        kept.append(row)

                excess = old[len(kept):]
                if excess and detach_excess:
                    changed = True
                elif excess:
                    kept.extend(excess)

                if changed:
                    pair = {self.pivot_parent_field: parent_id, self.pivot_child_field: child_id}
                    mapper.execute(sa.delete(pivot).where(make_fields_criterion(pivot, pair)))
                    new_rows.extend(kept)

        return new_rows

    def _insert_rows(self, mapper: Mapper, rows: Sequence[Mapping[str, Any]]) -> None:
        # executemany needs the same keys in every row
        batches: dict[tuple[str, ...], list[Mapping[str, Any]]] = {}
        for row in rows:
            batches.setdefault(tuple(row), []).append(row)

        for keys, batch in batches.items():
            mapper.execute(sa.insert(self.get_pivot_table(*keys)), batch)

    def _make_attachment_row(self, parent_id: Any, child_id: Any, extra: Mapping[str, Any] | None) -> dict[str, Any]:
        row = {self.pivot_parent_field: parent_id, self.pivot_child_field: child_id}
        return {**row, **extra} if extra else row

    @staticmethod
    def _make_extra_fields(
        get_attachment_data: AttachmentData | None,
        parent: Model,
        child: Model,
        parent_index: int,
        child_index: int,
    ) -> dict[str, Any] | None:
        if get_attachment_data is None:
            return None

        result = get_attachment_data(parent, child, parent_index, child_index)
        if result is None:
            return None
        if not isinstance(result, Mapping):
            raise InvalidReturnValueError(
                f"The get_attachment_data return value expected to be a dict or None, {type(result).__name__} given"
            )

        return dict(result)


def _require_identifiers(models: Sequence[Model], field: str) -> None:
    for model in models:
        if getattr(model, field, None) is None:
            raise IncorrectModelError(
                f"The {model!r} model doesn't have a value in the identifier field `{field}`"
                "; perhaps it is not saved to the database"
            )


def _group_with_indexes(models: Sequence[Model], field: str) -> dict[Any, list[tuple[int, Model]]]:
    grouped: dict[Any, list[tuple[int, Model]]] = {}
    for index, model in enumerate(models):
        grouped.setdefault(getattr(model, field), []).append((index, model))

    return grouped
