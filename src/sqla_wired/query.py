from __future__ import annotations

import copy
import sys
from collections.abc import Iterable, Iterator, Sequence
from typing import TYPE_CHECKING, Any, Generic, TypeVar, overload

import sqlalchemy as sa

from .constraints import ConstraintLike, RelatedMatching, as_constraint
from .exceptions import IncorrectQueryError, InvalidArgumentError, InvalidReturnValueError
from .model import Model


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

if TYPE_CHECKING:
    from .constraints import Clause
    from .mapper import Mapper


M = TypeVar("M", bound=Model)


class ModelQuery(Generic[M]):
    """A SELECT over one table, optionally bound to a model class.

    The builder methods change the query in place and return it, so the
    calls may be chained. ``statement`` renders the current state to a
    ``sa.Select``; the execution methods run it through the mapper.

    A sub-query made with :meth:`make_sub_query` aliases its table when the
    table is already used by an enclosing query, so self-referencing
    relations produce unambiguous SQL (``categories AS categories_1``).
    """

    __slots__ = (
        "_columns",
        "_criteria",
        "_joins",
        "_limit",
        "_offset",
        "_order_by",
        "_scope",
        "mapper",
        "model",
        "table",
    )

    def __init__(
        self,
        mapper: Mapper | None,
        model: type[M] | None = None,
        *,
        table: sa.FromClause | None = None,
        scope: tuple[str, ...] = (),
    ) -> None:
        if table is None:
            if model is None:
                raise InvalidArgumentError("Either a model or a table must be given to make a query")
            table = model.get_table()

        name = getattr(table, "name", None) or str(table)
        if name in scope:
            table = table.alias(f"{name}_{len(scope)}")

        self.mapper = mapper
        self.model = model
        self.table: sa.FromClause = table
        self._scope = (*scope, name)
        self._criteria: list[sa.ColumnElement[bool]] = []
        self._order_by: list[sa.ColumnElement[Any]] = []
        self._limit: int | None = None
        self._offset: int | None = None
        self._columns: list[sa.ColumnElement[Any]] = []
        self._joins: list[tuple[sa.FromClause, sa.ColumnElement[bool], bool]] = []

    def __repr__(self) -> str:
        target = self.model.__qualname__ if self.model is not None else self.table
        return f"<{type(self).__name__} {target}>"

    def copy(self) -> Self:
        clone = copy.copy(self)
        clone._criteria = list(self._criteria)
        clone._order_by = list(self._order_by)
        clone._columns = list(self._columns)
        clone._joins = list(self._joins)
        return clone

    @property
    def c(self) -> sa.ColumnCollection[str, sa.ColumnElement[Any]]:
        return self.table.c

    def column(self, name: str | sa.ColumnElement[Any]) -> sa.ColumnElement[Any]:
        """Get a column of the query table by its key.

        SQL expressions are passed through unchanged.
        """
        if not isinstance(name, str):
            return name

        try:
            return self.table.c[name]
        except KeyError:
            raise InvalidArgumentError(f"The `{name}` column is not in the {self.table} table") from None

    def require_model(self) -> type[M]:
        if self.model is None:
            raise IncorrectQueryError("This query is not a model query")

        return self.model

    # Criteria

    def where(self, *criteria: sa.ColumnElement[bool]) -> Self:
        self._criteria.extend(criteria)
        return self

    def or_where(self, *criteria: sa.ColumnElement[bool]) -> Self:
        """Add criteria joined to the existing ones with ``OR``."""
        if not criteria:
            return self

        if not self._criteria:
            return self.where(*criteria)

        self._criteria = [sa.or_(sa.and_(*self._criteria), sa.and_(*criteria))]
        return self

    def filter_by(self, **values: Any) -> Self:
        for key, value in values.items():
            column = self.column(key)
            self._criteria.append(column.is_(None) if value is None else column == value)

        return self

    def where_in(self, field: str | sa.ColumnElement[Any], values: Iterable[Any]) -> Self:
        values = list(values)
        self._criteria.append(self.column(field).in_(values) if values else sa.false())
        return self

    def apply(self, clause: Clause) -> ModelQuery[Any]:
        """Pass the query to *clause* and return the query it gives.

        The clause may modify the query and return nothing or return a
        query to continue with.

        Raises:
            InvalidReturnValueError: If the clause returns something else.
        """
        result = clause(self)
        if result is None:
            return self

        if isinstance(result, ModelQuery):
            return result

        raise InvalidReturnValueError(
            f"The clause return value expected to be a ModelQuery or None, {type(result).__name__} given"
        )

    def where_relation(self, relation_name: str, constraint: ConstraintLike = None) -> Self:
        """Keep only the rows having relatives matching the constraint.

        Args:
            relation_name: The relation name, may be a dotted path
                (``"posts.category"``).
            constraint: ``None`` (any relative), a model, a list of models or
                a clause for the relatives query.
        """
        return self.where(make_relation_criterion(self, relation_name, constraint))

    def where_no_relation(self, relation_name: str, constraint: ConstraintLike = None) -> Self:
        return self.where(make_relation_criterion(self, relation_name, constraint, negate=True))

    def or_where_relation(self, relation_name: str, constraint: ConstraintLike = None) -> Self:
        return self.or_where(make_relation_criterion(self, relation_name, constraint))

    def or_where_no_relation(self, relation_name: str, constraint: ConstraintLike = None) -> Self:
        return self.or_where(make_relation_criterion(self, relation_name, constraint, negate=True))

    # Sub-queries

    def make_sub_query(self, model: type[Model]) -> ModelQuery[Any]:
        """Make a query over the model table to embed into this query."""
        return ModelQuery(self.mapper, model, scope=self._scope)

    def make_table_sub_query(self, table: sa.FromClause) -> ModelQuery[Any]:
        return ModelQuery(self.mapper, None, table=table, scope=self._scope)

    def exists(self) -> sa.Exists:
        """Render the query as an ``EXISTS`` predicate for an enclosing query."""
        return sa.exists().select_from(self._from_clause()).where(*self._criteria)

    # Shape

    def order_by(self, *clauses: str | sa.ColumnElement[Any]) -> Self:
        self._order_by.extend(self.column(clause) for clause in clauses)
        return self

    def limit(self, limit: int | None) -> Self:
        self._limit = limit
        return self

    def offset(self, offset: int | None) -> Self:
        self._offset = offset
        return self

    def add_columns(self, *columns: sa.ColumnElement[Any]) -> Self:
        self._columns.extend(columns)
        return self

    def join(self, target: sa.FromClause, onclause: sa.ColumnElement[bool], *, isouter: bool = False) -> Self:
        self._joins.append((target, onclause, isouter))
        return self

    @property
    def whereclause(self) -> sa.ColumnElement[bool] | None:
        if not self._criteria:
            return None

        return sa.and_(*self._criteria)

    @property
    def statement(self) -> sa.Select[Any]:
        stmt = sa.select(self.table, *self._columns).select_from(self._from_clause())
        if self._criteria:
            stmt = stmt.where(*self._criteria)
        if self._order_by:
            stmt = stmt.order_by(*self._order_by)
        if self._limit is not None:
            stmt = stmt.limit(self._limit)
        if self._offset is not None:
            stmt = stmt.offset(self._offset)

        return stmt

    def _from_clause(self) -> sa.FromClause:
        from_: sa.FromClause = self.table
        for target, onclause, isouter in self._joins:
            from_ = from_.join(target, onclause, isouter=isouter)

        return from_

    # Execution

    def _require_mapper(self) -> Mapper:
        if self.mapper is None:
            raise IncorrectQueryError("The query is not attached to a mapper")

        return self.mapper

    def rows(self) -> Sequence[sa.RowMapping]:
        return self._require_mapper().fetch_rows(self.statement)

    def get(self) -> list[M]:
        model = self.require_model()
        return [model.create_from_row(row) for row in self.rows()]

    def first(self) -> M | None:
        model = self.require_model()
        rows = self._require_mapper().fetch_rows(self.statement.limit(1))
        return model.create_from_row(rows[0]) if rows else None

    @overload
    def find(self, identifier: list[Any] | tuple[Any, ...]) -> list[M]: ...

    @overload
    def find(self, identifier: Any) -> M | None: ...

    def find(self, identifier: Any) -> M | list[M] | None:
        """Get a model by its identifier or a list of models by identifiers."""
        model = self.require_model()
        query = self.copy()
        if isinstance(identifier, (list, tuple)):
            return query.where_in(model.get_identifier_field(), identifier).get()

        return query.filter_by(**{model.get_identifier_field(): identifier}).first()

    def count(self) -> int:
        inner = self.statement.order_by(None).subquery()
        result = self._require_mapper().fetch_scalar(sa.select(sa.func.count()).select_from(inner))
        return int(result or 0)

    def chunk(self, size: int) -> Iterator[list[M]]:
        """Iterate over the query models in lists of at most *size* items.

        Models without an explicit order are ordered by the identifier so the
        pages don't overlap.
        """
        if size < 1:
            raise InvalidArgumentError(f"The chunk size must be a positive number, {size} given")

        model = self.require_model()
        query = self.copy()
        if not query._order_by:
            query.order_by(model.get_identifier_field())

        start = query._offset or 0
        remaining = query._limit
        while remaining is None or remaining > 0:
            step = size if remaining is None else min(size, remaining)
            page = query.copy().offset(start).limit(step).get()
            if not page:
                return
            yield page
            if len(page) < step:
                return
            start += len(page)
            if remaining is not None:
                remaining -= len(page)


def make_relation_criterion(
    query: ModelQuery[Any],
    relation_path: str,
    constraint: ConstraintLike = None,
    *,
    negate: bool = False,
) -> sa.ColumnElement[bool]:
    """Build a predicate checking that a row has relatives along *relation_path*.

    A dotted path is resolved by nesting: ``posts.category`` means "has a
    post which has a category matching the constraint".

    Raises:
        IncorrectQueryError: If the query is not a model query.
        RelationError: If a relation of the path is not defined.
    """
    if not isinstance(query, ModelQuery):
        raise IncorrectQueryError(f"A ModelQuery expected, {type(query).__name__} given")

    model = query.require_model()
    name, _, rest = relation_path.partition(".")
    found = model.get_relation_or_fail(name)

    if rest:
        normalized = as_constraint(constraint)
        inner = RelatedMatching(lambda sub: sub.where_relation(rest, normalized))
        criterion = found.make_criterion(query, inner)
    else:
        criterion = found.make_criterion(query, as_constraint(constraint))

    return sa.not_(criterion) if negate else criterion


def apply_relation_filter(
    query: ModelQuery[M],
    relation_path: str,
    constraint: ConstraintLike = None,
    negate: bool = False,
) -> ModelQuery[M]:
    """Filter *query* by the relation existence. See :func:`make_relation_criterion`."""
    criterion = make_relation_criterion(query, relation_path, constraint, negate=negate)
    return query.where(criterion)


