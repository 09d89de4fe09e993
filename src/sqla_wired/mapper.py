from __future__ import annotations

import logging
import sys
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, TypeVar

import sqlalchemy as sa

from . import loading
from .config import MapperConfig
from .exceptions import InvalidArgumentError, RelationError, wrap_exception
from .model import Model
from .query import ModelQuery
from .relations.base import AttachableRelation, AttachmentData, OnMatch
from .tools import as_model_list, check_model_class, group_by_type


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

if TYPE_CHECKING:
    from .constraints import Clause


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=Model)


class Mapper:
    """Entry point: runs model queries, saves models and loads their relatives.

    Every statement runs in its own ``Engine.begin()`` block. SQLAlchemy
    errors are re-raised as :mod:`sqla_wired.exceptions` errors.

    Example::

        mapper = Mapper.create("sqlite:///blog.db")
        posts = mapper.model(Post).where_relation("author").get()
        mapper.load(posts, "author.profile")
    """

    __slots__ = ("_engine",)

    def __init__(self, engine: sa.Engine) -> None:
        self._engine = engine

    @classmethod
    def create(cls, config: str | Mapping[str, Any] | MapperConfig) -> Self:
        """Make a mapper with a new engine.

        Args:
            config: A database URL, a mapping for
                :meth:`MapperConfig.from_mapping` or a ready config.

        Raises:
            InvalidArgumentError: If the config is malformed.
            DatabaseError: If the engine can't be created.
        """
        if isinstance(config, str):
            config = MapperConfig(url=config)
        elif isinstance(config, Mapping):
            config = MapperConfig.from_mapping(config)
        elif not isinstance(config, MapperConfig):
            raise InvalidArgumentError(
                f"The config expected to be a URL, a mapping or a MapperConfig, {type(config).__name__} given"
            )

        with _wrap_errors():
            engine = sa.create_engine(config.url, echo=config.echo, **config.engine_options)

        return cls(engine)

    @property
    def engine(self) -> sa.Engine:
        return self._engine

    def model(self, model: type[M]) -> ModelQuery[M]:
        """Start a query over the model table."""
        check_model_class("The given model class", model)
        return ModelQuery(self, model)

    def table(self, table: sa.FromClause) -> ModelQuery[Any]:
        """Start a query over a table which has no model."""
        return ModelQuery(self, None, table=table)

    def execute(
        self,
        statement: sa.Executable,
        params: Sequence[Mapping[str, Any]] | Mapping[str, Any] | None = None,
    ) -> sa.CursorResult[Any]:
        with _wrap_errors(), self._engine.begin() as conn:
            return conn.execute(statement, params)

    def fetch_rows(self, statement: sa.Executable) -> Sequence[sa.RowMapping]:
        with _wrap_errors(), self._engine.begin() as conn:
            return conn.execute(statement).mappings().all()

    def fetch_scalar(self, statement: sa.Executable) -> Any:
        with _wrap_errors(), self._engine.begin() as conn:
            return conn.execute(statement).scalar()

    # Persistence

    def save(self, models: Model | Iterable[Model]) -> None:
        """Write the models to the database.

        A model with an identifier value is updated (inserted if no row has
        the identifier), a model without one is inserted and gets the
        generated identifier.
        """
        for model in as_model_list(models):
            self._save_model(model)

    def delete(self, models: Model | Iterable[Model]) -> None:
        """Delete the models rows. The models forget their identifiers."""
        for model_class, group in group_by_type(as_model_list(models)).items():
            field = model_class.get_identifier_field()
            saved = [model for model in group if model.does_exist_in_database()]
            if not saved:
                continue

            table = model_class.get_table()
            self.execute(sa.delete(table).where(table.c[field].in_([getattr(model, field) for model in saved])))
            for model in saved:
                setattr(model, field, None)

    def _save_model(self, model: Model) -> None:
        table = model.get_table()
        field = model.get_identifier_field()
        row = model.convert_to_row()
        identifier = row.pop(field, None)

        with _wrap_errors(), self._engine.begin() as conn:
            if identifier is not None:
                result = conn.execute(sa.update(table).where(table.c[field] == identifier).values(row))
                if result.rowcount:
                    return
                row[field] = identifier

            result = conn.execute(sa.insert(table).values(row))
            if identifier is None and result.inserted_primary_key:
                setattr(model, field, result.inserted_primary_key[0])

    # Relatives

    def load(
        self,
        models: Model | Iterable[Model],
        relation_name: str,
        clause: Clause | None = None,
        only_missing: bool = False,
    ) -> None:
        """See :func:`sqla_wired.loading.load`."""
        loading.load(self, models, relation_name, clause, only_missing)

    def load_cyclic(
        self,
        models: Model | Iterable[Model],
        relation_name: str,
        clause: Clause | None = None,
        only_missing: bool = False,
    ) -> None:
        """See :func:`sqla_wired.loading.load_cyclic`."""
        loading.load_cyclic(self, models, relation_name, clause, only_missing)

    def attach(
        self,
        parents: Model | Iterable[Model],
        relation_name: str,
        children: Model | Iterable[Model],
        get_attachment_data: AttachmentData | None = None,
    ) -> None:
        """Link the parents to the children. Existing links are kept, so duplicates may appear.

        Args:
            parents: Models owning the relation.
            relation_name: An attachable relation name.
            children: Models to link.
            get_attachment_data: Makes extra pivot fields from
                ``(parent, child, parent_index, child_index)``.

        Raises:
            RelationError: If the relation is not attachable.
            InvalidReturnValueError: If *get_attachment_data* returns a
                non-mapping.
        """
        self._attach(parents, relation_name, children, OnMatch.DUPLICATE, False, get_attachment_data)

    def set_attachments(
        self,
        parents: Model | Iterable[Model],
        relation_name: str,
        children: Model | Iterable[Model],
        keep_other: bool = False,
        get_attachment_data: AttachmentData | None = None,
        simple_mode: bool = False,
    ) -> None:
        """Make the parents linked to exactly the children.

        Args:
            keep_other: Don't remove the links to models not in *children*.
            simple_mode: Delete and recreate the links instead of updating
                the existing pivot rows.
        """
        self._attach(
            parents,
            relation_name,
            children,
            OnMatch.REPLACE if simple_mode else OnMatch.UPDATE,
            not keep_other,
            get_attachment_data,
        )

    def detach(
        self,
        parents: Model | Iterable[Model],
        relation_name: str,
        children: Model | Iterable[Model],
    ) -> None:
        """Remove the links between the parents and the children."""
        children_groups = group_by_type(as_model_list(children))
        for group in group_by_type(as_model_list(parents)).values():
            found = _get_attachable(group[0], relation_name, detaching=True)
            for child_group in children_groups.values():
                found.detach(self, group, child_group)

    def detach_all(self, parents: Model | Iterable[Model], relation_name: str) -> None:
        """Remove every link of the parents."""
        for group in group_by_type(as_model_list(parents)).values():
            _get_attachable(group[0], relation_name, detaching=True).detach(self, group, None)

    def _attach(
        self,
        parents: Model | Iterable[Model],
        relation_name: str,
        children: Model | Iterable[Model],
        on_match: OnMatch,
        detach_other: bool,
        get_attachment_data: AttachmentData | None,
    ) -> None:
        # no children still matters when the other links are detached
        children_groups = list(group_by_type(as_model_list(children)).values()) or [[]]
        for group in group_by_type(as_model_list(parents)).values():
            found = _get_attachable(group[0], relation_name, detaching=False)
            for child_group in children_groups:
                found.attach(self, group, child_group, on_match, detach_other, get_attachment_data)


def _get_attachable(model: Model, relation_name: str, *, detaching: bool) -> AttachableRelation:
    found = model.get_relation_or_fail(relation_name)
    if isinstance(found, AttachableRelation):
        return found

    action = "Detaching" if detaching else "Attaching"
    raise RelationError(
        f"{action} is not available for the `{relation_name}` relation "
        f"of the {type(model).__module__}.{type(model).__qualname__} model"
    )


@contextmanager
def _wrap_errors() -> Iterator[None]:
    try:
        yield
    except sa.exc.SQLAlchemyError as exc:
        logger.debug("Database call failed", exc_info=True)
        raise wrap_exception(exc) from exc
