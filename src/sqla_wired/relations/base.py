from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Optional

import sqlalchemy as sa

from ..constraints import ConstraintLike, as_constraint


if TYPE_CHECKING:
    from ..constraints import Clause, Constraint
    from ..mapper import Mapper
    from ..model import Model
    from ..query import ModelQuery


AttachmentData = Callable[["Model", "Model", int, int], Optional[dict[str, Any]]]


class OnMatch(str, enum.Enum):
    """What to do when an attachment being created already exists."""

    DUPLICATE = "duplicate"
    REPLACE = "replace"
    UPDATE = "update"


class Relation(ABC):
    """A declared link from one model class to another.

    A relation can do two things: turn itself into a predicate for a query
    over the owning model (:meth:`make_criterion`) and fetch the relatives
    of many models at once (:meth:`load_relatives`).
    """

    __slots__ = ()

    @abstractmethod
    def make_criterion(self, query: ModelQuery[Any], constraint: Constraint) -> sa.ColumnElement[bool]:
        """Build a predicate keeping the *query* rows related to the constraint.

        Args:
            query: A model query over the relation owner.
            constraint: Which relatives count.
        """

    def apply_to_query_where(self, query: ModelQuery[Any], constraint: ConstraintLike = None) -> ModelQuery[Any]:
        return query.where(self.make_criterion(query, as_constraint(constraint)))

    @abstractmethod
    def load_relatives(
        self,
        mapper: Mapper,
        name: str,
        models: Sequence[Model],
        clause: Clause | None = None,
    ) -> None:
        """Load the relatives of *models* and store them under *name*.

        Args:
            mapper: The mapper to run queries with.
            name: The relation name, the loaded-relatives key.
            models: Models of one class. Nothing happens if it is empty.
            clause: Extra filter for the relatives query.
        """


class AssociableRelation(Relation):
    """A relation set by changing a field of the owning model."""

    __slots__ = ()

    @abstractmethod
    def associate(self, name: str, parent: Model, child: Model | None) -> None: ...

    def dissociate(self, name: str, parent: Model) -> None:
        self.associate(name, parent, None)


class AttachableRelation(Relation):
    """A relation set by changing rows of a linking table."""

    __slots__ = ()

    @abstractmethod
    def attach(
        self,
        mapper: Mapper,
        parents: Sequence[Model],
        children: Sequence[Model],
        on_match: OnMatch,
        detach_other: bool,
        get_attachment_data: AttachmentData | None = None,
    ) -> None:
        """Link the parents to the children.

        Args:
            mapper: The mapper to run queries with.
            parents: Owner models of one class.
            children: Related models of one class.
            on_match: What to do with existing links.
            detach_other: Remove the links of the parents to models not in
                *children*.
            get_attachment_data: Makes extra linking row fields from
                ``(parent, child, parent_index, child_index)``.
        """

    @abstractmethod
    def detach(self, mapper: Mapper, parents: Sequence[Model], children: Sequence[Model] | None) -> None:
        """Remove the links. ``None`` children means all the links of the parents."""
