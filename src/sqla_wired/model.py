from __future__ import annotations

import sys
from collections.abc import Callable, Mapping
from functools import lru_cache
from typing import TYPE_CHECKING, Any, ClassVar, Union

import sqlalchemy as sa

from .datastructures import frozendict
from .exceptions import IncorrectModelError, InvalidReturnValueError, RelationError


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

if TYPE_CHECKING:
    from .relations.base import Relation


RelationFactory = Callable[[], "Relation"]
RelativeSlot = Union["Model", list["Model"], None]


class _RelationFactory:
    """Class-body placeholder created by :func:`relation`.

    ``Model.__init_subclass__`` moves every placeholder into the class
    ``__relations__`` registry and removes it from the class namespace.
    """

    __slots__ = ("factory",)

    def __init__(self, factory: RelationFactory) -> None:
        self.factory = factory


def relation(factory: RelationFactory) -> Any:
    """Declare a model relation.

    The factory is called lazily on the first access, so it may reference
    model classes defined later in the module.

    Example::

        class Post(Model):
            __table__ = posts_table

            @relation
            def author() -> BelongsTo:
                return BelongsTo(User, "author_id")

            category = relation(lambda: BelongsTo(Category, "category_id"))
    """
    if not callable(factory):
        raise TypeError(f"relation() expects a callable, {type(factory).__name__} given")

    return _RelationFactory(factory)


class Model:
    """A database table row with its loaded relatives.

    Subclasses bind themselves to a table with ``__table__`` and may change
    the identifier field with ``__identifier__``.  Every table column becomes
    an instance attribute (``None`` by default).  Loaded relatives are kept
    apart from the fields and are readable as attributes too::

        mapper.load(post, "author")
        post.author  # a User or None
    """

    __table__: ClassVar[sa.Table]
    __identifier__: ClassVar[str] = "id"
    __relations__: ClassVar[frozendict[str, RelationFactory]] = frozendict()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)

        own: dict[str, RelationFactory] = {}
        for name, value in list(vars(cls).items()):
            if isinstance(value, _RelationFactory):
                own[name] = value.factory
                delattr(cls, name)

        registry: frozendict[str, RelationFactory] = frozendict()
        for base in reversed(cls.__mro__[1:]):
            registry = registry.merge(vars(base).get("__relations__", {}))

        cls.__relations__ = registry.merge(own)

    def __init__(self, **fields: Any) -> None:
        self._loaded_relatives: dict[str, RelativeSlot] = {}
        for key in self.get_table().c.keys():
            setattr(self, key, None)
        for key, value in fields.items():
            setattr(self, key, value)

    @classmethod
    def create_empty(cls) -> Self:
        return cls()

    @classmethod
    def create_from_row(cls, row: Mapping[str, Any]) -> Self:
        """Make a model from a database row. Every row key becomes a field."""
        return cls(**dict(row))

    def convert_to_row(self) -> dict[str, Any]:
        """Return the table column values of the model."""
        return {key: getattr(self, key, None) for key in self.get_table().c.keys()}

    def does_exist_in_database(self) -> bool:
        return getattr(self, self.get_identifier_field(), None) is not None

    @classmethod
    def get_table(cls) -> sa.Table:
        table = getattr(cls, "__table__", None)
        if table is None:
            raise IncorrectModelError(f"The {_class_name(cls)} model doesn't have a table")

        return table

    @classmethod
    def get_identifier_field(cls) -> str:
        return cls.__identifier__

    @classmethod
    def relation_names(cls) -> tuple[str, ...]:
        return tuple(cls.__relations__)

    @classmethod
    def get_relation(cls, name: str) -> Relation | None:
        """Return the relation declared under *name* or ``None``.

        Raises:
            InvalidReturnValueError: If the relation factory doesn't return
                a relation.
        """
        return _resolve_relation(cls, name)

    @classmethod
    def get_relation_or_fail(cls, name: str) -> Relation:
        """Return the relation declared under *name*.

        Raises:
            RelationError: If the model has no such relation.
        """
        found = cls.get_relation(name)
        if found is None:
            raise RelationError(f"The relation `{name}` is not defined in the {_class_name(cls)} model")

        return found

    def set_loaded_relatives(self, name: str, relatives: RelativeSlot) -> None:
        self._loaded_relatives[name] = relatives

    def does_have_loaded_relatives(self, name: str) -> bool:
        return name in self._loaded_relatives

    def get_loaded_relatives(self, name: str) -> RelativeSlot:
        return self._loaded_relatives.get(name)

    def unset_loaded_relatives(self, name: str) -> None:
        self._loaded_relatives.pop(name, None)

    def associate(self, relation_name: str, child: Model | None) -> None:
        """Make the model refer to *child* through an associable relation.

        The foreign field is changed in memory only, save the model to
        persist it.
        """
        from .relations.base import AssociableRelation

        found = self.get_relation_or_fail(relation_name)
        if not isinstance(found, AssociableRelation):
            raise RelationError(
                f"Associating is not available for the `{relation_name}` relation "
                f"of the {_class_name(type(self))} model"
            )

        found.associate(relation_name, self, child)

    def dissociate(self, relation_name: str) -> None:
        self.associate(relation_name, None)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)

        loaded = self.__dict__.get("_loaded_relatives")
        if loaded is not None and name in loaded:
            return loaded[name]

        if name in type(self).__relations__:
            raise AttributeError(
                f"The `{name}` relatives of the {_class_name(type(self))} model are not loaded"
            )

        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __repr__(self) -> str:
        identifier = self.get_identifier_field()
        return f"<{type(self).__name__} {identifier}={getattr(self, identifier, None)!r}>"


@lru_cache(maxsize=1024)
def _resolve_relation(model: type[Model], name: str) -> Relation | None:
    from .relations.base import Relation

    factory = model.__relations__.get(name)
    if factory is None:
        return None

    result = factory()
    if not isinstance(result, Relation):
        raise InvalidReturnValueError(
            f"The `{name}` relation factory of the {_class_name(model)} model "
            f"expected to return a relation, {type(result).__name__} given"
        )

    return result


def _class_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"
