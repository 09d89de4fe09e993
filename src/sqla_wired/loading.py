"""Eager loading of model relatives.

Both loaders work level by level: every segment of a dotted relation path
is loaded for all the models of the level with one query per model class,
then the loaded relatives form the next level.

:func:`load_cyclic` repeats this while new models appear, which lets it walk
trees (``children``) and cycles (``parent`` of a category that is its own
grand-parent) without endless recursion: a model that was already seen is
replaced with the instance loaded first, so the graph links back to it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

from .exceptions import RelationError
from .model import Model
from .tools import as_model_list, collect_relatives, filter_models_relatives, group_by_type


if TYPE_CHECKING:
    from .constraints import Clause
    from .mapper import Mapper


logger = logging.getLogger(__name__)

IdentityMap = dict[type[Model], dict[Any, Model]]


def load(
    mapper: Mapper,
    models: Model | Iterable[Model],
    relation_name: str,
    clause: Clause | None = None,
    only_missing: bool = False,
) -> None:
    """Load relatives of the models and store them in the models.

    Args:
        mapper: The mapper to run queries with.
        models: A model or models of any classes.
        relation_name: The relation name. A dotted path (``posts.category``)
            loads the chain, the intermediate relatives which are loaded
            already are reused.
        clause: Filters the relatives of the last path segment.
        only_missing: Skip models which have the last segment loaded.

    Raises:
        NotModelError: If a value is not a model.
        RelationError: If a relation of the path is not defined.
    """
    for group in group_by_type(as_model_list(models)).values():
        _load_same_class(mapper, group, relation_name, clause, only_missing)


def load_cyclic(
    mapper: Mapper,
    models: Model | Iterable[Model],
    relation_name: str,
    clause: Clause | None = None,
    only_missing: bool = False,
) -> None:
    """Load relatives recursively until no new models are found.

    The relatives are checked by their class and identifier: a model met
    for the second time is not loaded again, the relation points to the
    first instance instead. Models without identifier are always new.

    Args:
        mapper: The mapper to run queries with.
        models: A model or models of any classes.
        relation_name: A relation name or a dotted path which leads back to
            the models class (``author.posts`` for posts).
        clause: Filters the relatives of the last path segment.
        only_missing: Skip models which have the last segment loaded.

    Raises:
        NotModelError: If a value is not a model.
        RelationError: If a relation of the path is not defined.
    """
    for group in group_by_type(as_model_list(models)).values():
        _load_cyclic_same_class(mapper, group, relation_name, clause, only_missing)


def _load_same_class(
    mapper: Mapper,
    models: Sequence[Model],
    relation_name: str,
    clause: Clause | None,
    only_missing: bool,
) -> list[Model]:
    """Load a relation path for models of one class.

    Returns:
        The models of the penultimate path level, i.e. the models whose
        relatives were loaded last. The given models for a plain name.
    """
    names = relation_name.split(".")
    level = list(models)
    parents = level

    for depth, name in enumerate(names):
        if not level:
            return []

        is_last = depth == len(names) - 1
        found = type(level[0]).get_relation_or_fail(name)

        subjects = level
        if not is_last or only_missing:
            subjects = [model for model in level if not model.does_have_loaded_relatives(name)]

        logger.debug(
            "Loading `%s` of %d %s models (%d already loaded)",
            name,
            len(level),
            type(level[0]).__qualname__,
            len(level) - len(subjects),
        )
        found.load_relatives(mapper, name, subjects, clause if is_last else None)

        parents = level
        if not is_last:
            # previously loaded relatives are walked through too
            level = collect_relatives(level, name)

    return parents


def _load_cyclic_same_class(
    mapper: Mapper,
    models: Sequence[Model],
    relation_name: str,
    clause: Clause | None,
    only_missing: bool,
) -> None:
    last_name = relation_name.rsplit(".", 1)[-1]
    known: IdentityMap = {}
    for model in models:
        _remember(known, model)

    frontier = list(models)
    level_number = 0
    while frontier:
        try:
            parents = _load_same_class(mapper, frontier, relation_name, clause, only_missing)
        except RelationError as exc:
            if level_number == 0:
                raise
            raise RelationError(f"{exc}; perhaps, the given relation is not cycled") from exc

        next_frontier: list[Model] = []

        def replace_known(relative: Model) -> bool | Model:
            existing = _recall(known, relative)
            if existing is not None:
                return existing
            _remember(known, relative)
            next_frontier.append(relative)
            return True

        filter_models_relatives(parents, last_name, replace_known)
        logger.debug(
            "Cyclic level %d of `%s`: %d models, %d new relatives",
            level_number,
            relation_name,
            len(frontier),
            len(next_frontier),
        )
        frontier = next_frontier
        level_number += 1


def _remember(known: IdentityMap, model: Model) -> None:
    identifier = getattr(model, model.get_identifier_field(), None)
    if identifier is not None:
        known.setdefault(type(model), {}).setdefault(identifier, model)


def _recall(known: IdentityMap, model: Model) -> Model | None:
    identifier = getattr(model, model.get_identifier_field(), None)
    if identifier is None:
        return None

    return known.get(type(model), {}).get(identifier)
