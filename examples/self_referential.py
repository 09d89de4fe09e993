"""Self-referential relation loading example.

Demonstrates loading whole trees and parent chains of the same model (Category).
"""

from __future__ import annotations

from sqla_wired import Mapper

from .models import Category


def get_roots_with_tree(mapper: Mapper) -> list[Category]:
    roots = mapper.model(Category).where_no_relation("parent").get()
    # one query per tree level, every category instance is shared
    mapper.load_cyclic(roots, "children")
    return roots


def get_category_breadcrumbs(mapper: Mapper, category_id: int) -> list[Category]:
    category = mapper.model(Category).find(category_id)
    if category is None:
        return []

    mapper.load_cyclic(category, "parent")
    chain: list[Category] = []
    # a broken tree may loop back, load_cyclic links it to the seen instance
    while category is not None and category not in chain:
        chain.append(category)
        category = category.parent

    return chain[::-1]


def get_categories_with_grandchildren(mapper: Mapper) -> list[Category]:
    return mapper.model(Category).where_relation("children.children").get()
