from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Optional

UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class CategoryNode:
    id: Hashable
    parent_id: Optional[Hashable]
    name: str
    color: Optional[str] = None
    is_income: bool = False


@dataclass(frozen=True)
class DisplayCategory:
    display_id: Optional[Hashable]
    display_name: str
    color: Optional[str]


UNCATEGORIZED_DISPLAY = DisplayCategory(None, UNCATEGORIZED, None)

CategoryIndex = Mapping[Hashable, CategoryNode]


def build_category_index(categories: Iterable[object]) -> CategoryIndex:
    """Index ORM categories (or anything with the same attributes) by id."""
    index = {
        c.id: CategoryNode(
            id=c.id,
            parent_id=c.parent_id,
            name=c.name,
            color=c.color,
            is_income=bool(getattr(c, "is_income", False)),
        )
        for c in categories
    }
    return MappingProxyType(index)


def resolve_display_category(
    category_id: Optional[Hashable], index: CategoryIndex
) -> DisplayCategory:
    """Map a category to its parent-or-self display category.

    Exactly one hop: a grandparent is never consulted.
    """
    if category_id is None:
        return UNCATEGORIZED_DISPLAY
    category = index.get(category_id)
    if category is None:
        return UNCATEGORIZED_DISPLAY
    parent = index.get(category.parent_id) if category.parent_id is not None else None
    shown = parent or category
    return DisplayCategory(shown.id, shown.name, shown.color)


def category_name(category_id: Optional[Hashable], index: CategoryIndex) -> str:
    """The category's own name, without rollup."""
    if category_id is None:
        return UNCATEGORIZED
    category = index.get(category_id)
    return category.name if category else UNCATEGORIZED
