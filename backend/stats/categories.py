"""
Counter categories.

Rules:
- The set of categories is fixed at build time.
- Enum values double as the stats record keys and wire payload values.
"""

from __future__ import annotations

from enum import Enum


class Category(str, Enum):
    """One trackable drink type."""

    ICED = "iced"
    DOUBLE = "double"
    CAPPUCCINO = "cappuccino"


# Display names shown by the renderer and used in the barista prompt
CATEGORY_DISPLAY_NAMES: dict[Category, str] = {
    Category.ICED: "Iced Coffee",
    Category.DOUBLE: "Double-Double",
    Category.CAPPUCCINO: "Cappuccino",
}


def parse_category(value: object) -> Category | None:
    """Return the Category for a raw value, or None if it is not one."""
    if isinstance(value, Category):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Category(value)
    except ValueError:
        return None


def zero_counts() -> dict[Category, int]:
    """Fresh all-zero counter set."""
    return {c: 0 for c in Category}
