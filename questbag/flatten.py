from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any


def first_or_none(value: Any) -> Any:
    """Collapse a one-or-many relation to its first element, or None.

    Joined relations come back either as a single row or as a list of rows
    depending on the join direction. Every reader goes through this function
    instead of checking the shape inline.
    """

    if value is None:
        return None
    if isinstance(value, Mapping):
        return value
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return value[0] if value else None
    return value


def related_field(row: Mapping[str, Any], relation: str, field: str) -> Any:
    """Read `field` from the flattened `relation` of a joined row."""

    related = first_or_none(row.get(relation))
    if related is None:
        return None
    return related.get(field)
