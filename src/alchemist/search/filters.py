# src/alchemist/search/filters.py
from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

from alchemist.errors import DataError
from alchemist.schemas.fields import is_blank, parse_number
from alchemist.schemas.models import Dataset

Operator = Literal[">", "<", "=", "includes"]


class FilterCondition(BaseModel):
    """One `field operator value` condition, as produced by the search parser."""

    model_config = {"extra": "forbid"}

    field: str
    operator: Operator
    value: str | int | float


def _compare(cell: Any, cond: FilterCondition) -> bool:
    if is_blank(cell):
        return False

    if cond.operator in (">", "<"):
        left, right = parse_number(cell), parse_number(cond.value)
        if left is None or right is None:
            return False
        return left > right if cond.operator == ">" else left < right

    if cond.operator == "=":
        if isinstance(cell, str) and isinstance(cond.value, str):
            return cell.strip().lower() == cond.value.strip().lower()
        left, right = parse_number(cell), parse_number(cond.value)
        if left is not None and right is not None:
            return left == right
        return cell == cond.value

    # includes: list membership, otherwise substring
    needle = str(cond.value).lower()
    if isinstance(cell, (list, tuple)):
        return any(str(v).lower() == needle for v in cell)
    return needle in str(cell).lower()


def _conditions(conditions: Iterable[FilterCondition | Mapping[str, Any]]) -> list[FilterCondition]:
    try:
        return [
            c if isinstance(c, FilterCondition) else FilterCondition.model_validate(c)
            for c in conditions
        ]
    except ValidationError as e:
        raise DataError(
            f"Invalid filter condition: {e}",
            source="filters.apply_filters",
            suggested_action="Use operators >, <, = or includes with a field and a value.",
        ) from e


def apply_filters(
    rows: Iterable[Mapping[str, Any]],
    conditions: Iterable[FilterCondition | Mapping[str, Any]],
) -> list[Mapping[str, Any]]:
    """
    @brief
    Rows matching every condition, in original order.

    @details
    `>` / `<` compare numerically (text cells holding numbers included);
    `=` compares text case-insensitively after trimming, other values by
    equality; `includes` tests list membership or case-insensitive substring.
    Blank cells never match.
    """
    conds = _conditions(conditions)
    return [row for row in rows if all(_compare(row.get(c.field), c) for c in conds)]


def filter_dataset(
    dataset: Dataset | Mapping[str, Any],
    entity: str,
    conditions: Iterable[FilterCondition | Mapping[str, Any]],
) -> list[Mapping[str, Any]]:
    return apply_filters(Dataset.coerce(dataset).rows(entity), conditions)


__all__ = ["FilterCondition", "apply_filters", "filter_dataset"]
