# src/alchemist/schemas/fields.py
"""
@brief
Typed readings of loosely-typed entity record fields.

@details
Spreadsheet cells arrive as text, numbers, lists or nothing at all. Every check
reads fields through this module, which distinguishes three outcomes:
    - ABSENT           the field is missing, None or NaN
    - Malformed(raw)   the field is present but not of the expected shape
    - the parsed value
so that "missing" and "present but wrong type" are never confused.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final


class _Absent:
    """Marker for a field that is missing, None or NaN."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Final = _Absent()


@dataclass(frozen=True, slots=True)
class Malformed:
    """Field present, but its value does not have the expected type."""

    raw: Any


def is_blank(value: Any) -> bool:
    """True for None and float NaN (pandas' empty cell)."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return False


def parse_number(value: Any) -> int | float | None:
    """
    @brief
    Parse one cell or list element as a finite number.

    @details
    Integral values come back as int so that normalized phase lists hold
    integers. Booleans, blanks, non-finite values and unparseable text yield None.
    """
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        try:
            value = value.item()  # numpy scalar from pandas
        except (TypeError, ValueError):
            return None
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return int(value) if value.is_integer() else value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        return int(number) if number.is_integer() else number
    return None


def parse_text(value: Any) -> str | None:
    """Parse one list element as trimmed text; blanks and empty strings yield None."""
    if is_blank(value) or isinstance(value, (list, tuple, dict)):
        return None
    text = str(value).strip()
    return text or None


def read(record: Mapping[str, Any], field: str) -> Any:
    """Raw value of a field, or ABSENT."""
    value = record.get(field)
    return ABSENT if is_blank(value) else value


def read_number(record: Mapping[str, Any], field: str) -> int | float | _Absent | Malformed:
    value = read(record, field)
    if value is ABSENT:
        return ABSENT
    number = parse_number(value)
    return Malformed(value) if number is None else number


def read_list(record: Mapping[str, Any], field: str) -> list[Any] | _Absent | Malformed:
    value = read(record, field)
    if value is ABSENT:
        return ABSENT
    if isinstance(value, list):
        return value
    return Malformed(value)


def number_or(record: Mapping[str, Any], field: str, default: float = 0) -> int | float:
    """Numeric reading with a fallback for absent or malformed values."""
    reading = read_number(record, field)
    if reading is ABSENT or isinstance(reading, Malformed):
        return default
    return reading


def list_or_empty(record: Mapping[str, Any], field: str) -> list[Any]:
    reading = read_list(record, field)
    if isinstance(reading, list):
        return reading
    return []


def text_list(record: Mapping[str, Any], field: str) -> list[str]:
    """Normalized string list field (skills, task ids) as stripped strings."""
    return [t for t in (parse_text(v) for v in list_or_empty(record, field)) if t is not None]


def phase_set(record: Mapping[str, Any], field: str) -> set[int]:
    """Valid phase numbers (positive integers) of a normalized phase list."""
    phases: set[int] = set()
    for value in list_or_empty(record, field):
        number = parse_number(value)
        if isinstance(number, int) and number >= 1:
            phases.add(number)
    return phases


def id_key(value: Any) -> str | None:
    """Comparison key for identifiers; never written back to the record."""
    if is_blank(value):
        return None
    number = parse_number(value) if not isinstance(value, str) else None
    text = str(number) if number is not None else str(value).strip()
    return text or None
