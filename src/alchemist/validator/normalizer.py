# src/alchemist/validator/normalizer.py
from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from alchemist.schemas.fields import is_blank, parse_number, parse_text
from alchemist.schemas.models import Dataset, NormalizationConfig

logger = logging.getLogger(__name__)

_RANGE_RE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")

# Widest range a single "start-end" element may expand to.
DEFAULT_MAX_RANGE_SPAN = 1000

# (entity, field, element parser) applied on every pass, in this order.
NORMALIZED_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("workers", "AvailableSlots", "number"),
    ("workers", "skills", "text"),
    ("clients", "RequestedTaskIDs", "text"),
    ("tasks", "PreferredPhases", "number"),
    ("tasks", "RequiredSkills", "text"),
)

_PARSERS: dict[str, Callable[[Any], Any]] = {
    "number": parse_number,
    "text": parse_text,
}


@dataclass(frozen=True, slots=True)
class DroppedElements:
    """
    Elements of a numeric list field that could not be parsed and were
    left out of the normalized value.
    """

    entity: str
    row_index: int
    field: str
    elements: tuple[Any, ...]


@dataclass(slots=True)
class ParsedField:
    """Normalized elements of one cell, plus the elements that were left out."""

    values: list[Any] = field(default_factory=list)
    dropped: list[Any] = field(default_factory=list)


def expand_range(element: Any, max_span: int = DEFAULT_MAX_RANGE_SPAN) -> list[int] | None:
    """
    @brief
    Expand an inclusive "start-end" element into individual integers.

    @returns
        The expanded list when the element is a well-formed range with
        start <= end and at most `max_span` members, an empty list for a
        reversed or oversized range ("3-1", "1-2000000000"), and None when the
        element is not range-shaped at all.
    """
    if not isinstance(element, str):
        return None
    match = _RANGE_RE.match(element)
    if match is None:
        return None
    start, end = int(match.group(1)), int(match.group(2))
    if start > end or end - start + 1 > max_span:
        return []
    return list(range(start, end + 1))


def _parse_elements(
    elements: Iterable[Any],
    parser: Callable[[Any], Any],
    expand_ranges: bool,
    max_span: int,
) -> ParsedField:
    out = ParsedField()
    for element in elements:
        if expand_ranges:
            expanded = expand_range(element, max_span)
            if expanded is not None:
                if expanded:
                    out.values.extend(expanded)
                else:
                    out.dropped.append(element)
                continue
        value = parser(element)
        if value is None:
            if not is_blank(element) and not (isinstance(element, str) and not element.strip()):
                out.dropped.append(element)
            continue
        out.values.append(value)
    return out


def parse_field(
    value: Any,
    parser: Callable[[Any], Any],
    *,
    expand_ranges: bool = False,
    max_span: int = DEFAULT_MAX_RANGE_SPAN,
) -> ParsedField:
    """
    @brief
    Split one raw cell value into parsed elements and dropped elements.

    @details
    Same decoding as `normalize_field`; callers that must report unusable
    elements read `dropped` instead of losing them.
    """
    # (1) Already a sequence
    if isinstance(value, (list, tuple)):
        return _parse_elements(value, parser, expand_ranges, max_span)

    # (2) String: JSON array first, comma-separated text otherwise
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except (json.JSONDecodeError, ValueError):
            decoded = None
        if isinstance(decoded, list):
            return _parse_elements(decoded, parser, expand_ranges, max_span)
        return _parse_elements(value.split(","), parser, expand_ranges, max_span)

    # (3) A single well-formed number, numeric parsing only
    if parser is parse_number:
        number = parse_number(value)
        if number is not None:
            return ParsedField(values=[number])

    # (4) Anything else
    return ParsedField(dropped=[] if is_blank(value) else [value])


def normalize_field(
    value: Any,
    parser: Callable[[Any], Any],
    *,
    expand_ranges: bool = False,
    max_span: int = DEFAULT_MAX_RANGE_SPAN,
) -> list[Any]:
    """
    @brief
    Coerce one raw cell value into an ordered list of parsed elements.

    @details
    Tolerates native lists, JSON array strings, comma-separated text and bare
    numbers (numeric parser only). Elements the parser rejects are dropped.
    When `expand_ranges` is set, "start-end" elements expand inclusively;
    reversed ranges and ranges wider than `max_span` yield nothing. Running it
    on its own output returns an equal list.

    @params
        value : Any
            Raw cell value.
        parser : Callable[[Any], Any]
            Element parser returning None for unusable elements
            (`parse_number` or `parse_text`).
        expand_ranges : bool
            Enable range expansion for this field.
        max_span : int
            Largest number of integers one range element may expand to.

    @returns
        Normalized list.
    """
    return parse_field(value, parser, expand_ranges=expand_ranges, max_span=max_span).values


class FieldNormalizer:
    """
    @brief
    In-place normalizer of the declared list fields of a dataset.

    @details
    Rewrites worker AvailableSlots/skills, client RequestedTaskIDs and task
    PreferredPhases/RequiredSkills as lists. Absent fields are left untouched
    so that the missing-field check still sees them. Identifiers and all
    other fields are never modified.
    """

    def __init__(self, cfg: NormalizationConfig | None = None) -> None:
        self.cfg = cfg or NormalizationConfig()

    def normalize_dataset(self, dataset: Dataset) -> list[DroppedElements]:
        """
        @brief
        Normalize every declared list field of every record in place.

        @returns
            One DroppedElements entry per numeric field value that lost
            elements during parsing, in entity/row order.
        """
        dropped: list[DroppedElements] = []
        for entity, field_name, kind in NORMALIZED_FIELDS:
            parser = _PARSERS[kind]
            expand = self.cfg.expands_ranges(entity, field_name)
            for idx, record in enumerate(dataset.rows(entity)):
                raw = record.get(field_name)
                if is_blank(raw):
                    continue
                parsed = parse_field(
                    raw, parser, expand_ranges=expand, max_span=self.cfg.max_range_span
                )
                record[field_name] = parsed.values
                if kind == "number" and parsed.dropped:
                    dropped.append(
                        DroppedElements(
                            entity=entity,
                            row_index=idx,
                            field=field_name,
                            elements=tuple(parsed.dropped),
                        )
                    )

        if dropped:
            logger.debug("Normalizer dropped unparseable elements in %d field(s)", len(dropped))
        return dropped


__all__ = [
    "DEFAULT_MAX_RANGE_SPAN",
    "DroppedElements",
    "FieldNormalizer",
    "ParsedField",
    "expand_range",
    "normalize_field",
    "parse_field",
]
