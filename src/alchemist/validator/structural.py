# src/alchemist/validator/structural.py
from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from alchemist.schemas.fields import (
    ABSENT,
    Malformed,
    id_key,
    is_blank,
    read,
    read_number,
    text_list,
)
from alchemist.schemas.models import (
    ENTITY_TYPES,
    ID_FIELDS,
    REQUIRED_FIELDS,
    Dataset,
    ValidationConfig,
    ValidationIssue,
)
from alchemist.validator.issues import error
from alchemist.validator.normalizer import DroppedElements

PHASE_LIST_FIELDS: tuple[tuple[str, str], ...] = (
    ("workers", "AvailableSlots"),
    ("tasks", "PreferredPhases"),
)


def _preview(values: Iterable[Any], limit: int = 5) -> str:
    items = [repr(v) for v in values]
    head = ", ".join(items[:limit])
    return head + ("..." if len(items) > limit else "")


class StructuralValidator:
    """
    @brief
    Field-presence and format checks, independent of business rules.

    @details
    Each check returns its own list of issues and never depends on the
    outcome of another one. `run()` executes them in a fixed order:
    missing fields, duplicate IDs, malformed lists, out-of-range values,
    broken JSON, unknown references. Within a check issues follow entity
    order (clients, workers, tasks) and then row order.
    """

    def __init__(
        self,
        dataset: Dataset,
        cfg: ValidationConfig | None = None,
        dropped: list[DroppedElements] | None = None,
    ) -> None:
        self.dataset = dataset
        self.cfg = cfg or ValidationConfig()
        self.dropped = dropped or []

    def run(self) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        issues += self.check_missing_fields()
        issues += self.check_duplicate_ids()
        issues += self.check_malformed_lists()
        issues += self.check_out_of_range()
        issues += self.check_broken_json()
        issues += self.check_unknown_references()
        return issues

    def check_missing_fields(self) -> list[ValidationIssue]:
        """One issue per required field missing on at least one row; empty entity sets skipped."""
        issues: list[ValidationIssue] = []
        for entity in ENTITY_TYPES:
            rows = self.dataset.rows(entity)
            if not rows:
                continue
            for field in REQUIRED_FIELDS[entity]:
                missing_rows = sum(1 for row in rows if is_blank(row.get(field)))
                if missing_rows:
                    issues.append(
                        error(
                            "missing_column",
                            f"Missing required field: {field} ({missing_rows} of {len(rows)} rows)",
                            entity,
                            field=field,
                        )
                    )
        return issues

    def check_duplicate_ids(self) -> list[ValidationIssue]:
        """Every repeat of an already seen identifier is flagged at its own row."""
        issues: list[ValidationIssue] = []
        for entity in ENTITY_TYPES:
            id_field = ID_FIELDS[entity]
            seen: set[str] = set()
            for idx, row in enumerate(self.dataset.rows(entity)):
                key = id_key(row.get(id_field))
                if key is None:
                    continue
                if key in seen:
                    issues.append(
                        error(
                            "duplicate_id",
                            f"Duplicate {id_field}: {row.get(id_field)}",
                            entity,
                            row_index=idx,
                            field=id_field,
                        )
                    )
                seen.add(key)
        return issues

    def check_malformed_lists(self) -> list[ValidationIssue]:
        """
        @brief
        Phase lists must be sequences of positive integers.

        @details
        Besides the normalized value itself, elements dropped by the
        normalizer (unparseable text, reversed ranges) are reported here so
        they are not lost silently.
        """
        dropped_at = {(d.entity, d.row_index, d.field): d for d in self.dropped}
        issues: list[ValidationIssue] = []
        for entity, field in PHASE_LIST_FIELDS:
            for idx, row in enumerate(self.dataset.rows(entity)):
                value = read(row, field)
                if value is ABSENT:
                    continue
                if not isinstance(value, list):
                    issues.append(
                        error(
                            "malformed_list",
                            f"{field} must be a list of phase numbers",
                            entity,
                            row_index=idx,
                            field=field,
                        )
                    )
                    continue

                invalid = [
                    v
                    for v in value
                    if isinstance(v, bool) or not isinstance(v, int) or v < 1
                ]
                if invalid:
                    issues.append(
                        error(
                            "malformed_list",
                            f"{field} contains invalid phase numbers: {_preview(invalid)}",
                            entity,
                            row_index=idx,
                            field=field,
                        )
                    )

                note = dropped_at.get((entity, idx, field))
                if note is not None:
                    issues.append(
                        error(
                            "malformed_list",
                            f"{field} contains unparseable entries: {_preview(note.elements)}",
                            entity,
                            row_index=idx,
                            field=field,
                        )
                    )
        return issues

    def check_out_of_range(self) -> list[ValidationIssue]:
        """PriorityLevel within [priority_min, priority_max]; Duration >= min_duration."""
        issues: list[ValidationIssue] = []
        lo, hi = self.cfg.priority_min, self.cfg.priority_max

        for idx, client in enumerate(self.dataset.clients):
            level = read_number(client, "PriorityLevel")
            if level is ABSENT:
                continue
            if isinstance(level, Malformed):
                issues.append(
                    error(
                        "out_of_range",
                        f"PriorityLevel must be a number between {lo} and {hi}, got {level.raw!r}",
                        "clients",
                        row_index=idx,
                        field="PriorityLevel",
                    )
                )
            elif level < lo or level > hi:
                issues.append(
                    error(
                        "out_of_range",
                        f"PriorityLevel must be between {lo} and {hi}, got {level}",
                        "clients",
                        row_index=idx,
                        field="PriorityLevel",
                    )
                )

        for idx, task in enumerate(self.dataset.tasks):
            duration = read_number(task, "Duration")
            if duration is ABSENT:
                continue
            if isinstance(duration, Malformed):
                issues.append(
                    error(
                        "out_of_range",
                        f"Duration must be a number of at least {self.cfg.min_duration}, "
                        f"got {duration.raw!r}",
                        "tasks",
                        row_index=idx,
                        field="Duration",
                    )
                )
            elif duration < self.cfg.min_duration:
                issues.append(
                    error(
                        "out_of_range",
                        f"Duration must be at least {self.cfg.min_duration}, got {duration}",
                        "tasks",
                        row_index=idx,
                        field="Duration",
                    )
                )
        return issues

    def check_broken_json(self) -> list[ValidationIssue]:
        """AttributesJSON given as text must parse to a JSON object."""
        issues: list[ValidationIssue] = []
        for idx, client in enumerate(self.dataset.clients):
            raw = client.get("AttributesJSON")
            if not isinstance(raw, str):
                continue
            try:
                parsed = json.loads(raw)
            except (json.JSONDecodeError, ValueError):
                issues.append(
                    error(
                        "broken_json",
                        "Invalid JSON in AttributesJSON",
                        "clients",
                        row_index=idx,
                        field="AttributesJSON",
                    )
                )
                continue
            if not isinstance(parsed, dict):
                issues.append(
                    error(
                        "broken_json",
                        f"AttributesJSON must be a JSON object, got {type(parsed).__name__}",
                        "clients",
                        row_index=idx,
                        field="AttributesJSON",
                    )
                )
        return issues

    def check_unknown_references(self) -> list[ValidationIssue]:
        """Every requested task ID must name an existing task."""
        task_ids = {
            key for key in (id_key(t.get("taskId")) for t in self.dataset.tasks) if key is not None
        }
        issues: list[ValidationIssue] = []
        for idx, client in enumerate(self.dataset.clients):
            for task_id in text_list(client, "RequestedTaskIDs"):
                if task_id not in task_ids:
                    issues.append(
                        error(
                            "unknown_reference",
                            f"Referenced task {task_id} does not exist",
                            "clients",
                            row_index=idx,
                            field="RequestedTaskIDs",
                        )
                    )
        return issues


__all__ = ["StructuralValidator"]
