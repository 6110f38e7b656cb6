# src/alchemist/validator/issues.py
from __future__ import annotations

from alchemist.schemas.models import ValidationIssue


def error(
    type_: str,
    message: str,
    entity: str,
    *,
    row_index: int | None = None,
    field: str | None = None,
    rule_id: str | None = None,
) -> ValidationIssue:
    return ValidationIssue(
        type=type_,
        message=message,
        entity=entity,
        row_index=row_index,
        field=field,
        severity="error",
        rule_id=rule_id,
    )


def warning(
    type_: str,
    message: str,
    entity: str,
    *,
    row_index: int | None = None,
    field: str | None = None,
    rule_id: str | None = None,
) -> ValidationIssue:
    return ValidationIssue(
        type=type_,
        message=message,
        entity=entity,
        row_index=row_index,
        field=field,
        severity="warning",
        rule_id=rule_id,
    )


def escalated(
    type_: str,
    message: str,
    entity: str,
    *,
    as_error: bool,
    row_index: int | None = None,
    field: str | None = None,
) -> ValidationIssue:
    """Issue whose severity depends on a runtime threshold."""
    build = error if as_error else warning
    return build(type_, message, entity, row_index=row_index, field=field)
