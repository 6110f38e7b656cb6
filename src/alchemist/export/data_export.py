# src/alchemist/export/data_export.py
from __future__ import annotations

import contextlib
import csv
import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any, TextIO

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from alchemist.errors import DataError
from alchemist.schemas.fields import is_blank
from alchemist.schemas.models import (
    ENTITY_TYPES,
    REQUIRED_FIELDS,
    BusinessRule,
    Dataset,
    ExportConfig,
    PriorityWeights,
    RulesConfig,
)

logger = logging.getLogger(__name__)

SHEET_NAMES: dict[str, str] = {"clients": "Clients", "workers": "Workers", "tasks": "Tasks"}


def _cell(value: Any) -> Any:
    """
    @brief
    Export form of one cell value.

    @details
    Lists and dicts are written as JSON text so that re-importing the file
    normalizes them back to the same values; blanks become empty cells.
    """
    if is_blank(value):
        return ""
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(list(value) if isinstance(value, tuple) else value, ensure_ascii=False)
    return value


def _columns(rows: Sequence[Mapping[str, Any]], entity: str | None = None) -> list[str]:
    """Schema fields first (when present), then other headers in first-seen order."""
    seen: list[str] = []
    for row in rows:
        for key in row:
            if key not in seen:
                seen.append(key)
    if entity is None:
        return seen
    schema = [f for f in REQUIRED_FIELDS[entity] if f in seen]
    return schema + [k for k in seen if k not in schema]


def _to_rows(rows: Any, source: str) -> list[Mapping[str, Any]]:
    if isinstance(rows, Mapping) or not isinstance(rows, Iterable):
        raise DataError(
            f"Unsupported rows type: {type(rows).__name__}",
            source=source,
            suggested_action="Pass entity rows as a list of dicts.",
        )
    out = list(rows)
    for row in out:
        if not isinstance(row, Mapping):
            raise DataError(
                "Each exported row must be a mapping of field name to value.",
                source=source,
                suggested_action="Pass entity rows as a list of dicts.",
            )
    return out


def _atomic_write(out_path: Path, suffix: str, write: Callable[[Path], None]) -> Path:
    """Write through a temporary file in the target directory, then replace."""
    out_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(out_path.parent), suffix=suffix)
    os.close(tmp_fd)
    try:
        write(Path(tmp_name))
        os.replace(tmp_name, out_path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.remove(tmp_name)
        raise
    return out_path


def _write_text(out_path: Path, body: Callable[[TextIO], None]) -> Path:
    def write(tmp: Path) -> None:
        with tmp.open("w", encoding="utf-8", newline="") as f:
            body(f)

    return _atomic_write(out_path, ".tmp", write)


# ------------------------------------------------------------
# Entity tables
# ------------------------------------------------------------
def write_entity_csv(rows: Any, out_path: Path, entity: str | None = None) -> Path:
    """
    @brief
    Export one entity table as UTF-8 CSV.

    @params
        rows : Any
            List of row dicts (normalized or raw).
        out_path : Path
            Destination file.
        entity : str | None
            When given, schema fields lead the column order.

    @returns
        Path to the written file.

    @raises
        DataError
            If there are no rows or a row is not a mapping.
    """
    records = _to_rows(rows, "export.write_entity_csv")
    if not records:
        raise DataError(
            "No data to export.",
            source="export.write_entity_csv",
            suggested_action="Load or enter rows before exporting.",
        )
    columns = _columns(records, entity)

    def body(f: TextIO) -> None:
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        for row in records:
            writer.writerow({c: _cell(row.get(c)) for c in columns})

    _write_text(out_path, body)
    logger.info("Exported %d row(s) to %s", len(records), out_path)
    return out_path


def write_workbook(dataset: Dataset | Mapping[str, Any], out_path: Path) -> Path:
    """
    @brief
    Export all entity tables into one workbook (sheets Clients, Workers, Tasks).

    @details
    Empty entity sets get no sheet. Written with pandas through openpyxl.

    @raises
        DataError
            If every entity set is empty.
    """
    data = Dataset.coerce(dataset)
    frames: dict[str, pd.DataFrame] = {}
    for entity in ENTITY_TYPES:
        rows = data.rows(entity)
        if not rows:
            continue
        columns = _columns(rows, entity)
        frames[SHEET_NAMES[entity]] = pd.DataFrame(
            [{c: _cell(row.get(c)) for c in columns} for row in rows], columns=columns
        )

    if not frames:
        raise DataError(
            "No data to export.",
            source="export.write_workbook",
            suggested_action="Load at least one of clients, workers or tasks.",
        )

    def write(tmp: Path) -> None:
        with pd.ExcelWriter(tmp, engine="openpyxl") as writer:
            for sheet, frame in frames.items():
                frame.to_excel(writer, sheet_name=sheet, index=False)

    _atomic_write(out_path, ".tmp.xlsx", write)
    logger.info("Exported workbook (%s) to %s", ", ".join(frames), out_path)
    return out_path


# ------------------------------------------------------------
# Rules configuration
# ------------------------------------------------------------
def build_rules_config(
    rules: Iterable[BusinessRule | Mapping[str, Any]],
    weights: PriorityWeights | Mapping[str, Any] | None = None,
    version: str = "1.0",
) -> RulesConfig:
    """
    @raises
        DataError
            If a rule or the weights cannot be represented in the export shape.
    """
    try:
        return RulesConfig(
            rules=[
                r if isinstance(r, BusinessRule) else BusinessRule.model_validate(r)
                for r in rules
            ],
            priority=(
                weights
                if isinstance(weights, PriorityWeights)
                else PriorityWeights.model_validate(weights or {})
            ),
            version=version,
        )
    except PydanticValidationError as e:
        raise DataError(
            f"Cannot export rules configuration: {e}",
            source="export.build_rules_config",
            suggested_action="Fix or delete the invalid rules / weights before exporting.",
        ) from e


def write_rules_config(
    rules: Iterable[BusinessRule | Mapping[str, Any]],
    weights: PriorityWeights | Mapping[str, Any] | None,
    out_path: Path,
    version: str = "1.0",
) -> Path:
    """Export `{rules, priority, exportedAt, version}` as pretty-printed JSON."""
    config = build_rules_config(rules, weights, version)
    payload = config.model_dump(by_alias=True, mode="json")
    _write_text(out_path, lambda f: json.dump(payload, f, indent=2, ensure_ascii=False))
    logger.info("Exported %d rule(s) to %s", len(config.rules), out_path)
    return out_path


def load_rules_config(path: Path) -> RulesConfig:
    """
    @raises
        DataError
            Missing file, invalid JSON or a document not in the export shape.
    """
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return RulesConfig.model_validate(data)
    except OSError as e:
        raise DataError(
            f"Unable to read rules configuration: {e}",
            source="export.load_rules_config",
            suggested_action="Check the rules file path.",
        ) from e
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise DataError(
            f"Invalid rules configuration: {e}",
            source="export.load_rules_config",
            suggested_action="Use a file produced by the rules export.",
        ) from e


def export_all(
    dataset: Dataset | Mapping[str, Any],
    rules: Iterable[BusinessRule | Mapping[str, Any]],
    weights: PriorityWeights | Mapping[str, Any] | None,
    out_dir: Path,
    cfg: ExportConfig | None = None,
) -> dict[str, Path]:
    """
    @brief
    Write every export artifact into `out_dir`.

    @returns
        Artifact name → written path: one `<entity>.csv` per non-empty
        entity set, the workbook (when enabled) and the rules configuration.
    """
    cfg = cfg or ExportConfig()
    data = Dataset.coerce(dataset)
    written: dict[str, Path] = {}

    # (1) Per-entity CSV
    for entity in ENTITY_TYPES:
        if data.rows(entity):
            written[entity] = write_entity_csv(
                data.rows(entity), out_dir / f"{entity}.csv", entity=entity
            )

    # (2) Workbook
    if cfg.write_workbook and not data.is_empty():
        written["workbook"] = write_workbook(data, out_dir / cfg.workbook_filename)

    # (3) Rules configuration
    written["rules"] = write_rules_config(
        rules, weights, out_dir / cfg.rules_filename, version=cfg.config_version
    )
    return written


__all__ = [
    "build_rules_config",
    "export_all",
    "load_rules_config",
    "write_entity_csv",
    "write_rules_config",
    "write_workbook",
]
