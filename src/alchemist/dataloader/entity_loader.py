# src/alchemist/dataloader/entity_loader.py
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import pandas as pd

from alchemist.dataloader.types import LoadResult
from alchemist.errors import DataError
from alchemist.schemas.models import ENTITY_TYPES, REQUIRED_FIELDS, Dataset

logger = logging.getLogger(__name__)

CSV_SUFFIXES = {".csv"}
EXCEL_SUFFIXES = {".xlsx", ".xls"}

# Extra spellings seen in user spreadsheets, keyed by the folded header.
HEADER_ALIASES: dict[str, dict[str, str]] = {
    "clients": {
        "id": "clientId",
        "name": "ClientName",
        "priority": "PriorityLevel",
        "requestedtasks": "RequestedTaskIDs",
        "tasks": "RequestedTaskIDs",
        "group": "GroupTag",
        "attributes": "AttributesJSON",
    },
    "workers": {
        "id": "workerId",
        "name": "WorkerName",
        "skill": "skills",
        "slots": "AvailableSlots",
        "maxload": "MaxLoadPerPhase",
        "group": "WorkerGroup",
        "team": "WorkerGroup",
        "qualification": "QualificationLevel",
    },
    "tasks": {
        "id": "taskId",
        "name": "TaskName",
        "title": "TaskName",
        "skills": "RequiredSkills",
        "phases": "PreferredPhases",
    },
}

_FOLD_RE = re.compile(r"[\s_\-]+")


def fold_header(name: Any) -> str:
    """Case-, space-, underscore- and hyphen-insensitive form of a header."""
    return _FOLD_RE.sub("", str(name)).lower()


def header_mapping(entity: str) -> dict[str, str]:
    mapping = {fold_header(f): f for f in REQUIRED_FIELDS[entity]}
    mapping.update(HEADER_ALIASES[entity])
    return mapping


class EntityLoader:
    """
    CSV / Excel file → LoadResult of raw entity rows.

    Rules:
      - .csv: UTF-8, every cell read as text (no type inference), blank
        lines skipped
      - .xlsx / .xls: first sheet, cell types as stored in the workbook
      - empty cells become None
      - headers matching a schema field (or a known alias) are renamed to
        the canonical field name; other headers are kept as-is

    Fatal problems raise DataError immediately:
      - unknown entity type, missing file, unsupported extension
      - a file the parser cannot read
    """

    def load(self, path: Path | str, entity: str) -> LoadResult:
        if entity not in ENTITY_TYPES:
            raise DataError(
                message=f"Unknown entity type: {entity!r}",
                source="EntityLoader.load",
                suggested_action=f"Use one of: {', '.join(ENTITY_TYPES)}",
            )
        path = Path(path)
        frame = self._read_frame(path)
        result = self._frame_to_result(frame, entity)
        self._report_summary(path, result)
        return result

    # ------------------------------
    # Internal helpers
    # ------------------------------
    def _read_frame(self, path: Path) -> pd.DataFrame:
        if not path.is_file():
            raise DataError(
                message=f"Input file not found: {path}",
                source="EntityLoader._read_frame",
                suggested_action="Verify the file path.",
            )

        suffix = path.suffix.lower()
        try:
            if suffix in CSV_SUFFIXES:
                return pd.read_csv(
                    path,
                    dtype=str,
                    keep_default_na=False,
                    na_values=[""],
                    skip_blank_lines=True,
                    encoding="utf-8",
                )
            if suffix in EXCEL_SUFFIXES:
                return pd.read_excel(path, sheet_name=0)
        except pd.errors.EmptyDataError:
            logger.warning("Input file has no content: %s", path)
            return pd.DataFrame()
        except ImportError as e:
            raise DataError(
                message=f"No Excel engine available for {suffix}: {e}",
                source="EntityLoader._read_frame",
                suggested_action="Save the workbook as .xlsx or .csv.",
            ) from e
        except (pd.errors.ParserError, ValueError, OSError) as e:
            raise DataError(
                message=f"Unable to parse {path.name}: {e}",
                source="EntityLoader._read_frame",
                suggested_action="Check that the file is a valid CSV or Excel workbook.",
            ) from e

        raise DataError(
            message=f"Unsupported file format: {suffix or '(none)'}",
            source="EntityLoader._read_frame",
            suggested_action="Use CSV or XLSX files.",
        )

    def _frame_to_result(self, frame: pd.DataFrame, entity: str) -> LoadResult:
        mapping = header_mapping(entity)
        renamed: dict[str, str] = {}
        columns: list[str] = []
        for original in frame.columns:
            name = str(original).strip()
            canonical = mapping.get(fold_header(name), name)
            if canonical != str(original):
                renamed[str(original)] = canonical
            columns.append(canonical)
        frame = frame.set_axis(columns, axis=1)

        # object dtype turns numpy scalars into Python values; NaN → None
        clean = frame.astype(object).where(frame.notna(), None)
        rows = [dict(r) for r in clean.to_dict(orient="records")]
        return LoadResult(
            entity=entity,
            rows=rows,
            total_rows=len(rows),
            renamed_headers=renamed,
        )

    def _report_summary(self, path: Path, result: LoadResult) -> None:
        logger.info("Loaded %d %s row(s) from %s", result.total_rows, result.entity, path)
        if result.renamed_headers:
            logger.debug("Renamed headers in %s: %s", path.name, result.renamed_headers)


def load_dataset(
    clients: Path | str | None = None,
    workers: Path | str | None = None,
    tasks: Path | str | None = None,
    loader: EntityLoader | None = None,
) -> Dataset:
    """
    @brief
    Load up to three entity files into one Dataset.

    @details
    Entities without a file stay empty; the validator skips field checks for
    empty entity sets.
    """
    loader = loader or EntityLoader()
    parts: dict[str, list[dict[str, Any]]] = {}
    for entity, path in (("clients", clients), ("workers", workers), ("tasks", tasks)):
        parts[entity] = loader.load(path, entity).rows if path is not None else []
    return Dataset.coerce(parts)


__all__ = ["EntityLoader", "fold_header", "header_mapping", "load_dataset"]
