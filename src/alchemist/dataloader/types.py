# src/alchemist/dataloader/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class LoadResult:
    """
    Raw rows read from one entity file.

    Fields:
        entity: Entity type the file was loaded as (clients, workers, tasks).
        rows: One dict per data row, keyed by canonical field names; empty
              cells are None. Values are not validated here.
        total_rows: Number of data rows in the file (excludes header).
        renamed_headers: Original header → canonical field name, for every
                         header the loader rewrote.
    """

    entity: str
    rows: list[dict[str, Any]] = field(default_factory=list)
    total_rows: int = 0
    renamed_headers: dict[str, str] = field(default_factory=dict)
