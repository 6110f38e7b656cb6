# tests/export/test_data_export.py
from __future__ import annotations

import csv
import json
from pathlib import Path

import pandas as pd
import pytest

from alchemist.dataloader.entity_loader import EntityLoader
from alchemist.errors import DataError
from alchemist.schemas.models import BusinessRule, Dataset, ExportConfig, PriorityWeights
from alchemist.export.data_export import (
    build_rules_config,
    export_all,
    load_rules_config,
    write_entity_csv,
    write_rules_config,
    write_workbook,
)


# -----------------------------
# HELPER FACTORIES
# -----------------------------
def mk_dataset() -> Dataset:
    return Dataset.coerce(
        {
            "clients": [
                {
                    "Notes": "vip",
                    "clientId": "C1",
                    "RequestedTaskIDs": ["T1", "T2"],
                    "AttributesJSON": {"location": "NY"},
                    "PriorityLevel": 3,
                }
            ],
            "workers": [],
            "tasks": [
                {"taskId": "T1", "PreferredPhases": [1, 2], "Duration": 1},
                {"taskId": "T2", "PreferredPhases": [], "Duration": None},
            ],
        }
    )


def mk_rule(rid: str = "r1") -> BusinessRule:
    return BusinessRule(id=rid, type="coRun", name="pair", parameters={"tasks": ["T1", "T2"]})


def read_csv_rows(path: Path) -> list[dict[str, str]]:
    with path.open("r", encoding="utf-8", newline="") as f:
        return list(csv.DictReader(f))


# -----------------------------
# Entity CSV
# -----------------------------
def test_entity_csv_serializes_lists_as_json(tmp_path: Path) -> None:
    """
    @brief
    Lists and objects are written as JSON text, schema columns first.
    """
    # --- Arrange ---
    ds = mk_dataset()
    out = tmp_path / "clients.csv"

    # --- Act ---
    write_entity_csv(ds.clients, out, entity="clients")

    # --- Assert ---
    with out.open("r", encoding="utf-8", newline="") as f:
        header = next(csv.reader(f))
    rows = read_csv_rows(out)
    assert header == ["clientId", "PriorityLevel", "RequestedTaskIDs", "AttributesJSON", "Notes"]
    assert rows[0]["RequestedTaskIDs"] == '["T1", "T2"]'
    assert json.loads(rows[0]["AttributesJSON"]) == {"location": "NY"}


def test_entity_csv_round_trips_through_loader(tmp_path: Path) -> None:
    # --- Arrange ---
    ds = mk_dataset()
    out = tmp_path / "tasks.csv"

    # --- Act ---
    write_entity_csv(ds.tasks, out, entity="tasks")
    loaded = EntityLoader().load(out, "tasks")

    # --- Assert ---
    assert loaded.rows == [
        {"taskId": "T1", "Duration": "1", "PreferredPhases": "[1, 2]"},
        {"taskId": "T2", "Duration": None, "PreferredPhases": "[]"},
    ]


def test_entity_csv_rejects_empty_and_bad_rows(tmp_path: Path) -> None:
    with pytest.raises(DataError):
        write_entity_csv([], tmp_path / "x.csv")
    with pytest.raises(DataError):
        write_entity_csv({"clientId": "C1"}, tmp_path / "x.csv")
    with pytest.raises(DataError):
        write_entity_csv(["C1"], tmp_path / "x.csv")
    assert list(tmp_path.iterdir()) == []


# -----------------------------
# Workbook
# -----------------------------
def test_workbook_has_one_sheet_per_non_empty_entity(tmp_path: Path) -> None:
    # --- Arrange ---
    out = tmp_path / "cleaned.xlsx"

    # --- Act ---
    write_workbook(mk_dataset(), out)
    sheets = pd.read_excel(out, sheet_name=None, dtype=str, keep_default_na=False)

    # --- Assert ---
    assert list(sheets) == ["Clients", "Tasks"]
    assert list(sheets["Tasks"]["PreferredPhases"]) == ["[1, 2]", "[]"]
    assert sheets["Clients"].loc[0, "clientId"] == "C1"


def test_workbook_requires_data(tmp_path: Path) -> None:
    with pytest.raises(DataError):
        write_workbook(Dataset(), tmp_path / "empty.xlsx")


# -----------------------------
# Rules configuration
# -----------------------------
def test_rules_config_shape_and_reload(tmp_path: Path) -> None:
    """
    @brief
    Exported configuration has the four wire keys and loads back.
    """
    # --- Arrange ---
    out = tmp_path / "rules_config.json"
    weights = PriorityWeights(skill_matching=30, priority_level=10)

    # --- Act ---
    write_rules_config([mk_rule()], weights, out, version="2.1")
    raw = json.loads(out.read_text(encoding="utf-8"))
    reloaded = load_rules_config(out)

    # --- Assert ---
    assert set(raw) == {"rules", "priority", "exportedAt", "version"}
    assert raw["version"] == "2.1"
    assert raw["priority"]["skillMatching"] == 30
    assert raw["rules"][0]["parameters"] == {"tasks": ["T1", "T2"]}
    assert reloaded.rules[0].id == "r1"
    assert reloaded.priority.skill_matching == 30


def test_build_rules_config_rejects_bad_payloads() -> None:
    with pytest.raises(DataError):
        build_rules_config([{"type": "teleport", "name": "x"}])
    with pytest.raises(DataError):
        build_rules_config([], {"skillMatching": -1})


def test_load_rules_config_errors(tmp_path: Path) -> None:
    bad_json = tmp_path / "bad.json"
    bad_json.write_text("{", encoding="utf-8")
    wrong_shape = tmp_path / "shape.json"
    wrong_shape.write_text('{"rules": "all of them"}', encoding="utf-8")

    with pytest.raises(DataError):
        load_rules_config(tmp_path / "missing.json")
    with pytest.raises(DataError):
        load_rules_config(bad_json)
    with pytest.raises(DataError):
        load_rules_config(wrong_shape)


# -----------------------------
# All artifacts
# -----------------------------
def test_export_all_writes_every_artifact(tmp_path: Path) -> None:
    # --- Arrange ---
    cfg = ExportConfig(workbook_filename="book.xlsx", rules_filename="rules.json")

    # --- Act ---
    written = export_all(mk_dataset(), [mk_rule()], None, tmp_path / "out", cfg)

    # --- Assert ---
    assert set(written) == {"clients", "tasks", "workbook", "rules"}
    assert written["workbook"].name == "book.xlsx"
    assert written["rules"].name == "rules.json"
    assert all(p.is_file() for p in written.values())
    assert not list((tmp_path / "out").glob("*.tmp*"))


def test_export_all_without_workbook(tmp_path: Path) -> None:
    cfg = ExportConfig(write_workbook=False)

    written = export_all(mk_dataset(), [], PriorityWeights(), tmp_path, cfg)

    assert "workbook" not in written
    assert json.loads(written["rules"].read_text(encoding="utf-8"))["rules"] == []
