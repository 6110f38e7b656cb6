import json
from pathlib import Path

import pytest

from alchemist.errors import DataError
from scripts.run import main, run_pipeline

CONFIG = Path(__file__).resolve().parents[1] / "config" / "config.yaml"


def _write_inputs(folder: Path, duplicate_client: bool = False) -> dict[str, Path]:
    """
    @brief
    Writes a small consistent set of entity CSV files.

    @details
    Cells use the encodings found in real uploads (comma text, JSON arrays,
    phase ranges). With `duplicate_client` the second client repeats the
    first client's ID, which makes the dataset invalid.
    """
    folder.mkdir(parents=True, exist_ok=True)
    second_client = "C1" if duplicate_client else "C2"
    files = {
        "clients": (
            "clientId,ClientName,PriorityLevel,RequestedTaskIDs,GroupTag,AttributesJSON\n"
            'C1,Acme,3,"T1,T2",GroupA,"{""location"": ""NY""}"\n'
            f"{second_client},Globex,5,T2,GroupB,{{}}\n"
        ),
        "workers": (
            "workerId,WorkerName,skills,AvailableSlots,MaxLoadPerPhase,WorkerGroup,"
            "QualificationLevel\n"
            'W1,Ann,"python,sql",1-3,2,GroupA,4\n'
            'W2,Bob,python,"[1, 2]",1,GroupB,2\n'
        ),
        "tasks": (
            "taskId,TaskName,Category,Duration,RequiredSkills,PreferredPhases,MaxConcurrent\n"
            "T1,Extract,ETL,1,python,1-2,1\n"
            "T2,Report,Reporting,2,sql,[2],1\n"
        ),
    }
    paths = {}
    for entity, text in files.items():
        path = folder / f"{entity}.csv"
        path.write_text(text, encoding="utf-8")
        paths[entity] = path
    return paths


def test_run_pipeline_writes_report_and_exports(tmp_path):
    """
    @brief
    End-to-end run over valid inputs.

    @details
    Verifies that the pipeline loads the three entity files, validates them,
    writes the validation report and exports the cleaned tables, the workbook
    and the rules configuration.
    """
    # --- Arrange ---
    inputs = _write_inputs(tmp_path / "in")
    rules_path = tmp_path / "rules.json"
    rules_path.write_text(
        json.dumps(
            [
                {
                    "id": "r1",
                    "type": "coRun",
                    "name": "pair",
                    "parameters": {"tasks": ["T1", "T2"]},
                },
                {"id": "r2", "type": "unknownType", "name": "junk"},
            ]
        ),
        encoding="utf-8",
    )
    out = tmp_path / "out"

    # --- Act ---
    result = run_pipeline(
        CONFIG, inputs["clients"], inputs["workers"], inputs["tasks"], rules_path, out
    )

    # --- Assert ---
    arts = result["artifacts"]
    assert result["valid"] is False  # the unparseable rule is an error
    assert set(arts) == {"validation_report", "clients", "workers", "tasks", "workbook", "rules"}
    assert all(Path(p).is_file() for p in arts.values())

    report = json.loads(arts["validation_report"].read_text(encoding="utf-8"))
    assert report["mode"] == "enforcement"
    assert [e["type"] for e in report["errors"]] == ["invalid_rule"]

    exported = json.loads(arts["rules"].read_text(encoding="utf-8"))
    assert [r["id"] for r in exported["rules"]] == ["r1"]

    tasks_csv = arts["tasks"].read_text(encoding="utf-8")
    assert "[1, 2]" in tasks_csv


def test_run_pipeline_requires_an_input(tmp_path):
    with pytest.raises(DataError):
        run_pipeline(None, None, None, None, output_dir=tmp_path)


def test_main_exit_codes(tmp_path):
    """
    @brief
    CLI exit codes: 0 valid, 1 invalid or controlled failure.
    """
    # --- Arrange ---
    good = _write_inputs(tmp_path / "good")
    bad = _write_inputs(tmp_path / "bad", duplicate_client=True)

    def argv(paths, out):
        return [
            "--config", str(CONFIG),
            "--clients", str(paths["clients"]),
            "--workers", str(paths["workers"]),
            "--tasks", str(paths["tasks"]),
            "--output", str(out),
        ]

    # --- Act ---
    ok = main(argv(good, tmp_path / "out_good"))
    invalid = main(argv(bad, tmp_path / "out_bad"))
    missing = main(["--config", str(CONFIG), "--tasks", str(tmp_path / "nope.csv")])
    no_inputs = main(["--config", str(CONFIG)])

    # --- Assert ---
    assert ok == 0
    assert invalid == 1
    assert missing == 1
    assert no_inputs == 1
    assert (tmp_path / "out_good" / "validation_report.json").is_file()


def test_structural_only_skips_enforcement(tmp_path):
    # --- Arrange ---
    inputs = _write_inputs(tmp_path / "in")
    rules_path = tmp_path / "rules.json"
    rules_path.write_text(
        json.dumps(
            {
                "rules": [
                    {
                        "id": "l1",
                        "type": "loadLimit",
                        "name": "cap",
                        "parameters": {"workerGroup": "GroupA", "maxSlotsPerPhase": 1},
                    }
                ],
                "priority": {"skillMatching": 20, "phasePreference": 0},
                "exportedAt": "2025-01-01T00:00:00+00:00",
                "version": "1.0",
            }
        ),
        encoding="utf-8",
    )

    # --- Act ---
    structural = run_pipeline(
        CONFIG, inputs["clients"], inputs["workers"], inputs["tasks"], rules_path,
        tmp_path / "s", structural_only=True,
    )
    enforced = run_pipeline(
        CONFIG, inputs["clients"], inputs["workers"], inputs["tasks"], rules_path, tmp_path / "e"
    )

    # --- Assert ---
    assert structural["valid"] is True
    assert enforced["valid"] is False
    assert enforced["errors"] == 3
