# scripts/gen_synthetic_data.py
from __future__ import annotations

import csv
import json
import random
import sys
from pathlib import Path

"""
Synthetic clients / workers / tasks generator (single run → three CSV files).

Design:
- Parameters are hard-coded constants below (no CLI args).
- Cells use the encodings found in real uploads: JSON arrays, comma-separated
  text and "start-end" phase ranges are mixed on purpose so the normalizer is
  exercised.
- INJECT_DEFECTS adds a few known problems (duplicate id, unknown task
  reference, broken JSON, uncovered skill) for manual runs of scripts/run.py.

Edit the constants in the "CONFIG" section to produce different datasets.
"""

# =========================
# CONFIG: EDIT THESE
# =========================
CLIENTS: int = 20
WORKERS: int = 12
TASKS: int = 30
PHASES: int = 6
OUTPUT_DIR: str = "data/input"
INJECT_DEFECTS: bool = True

SKILLS: tuple[str, ...] = ("python", "sql", "excel", "design", "ml", "devops", "writing")
GROUPS: tuple[str, ...] = ("GroupA", "GroupB", "GroupC")
CATEGORIES: tuple[str, ...] = ("ETL", "Analytics", "ML", "Reporting", "Infra")

# Deterministic generation
RANDOM_SEED: int = 42
# =========================


CLIENT_COLUMNS = (
    "clientId", "ClientName", "PriorityLevel", "RequestedTaskIDs", "GroupTag", "AttributesJSON"
)
WORKER_COLUMNS = (
    "workerId", "WorkerName", "skills", "AvailableSlots", "MaxLoadPerPhase",
    "WorkerGroup", "QualificationLevel",
)
TASK_COLUMNS = (
    "taskId", "TaskName", "Category", "Duration", "RequiredSkills", "PreferredPhases",
    "MaxConcurrent",
)


def _phase_cell(rng: random.Random) -> str:
    """Phase list in one of the accepted encodings."""
    start = rng.randint(1, PHASES)
    end = rng.randint(start, PHASES)
    style = rng.choice(("range", "json", "csv"))
    if style == "range":
        return f"{start}-{end}"
    phases = list(range(start, end + 1))
    if style == "json":
        return json.dumps(phases)
    return ",".join(str(p) for p in phases)


def _tasks(rng: random.Random) -> list[dict[str, object]]:
    rows = []
    for i in range(1, TASKS + 1):
        rows.append(
            {
                "taskId": f"T{i}",
                "TaskName": f"Task {i}",
                "Category": rng.choice(CATEGORIES),
                "Duration": rng.randint(1, 4),
                "RequiredSkills": ",".join(rng.sample(SKILLS, rng.randint(1, 2))),
                "PreferredPhases": _phase_cell(rng),
                "MaxConcurrent": rng.randint(1, 3),
            }
        )
    return rows


def _workers(rng: random.Random) -> list[dict[str, object]]:
    rows = []
    for i in range(1, WORKERS + 1):
        rows.append(
            {
                "workerId": f"W{i}",
                "WorkerName": f"Worker {i}",
                "skills": ",".join(rng.sample(SKILLS, rng.randint(2, 4))),
                "AvailableSlots": json.dumps(sorted(rng.sample(range(1, PHASES + 1), 3))),
                "MaxLoadPerPhase": rng.randint(1, 3),
                "WorkerGroup": rng.choice(GROUPS),
                "QualificationLevel": rng.randint(1, 5),
            }
        )
    return rows


def _clients(rng: random.Random) -> list[dict[str, object]]:
    rows = []
    for i in range(1, CLIENTS + 1):
        requested = rng.sample(range(1, TASKS + 1), rng.randint(1, 4))
        rows.append(
            {
                "clientId": f"C{i}",
                "ClientName": f"Client {i}",
                "PriorityLevel": rng.randint(1, 5),
                "RequestedTaskIDs": ",".join(f"T{t}" for t in requested),
                "GroupTag": rng.choice(GROUPS),
                "AttributesJSON": json.dumps({"location": rng.choice(("NY", "SF", "LDN"))}),
            }
        )
    return rows


def _inject_defects(clients: list[dict], tasks: list[dict]) -> None:
    clients[-1]["clientId"] = clients[0]["clientId"]
    clients[1]["RequestedTaskIDs"] += f",T{TASKS + 99}"
    clients[2]["AttributesJSON"] = "{not json"
    clients[3]["PriorityLevel"] = 9
    tasks[0]["RequiredSkills"] = "rust"
    tasks[1]["PreferredPhases"] = "4-2"


def _write_csv(path: Path, columns: tuple[str, ...], rows: list[dict[str, object]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        writer.writerows(rows)


def main() -> int:
    if min(CLIENTS, WORKERS, TASKS, PHASES) < 1:
        print("Invalid generator configuration: counts must be >= 1", file=sys.stderr)
        return 2

    rng = random.Random(RANDOM_SEED)
    tasks = _tasks(rng)
    workers = _workers(rng)
    clients = _clients(rng)
    if INJECT_DEFECTS and CLIENTS >= 4 and TASKS >= 2:
        _inject_defects(clients, tasks)

    out = Path(OUTPUT_DIR)
    _write_csv(out / "clients.csv", CLIENT_COLUMNS, clients)
    _write_csv(out / "workers.csv", WORKER_COLUMNS, workers)
    _write_csv(out / "tasks.csv", TASK_COLUMNS, tasks)

    print(f"[GEN] clients={len(clients)}, workers={len(workers)}, tasks={len(tasks)}")
    print(f"[GEN] wrote: {out}/{{clients,workers,tasks}}.csv")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
