# src/alchemist/validator/capacity.py
from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
from typing import Any

from alchemist.schemas.fields import (
    ABSENT,
    Malformed,
    number_or,
    phase_set,
    read_list,
    read_number,
    text_list,
)
from alchemist.schemas.models import Dataset, ValidationConfig, ValidationIssue
from alchemist.validator.issues import error, warning


# ----------------------------
# SHARED AGGREGATES
# ----------------------------
def skill_pool(workers: Sequence[Mapping[str, Any]]) -> set[str]:
    """All skills offered by at least one worker."""
    pool: set[str] = set()
    for worker in workers:
        pool.update(text_list(worker, "skills"))
    return pool


def qualified_workers(
    task: Mapping[str, Any], workers: Sequence[Mapping[str, Any]]
) -> list[int]:
    """
    @brief
    Row indices of workers whose skill set covers every required skill of a task.

    @details
    A task without required skills is covered by every worker.
    """
    required = set(text_list(task, "RequiredSkills"))
    return [
        idx
        for idx, worker in enumerate(workers)
        if required.issubset(set(text_list(worker, "skills")))
    ]


def phase_capacity(workers: Sequence[Mapping[str, Any]]) -> dict[int, float]:
    """Phase → sum of MaxLoadPerPhase over the workers available in that phase."""
    capacity: dict[int, float] = defaultdict(float)
    for worker in workers:
        load = number_or(worker, "MaxLoadPerPhase")
        for phase in phase_set(worker, "AvailableSlots"):
            capacity[phase] += load
    return dict(capacity)


def phase_demand(
    tasks: Sequence[Mapping[str, Any]],
) -> tuple[dict[int, float], dict[int, list[int]]]:
    """
    @brief
    Per-phase task demand.

    @returns
        (demand, contributors): phase → sum of Duration over tasks preferring
        that phase, and phase → task row indices in row order.
    """
    demand: dict[int, float] = defaultdict(float)
    contributors: dict[int, list[int]] = defaultdict(list)
    for idx, task in enumerate(tasks):
        duration = number_or(task, "Duration")
        for phase in sorted(phase_set(task, "PreferredPhases")):
            demand[phase] += duration
            contributors[phase].append(idx)
    return dict(demand), dict(contributors)


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


# ----------------------------
# ANALYZER
# ----------------------------
class CapacityAnalyzer:
    """
    @brief
    Aggregate supply/demand, skill coverage and concurrency feasibility checks.

    @details
    Works on a normalized dataset. None of these checks schedules anything;
    they only compare totals so the user can see infeasible data early.
    """

    def __init__(self, dataset: Dataset, cfg: ValidationConfig | None = None) -> None:
        self.dataset = dataset
        self.cfg = cfg or ValidationConfig()

    def run_errors(self) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        issues += self.check_overloaded_workers()
        issues += self.check_phase_saturation()
        issues += self.check_skill_coverage()
        return issues

    def check_overloaded_workers(self) -> list[ValidationIssue]:
        """Available-slot count below the declared per-phase load."""
        issues: list[ValidationIssue] = []
        for idx, worker in enumerate(self.dataset.workers):
            slots = read_list(worker, "AvailableSlots")
            max_load = read_number(worker, "MaxLoadPerPhase")
            if not isinstance(slots, list):
                continue
            if max_load is ABSENT or isinstance(max_load, Malformed):
                continue
            if len(slots) < max_load:
                issues.append(
                    error(
                        "overloaded_worker",
                        f"Worker has {len(slots)} available slot(s) but MaxLoadPerPhase "
                        f"is {_fmt(max_load)}",
                        "workers",
                        row_index=idx,
                        field="MaxLoadPerPhase",
                    )
                )
        return issues

    def check_phase_saturation(self) -> list[ValidationIssue]:
        """
        @brief
        Flag phases whose total task demand exceeds total worker capacity.

        @details
        Phases are examined in ascending order. For every oversaturated phase
        one issue is emitted per contributing task row, up to
        `saturation_row_cap` rows.
        """
        capacity = phase_capacity(self.dataset.workers)
        demand, contributors = phase_demand(self.dataset.tasks)

        issues: list[ValidationIssue] = []
        for phase in sorted(demand):
            need = demand[phase]
            have = capacity.get(phase, 0.0)
            if need <= have:
                continue
            message = (
                f"Phase {phase} is oversaturated: demand {_fmt(need)} > capacity {_fmt(have)}"
            )
            for idx in contributors[phase][: self.cfg.saturation_row_cap]:
                issues.append(
                    error(
                        "phase_saturation",
                        message,
                        "tasks",
                        row_index=idx,
                        field="PreferredPhases",
                    )
                )
        return issues

    def check_skill_coverage(self) -> list[ValidationIssue]:
        """Every required skill must be offered by at least one worker."""
        pool = skill_pool(self.dataset.workers)
        issues: list[ValidationIssue] = []
        for idx, task in enumerate(self.dataset.tasks):
            for skill in text_list(task, "RequiredSkills"):
                if skill not in pool:
                    issues.append(
                        error(
                            "skill_coverage",
                            f"No worker has required skill: {skill}",
                            "tasks",
                            row_index=idx,
                            field="RequiredSkills",
                        )
                    )
        return issues

    def check_max_concurrency(self) -> list[ValidationIssue]:
        """MaxConcurrent above the number of qualified workers (warning)."""
        workers = self.dataset.workers
        issues: list[ValidationIssue] = []
        for idx, task in enumerate(self.dataset.tasks):
            wanted = read_number(task, "MaxConcurrent")
            if wanted is ABSENT or isinstance(wanted, Malformed):
                continue
            qualified = len(qualified_workers(task, workers))
            if wanted > qualified:
                issues.append(
                    warning(
                        "max_concurrency",
                        f"MaxConcurrent ({_fmt(wanted)}) exceeds qualified workers ({qualified})",
                        "tasks",
                        row_index=idx,
                        field="MaxConcurrent",
                    )
                )
        return issues


__all__ = [
    "CapacityAnalyzer",
    "phase_capacity",
    "phase_demand",
    "qualified_workers",
    "skill_pool",
]
