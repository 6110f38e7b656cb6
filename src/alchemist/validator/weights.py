# src/alchemist/validator/weights.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from alchemist.schemas.fields import ABSENT, Malformed, number_or, phase_set, read_number, text_list
from alchemist.schemas.models import (
    Dataset,
    PriorityWeights,
    ValidationIssue,
    WeightAdvisoryConfig,
)
from alchemist.validator.capacity import qualified_workers, skill_pool
from alchemist.validator.issues import escalated, warning

logger = logging.getLogger(__name__)


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def coerce_weights(weights: Any) -> tuple[PriorityWeights | None, list[ValidationIssue]]:
    """
    @brief
    Accept PriorityWeights, a camelCase mapping, or None.

    @details
    Unusable weight payloads are reported as one `invalid_weights` warning;
    weights never invalidate a dataset on their own.
    """
    if weights is None or isinstance(weights, PriorityWeights):
        return weights, []
    try:
        return PriorityWeights.model_validate(weights), []
    except PydanticValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) or "weights" for err in e.errors()})
        return None, [
            warning(
                "invalid_weights",
                f"Priority weights ignored, invalid criteria: {', '.join(fields)}",
                "weights",
            )
        ]


class WeightAdvisory:
    """
    @brief
    Turns prioritization weights into advisory issues.

    @details
    `check_weights` looks only at the weights. `check_against_dataset` is the
    dataset-aware pass used by enforcement: criteria holding a high share of
    the total weight are matched against skill coverage, concurrency and
    capacity figures of the dataset. Per-row findings escalate to errors once
    the criterion's share exceeds `escalation_share`.
    """

    def __init__(self, weights: PriorityWeights, cfg: WeightAdvisoryConfig | None = None) -> None:
        self.weights = weights
        self.cfg = cfg or WeightAdvisoryConfig()

    def _is_high(self, criterion: str) -> bool:
        return self.weights.share(criterion) >= self.cfg.high_share

    def _escalates(self, criterion: str) -> bool:
        return self.weights.share(criterion) > self.cfg.escalation_share

    # ---------- Weights only ----------
    def check_weights(self) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        mapping = self.weights.as_mapping()
        total = self.weights.total

        if abs(total - self.cfg.target_total) > self.cfg.tolerance:
            issues.append(
                warning(
                    "weight_sum_mismatch",
                    f"Priority weights sum to {_fmt(total)}, "
                    f"expected {_fmt(self.cfg.target_total)}",
                    "weights",
                )
            )

        for criterion, value in mapping.items():
            if value == 0:
                issues.append(
                    warning(
                        "zero_weight",
                        f"Criterion {criterion} has zero weight and will be ignored",
                        "weights",
                        field=criterion,
                    )
                )

        for criterion, value in mapping.items():
            if value > self.cfg.extreme_threshold:
                issues.append(
                    warning(
                        "extreme_weight_distribution",
                        f"Criterion {criterion} carries {_fmt(value)} of the weight "
                        f"(above {_fmt(self.cfg.extreme_threshold)})",
                        "weights",
                        field=criterion,
                    )
                )
        return issues

    # ---------- Dataset-aware ----------
    def check_against_dataset(self, dataset: Dataset) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        issues += self._skill_conflicts(dataset)
        issues += self._workload_conflicts(dataset)
        issues += self._pressure_warnings(dataset)
        return issues

    def _uncovered_skills(self, dataset: Dataset) -> dict[str, int]:
        """Skill → first task row requiring it, for skills no worker offers."""
        pool = skill_pool(dataset.workers)
        uncovered: dict[str, int] = {}
        for idx, task in enumerate(dataset.tasks):
            for skill in text_list(task, "RequiredSkills"):
                if skill not in pool and skill not in uncovered:
                    uncovered[skill] = idx
        return uncovered

    def _skill_conflicts(self, dataset: Dataset) -> list[ValidationIssue]:
        if not self._is_high("skillMatching"):
            return []
        as_error = self._escalates("skillMatching")
        return [
            escalated(
                "skill_weight_conflict",
                f"skillMatching is weighted highly but no worker has skill {skill}",
                "tasks",
                as_error=as_error,
                row_index=idx,
                field="RequiredSkills",
            )
            for skill, idx in self._uncovered_skills(dataset).items()
        ]

    def _workload_conflicts(self, dataset: Dataset) -> list[ValidationIssue]:
        if not self._is_high("workloadBalance"):
            return []
        as_error = self._escalates("workloadBalance")
        issues: list[ValidationIssue] = []
        for idx, task in enumerate(dataset.tasks):
            wanted = read_number(task, "MaxConcurrent")
            if wanted is ABSENT or isinstance(wanted, Malformed):
                continue
            qualified = len(qualified_workers(task, dataset.workers))
            if wanted > qualified:
                issues.append(
                    escalated(
                        "workload_weight_conflict",
                        f"workloadBalance is weighted highly but MaxConcurrent ({_fmt(wanted)}) "
                        f"exceeds qualified workers ({qualified})",
                        "tasks",
                        as_error=as_error,
                        row_index=idx,
                        field="MaxConcurrent",
                    )
                )
        return issues

    def _pressure_warnings(self, dataset: Dataset) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []

        # (1) High-priority demand vs. workforce size
        if self._is_high("priorityLevel"):
            requested = sum(
                len(text_list(c, "RequestedTaskIDs"))
                for c in dataset.clients
                if number_or(c, "PriorityLevel") >= 4
            )
            if requested > len(dataset.workers):
                issues.append(
                    warning(
                        "priority_demand_pressure",
                        f"High-priority clients request {requested} task(s) but only "
                        f"{len(dataset.workers)} worker(s) exist",
                        "weights",
                        field="priorityLevel",
                    )
                )

        # (2) Total task demand vs. total worker capacity
        if self._is_high("workloadBalance"):
            demand = sum(
                number_or(t, "Duration") * len(phase_set(t, "PreferredPhases"))
                for t in dataset.tasks
            )
            capacity = sum(
                len(phase_set(w, "AvailableSlots")) * number_or(w, "MaxLoadPerPhase")
                for w in dataset.workers
            )
            if demand > capacity:
                issues.append(
                    warning(
                        "workload_capacity_pressure",
                        f"Total task demand ({_fmt(demand)}) exceeds total worker capacity "
                        f"({_fmt(capacity)})",
                        "weights",
                        field="workloadBalance",
                    )
                )

        # (3) Uncovered skills
        if self._is_high("skillMatching"):
            uncovered = self._uncovered_skills(dataset)
            if uncovered:
                issues.append(
                    warning(
                        "skill_gap_pressure",
                        f"{len(uncovered)} required skill(s) have no qualified worker",
                        "weights",
                        field="skillMatching",
                    )
                )
        return issues


def check_weights(
    weights: PriorityWeights | Mapping[str, Any] | None,
    cfg: WeightAdvisoryConfig | None = None,
) -> list[ValidationIssue]:
    """Weights-only advisory; no issues when no weights are given."""
    parsed, issues = coerce_weights(weights)
    if parsed is None:
        return issues
    return issues + WeightAdvisory(parsed, cfg).check_weights()


__all__ = ["WeightAdvisory", "check_weights", "coerce_weights"]
