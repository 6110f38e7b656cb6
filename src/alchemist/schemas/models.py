# src/alchemist/schemas/models.py
"""
@brief
Pydantic data models for the Alchemist validation engine.

@details
Defines the canonical model types exchanged with the UI and export collaborators:
    - Dataset: three ordered sequences of raw entity records (clients, workers, tasks)
    - BusinessRule: one user-authored scheduling rule
    - PriorityWeights: prioritization criteria expected to sum to 100
    - ValidationIssue / ValidationResult: structured output of a validation pass
    - RulesConfig: export shape of rules plus weights
    - Config: runtime configuration (from config.yaml)

Entity records stay plain mappings because spreadsheet cells arrive loosely typed;
typed access to individual fields goes through `alchemist.schemas.fields`.
All models serialize with camelCase wire names (`isValid`, `rowIndex`, ...).
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping, MutableMapping
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from alchemist.errors import DataError

EntityType = Literal["clients", "workers", "tasks"]
IssueEntity = Literal["clients", "workers", "tasks", "rules", "weights"]
Severity = Literal["error", "warning"]
RuleType = Literal[
    "coRun",
    "loadLimit",
    "phaseWindow",
    "slotRestriction",
    "patternMatch",
    "precedenceOverride",
]

ENTITY_TYPES: tuple[EntityType, ...] = ("clients", "workers", "tasks")
CORE_RULE_TYPES: tuple[str, ...] = ("coRun", "loadLimit", "phaseWindow", "slotRestriction")

# Exact field names expected on ingestion, per entity type.
REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "clients": (
        "clientId",
        "ClientName",
        "PriorityLevel",
        "RequestedTaskIDs",
        "GroupTag",
        "AttributesJSON",
    ),
    "workers": (
        "workerId",
        "WorkerName",
        "skills",
        "AvailableSlots",
        "MaxLoadPerPhase",
        "WorkerGroup",
        "QualificationLevel",
    ),
    "tasks": (
        "taskId",
        "TaskName",
        "Category",
        "Duration",
        "RequiredSkills",
        "PreferredPhases",
        "MaxConcurrent",
    ),
}

ID_FIELDS: dict[str, str] = {
    "clients": "clientId",
    "workers": "workerId",
    "tasks": "taskId",
}

WEIGHT_CRITERIA: tuple[str, ...] = (
    "priorityLevel",
    "taskFulfillment",
    "fairnessConstraints",
    "workloadBalance",
    "skillMatching",
    "phasePreference",
)


class _StrictBaseModel(BaseModel):
    """
    @brief
    Base model enforcing strict defaults for configuration and data contracts.

    @details
    Forbids unknown fields and allows population by either the Python field
    name or its camelCase alias.
    """

    model_config = {
        "extra": "forbid",  # Reject unknown fields
        "populate_by_name": True,  # Allow population by field name
        "use_enum_values": True,
    }


# ------------------------------------------------------------
# Dataset
# ------------------------------------------------------------
class Dataset(_StrictBaseModel):
    """
    @brief
    Three ordered sequences of entity records forming one working dataset.

    @details
    Row position is the implicit identity used for issue addressing (rowIndex).
    Declared identifier fields are expected to be unique, but duplication is a
    detected condition, not a structural invariant.
    """

    clients: list[dict[str, Any]] = Field(default_factory=list)
    workers: list[dict[str, Any]] = Field(default_factory=list)
    tasks: list[dict[str, Any]] = Field(default_factory=list)

    def rows(self, entity: str) -> list[dict[str, Any]]:
        if entity not in ENTITY_TYPES:
            raise DataError(
                f"Unknown entity type: {entity!r}",
                source="Dataset.rows",
                suggested_action=f"Use one of: {', '.join(ENTITY_TYPES)}",
            )
        return getattr(self, entity)

    def is_empty(self) -> bool:
        return not (self.clients or self.workers or self.tasks)

    def counts(self) -> dict[str, int]:
        return {entity: len(self.rows(entity)) for entity in ENTITY_TYPES}

    @classmethod
    def coerce(cls, data: Any) -> Dataset:
        """
        @brief
        Wrap a Dataset-like value without copying its records.

        @details
        Accepts a Dataset (returned as is) or a mapping with `clients`, `workers`
        and `tasks` sequences. Records are kept by reference so that in-place
        normalization is visible to the caller that owns them.

        @raises
            DataError
                If the value is not dataset-shaped or a row is not a mapping.
        """
        if isinstance(data, Dataset):
            return data
        if not isinstance(data, Mapping):
            raise DataError(
                f"Unsupported dataset type: {type(data).__name__}",
                source="Dataset.coerce",
                suggested_action="Pass a Dataset or a mapping with clients/workers/tasks lists.",
            )

        parts: dict[str, list[dict[str, Any]]] = {}
        for entity in ENTITY_TYPES:
            rows = data.get(entity)
            if rows is None:
                rows = []
            elif not isinstance(rows, list):
                rows = list(rows)
            for idx, row in enumerate(rows):
                if not isinstance(row, MutableMapping):
                    raise DataError(
                        f"{entity}[{idx}] is not a record mapping ({type(row).__name__})",
                        source="Dataset.coerce",
                        suggested_action="Each row must be a dict of field name to cell value.",
                    )
            parts[entity] = rows
        return cls.model_construct(**parts)


# ------------------------------------------------------------
# Rules and weights
# ------------------------------------------------------------
def _new_rule_id() -> str:
    return f"rule_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


class BusinessRule(_StrictBaseModel):
    """
    @brief
    One user-authored scheduling rule.

    @details
    Parameters are type-specific and stay a free value; their shape is
    checked by the rule engine, not by the model. Unknown keys coming from
    rule builders (e.g. UI bookkeeping) are ignored.
    """

    model_config = {**_StrictBaseModel.model_config, "extra": "ignore"}

    id: str = Field(default_factory=_new_rule_id)
    type: RuleType
    name: str
    description: str = ""
    parameters: Any = Field(default_factory=dict)
    priority: int = Field(1, ge=1, le=10)
    active: bool = True
    confidence: float | None = None


class PriorityWeights(_StrictBaseModel):
    """
    @brief
    Prioritization weights per criterion, expected (not required) to sum to 100.
    """

    priority_level: float = Field(20.0, ge=0.0, alias="priorityLevel")
    task_fulfillment: float = Field(20.0, ge=0.0, alias="taskFulfillment")
    fairness_constraints: float = Field(20.0, ge=0.0, alias="fairnessConstraints")
    workload_balance: float = Field(20.0, ge=0.0, alias="workloadBalance")
    skill_matching: float = Field(20.0, ge=0.0, alias="skillMatching")
    phase_preference: float = Field(0.0, ge=0.0, alias="phasePreference")

    def as_mapping(self) -> dict[str, float]:
        """Criterion name (camelCase) → weight, in declaration order."""
        return self.model_dump(by_alias=True)

    @property
    def total(self) -> float:
        return float(sum(self.as_mapping().values()))

    def share(self, criterion: str) -> float:
        """Fraction of the total weight held by one criterion (0 when total is 0)."""
        total = self.total
        if total <= 0:
            return 0.0
        return float(self.as_mapping()[criterion]) / total


# ------------------------------------------------------------
# Validation output
# ------------------------------------------------------------
class ValidationIssue(_StrictBaseModel):
    """
    @brief
    One detected data or rule problem.

    @details
    `entity` with optional `rowIndex` / `field` is enough for the UI to
    highlight the offending cell; rule-derived issues also carry `ruleId`.
    """

    type: str
    message: str
    entity: IssueEntity
    row_index: int | None = Field(None, alias="rowIndex")
    field: str | None = None
    severity: Severity = "error"
    rule_id: str | None = Field(None, alias="ruleId")


class ValidationResult(_StrictBaseModel):
    """
    @brief
    Aggregated outcome of one validation pass.

    @details
    `isValid` is always recomputed as `len(errors) == 0`; warnings never
    affect validity.
    """

    is_valid: bool = Field(True, alias="isValid")
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @model_validator(mode="after")
    def _sync_validity(self) -> ValidationResult:
        self.is_valid = len(self.errors) == 0
        return self

    @classmethod
    def from_issues(cls, issues: list[ValidationIssue]) -> ValidationResult:
        errors = [i for i in issues if i.severity == "error"]
        warnings = [i for i in issues if i.severity == "warning"]
        return cls(errors=errors, warnings=warnings)

    def issues_for(self, entity: str) -> list[ValidationIssue]:
        return [i for i in self.errors + self.warnings if i.entity == entity]

    def to_report(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class DataCorrection(_StrictBaseModel):
    """
    @brief
    One suggested cell fix: write `suggestedValue` into `(entity, rowIndex, field)`.
    """

    model_config = {**_StrictBaseModel.model_config, "extra": "ignore"}

    entity: EntityType
    row_index: int = Field(..., ge=0, alias="rowIndex")
    field: str
    suggested_value: Any = Field(None, alias="suggestedValue")
    reason: str | None = None

    @property
    def key(self) -> str:
        return f"{self.entity}-{self.row_index}-{self.field}"


class RulesConfig(_StrictBaseModel):
    """
    @brief
    Exported rule configuration: `{rules, priority, exportedAt, version}`.
    """

    rules: list[BusinessRule] = Field(default_factory=list)
    priority: PriorityWeights = Field(default_factory=PriorityWeights)
    exported_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds"),
        alias="exportedAt",
    )
    version: str = "1.0"


# ------------------------------------------------------------
# Runtime configuration
# ------------------------------------------------------------
class NormalizationConfig(_StrictBaseModel):
    """
    @brief
    Controls the Field Normalizer.

    @details
    `range_fields` lists "<entity>.<field>" names whose elements may be written
    as inclusive ranges ("1-3"). Other fields never expand ranges. A range with
    more than `max_range_span` members is dropped like a reversed one.
    """

    range_fields: list[str] = Field(
        default_factory=lambda: ["workers.AvailableSlots", "tasks.PreferredPhases"],
        description="Fields where 'start-end' elements expand to integers",
    )
    max_range_span: int = Field(
        1000, ge=1, description="Widest 'start-end' element; wider ranges are dropped"
    )

    def expands_ranges(self, entity: str, field: str) -> bool:
        return f"{entity}.{field}" in self.range_fields


class ValidationConfig(_StrictBaseModel):
    """
    @brief
    Thresholds of the structural and capacity checks, plus report persistence.
    """

    priority_min: int = Field(1, description="Lowest allowed Client.PriorityLevel")
    priority_max: int = Field(5, description="Highest allowed Client.PriorityLevel")
    min_duration: int = Field(1, description="Lowest allowed Task.Duration")
    saturation_row_cap: int = Field(
        5, ge=1, description="Max task rows reported per oversaturated phase"
    )
    write_report: bool = True
    report_filename: str = "validation_report.json"


class WeightAdvisoryConfig(_StrictBaseModel):
    """
    @brief
    Thresholds of the Weight Advisory.

    @details
    Shares are fractions of the total weight (0..1); `high_share` marks a
    criterion as emphasized, `escalation_share` turns dataset-aware issues
    into errors.
    """

    target_total: float = Field(100.0, gt=0.0)
    extreme_threshold: float = Field(70.0, gt=0.0)
    high_share: float = Field(0.3, ge=0.0, le=1.0)
    escalation_share: float = Field(0.5, ge=0.0, le=1.0)
    tolerance: float = Field(1e-6, ge=0.0)


class ExportConfig(_StrictBaseModel):
    """
    @brief
    Export file naming and rule configuration version.
    """

    workbook_filename: str = "cleaned_data.xlsx"
    rules_filename: str = "rules_config.json"
    config_version: str = "1.0"
    write_workbook: bool = True


class Config(_StrictBaseModel):
    """
    @brief
    Represents the full runtime configuration loaded from config.yaml.
    """

    output_dir: str = "data/output"
    normalization: NormalizationConfig = Field(default_factory=NormalizationConfig.model_construct)
    validation: ValidationConfig = Field(default_factory=ValidationConfig.model_construct)
    weights: WeightAdvisoryConfig = Field(default_factory=WeightAdvisoryConfig.model_construct)
    export: ExportConfig = Field(default_factory=ExportConfig.model_construct)


__all__ = [
    "BusinessRule",
    "Config",
    "DataCorrection",
    "Dataset",
    "PriorityWeights",
    "RulesConfig",
    "ValidationIssue",
    "ValidationResult",
]
