# src/alchemist/validator/validator.py
from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from alchemist.errors import AlchemistError, ValidationError
from alchemist.schemas.models import (
    Config,
    Dataset,
    PriorityWeights,
    ValidationIssue,
    ValidationResult,
)
from alchemist.validator.capacity import CapacityAnalyzer
from alchemist.validator.normalizer import FieldNormalizer
from alchemist.validator.rules import RuleEngine
from alchemist.validator.structural import StructuralValidator
from alchemist.validator.weights import WeightAdvisory, coerce_weights

logger = logging.getLogger(__name__)


class Validator:
    """
    @brief
    Validation Orchestrator composing all checks into one pass.

    @details
    The pass normalizes the dataset in place once, then runs every check in a
    fixed order over the same normalized records:
        1. structural checks (missing fields ... unknown references)
        2. circular co-run detection
        3. capacity errors (overloaded workers, saturation, skill coverage)
        4. max-concurrency warnings
        5. rule checks (structural, or enforcement when `enforce=True`)
        6. overlapping rule membership
        7. weight advisory (plus the dataset-aware pass when enforcing)
    Checks are independent and additive. Data problems are issues, never
    exceptions; an unexpected exception inside a check is wrapped in
    ValidationError naming that check.
    """

    def __init__(
        self,
        dataset: Dataset | Mapping[str, Any],
        rules: Iterable[Any] | None = None,
        weights: PriorityWeights | Mapping[str, Any] | None = None,
        cfg: Config | None = None,
        *,
        enforce: bool = False,
    ) -> None:
        """
        @brief
        Bind the inputs of one validation pass.

        @params
            dataset : Dataset | Mapping
                Entity records; plain mappings are wrapped without copying so
                normalization is visible to the caller.
            rules : Iterable | None
                BusinessRule models or rule-builder payloads.
            weights : PriorityWeights | Mapping | None
                Prioritization weights; None skips the weight advisory.
            cfg : Config | None
                Runtime configuration (defaults when omitted).
            enforce : bool
                Run rule enforcement and the dataset-aware weight pass.
        """
        self.dataset = Dataset.coerce(dataset)
        self.rules = rules
        self.weights = weights
        self.cfg = cfg or Config()
        self.enforce = enforce

        self.issues: list[ValidationIssue] = []

    # ---------- Public lifecycle API ----------
    def run_all_checks(self) -> None:
        """
        @brief
        Execute the full validation sequence.

        @raises
            RuleError
                If the rule collection cannot be interpreted at all.
            ValidationError
                If a check fails unexpectedly.
        """
        self.issues = []

        # (1) Normalize declared list fields in place, once per pass
        dropped = self._run(
            "normalize",
            lambda: FieldNormalizer(self.cfg.normalization).normalize_dataset(self.dataset),
        )

        # (2) Bind check components to the normalized data
        structural = StructuralValidator(self.dataset, self.cfg.validation, dropped)
        capacity = CapacityAnalyzer(self.dataset, self.cfg.validation)
        engine = RuleEngine(self.dataset, self.rules)
        weights, weight_issues = coerce_weights(self.weights)

        # (3) Ordered checks
        self._collect("check_missing_fields", structural.check_missing_fields)
        self._collect("check_duplicate_ids", structural.check_duplicate_ids)
        self._collect("check_malformed_lists", structural.check_malformed_lists)
        self._collect("check_out_of_range", structural.check_out_of_range)
        self._collect("check_broken_json", structural.check_broken_json)
        self._collect("check_unknown_references", structural.check_unknown_references)
        self._collect("check_corun_cycles", engine.check_cycles)
        self._collect("check_overloaded_workers", capacity.check_overloaded_workers)
        self._collect("check_phase_saturation", capacity.check_phase_saturation)
        self._collect("check_skill_coverage", capacity.check_skill_coverage)
        self._collect("check_max_concurrency", capacity.check_max_concurrency)

        if self.enforce:
            self._collect("enforce_rules", engine.enforce)
        else:
            self._collect("check_rules", engine.check_structure)
        self._collect("check_rule_overlaps", engine.check_overlaps)

        # (4) Weight advisory
        self.issues += weight_issues
        if weights is not None:
            advisory = WeightAdvisory(weights, self.cfg.weights)
            self._collect("check_weights", advisory.check_weights)
            if self.enforce:
                self._collect(
                    "check_weights_against_dataset",
                    lambda: advisory.check_against_dataset(self.dataset),
                )

    def build_result(self) -> ValidationResult:
        return ValidationResult.from_issues(self.issues)

    def build_report(self, result: ValidationResult | None = None) -> dict[str, Any]:
        """
        @brief
        Serializable report: the result plus timestamp and dataset counts.
        """
        result = result or self.build_result()
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "mode": "enforcement" if self.enforce else "structural",
            "counts": self.dataset.counts(),
            **result.to_report(),
        }

    def save_report(
        self,
        report: dict[str, Any],
        out_dir: Path | None = None,
        filename: str | None = None,
    ) -> Path:
        """
        Writes the report atomically to disk.

        Args:
            report: Validation report dictionary.
            out_dir: Target directory (defaults to cfg.output_dir).
            filename: Target filename (defaults to cfg.validation.report_filename).

        Returns:
            Path to the written JSON file.
        """
        target_dir = out_dir or Path(self.cfg.output_dir)
        final_path = target_dir / (filename or self.cfg.validation.report_filename)
        tmp_path = final_path.with_suffix(".tmp")

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(report, f, indent=2, ensure_ascii=False)
            tmp_path.replace(final_path)
        except OSError as e:
            raise ValidationError(
                f"Failed to write validation report: {e}",
                source="Validator.save_report",
                suggested_action="Check disk permissions and free space.",
            ) from e

        logger.info("Validation report saved: %s", final_path)
        return final_path

    # ---------- Internals ----------
    def _run(self, name: str, check: Callable[[], Any]) -> Any:
        try:
            return check()
        except AlchemistError:
            raise
        except Exception as e:
            raise ValidationError(
                f"Unexpected failure in {name}: {e}",
                source=f"Validator.{name}",
                suggested_action="Report this input; the dataset could not be validated.",
            ) from e

    def _collect(self, name: str, check: Callable[[], list[ValidationIssue]]) -> None:
        self.issues += self._run(name, check)


def _log_summary(result: ValidationResult, mode: str) -> None:
    logger.info(
        "Validation (%s): %s, %d error(s), %d warning(s)",
        mode,
        "valid" if result.is_valid else "invalid",
        len(result.errors),
        len(result.warnings),
    )


def validate(
    dataset: Dataset | Mapping[str, Any],
    rules: Iterable[Any] | None = None,
    weights: PriorityWeights | Mapping[str, Any] | None = None,
    cfg: Config | None = None,
) -> ValidationResult:
    """
    @brief
    Base validation pass.

    @details
    Normalization, structural and capacity checks, structural rule checks
    and the weights-only advisory. Normalizes `dataset` in place.

    @returns
        ValidationResult with `isValid == (len(errors) == 0)`.
    """
    validator = Validator(dataset, rules, weights, cfg)
    validator.run_all_checks()
    result = validator.build_result()
    _log_summary(result, "structural")
    return result


def validate_with_rules(
    dataset: Dataset | Mapping[str, Any],
    rules: Iterable[Any] | None,
    weights: PriorityWeights | Mapping[str, Any] | None,
    cfg: Config | None = None,
) -> ValidationResult:
    """
    @brief
    Enforcement pass used after edits.

    @details
    Same as `validate`, with rule enforcement instead of the structural rule
    checks and with the dataset-aware weight advisory.
    """
    validator = Validator(dataset, rules, weights, cfg, enforce=True)
    validator.run_all_checks()
    result = validator.build_result()
    _log_summary(result, "enforcement")
    return result


__all__ = ["Validator", "validate", "validate_with_rules"]
