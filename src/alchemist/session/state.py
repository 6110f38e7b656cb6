# src/alchemist/session/state.py
from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from alchemist.dataloader.entity_loader import EntityLoader
from alchemist.errors import AlchemistError, DataError, RuleError
from alchemist.export.data_export import build_rules_config
from alchemist.schemas.models import (
    CORE_RULE_TYPES,
    WEIGHT_CRITERIA,
    BusinessRule,
    Config,
    DataCorrection,
    Dataset,
    PriorityWeights,
    RulesConfig,
    ValidationResult,
)
from alchemist.validator.rules import validate_rule_candidate
from alchemist.validator.validator import validate, validate_with_rules

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class AppState:
    """
    @brief
    Explicit application state owned by the UI layer.

    @details
    Holds the working dataset, rules and weights, the last validation result
    and the last failure. Every user action mutates the state and then runs
    a validation pass with the current inputs; the validation engine itself
    keeps nothing between calls. `AlchemistError`s raised by loaders or by the
    engine are caught here and kept in `last_failure`, distinct from the
    validation issues in `result`. Callers must serialize actions on one state.
    """

    def __init__(self, cfg: Config | None = None, loader: EntityLoader | None = None) -> None:
        self.cfg = cfg or Config()
        self.loader = loader or EntityLoader()

        self.dataset = Dataset()
        self.rules: list[BusinessRule] = []
        self.weights = PriorityWeights()
        self.result = ValidationResult()
        self.last_failure: AlchemistError | None = None
        self.applied_corrections: set[str] = set()

    @property
    def has_data(self) -> bool:
        return not self.dataset.is_empty()

    # ---------- Data ----------
    def load_entity(self, entity: str, path: Path | str) -> ValidationResult | None:
        """File parsed → replace one entity set and run the base pass."""
        try:
            loaded = self.loader.load(path, entity)
        except AlchemistError as e:
            return self._fail(e)
        return self.set_entity(entity, loaded.rows)

    def set_entity(self, entity: str, rows: Iterable[Mapping[str, Any]]) -> ValidationResult | None:
        try:
            self.dataset.rows(entity)[:] = [dict(r) for r in rows]
        except AlchemistError as e:
            return self._fail(e)
        self.applied_corrections.clear()
        return self._revalidate(enforce=False)

    def update_entity(
        self, entity: str, row_index: int, field: str, value: Any
    ) -> ValidationResult | None:
        """Cell edit → write the value and run the enforcement pass."""
        try:
            self._write_cell(entity, row_index, field, value)
        except AlchemistError as e:
            return self._fail(e)
        return self._revalidate(enforce=True)

    def _write_cell(self, entity: str, row_index: int, field: str, value: Any) -> None:
        rows = self.dataset.rows(entity)
        if not 0 <= row_index < len(rows):
            raise DataError(
                f"Row {row_index} does not exist in {entity} ({len(rows)} rows)",
                source="AppState._write_cell",
                suggested_action="Reload the data grid and retry the edit.",
            )
        rows[row_index][field] = value

    # ---------- Rules ----------
    def save_rule(self, rule: BusinessRule | Mapping[str, Any]) -> BusinessRule | None:
        """
        @brief
        Insert or replace (by id) one rule, then revalidate with enforcement.

        @details
        Core rule types go through the authoring pre-check first; a rejected
        candidate is kept in `last_failure` as a RuleError and the rule list is
        left unchanged.
        """
        try:
            saved = self._accept_rule(rule)
        except AlchemistError as e:
            self._fail(e)
            return None

        for idx, existing in enumerate(self.rules):
            if existing.id == saved.id:
                self.rules[idx] = saved
                break
        else:
            self.rules.append(saved)
        self._revalidate(enforce=True)
        return saved

    def _accept_rule(self, rule: BusinessRule | Mapping[str, Any]) -> BusinessRule:
        # (1) Builder pre-check of core rule types
        rule_type = rule.type if isinstance(rule, BusinessRule) else rule.get("type")
        if rule_type in CORE_RULE_TYPES:
            problem = validate_rule_candidate(rule, self.dataset)
            if problem is not None:
                raise RuleError(
                    problem,
                    source="AppState.save_rule",
                    suggested_action="Fix the rule in the rule builder and save again.",
                )

        # (2) Full model validation
        try:
            return rule if isinstance(rule, BusinessRule) else BusinessRule.model_validate(rule)
        except PydanticValidationError as e:
            raise RuleError(
                f"Rule cannot be interpreted: {e}",
                source="AppState.save_rule",
                suggested_action="Check the rule type, name and parameters.",
            ) from e

    def delete_rule(self, rule_id: str) -> bool:
        before = len(self.rules)
        self.rules = [r for r in self.rules if r.id != rule_id]
        removed = len(self.rules) != before
        if removed:
            self._revalidate(enforce=True)
        return removed

    def rules_config(self) -> RulesConfig:
        return build_rules_config(self.rules, self.weights, self.cfg.export.config_version)

    # ---------- Weights ----------
    def update_weight(self, criterion: str, value: float) -> PriorityWeights | None:
        """
        @brief
        Set one criterion and rescale the others to keep the target total.

        @details
        The other criteria keep their proportions and are rounded half up to
        whole numbers, as the weight sliders do. When all other criteria are
        zero they stay zero and the total is left off target (reported by the
        weight advisory).
        """
        target = self.cfg.weights.target_total
        if criterion not in WEIGHT_CRITERIA or not 0 <= value <= target:
            return self._fail(
                DataError(
                    f"Invalid weight {criterion}={value}",
                    source="AppState.update_weight",
                    suggested_action=f"Use one of {', '.join(WEIGHT_CRITERIA)} with 0..{target:g}.",
                )
            )

        weights = self.weights.as_mapping()
        weights[criterion] = value
        total = sum(weights.values())
        if total != target:
            other_total = total - value
            if other_total > 0:
                for key in weights:
                    if key != criterion:
                        weights[key] = _round_half_up(weights[key] / other_total * (target - value))

        self.weights = PriorityWeights.model_validate(weights)
        self._revalidate(enforce=True)
        return self.weights

    def reset_weights(self) -> PriorityWeights:
        self.weights = PriorityWeights()
        self._revalidate(enforce=True)
        return self.weights

    # ---------- Corrections ----------
    def apply_correction(self, correction: DataCorrection | Mapping[str, Any]) -> bool:
        """Write one suggested value and revalidate; False when skipped."""
        applied = self._write_correction(correction)
        if applied:
            self._revalidate(enforce=True)
        return applied

    def apply_corrections(self, corrections: Iterable[DataCorrection | Mapping[str, Any]]) -> int:
        """
        @brief
        Write every suggested value, then revalidate once.

        @details
        Each correction is actually written to its cell; corrections already
        applied or addressing a missing row are skipped.

        @returns
            Number of corrections written.
        """
        count = sum(1 for c in corrections if self._write_correction(c))
        if count:
            self._revalidate(enforce=True)
        return count

    def _write_correction(self, correction: DataCorrection | Mapping[str, Any]) -> bool:
        try:
            fix = (
                correction
                if isinstance(correction, DataCorrection)
                else DataCorrection.model_validate(correction)
            )
        except PydanticValidationError as e:
            self._fail(
                DataError(
                    f"Invalid correction: {e}",
                    source="AppState.apply_correction",
                    suggested_action="Corrections need entity, rowIndex, field and suggestedValue.",
                )
            )
            return False

        if fix.key in self.applied_corrections:
            return False
        rows = self.dataset.rows(fix.entity)
        if fix.row_index >= len(rows):
            logger.warning("Correction %s skipped: row does not exist", fix.key)
            return False

        rows[fix.row_index][fix.field] = fix.suggested_value
        self.applied_corrections.add(fix.key)
        return True

    # ---------- Internals ----------
    def _revalidate(self, *, enforce: bool) -> ValidationResult | None:
        try:
            if enforce:
                result = validate_with_rules(self.dataset, self.rules, self.weights, self.cfg)
            else:
                result = validate(self.dataset, self.rules, self.weights, self.cfg)
        except AlchemistError as e:
            return self._fail(e)
        self.result = result
        self.last_failure = None
        return result

    def _fail(self, error: AlchemistError) -> None:
        logger.error("%s", error)
        self.last_failure = error
        return None


__all__ = ["AppState"]
