# src/alchemist/validator/rules.py
"""
@brief
Business Rule Engine: per-type rule checks and cross-rule conflict detection.

@details
Every rule type is handled by one strategy exposing two entry points:
    - check_structure(): rule shape and immediate dataset compatibility
    - enforce():         structural checks plus the stricter satisfiability
                         checks run after edits
Enforcement is the union of both, so the two passes cannot drift apart.

Cross-rule conflicts (circular co-runs, overlapping rule membership) are
detected separately and run in both passes. Only active rules are checked;
rules are evaluated independently in insertion order.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, ClassVar

from pydantic import ValidationError as PydanticValidationError

from alchemist.errors import RuleError
from alchemist.schemas.fields import (
    id_key,
    number_or,
    parse_number,
    parse_text,
    phase_set,
    text_list,
)
from alchemist.schemas.models import (
    CORE_RULE_TYPES,
    ID_FIELDS,
    REQUIRED_FIELDS,
    BusinessRule,
    Dataset,
    ValidationIssue,
)
from alchemist.validator.capacity import phase_demand, qualified_workers
from alchemist.validator.issues import error, warning
from alchemist.validator.normalizer import normalize_field, parse_field

logger = logging.getLogger(__name__)

PATTERN_PREFIXES: dict[str, str] = {
    "client": "clients",
    "worker": "workers",
    "task": "tasks",
}


# ----------------------------
# RULE PARSING
# ----------------------------
def parse_rules(
    raw_rules: Iterable[Any] | None,
) -> tuple[list[BusinessRule], list[ValidationIssue]]:
    """
    @brief
    Turn rule-builder payloads into BusinessRule models.

    @details
    Rules that cannot be parsed become `invalid_rule` error issues instead of
    aborting the pass. Already-built BusinessRule instances pass through.

    @raises
        RuleError
            If the rule collection itself is not a sequence.
    """
    if raw_rules is None:
        return [], []
    if isinstance(raw_rules, (str, bytes, Mapping)) or not isinstance(raw_rules, Iterable):
        raise RuleError(
            f"Rules must be a list of rule objects, got {type(raw_rules).__name__}",
            source="rules.parse_rules",
            suggested_action="Pass rules as a JSON array or a list of BusinessRule.",
        )

    rules: list[BusinessRule] = []
    issues: list[ValidationIssue] = []
    for position, raw in enumerate(raw_rules):
        if isinstance(raw, BusinessRule):
            rules.append(raw)
            continue
        rule_id = raw.get("id") if isinstance(raw, Mapping) else None
        try:
            rules.append(BusinessRule.model_validate(raw))
        except PydanticValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) or "rule" for err in e.errors()})
            issues.append(
                error(
                    "invalid_rule",
                    f"Rule #{position + 1} cannot be interpreted (invalid: {', '.join(fields)})",
                    "rules",
                    rule_id=str(rule_id) if rule_id is not None else None,
                )
            )
    return rules, issues


# ----------------------------
# DATASET INDEX
# ----------------------------
class RuleContext:
    """
    @brief
    Read-only lookups shared by all rule strategies during one pass.

    @details
    Tasks are indexed by identifier (first occurrence wins, duplicates are
    reported by the structural validator); workers are grouped by WorkerGroup.
    """

    def __init__(self, dataset: Dataset, rules: Sequence[BusinessRule] = ()) -> None:
        self.dataset = dataset
        self.rule_ids: set[str] = {r.id for r in rules}

        self.task_rows: dict[str, int] = {}
        for idx, task in enumerate(dataset.tasks):
            key = id_key(task.get("taskId"))
            if key is not None and key not in self.task_rows:
                self.task_rows[key] = idx

        self.group_rows: dict[str, list[int]] = defaultdict(list)
        for idx, worker in enumerate(dataset.workers):
            group = parse_text(worker.get("WorkerGroup"))
            if group is not None:
                self.group_rows[group].append(idx)

    def task(self, task_id: Any) -> tuple[int, dict[str, Any]] | None:
        key = id_key(task_id)
        if key is None or key not in self.task_rows:
            return None
        idx = self.task_rows[key]
        return idx, self.dataset.tasks[idx]

    def group(self, name: Any) -> list[int]:
        key = parse_text(name)
        if key is None:
            return []
        return list(self.group_rows.get(key, []))


def _task_ids(value: Any) -> list[str]:
    """Unique task identifiers of a rule parameter, in given order."""
    seen: list[str] = []
    for item in normalize_field(value, parse_text) if value is not None else []:
        key = id_key(item)
        if key is not None and key not in seen:
            seen.append(key)
    return seen


def _phases(value: Any) -> tuple[set[int], list[Any]]:
    """Phase numbers of a rule parameter, and the elements that are not phases."""
    if value is None:
        return set(), []
    parsed = parse_field(value, parse_number, expand_ranges=True)
    phases: set[int] = set()
    invalid = list(parsed.dropped)
    for p in parsed.values:
        if isinstance(p, int) and p >= 1:
            phases.add(p)
        else:
            invalid.append(p)
    return phases, invalid


def _positive(value: Any) -> float | None:
    number = parse_number(value)
    if number is None or number <= 0:
        return None
    return number


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


# ----------------------------
# STRATEGIES
# ----------------------------
class RuleStrategy(ABC):
    """
    @brief
    Base class of the per-type rule checks.

    @details
    Subclasses implement `_structure` and optionally `_enforcement`. Rule
    parameters that are not a mapping are reported once with
    `invalid_params_type` and the type-specific checks are skipped.
    """

    rule_type: ClassVar[str] = ""
    invalid_params_type: ClassVar[str] = "invalid_rule_parameters"

    def check_structure(self, rule: BusinessRule, ctx: RuleContext) -> list[ValidationIssue]:
        if not isinstance(rule.parameters, Mapping):
            return [
                error(
                    self.invalid_params_type,
                    f"Rule '{rule.name}': parameters must be an object",
                    "rules",
                    field="parameters",
                    rule_id=rule.id,
                )
            ]
        return self._structure(rule, rule.parameters, ctx)

    def enforce(self, rule: BusinessRule, ctx: RuleContext) -> list[ValidationIssue]:
        issues = self.check_structure(rule, ctx)
        if isinstance(rule.parameters, Mapping):
            issues += self._enforcement(rule, rule.parameters, ctx)
        return issues

    @abstractmethod
    def _structure(
        self, rule: BusinessRule, params: Mapping[str, Any], ctx: RuleContext
    ) -> list[ValidationIssue]: ...

    def _enforcement(
        self, rule: BusinessRule, params: Mapping[str, Any], ctx: RuleContext
    ) -> list[ValidationIssue]:
        return []


class CoRunStrategy(RuleStrategy):
    """Tasks that must be schedulable within a common phase."""

    rule_type = "coRun"

    def _structure(self, rule, params, ctx):
        issues: list[ValidationIssue] = []
        task_ids = _task_ids(params.get("tasks"))

        # (1) At least two distinct tasks
        if len(task_ids) < 2:
            issues.append(
                error(
                    "invalid_corun_task",
                    f"coRun rule '{rule.name}' must list at least 2 tasks",
                    "rules",
                    field="tasks",
                    rule_id=rule.id,
                )
            )

        # (2) Every task exists
        unknown = [t for t in task_ids if ctx.task(t) is None]
        for task_id in unknown:
            issues.append(
                error(
                    "invalid_corun_task",
                    f"coRun rule '{rule.name}' references unknown task {task_id}",
                    "rules",
                    field="tasks",
                    rule_id=rule.id,
                )
            )
        if issues:
            return issues

        # (3) Common preferred phase
        common: set[int] | None = None
        for task_id in task_ids:
            _, task = ctx.task(task_id)
            phases = phase_set(task, "PreferredPhases")
            common = phases if common is None else common & phases
        if not common:
            issues.append(
                error(
                    "incompatible_corun_phases",
                    f"coRun rule '{rule.name}': tasks {', '.join(task_ids)} "
                    "share no preferred phase",
                    "rules",
                    field="tasks",
                    rule_id=rule.id,
                )
            )
        return issues

    def _enforcement(self, rule, params, ctx):
        task_ids = _task_ids(params.get("tasks"))
        if len(task_ids) < 2 or any(ctx.task(t) is None for t in task_ids):
            return []

        wanted = 0.0
        qualified: set[int] = set()
        for task_id in task_ids:
            _, task = ctx.task(task_id)
            wanted += number_or(task, "MaxConcurrent")
            qualified.update(qualified_workers(task, ctx.dataset.workers))

        if wanted > len(qualified):
            return [
                error(
                    "corun_capacity_violation",
                    f"coRun rule '{rule.name}': total MaxConcurrent ({_fmt(wanted)}) exceeds "
                    f"qualified workers ({len(qualified)})",
                    "rules",
                    field="tasks",
                    rule_id=rule.id,
                )
            ]
        return []


class LoadLimitStrategy(RuleStrategy):
    """Per-phase capacity cap for one worker group."""

    rule_type = "loadLimit"

    def _structure(self, rule, params, ctx):
        issues: list[ValidationIssue] = []
        group = params.get("workerGroup")
        members = ctx.group(group)
        limit = _positive(params.get("maxSlotsPerPhase"))

        if not members:
            issues.append(
                error(
                    "nonexistent_worker_group",
                    f"loadLimit rule '{rule.name}': worker group {group!r} has no workers",
                    "rules",
                    field="workerGroup",
                    rule_id=rule.id,
                )
            )
        if limit is None:
            issues.append(
                error(
                    "invalid_rule_parameters",
                    f"loadLimit rule '{rule.name}': maxSlotsPerPhase must be a number > 0",
                    "rules",
                    field="maxSlotsPerPhase",
                    rule_id=rule.id,
                )
            )
        if not members or limit is None:
            return issues

        workers = ctx.dataset.workers
        capacity = sum(
            len(phase_set(workers[i], "AvailableSlots")) * number_or(workers[i], "MaxLoadPerPhase")
            for i in members
        )
        if limit > capacity:
            issues.append(
                warning(
                    "excessive_load_limit",
                    f"loadLimit rule '{rule.name}': maxSlotsPerPhase ({_fmt(limit)}) exceeds "
                    f"group capacity ({_fmt(capacity)})",
                    "rules",
                    field="maxSlotsPerPhase",
                    rule_id=rule.id,
                )
            )
        return issues

    def _enforcement(self, rule, params, ctx):
        members = ctx.group(params.get("workerGroup"))
        limit = _positive(params.get("maxSlotsPerPhase"))
        if not members or limit is None:
            return []

        load: dict[int, float] = defaultdict(float)
        for i in members:
            worker = ctx.dataset.workers[i]
            per_phase = number_or(worker, "MaxLoadPerPhase")
            for phase in phase_set(worker, "AvailableSlots"):
                load[phase] += per_phase

        return [
            error(
                "load_limit_violation",
                f"loadLimit rule '{rule.name}': phase {phase} load {_fmt(load[phase])} "
                f"exceeds maxSlotsPerPhase {_fmt(limit)}",
                "rules",
                field="maxSlotsPerPhase",
                rule_id=rule.id,
            )
            for phase in sorted(load)
            if load[phase] > limit
        ]


class PhaseWindowStrategy(RuleStrategy):
    """Restriction of one task to an explicit set of phases."""

    rule_type = "phaseWindow"

    def _structure(self, rule, params, ctx):
        issues: list[ValidationIssue] = []
        found = ctx.task(params.get("taskId"))
        allowed, invalid = _phases(params.get("allowedPhases"))

        if found is None:
            issues.append(
                error(
                    "invalid_phase_window_task",
                    f"phaseWindow rule '{rule.name}' references unknown task "
                    f"{params.get('taskId')!r}",
                    "rules",
                    field="taskId",
                    rule_id=rule.id,
                )
            )
        if invalid:
            issues.append(
                error(
                    "invalid_phase_window",
                    f"phaseWindow rule '{rule.name}': allowedPhases contains invalid "
                    f"phase(s) {invalid}",
                    "rules",
                    field="allowedPhases",
                    rule_id=rule.id,
                )
            )
        elif not allowed:
            issues.append(
                error(
                    "invalid_phase_window",
                    f"phaseWindow rule '{rule.name}': allowedPhases must be a non-empty "
                    "list of phase numbers",
                    "rules",
                    field="allowedPhases",
                    rule_id=rule.id,
                )
            )
        if found is None or not allowed or invalid:
            return issues

        idx, task = found
        preferred = phase_set(task, "PreferredPhases")
        if preferred and not preferred & allowed:
            issues.append(
                error(
                    "no_phase_overlap",
                    f"phaseWindow rule '{rule.name}': PreferredPhases {sorted(preferred)} do not "
                    f"intersect allowed phases {sorted(allowed)}",
                    "tasks",
                    row_index=idx,
                    field="PreferredPhases",
                    rule_id=rule.id,
                )
            )
        return issues

    def _enforcement(self, rule, params, ctx):
        found = ctx.task(params.get("taskId"))
        allowed, invalid = _phases(params.get("allowedPhases"))
        if found is None or not allowed or invalid:
            return []

        idx, task = found
        outside = sorted(phase_set(task, "PreferredPhases") - allowed)
        if not outside:
            return []
        return [
            error(
                "phase_window_violation",
                f"phaseWindow rule '{rule.name}': preferred phase(s) {outside} outside "
                f"allowed phases {sorted(allowed)}",
                "tasks",
                row_index=idx,
                field="PreferredPhases",
                rule_id=rule.id,
            )
        ]


class SlotRestrictionStrategy(RuleStrategy):
    """Caps on per-worker load and on per-phase total task duration."""

    rule_type = "slotRestriction"
    invalid_params_type = "slot_restriction"

    LIMITS: ClassVar[tuple[str, ...]] = ("maxSlotsPerWorker", "maxTotalSlots")

    def _structure(self, rule, params, ctx):
        issues: list[ValidationIssue] = []
        for key in self.LIMITS:
            if params.get(key) is None:
                continue
            if _positive(params.get(key)) is None:
                issues.append(
                    error(
                        "slot_restriction",
                        f"slotRestriction rule '{rule.name}': {key} must be a number > 0",
                        "rules",
                        field=key,
                        rule_id=rule.id,
                    )
                )
        return issues

    def _enforcement(self, rule, params, ctx):
        issues: list[ValidationIssue] = []
        workers = ctx.dataset.workers

        # (1) Per-worker load, optionally restricted to one group
        per_worker = _positive(params.get("maxSlotsPerWorker"))
        if per_worker is not None:
            group = params.get("workerGroup")
            rows = ctx.group(group) if group is not None else range(len(workers))
            for idx in rows:
                load = number_or(workers[idx], "MaxLoadPerPhase")
                if load > per_worker:
                    issues.append(
                        error(
                            "slot_restriction_worker_violation",
                            f"slotRestriction rule '{rule.name}': MaxLoadPerPhase {_fmt(load)} "
                            f"exceeds maxSlotsPerWorker {_fmt(per_worker)}",
                            "workers",
                            row_index=idx,
                            field="MaxLoadPerPhase",
                            rule_id=rule.id,
                        )
                    )

        # (2) Cross-task per-phase total duration
        per_phase = _positive(params.get("maxTotalSlots"))
        if per_phase is not None:
            demand, _ = phase_demand(ctx.dataset.tasks)
            for phase in sorted(demand):
                if demand[phase] > per_phase:
                    issues.append(
                        error(
                            "slot_restriction_phase_violation",
                            f"slotRestriction rule '{rule.name}': phase {phase} total duration "
                            f"{_fmt(demand[phase])} exceeds maxTotalSlots {_fmt(per_phase)}",
                            "rules",
                            field="maxTotalSlots",
                            rule_id=rule.id,
                        )
                    )
        return issues


def _cell_matches(cell: Any, expected: Any) -> bool:
    if isinstance(cell, list):
        return any(_cell_matches(item, expected) for item in cell)
    if isinstance(expected, str):
        text = parse_text(cell)
        return text is not None and expected.strip().lower() in text.lower()
    number = parse_number(expected)
    if number is not None:
        return parse_number(cell) == number
    return cell == expected


class PatternMatchStrategy(RuleStrategy):
    """
    Conditions on entity fields, keyed "task.<Field>", "worker.<Field>" or
    "client.<Field>". String values match by substring, others by equality.
    """

    rule_type = "patternMatch"

    def _conditions(self, params: Mapping[str, Any]) -> dict[str, list[tuple[str, Any]]] | None:
        condition = params.get("condition")
        if not isinstance(condition, Mapping) or not condition:
            return None
        grouped: dict[str, list[tuple[str, Any]]] = defaultdict(list)
        for key, expected in condition.items():
            prefix, _, field = str(key).partition(".")
            entity = PATTERN_PREFIXES.get(prefix)
            if entity is None or field not in REQUIRED_FIELDS[entity]:
                return None
            grouped[entity].append((field, expected))
        return grouped

    def _structure(self, rule, params, ctx):
        condition = params.get("condition")
        if not isinstance(condition, Mapping) or not condition:
            return [
                error(
                    "invalid_pattern",
                    f"patternMatch rule '{rule.name}': condition must be a non-empty object",
                    "rules",
                    field="condition",
                    rule_id=rule.id,
                )
            ]

        issues: list[ValidationIssue] = []
        for key in condition:
            prefix, _, field = str(key).partition(".")
            entity = PATTERN_PREFIXES.get(prefix)
            if entity is None or field not in REQUIRED_FIELDS[entity]:
                issues.append(
                    error(
                        "invalid_pattern",
                        f"patternMatch rule '{rule.name}': unknown condition field {key!r}",
                        "rules",
                        field="condition",
                        rule_id=rule.id,
                    )
                )
        return issues

    def _matching(self, rows: Sequence[Mapping[str, Any]], conds: list[tuple[str, Any]]) -> int:
        return sum(
            1 for row in rows if all(_cell_matches(row.get(f), v) for f, v in conds)
        )

    def _enforcement(self, rule, params, ctx):
        grouped = self._conditions(params)
        if not grouped or "tasks" not in grouped or "workers" not in grouped:
            return []
        if self._matching(ctx.dataset.tasks, grouped["tasks"]) == 0:
            return []
        if self._matching(ctx.dataset.workers, grouped["workers"]) > 0:
            return []
        return [
            warning(
                "pattern_match_unmatched",
                f"patternMatch rule '{rule.name}': tasks match the condition but no worker does",
                "rules",
                field="condition",
                rule_id=rule.id,
            )
        ]


class PrecedenceOverrideStrategy(RuleStrategy):
    """Explicit precedence order over other rules."""

    rule_type = "precedenceOverride"

    def _structure(self, rule, params, ctx):
        refs = params.get("ruleIds")
        if not isinstance(refs, list) or not refs:
            return [
                error(
                    "invalid_precedence_reference",
                    f"precedenceOverride rule '{rule.name}': ruleIds must be a non-empty list",
                    "rules",
                    field="ruleIds",
                    rule_id=rule.id,
                )
            ]
        return [
            error(
                "invalid_precedence_reference",
                f"precedenceOverride rule '{rule.name}' references unknown rule {ref!r}",
                "rules",
                field="ruleIds",
                rule_id=rule.id,
            )
            for ref in refs
            if str(ref) == rule.id or str(ref) not in ctx.rule_ids
        ]


STRATEGIES: dict[str, RuleStrategy] = {
    s.rule_type: s
    for s in (
        CoRunStrategy(),
        LoadLimitStrategy(),
        PhaseWindowStrategy(),
        SlotRestrictionStrategy(),
        PatternMatchStrategy(),
        PrecedenceOverrideStrategy(),
    )
}


# ----------------------------
# CROSS-RULE CONFLICTS
# ----------------------------
_UNVISITED, _IN_PROGRESS, _DONE = 0, 1, 2


def find_corun_cycle(rules: Sequence[BusinessRule]) -> list[tuple[str, str]] | None:
    """
    @brief
    Find the first cycle linking coRun rules through shared tasks.

    @details
    Nodes are coRun rules and the tasks they list; each rule is linked to its
    (distinct) tasks. A chain of rules sharing one task each is acyclic, while
    rules closing a loop ({T1,T2}, {T2,T3}, {T3,T1}) form a cycle. Traversal
    is an iterative depth-first search with explicit node states, so deep
    rule sets cannot exhaust the call stack.

    @returns
        The cycle as a list of ("rule" | "task", id) nodes, or None.
    """
    adjacency: dict[tuple[str, str], list[tuple[str, str]]] = defaultdict(list)
    for rule in rules:
        if not isinstance(rule.parameters, Mapping):
            continue
        rule_node = ("rule", rule.id)
        for task_id in _task_ids(rule.parameters.get("tasks")):
            task_node = ("task", task_id)
            adjacency[rule_node].append(task_node)
            adjacency[task_node].append(rule_node)

    state: dict[tuple[str, str], int] = defaultdict(int)
    for root in list(adjacency):
        if state[root] != _UNVISITED:
            continue
        # stack entries: (node, parent, next neighbour position)
        stack: list[list[Any]] = [[root, None, 0]]
        state[root] = _IN_PROGRESS
        while stack:
            frame = stack[-1]
            node, parent, pos = frame
            neighbours = adjacency[node]
            if pos >= len(neighbours):
                state[node] = _DONE
                stack.pop()
                continue
            frame[2] = pos + 1
            nxt = neighbours[pos]
            if nxt == parent:
                continue
            if state[nxt] == _IN_PROGRESS:
                path = [f[0] for f in stack]
                return path[path.index(nxt):]
            if state[nxt] == _UNVISITED:
                state[nxt] = _IN_PROGRESS
                stack.append([nxt, node, 0])
    return None


def detect_corun_cycle(rules: Sequence[BusinessRule]) -> list[ValidationIssue]:
    """At most one `circular_corun` error per pass, over the active coRun rules."""
    corun = [r for r in rules if r.active and r.type == "coRun"]
    cycle = find_corun_cycle(corun)
    if not cycle:
        return []

    by_id = {r.id: r for r in corun}
    tasks = [node_id for kind, node_id in cycle if kind == "task"]
    rule_ids = [node_id for kind, node_id in cycle if kind == "rule"]
    return [
        error(
            "circular_corun",
            f"Circular coRun dependency: {' -> '.join(tasks + tasks[:1])} "
            f"(rules: {', '.join(by_id[r].name for r in rule_ids)})",
            "rules",
            rule_id=rule_ids[0],
        )
    ]


def detect_overlaps(rules: Sequence[BusinessRule]) -> list[ValidationIssue]:
    """
    @brief
    One `rule_conflict` warning per task listed in more than one active coRun
    rule, or in more than one active phaseWindow rule.
    """
    active = [r for r in rules if r.active]
    issues: list[ValidationIssue] = []
    for rule_type, key in (("coRun", "tasks"), ("phaseWindow", "taskId")):
        members: dict[str, list[BusinessRule]] = defaultdict(list)
        for rule in active:
            if rule.type != rule_type or not isinstance(rule.parameters, Mapping):
                continue
            for task_id in _task_ids(rule.parameters.get(key)):
                members[task_id].append(rule)
        for task_id, owners in members.items():
            if len(owners) > 1:
                issues.append(
                    warning(
                        "rule_conflict",
                        f"Task {task_id} appears in multiple {rule_type} rules: "
                        f"{', '.join(r.name for r in owners)}",
                        "rules",
                        rule_id=owners[0].id,
                    )
                )
    return issues


# ----------------------------
# ENGINE
# ----------------------------
class RuleEngine:
    """
    @brief
    Runs rule checks and conflict detection over one normalized dataset.
    """

    def __init__(self, dataset: Dataset, rules: Iterable[Any] | None = None) -> None:
        self.dataset = dataset
        self.rules, self.parse_issues = parse_rules(rules)
        self.ctx = RuleContext(dataset, self.rules)

    @property
    def active_rules(self) -> list[BusinessRule]:
        return [r for r in self.rules if r.active]

    def check_structure(self) -> list[ValidationIssue]:
        issues = list(self.parse_issues)
        for rule in self.active_rules:
            issues += STRATEGIES[rule.type].check_structure(rule, self.ctx)
        logger.debug("Structural rule pass: %d rule(s), %d issue(s)", len(self.rules), len(issues))
        return issues

    def enforce(self) -> list[ValidationIssue]:
        issues = list(self.parse_issues)
        for rule in self.active_rules:
            issues += STRATEGIES[rule.type].enforce(rule, self.ctx)
        logger.debug("Rule enforcement pass: %d rule(s), %d issue(s)", len(self.rules), len(issues))
        return issues

    def check_cycles(self) -> list[ValidationIssue]:
        return detect_corun_cycle(self.rules)

    def check_overlaps(self) -> list[ValidationIssue]:
        return detect_overlaps(self.rules)


# ----------------------------
# AUTHORING PRE-CHECK
# ----------------------------
def validate_rule_candidate(rule: BusinessRule | Mapping[str, Any], dataset: Dataset) -> str | None:
    """
    @brief
    Fail-fast check of one rule coming from the rule builder.

    @details
    Accepts only the four core rule types. Unlike the engine, it stops at the
    first problem and reports it as a single message.

    @returns
        None when the candidate is acceptable, otherwise the error message.
    """
    data = rule.model_dump() if isinstance(rule, BusinessRule) else dict(rule)
    rule_type = data.get("type")
    params = data.get("parameters")
    params = params if isinstance(params, Mapping) else {}

    if rule_type not in CORE_RULE_TYPES:
        return "Invalid rule type"
    if not parse_text(data.get("name")):
        return "Name is required"
    if data.get("priority") is not None:
        priority = parse_number(data["priority"])
        if priority is None or priority < 1 or priority > 10:
            return "Priority must be between 1 and 10"

    task_ids = {
        key for key in (id_key(t.get(ID_FIELDS["tasks"])) for t in dataset.tasks) if key is not None
    }
    groups = {
        g for g in (parse_text(w.get("WorkerGroup")) for w in dataset.workers) if g is not None
    }

    if rule_type == "coRun":
        tasks = params.get("tasks")
        if not isinstance(tasks, list) or len(tasks) < 2:
            return "coRun must have >= 2 tasks"
        if not all(id_key(t) in task_ids for t in tasks):
            return "Invalid task IDs in coRun"
    elif rule_type == "loadLimit":
        if parse_text(params.get("workerGroup")) not in groups:
            return "Invalid workerGroup"
        if _positive(params.get("maxSlotsPerPhase")) is None:
            return "maxSlotsPerPhase must be > 0"
    elif rule_type == "phaseWindow":
        if id_key(params.get("taskId")) not in task_ids:
            return "Invalid taskId in phaseWindow"
        allowed = params.get("allowedPhases")
        if not isinstance(allowed, list) or not allowed:
            return "allowedPhases must be non-empty"
    elif rule_type == "slotRestriction":
        if not isinstance(data.get("parameters"), Mapping):
            return "parameters must be object"

    confidence = data.get("confidence")
    if confidence is not None:
        value = parse_number(confidence)
        if value is None or value < 0 or value > 1:
            return "Confidence must be between 0 and 1"
    return None


__all__ = [
    "RuleContext",
    "RuleEngine",
    "RuleStrategy",
    "STRATEGIES",
    "detect_corun_cycle",
    "detect_overlaps",
    "find_corun_cycle",
    "parse_rules",
    "validate_rule_candidate",
]
