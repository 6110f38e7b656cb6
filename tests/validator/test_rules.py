# tests/validator/test_rules.py
from __future__ import annotations

import pytest

from alchemist.errors import RuleError
from alchemist.schemas.models import BusinessRule, Dataset
from alchemist.validator.rules import (
    RuleEngine,
    RuleStrategy,
    detect_corun_cycle,
    detect_overlaps,
    find_corun_cycle,
    parse_rules,
    validate_rule_candidate,
)


# ---------- Helpers ----------
def mk_rule(rid, type_="coRun", active=True, **params):
    return BusinessRule(id=rid, type=type_, name=f"rule {rid}", parameters=params, active=active)


def mk_corun(rid, *tasks, active=True):
    return mk_rule(rid, "coRun", active=active, tasks=list(tasks))


def mk_task(tid, phases=(1,), skills=("python",), duration=1, max_concurrent=1):
    return {
        "taskId": tid,
        "PreferredPhases": list(phases),
        "RequiredSkills": list(skills),
        "Duration": duration,
        "MaxConcurrent": max_concurrent,
    }


def mk_worker(wid, group="GroupA", slots=(1, 2), max_load=1, skills=("python",)):
    return {
        "workerId": wid,
        "WorkerGroup": group,
        "AvailableSlots": list(slots),
        "MaxLoadPerPhase": max_load,
        "skills": list(skills),
    }


def mk_dataset(workers=(), tasks=()):
    return Dataset.coerce({"workers": list(workers), "tasks": list(tasks)})


def types_of(issues):
    return [i.type for i in issues]


# ---------- Parsing ----------
def test_parse_rules_reports_unusable_entries():
    # --- Arrange ---
    raw = [
        {"id": "r1", "type": "coRun", "name": "pair", "parameters": {"tasks": ["T1", "T2"]}},
        {"id": "r2", "type": "teleport", "name": "bad"},
        mk_corun("r3", "T1", "T2"),
        {"id": "r4", "type": "coRun", "name": "loud", "priority": 42,
         "parameters": {"tasks": ["T1", "T2"]}},
        {"id": "r5", "type": "coRun", "name": "mute", "priority": 0,
         "parameters": {"tasks": ["T1", "T2"]}},
    ]

    # --- Act ---
    rules, issues = parse_rules(raw)

    # --- Assert ---
    assert [r.id for r in rules] == ["r1", "r3"]
    assert types_of(issues) == ["invalid_rule"] * 3
    assert [i.rule_id for i in issues] == ["r2", "r4", "r5"]
    assert issues[0].message.startswith("Rule #2 cannot be interpreted")
    assert "priority" in issues[1].message


def test_parse_rules_rejects_non_sequence():
    with pytest.raises(RuleError):
        parse_rules({"rules": []})
    assert parse_rules(None) == ([], [])


# ---------- Cycles ----------
def test_corun_triangle_is_one_cycle():
    """
    @brief
    Three rules closing a loop over three tasks produce exactly one error.
    """
    # --- Arrange ---
    rules = [mk_corun("r1", "T1", "T2"), mk_corun("r2", "T2", "T3"), mk_corun("r3", "T3", "T1")]

    # --- Act ---
    issues = detect_corun_cycle(rules)

    # --- Assert ---
    assert len(issues) == 1
    assert issues[0].type == "circular_corun"
    assert issues[0].severity == "error"
    assert issues[0].rule_id == "r1"
    assert issues[0].message.startswith("Circular coRun dependency: T1 -> ")
    for name in ("rule r1", "rule r2", "rule r3"):
        assert name in issues[0].message


def test_corun_chain_is_not_a_cycle():
    rules = [mk_corun("r1", "T1", "T2"), mk_corun("r2", "T2", "T3"), mk_corun("r3", "T3", "T4")]

    assert find_corun_cycle(rules) is None
    assert detect_corun_cycle(rules) == []


def test_inactive_rules_do_not_close_a_cycle():
    rules = [
        mk_corun("r1", "T1", "T2"),
        mk_corun("r2", "T2", "T3"),
        mk_corun("r3", "T3", "T1", active=False),
    ]

    assert detect_corun_cycle(rules) == []


def test_long_cycle_does_not_recurse():
    # --- Arrange ---
    n = 3000
    rules = [mk_corun(f"r{i}", f"T{i}", f"T{(i + 1) % n}") for i in range(n)]

    # --- Act ---
    cycle = find_corun_cycle(rules)

    # --- Assert ---
    assert cycle is not None
    assert len(cycle) == 2 * n


# ---------- Overlaps ----------
def test_task_in_two_corun_rules_is_a_conflict():
    rules = [mk_corun("r1", "T1", "T2"), mk_corun("r2", "T2", "T3")]

    issues = detect_overlaps(rules)

    assert len(issues) == 1
    assert issues[0].severity == "warning"
    assert issues[0].message == "Task T2 appears in multiple coRun rules: rule r1, rule r2"


def test_phase_window_overlap_is_a_conflict():
    rules = [
        mk_rule("p1", "phaseWindow", taskId="T1", allowedPhases=[1]),
        mk_rule("p2", "phaseWindow", taskId="T1", allowedPhases=[2]),
    ]

    issues = detect_overlaps(rules)

    assert types_of(issues) == ["rule_conflict"]
    assert issues[0].rule_id == "p1"


# ---------- Strategies ----------
def test_corun_structure():
    # --- Arrange ---
    ds = mk_dataset(tasks=[mk_task("T1", phases=(1,)), mk_task("T2", phases=(2,))])
    rules = [
        mk_corun("r1", "T1"),
        mk_corun("r2", "T1", "T9"),
        mk_corun("r3", "T1", "T2"),
    ]

    # --- Act ---
    issues = RuleEngine(ds, rules).check_structure()

    # --- Assert ---
    assert [(i.type, i.rule_id) for i in issues] == [
        ("invalid_corun_task", "r1"),
        ("invalid_corun_task", "r2"),
        ("incompatible_corun_phases", "r3"),
    ]


def test_corun_capacity_only_under_enforcement():
    # --- Arrange ---
    ds = mk_dataset(
        workers=[mk_worker("W1")],
        tasks=[mk_task("T1", max_concurrent=1), mk_task("T2", max_concurrent=1)],
    )
    engine = RuleEngine(ds, [mk_corun("r1", "T1", "T2")])

    # --- Act ---
    structural = engine.check_structure()
    enforced = engine.enforce()

    # --- Assert ---
    assert structural == []
    assert types_of(enforced) == ["corun_capacity_violation"]


def test_load_limit():
    # --- Arrange ---
    ds = mk_dataset(
        workers=[
            mk_worker("W1", slots=(1, 2), max_load=2),
            mk_worker("W2", slots=(1,), max_load=2),
        ]
    )
    rules = [
        mk_rule("l1", "loadLimit", workerGroup="Ghosts", maxSlotsPerPhase=0),
        mk_rule("l2", "loadLimit", workerGroup="GroupA", maxSlotsPerPhase=10),
        mk_rule("l3", "loadLimit", workerGroup="GroupA", maxSlotsPerPhase=3),
    ]

    # --- Act ---
    structural = RuleEngine(ds, rules).check_structure()
    enforced = RuleEngine(ds, rules[2:]).enforce()

    # --- Assert ---
    assert types_of(structural) == [
        "nonexistent_worker_group",
        "invalid_rule_parameters",
        "excessive_load_limit",
    ]
    assert structural[2].severity == "warning"
    assert types_of(enforced) == ["load_limit_violation"]
    assert "phase 1 load 4" in enforced[0].message


def test_phase_window():
    # --- Arrange ---
    ds = mk_dataset(tasks=[mk_task("T1", phases=(1, 2)), mk_task("T2", phases=())])
    rules = [
        mk_rule("p1", "phaseWindow", taskId="T1", allowedPhases=[3, 4]),
        mk_rule("p2", "phaseWindow", taskId="T2", allowedPhases=[1]),
        mk_rule("p3", "phaseWindow", taskId="T9", allowedPhases=[]),
    ]

    # --- Act ---
    issues = RuleEngine(ds, rules).check_structure()

    # --- Assert ---
    assert types_of(issues) == [
        "no_phase_overlap",
        "invalid_phase_window_task",
        "invalid_phase_window",
    ]
    assert issues[0].entity == "tasks"
    assert issues[0].row_index == 0


def test_phase_window_reports_unusable_phases():
    """
    @brief
    Unparseable or non-positive allowed phases are reported, not dropped.

    @details
    The remaining valid phase must not hide the defect, and enforcement adds
    no window violation on top of it.
    """
    # --- Arrange ---
    ds = mk_dataset(tasks=[mk_task("T1", phases=(2,))])
    rule = mk_rule("p1", "phaseWindow", taskId="T1", allowedPhases=[1, "x", 0])

    # --- Act ---
    structural = RuleEngine(ds, [rule]).check_structure()
    enforced = RuleEngine(ds, [rule]).enforce()

    # --- Assert ---
    assert types_of(structural) == ["invalid_phase_window"]
    assert "'x'" in structural[0].message
    assert "0" in structural[0].message
    assert types_of(enforced) == ["invalid_phase_window"]


def test_oversized_phase_range_is_invalid():
    ds = mk_dataset(tasks=[mk_task("T1")])
    rule = mk_rule("p1", "phaseWindow", taskId="T1", allowedPhases="1-2000000000")

    issues = RuleEngine(ds, [rule]).check_structure()

    assert types_of(issues) == ["invalid_phase_window"]
    assert "1-2000000000" in issues[0].message


def test_strategy_without_structure_check_cannot_be_built():
    class Incomplete(RuleStrategy):
        rule_type = "incomplete"

    with pytest.raises(TypeError):
        Incomplete()


def test_phase_window_violation_under_enforcement():
    ds = mk_dataset(tasks=[mk_task("T1", phases=(1, 2, 3))])
    rule = mk_rule("p1", "phaseWindow", taskId="T1", allowedPhases="1-2")

    issues = RuleEngine(ds, [rule]).enforce()

    assert types_of(issues) == ["phase_window_violation"]
    assert "[3]" in issues[0].message


def test_slot_restriction():
    # --- Arrange ---
    ds = mk_dataset(
        workers=[mk_worker("W1", max_load=3), mk_worker("W2", group="GroupB", max_load=5)],
        tasks=[mk_task("T1", duration=4), mk_task("T2", duration=2)],
    )
    bad = mk_rule("s1", "slotRestriction", maxSlotsPerWorker=-1)
    grouped = mk_rule("s2", "slotRestriction", maxSlotsPerWorker=2, workerGroup="GroupA")
    total = mk_rule("s3", "slotRestriction", maxTotalSlots=5)

    # --- Act ---
    issues = RuleEngine(ds, [bad, grouped, total]).enforce()

    # --- Assert ---
    assert [(i.type, i.entity, i.row_index) for i in issues] == [
        ("slot_restriction", "rules", None),
        ("slot_restriction_worker_violation", "workers", 0),
        ("slot_restriction_phase_violation", "rules", None),
    ]


def test_non_object_parameters():
    ds = mk_dataset()
    rules = [
        BusinessRule(id="x1", type="slotRestriction", name="s", parameters=[1, 2]),
        BusinessRule(id="x2", type="coRun", name="c", parameters="T1,T2"),
    ]

    issues = RuleEngine(ds, rules).check_structure()

    assert types_of(issues) == ["slot_restriction", "invalid_rule_parameters"]


def test_pattern_match():
    # --- Arrange ---
    ds = mk_dataset(
        workers=[mk_worker("W1", skills=("python",))],
        tasks=[mk_task("T1", skills=("rust",))],
    )
    rules = [
        mk_rule("m1", "patternMatch", condition={"task.RequiredSkills": "rust",
                                                  "worker.skills": "rust"}),
        mk_rule("m2", "patternMatch", condition={"project.Name": "x"}),
        mk_rule("m3", "patternMatch"),
    ]

    # --- Act ---
    issues = RuleEngine(ds, rules).enforce()

    # --- Assert ---
    assert [(i.type, i.rule_id, i.severity) for i in issues] == [
        ("pattern_match_unmatched", "m1", "warning"),
        ("invalid_pattern", "m2", "error"),
        ("invalid_pattern", "m3", "error"),
    ]


def test_precedence_override_references():
    rules = [
        mk_corun("r1", "T1", "T2"),
        mk_rule("o1", "precedenceOverride", ruleIds=["r1", "ghost", "o1"]),
    ]

    issues = RuleEngine(mk_dataset(), rules).check_structure()
    refs = [i for i in issues if i.type == "invalid_precedence_reference"]

    assert [i.message.rsplit(" ", 1)[-1] for i in refs] == ["'ghost'", "'o1'"]


def test_inactive_rules_are_skipped():
    rules = [mk_rule("l1", "loadLimit", active=False, workerGroup="none", maxSlotsPerPhase=1)]

    assert RuleEngine(mk_dataset(), rules).enforce() == []


# ---------- Authoring pre-check ----------
@pytest.mark.parametrize(
    "payload, message",
    [
        ({"type": "patternMatch", "name": "x"}, "Invalid rule type"),
        ({"type": "coRun", "name": " "}, "Name is required"),
        ({"type": "coRun", "name": "x", "priority": 11}, "Priority must be between 1 and 10"),
        ({"type": "coRun", "name": "x", "parameters": {"tasks": ["T1"]}},
         "coRun must have >= 2 tasks"),
        ({"type": "coRun", "name": "x", "parameters": {"tasks": ["T1", "T9"]}},
         "Invalid task IDs in coRun"),
        ({"type": "loadLimit", "name": "x", "parameters": {"workerGroup": "Nope"}},
         "Invalid workerGroup"),
        ({"type": "loadLimit", "name": "x",
          "parameters": {"workerGroup": "GroupA", "maxSlotsPerPhase": 0}},
         "maxSlotsPerPhase must be > 0"),
        ({"type": "phaseWindow", "name": "x", "parameters": {"taskId": "T9"}},
         "Invalid taskId in phaseWindow"),
        ({"type": "phaseWindow", "name": "x", "parameters": {"taskId": "T1"}},
         "allowedPhases must be non-empty"),
        ({"type": "slotRestriction", "name": "x", "parameters": [1]},
         "parameters must be object"),
        ({"type": "coRun", "name": "x", "parameters": {"tasks": ["T1", "T2"]},
          "confidence": 1.5},
         "Confidence must be between 0 and 1"),
    ],
)
def test_rule_candidate_messages(payload, message):
    ds = mk_dataset(workers=[mk_worker("W1")], tasks=[mk_task("T1"), mk_task("T2")])

    assert validate_rule_candidate(payload, ds) == message


def test_rule_candidate_accepted():
    ds = mk_dataset(workers=[mk_worker("W1")], tasks=[mk_task("T1"), mk_task("T2")])
    rule = mk_corun("r1", "T1", "T2")

    assert validate_rule_candidate(rule, ds) is None
