# tests/validator/test_weights.py
from __future__ import annotations

from alchemist.schemas.models import Dataset, PriorityWeights, WeightAdvisoryConfig
from alchemist.validator.weights import WeightAdvisory, check_weights, coerce_weights


# ---------- Helpers ----------
def mk_weights(**over):
    values = {
        "priorityLevel": 20,
        "taskFulfillment": 20,
        "fairnessConstraints": 20,
        "workloadBalance": 20,
        "skillMatching": 10,
        "phasePreference": 10,
    }
    values.update(over)
    return PriorityWeights.model_validate(values)


def mk_dataset(clients=(), workers=(), tasks=()):
    return Dataset.coerce(
        {"clients": list(clients), "workers": list(workers), "tasks": list(tasks)}
    )


def types_of(issues):
    return [i.type for i in issues]


# ---------- Weights only ----------
def test_balanced_weights_have_no_issues():
    assert WeightAdvisory(mk_weights()).check_weights() == []


def test_default_weights_flag_unused_phase_preference():
    issues = check_weights(PriorityWeights())

    assert types_of(issues) == ["zero_weight"]
    assert issues[0].field == "phasePreference"
    assert issues[0].severity == "warning"


def test_sum_zero_and_extreme_warnings():
    # --- Arrange ---
    weights = mk_weights(
        priorityLevel=80, taskFulfillment=0, fairnessConstraints=10, workloadBalance=10,
        skillMatching=10, phasePreference=10,
    )

    # --- Act ---
    issues = WeightAdvisory(weights).check_weights()

    # --- Assert ---
    assert types_of(issues) == [
        "weight_sum_mismatch",
        "zero_weight",
        "extreme_weight_distribution",
    ]
    assert issues[0].message == "Priority weights sum to 120, expected 100"
    assert issues[2].field == "priorityLevel"
    assert all(i.severity == "warning" for i in issues)


def test_invalid_weight_payload_is_a_warning():
    weights, issues = coerce_weights({"skillMatching": -5, "speed": 1})

    assert weights is None
    assert types_of(issues) == ["invalid_weights"]
    assert "skillMatching" in issues[0].message
    assert check_weights(None) == []


def test_threshold_is_configurable():
    cfg = WeightAdvisoryConfig(extreme_threshold=15)

    issues = WeightAdvisory(mk_weights(), cfg).check_weights()

    assert types_of(issues) == ["extreme_weight_distribution"] * 4


# ---------- Dataset-aware ----------
def test_skill_conflict_warns_then_escalates():
    """
    @brief
    Uncovered skills are warnings for an emphasized criterion and errors
    once the criterion dominates the total weight.
    """
    # --- Arrange ---
    ds = mk_dataset(
        workers=[{"workerId": "W1", "skills": ["python"]}],
        tasks=[
            {"taskId": "T1", "RequiredSkills": ["rust"]},
            {"taskId": "T2", "RequiredSkills": ["rust", "go"]},
        ],
    )
    emphasized = mk_weights(skillMatching=40, priorityLevel=10, taskFulfillment=10,
                            fairnessConstraints=10, workloadBalance=20, phasePreference=10)
    dominant = mk_weights(skillMatching=60, priorityLevel=10, taskFulfillment=10,
                          fairnessConstraints=10, workloadBalance=5, phasePreference=5)

    # --- Act ---
    soft = WeightAdvisory(emphasized).check_against_dataset(ds)
    hard = WeightAdvisory(dominant).check_against_dataset(ds)

    # --- Assert ---
    assert [(i.type, i.severity, i.row_index) for i in soft] == [
        ("skill_weight_conflict", "warning", 0),
        ("skill_weight_conflict", "warning", 1),
        ("skill_gap_pressure", "warning", None),
    ]
    assert [(i.type, i.severity) for i in hard] == [
        ("skill_weight_conflict", "error"),
        ("skill_weight_conflict", "error"),
        ("skill_gap_pressure", "warning"),
    ]
    assert hard[1].message.endswith("no worker has skill go")


def test_low_weight_skips_dataset_checks():
    ds = mk_dataset(tasks=[{"taskId": "T1", "RequiredSkills": ["rust"], "MaxConcurrent": 4}])

    assert WeightAdvisory(mk_weights()).check_against_dataset(ds) == []


def test_workload_conflict_and_capacity_pressure():
    # --- Arrange ---
    ds = mk_dataset(
        workers=[{"workerId": "W1", "skills": ["python"], "AvailableSlots": [1],
                  "MaxLoadPerPhase": 1}],
        tasks=[{"taskId": "T1", "RequiredSkills": ["python"], "MaxConcurrent": 3,
                "Duration": 2, "PreferredPhases": [1, 2]}],
    )
    weights = mk_weights(workloadBalance=40, priorityLevel=10, taskFulfillment=10,
                         fairnessConstraints=10, skillMatching=20, phasePreference=10)

    # --- Act ---
    issues = WeightAdvisory(weights).check_against_dataset(ds)

    # --- Assert ---
    assert [(i.type, i.severity) for i in issues] == [
        ("workload_weight_conflict", "warning"),
        ("workload_capacity_pressure", "warning"),
    ]
    assert issues[1].message == "Total task demand (4) exceeds total worker capacity (1)"


def test_priority_demand_pressure():
    ds = mk_dataset(
        clients=[
            {"clientId": "C1", "PriorityLevel": 5, "RequestedTaskIDs": ["T1", "T2"]},
            {"clientId": "C2", "PriorityLevel": 1, "RequestedTaskIDs": ["T3"]},
        ],
        workers=[{"workerId": "W1"}],
    )
    weights = mk_weights(priorityLevel=50, taskFulfillment=10, fairnessConstraints=10,
                         workloadBalance=10, skillMatching=10, phasePreference=10)

    issues = WeightAdvisory(weights).check_against_dataset(ds)

    assert types_of(issues) == ["priority_demand_pressure"]
    assert issues[0].field == "priorityLevel"
