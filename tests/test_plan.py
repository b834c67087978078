import pytest

from deployforge.config.types import ExecutionGroup, RegistryConfig, TaskConfig
from deployforge.graph.dag import PrerequisiteGraph
from deployforge.graph.plan import build_plan
from deployforge.graph.types import CycleError, PlanError


def _registry(layout: dict[str, dict]) -> RegistryConfig:
    """
    layout: name -> {parallel?: str, order?: int, prerequisite?: str}
    Declaration order is the dict order; order defaults to it.
    """
    tasks: dict[str, TaskConfig] = {}
    for index, (name, fields) in enumerate(layout.items()):
        if "parallel" in fields:
            group = ExecutionGroup.parallel(fields["parallel"])
        else:
            group = ExecutionGroup.sequential(fields.get("order", index))
        tasks[name] = TaskConfig(
            name=name,
            handler=f"{name}.exe",
            group=group,
            prerequisite=fields.get("prerequisite"),
        )
    return RegistryConfig(tasks=tasks)


def _stages(plan) -> list[tuple[str | None, list[str]]]:
    return [(stage.group_id, [t.name for t in stage.tasks]) for stage in plan]


# -------------------------
# Prerequisite graph
# -------------------------


def test_chain_lists_prerequisites_nearest_first():
    registry = _registry({"A": {"prerequisite": "B"}, "B": {"prerequisite": "C"}, "C": {}})
    g = PrerequisiteGraph.from_registry(registry)
    assert g.chain("A") == ["A", "B", "C"]
    assert g.chain("C") == ["C"]


def test_cycle_detection_two_node_cycle():
    g = PrerequisiteGraph.from_registry(
        _registry({"A": {"prerequisite": "B"}, "B": {"prerequisite": "A"}})
    )
    with pytest.raises(CycleError) as e:
        g.check_acyclic()

    assert e.value.cycle == ["A", "B", "A"]


def test_cycle_reached_through_a_tail_reports_only_the_loop():
    g = PrerequisiteGraph.from_registry(
        _registry({"X": {"prerequisite": "A"}, "A": {"prerequisite": "B"}, "B": {"prerequisite": "A"}})
    )
    with pytest.raises(CycleError) as e:
        g.chain("X")

    assert e.value.cycle == ["A", "B", "A"]


def test_closure_includes_transitive_prerequisites():
    registry = _registry(
        {"D": {}, "B": {"prerequisite": "D"}, "A": {"prerequisite": "B"}, "X": {}}
    )
    g = PrerequisiteGraph.from_registry(registry)
    assert g.closure(["A"]) == {"A", "B", "D"}
    assert g.closure(["A", "X"]) == {"A", "B", "D", "X"}


def test_closure_unknown_target_raises_key_error():
    g = PrerequisiteGraph.from_registry(_registry({"A": {}}))
    with pytest.raises(KeyError):
        g.closure(["nope"])


# -------------------------
# Execution plan
# -------------------------


def test_parallel_groups_come_before_sequential_tail():
    registry = _registry(
        {
            "Winget": {},
            "Dell": {"parallel": "drivers"},
            "Apps": {},
            "Lenovo": {"parallel": "drivers"},
            "Wallpaper": {"parallel": "cosmetic"},
        }
    )
    plan = build_plan(registry)

    assert _stages(plan) == [
        ("drivers", ["Dell", "Lenovo"]),
        ("cosmetic", ["Wallpaper"]),
        (None, ["Winget", "Apps"]),
    ]
    assert plan.task_names() == ["Dell", "Lenovo", "Wallpaper", "Winget", "Apps"]
    assert plan.stages[0].is_parallel
    assert not plan.stages[-1].is_parallel


def test_sequential_tail_sorted_by_order_then_declaration():
    registry = _registry(
        {
            "late": {"order": 9},
            "first": {"order": 1},
            "tie_a": {"order": 5},
            "tie_b": {"order": 5},
        }
    )
    assert build_plan(registry).task_names() == ["first", "tie_a", "tie_b", "late"]


def test_prerequisite_in_earlier_parallel_group_is_fine():
    registry = _registry({"Drivers": {"parallel": "hw"}, "Tool": {"prerequisite": "Drivers"}})
    assert build_plan(registry).task_names() == ["Drivers", "Tool"]


def test_prerequisite_scheduled_after_dependent_raises():
    registry = _registry(
        {"Apps": {"order": 1, "prerequisite": "Winget"}, "Winget": {"order": 2}}
    )
    with pytest.raises(PlanError):
        build_plan(registry)


def test_plan_cycle_raises():
    registry = _registry({"A": {"prerequisite": "B"}, "B": {"prerequisite": "A"}})
    with pytest.raises(CycleError):
        build_plan(registry)


def test_plan_targets_pull_in_prerequisites_only():
    registry = _registry(
        {
            "Dell": {"parallel": "drivers"},
            "Winget": {},
            "Apps": {"prerequisite": "Winget"},
            "Wallpaper": {},
        }
    )
    plan = build_plan(registry, ["Apps"])

    assert _stages(plan) == [(None, ["Winget", "Apps"])]


def test_plan_unknown_target_raises_key_error():
    with pytest.raises(KeyError):
        build_plan(_registry({"A": {}}), ["nope"])
