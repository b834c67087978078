from __future__ import annotations

from dataclasses import dataclass

from deployforge.config.types import RegistryConfig, TaskConfig

from .dag import PrerequisiteGraph
from .types import PlanError


@dataclass(frozen=True)
class Stage:
    """One step of the plan: a parallel group, or the sequential tail."""

    group_id: str | None
    tasks: tuple[TaskConfig, ...]

    @property
    def is_parallel(self) -> bool:
        return self.group_id is not None

    @property
    def label(self) -> str:
        if self.is_parallel:
            return f"parallel group '{self.group_id}'"
        return "sequential"


@dataclass(frozen=True)
class ExecutionPlan:
    stages: tuple[Stage, ...]

    def __iter__(self):
        yield from self.stages

    def __len__(self):
        return len(self.stages)

    def task_names(self) -> list[str]:
        return [task.name for stage in self.stages for task in stage.tasks]


def build_plan(registry: RegistryConfig, targets: list[str] | None = None) -> ExecutionPlan:
    """
    Parallel groups run first, in the order their first member is declared.
    The sequential tail follows, sorted by `order` with declaration order
    breaking ties.
    """
    graph = PrerequisiteGraph.from_registry(registry)
    graph.check_acyclic()

    selected = graph.closure(targets) if targets else set(registry.task_names())

    groups: dict[str, list[TaskConfig]] = {}
    tail: list[tuple[int, int, TaskConfig]] = []

    for index, task in enumerate(registry):
        if task.name not in selected:
            continue
        if task.group.is_parallel:
            groups.setdefault(task.group.group_id, []).append(task)
        else:
            tail.append((task.group.order, index, task))

    stages = [Stage(group_id, tuple(members)) for group_id, members in groups.items()]
    if tail:
        tail.sort(key=lambda item: (item[0], item[1]))
        stages.append(Stage(None, tuple(task for _, _, task in tail)))

    _check_prerequisites_run_first(stages)
    return ExecutionPlan(tuple(stages))


def _check_prerequisites_run_first(stages: list[Stage]) -> None:
    rank: dict[str, int] = {}
    counter = 0
    for stage in stages:
        for task in stage.tasks:
            rank[task.name] = counter
            if not stage.is_parallel:
                counter += 1
        if stage.is_parallel:
            counter += 1

    for stage in stages:
        for task in stage.tasks:
            if task.prerequisite is None:
                continue
            if rank[task.prerequisite] >= rank[task.name]:
                raise PlanError(
                    f"Task '{task.name}' is scheduled before its prerequisite '{task.prerequisite}'"
                )
