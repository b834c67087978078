from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from deployforge.config.types import Settings, TaskConfig
from deployforge.runner.types import TaskResult


@dataclass
class OrchestratorContext:
    """
    Run-scoped state handed from the orchestrator to the executors.

    `flags` holds one boolean per finished task ("did it succeed this run"),
    which is what prerequisite gating reads. `on_running` and `on_record` are
    called from the orchestrator thread only.
    """

    settings: Settings = field(default_factory=Settings)
    results: dict[str, TaskResult] = field(default_factory=dict)
    flags: dict[str, bool] = field(default_factory=dict)
    on_running: Callable[[TaskConfig], None] | None = None
    on_record: Callable[[TaskConfig, TaskResult], None] | None = None

    def timeout_for(self, task: TaskConfig) -> float | None:
        if task.timeout_s is not None:
            return task.timeout_s
        return self.settings.default_timeout_s

    def prerequisite_satisfied(self, task: TaskConfig) -> bool:
        if task.prerequisite is None:
            return True
        return self.flags.get(task.prerequisite, False)

    def mark_running(self, task: TaskConfig) -> None:
        if self.on_running is not None:
            self.on_running(task)

    def record(self, task: TaskConfig, result: TaskResult) -> TaskResult:
        if not result.status.is_terminal:
            raise ValueError(f"{task.name}: cannot record non-final status {result.status.value}")

        self.results[task.name] = result
        self.flags[task.name] = result.ok
        if self.on_record is not None:
            self.on_record(task, result)
        return result
