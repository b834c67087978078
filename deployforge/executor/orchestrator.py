from __future__ import annotations

import time
from pathlib import Path
from typing import Callable

from deployforge.config import RegistryConfig, TaskConfig, load_registry
from deployforge.graph import ExecutionPlan, build_plan
from deployforge.log import get_logger
from deployforge.network.gate import NetworkGate
from deployforge.report.aggregator import summarize
from deployforge.runner.runner import TaskRunner
from deployforge.runner.types import TaskResult
from deployforge.state.store import StateStore, StateStoreError

from .context import OrchestratorContext
from .parallel import ParallelGroupExecutor
from .sequential import SequentialExecutor
from .types import RunReport

log = get_logger("orchestrator")


class Orchestrator:
    def __init__(
        self,
        registry: RegistryConfig,
        store: StateStore,
        *,
        runner: TaskRunner | None = None,
        gate: NetworkGate | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.registry = registry
        self.store = store
        self.runner = runner or TaskRunner()
        self.gate = gate or NetworkGate.from_settings(registry.settings.network)
        self.sleep = sleep
        self.context: OrchestratorContext | None = None

    @classmethod
    def from_config(cls, path: str | Path, state_file: str | Path | None = None) -> Orchestrator:
        """Load the registry and open the state store; both failures are fatal."""
        registry = load_registry(path)
        store = StateStore.open(state_file or registry.settings.state_file)
        return cls(registry, store)

    def plan(self, targets: list[str] | None = None) -> ExecutionPlan:
        return build_plan(self.registry, targets)

    def run(self, targets: list[str] | None = None) -> RunReport:
        plan = self.plan(targets)
        context = OrchestratorContext(
            settings=self.registry.settings,
            on_running=self._persist_running,
            on_record=self._persist,
        )
        self.context = context

        parallel = ParallelGroupExecutor(self.runner, self.gate, context)
        sequential = SequentialExecutor(self.runner, self.gate, context, sleep=self.sleep)

        order = plan.task_names()
        log.info(f"Starting deployment: {len(order)} task(s) in {len(plan)} stage(s)")

        for stage in plan:
            names = ", ".join(task.name for task in stage.tasks)
            log.info(f"Stage {stage.label}: {names}")
            if stage.is_parallel:
                parallel.run_group(list(stage.tasks))
            else:
                sequential.run_sequence(list(stage.tasks))

        summary = summarize(context.results[name] for name in order)
        log.info(
            f"Deployment finished: {summary.success} succeeded, "
            f"{summary.failed} failed, {summary.skipped} skipped"
        )
        return RunReport(order, dict(context.results), summary)

    def _persist_running(self, task: TaskConfig) -> None:
        try:
            self.store.mark_running(task.name, task.version)
        except StateStoreError as exc:
            log.error(f"{task.name}: could not persist running state: {exc}")

    def _persist(self, task: TaskConfig, result: TaskResult) -> None:
        try:
            self.store.put(task.name, result, task.version)
        except StateStoreError as exc:
            log.error(f"{task.name}: could not persist result: {exc}")
