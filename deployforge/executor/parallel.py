from __future__ import annotations

from deployforge.config.types import TaskConfig
from deployforge.log import get_logger
from deployforge.network.gate import NetworkGate
from deployforge.runner.runner import RunningTask, TaskRunner
from deployforge.runner.types import HandlerNotFoundError, RunnerError, TaskResult

from .context import OrchestratorContext
from .types import NETWORK_UNAVAILABLE, log_outcome

log = get_logger("executor.parallel")


class ParallelGroupExecutor:
    """
    Launches every member of a group before joining any of them.

    Concurrency comes from the OS scheduling the child processes; this object
    stays on the orchestrator thread. Once launched, a group cannot be
    cancelled: each member is waited out (or hits its own timeout).
    """

    def __init__(self, runner: TaskRunner, gate: NetworkGate, context: OrchestratorContext):
        self.runner = runner
        self.gate = gate
        self.context = context

    def run_group(self, tasks: list[TaskConfig]) -> list[TaskResult]:
        results: dict[str, TaskResult] = {}
        launchable: list[TaskConfig] = []

        for task in tasks:
            if self.runner.resolve_handler(task.handler) is None:
                results[task.name] = self._finish(
                    task, TaskResult.skipped(task.name, f"handler not found: {task.handler}")
                )
            else:
                launchable.append(task)

        needing = [task for task in launchable if task.needs_network]
        if needing:
            stable = any(task.requires_stable_network for task in needing)
            if not self.gate.wait_for_stability(require_stable=stable):
                for task in needing:
                    results[task.name] = self._finish(
                        task, TaskResult.skipped(task.name, NETWORK_UNAVAILABLE)
                    )
                launchable = [task for task in launchable if not task.needs_network]

        running: list[RunningTask] = []
        for task in launchable:
            self.context.mark_running(task)
            try:
                running.append(self.runner.launch(task, self.context.timeout_for(task)))
                log.info(f"{task.name}: launched")
            except HandlerNotFoundError as exc:
                results[task.name] = self._finish(task, TaskResult.skipped(task.name, str(exc)))
            except RunnerError as exc:
                results[task.name] = self._finish(task, TaskResult.failed(task.name, str(exc)))

        # Join in launch order; completion order is whatever the OS makes it.
        for handle in running:
            results[handle.task.name] = self._finish(handle.task, handle.join())

        return [results[task.name] for task in tasks]

    def _finish(self, task: TaskConfig, result: TaskResult) -> TaskResult:
        log_outcome(log, task, result)
        return self.context.record(task, result)
