from __future__ import annotations

import dataclasses
import time
from typing import Callable

from deployforge.config.types import TaskConfig
from deployforge.log import get_logger
from deployforge.network.gate import NetworkGate
from deployforge.runner.runner import TaskRunner
from deployforge.runner.types import HandlerNotFoundError, RunnerError, TaskResult, TaskStatus

from .context import OrchestratorContext
from .types import NETWORK_UNAVAILABLE, PREREQUISITE_NOT_SATISFIED, log_outcome

log = get_logger("executor.sequential")


class SequentialExecutor:
    def __init__(
        self,
        runner: TaskRunner,
        gate: NetworkGate,
        context: OrchestratorContext,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.runner = runner
        self.gate = gate
        self.context = context
        self.sleep = sleep

    def run_sequence(self, tasks: list[TaskConfig]) -> list[TaskResult]:
        results = []
        for task in tasks:
            result = self._run_one(task)
            log_outcome(log, task, result)
            # A failure never stops the sequence.
            results.append(self.context.record(task, result))
        return results

    def _run_one(self, task: TaskConfig) -> TaskResult:
        if not self.context.prerequisite_satisfied(task):
            return TaskResult.skipped(task.name, PREREQUISITE_NOT_SATISFIED)

        if self.runner.resolve_handler(task.handler) is None:
            return TaskResult.skipped(task.name, f"handler not found: {task.handler}")

        if task.needs_network:
            if not self.gate.wait_for_stability(require_stable=task.requires_stable_network):
                return TaskResult.skipped(task.name, NETWORK_UNAVAILABLE)

        policy = task.retry
        attempt = 1
        previous: TaskResult | None = None
        while True:
            result = self._attempt(task)
            if result.status is TaskStatus.SKIPPED:
                if previous is None:
                    return result
                # Handler vanished between attempts; the last real run stands.
                log.warning(f"{task.name}: {result.error_message}, giving up after attempt {attempt - 1}")
                return dataclasses.replace(previous, attempts=attempt - 1)
            if result.status is not TaskStatus.FAILED or attempt >= policy.max_attempts:
                break

            delay = policy.delay_for(attempt)
            log.warning(
                f"{task.name}: attempt {attempt}/{policy.max_attempts} failed "
                f"({result.error_message}), retrying in {delay:g}s"
            )
            self.sleep(delay)
            previous = result
            attempt += 1

        return dataclasses.replace(result, attempts=attempt)

    def _attempt(self, task: TaskConfig) -> TaskResult:
        self.context.mark_running(task)
        log.info(f"{task.name}: running")
        started = time.monotonic()
        try:
            return self.runner.run(task, self.context.timeout_for(task))
        except HandlerNotFoundError as exc:
            return TaskResult.skipped(task.name, str(exc))
        except RunnerError as exc:
            return TaskResult.failed(task.name, str(exc), time.monotonic() - started)
