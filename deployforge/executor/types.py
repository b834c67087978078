from __future__ import annotations

import logging
from dataclasses import dataclass

from deployforge.config.types import TaskConfig
from deployforge.report.aggregator import Summary
from deployforge.runner.types import TaskResult, TaskStatus

NETWORK_UNAVAILABLE = "network unavailable"
PREREQUISITE_NOT_SATISFIED = "prerequisite not satisfied"


@dataclass(frozen=True)
class RunReport:
    order: list[str]
    results: dict[str, TaskResult]
    summary: Summary

    @property
    def exit_code(self) -> int:
        return self.summary.exit_code

    def ordered_results(self) -> list[TaskResult]:
        return [self.results[name] for name in self.order if name in self.results]


def log_outcome(log: logging.Logger, task: TaskConfig, result: TaskResult) -> None:
    match result.status:
        case TaskStatus.SUCCESS:
            log.info(f"{task.name}: success ({result.duration_s:.1f}s, exit code {result.exit_code})")
        case TaskStatus.SKIPPED:
            log.warning(f"{task.name}: skipped, {result.error_message}")
        case TaskStatus.FAILED:
            # Critical only raises the severity; the pipeline keeps going.
            level = logging.ERROR if task.critical else logging.WARNING
            log.log(level, f"{task.name}: failed, {result.error_message}")
        case _:
            raise AssertionError("Unreachable")
