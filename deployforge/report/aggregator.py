from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from deployforge.runner.types import TaskResult, TaskStatus
from deployforge.state.store import StateRecord


@dataclass(frozen=True)
class Summary:
    success: int
    failed: int
    skipped: int

    @property
    def total(self) -> int:
        return self.success + self.failed + self.skipped

    @property
    def exit_code(self) -> int:
        # Skipped tasks never fail the run.
        return 0 if self.failed == 0 else 1


def summarize(results: Iterable[TaskResult]) -> Summary:
    counts = {TaskStatus.SUCCESS: 0, TaskStatus.FAILED: 0, TaskStatus.SKIPPED: 0}
    for result in results:
        if result.status not in counts:
            raise ValueError(f"{result.task_name}: result is not final ({result.status.value})")
        counts[result.status] += 1

    return Summary(
        success=counts[TaskStatus.SUCCESS],
        failed=counts[TaskStatus.FAILED],
        skipped=counts[TaskStatus.SKIPPED],
    )


def render_report(
    results: Iterable[TaskResult],
    summary: Summary,
    critical: Iterable[str] = (),
) -> list[str]:
    critical = set(critical)
    lines = []

    for result in results:
        match result.status:
            case TaskStatus.SUCCESS:
                lines.append(
                    f"OK {result.task_name}, {result.duration_s:.3f}s, exit code = {result.exit_code}"
                )
            case TaskStatus.FAILED:
                marker = " [critical]" if result.task_name in critical else ""
                lines.append(
                    f"FAIL {result.task_name}{marker}, {result.duration_s:.3f}s, {result.error_message}"
                )
            case TaskStatus.SKIPPED:
                lines.append(f"SKIP {result.task_name} ({result.error_message})")
            case _:
                raise ValueError(f"{result.task_name}: result is not final ({result.status.value})")

    lines.append(
        f"Total: {summary.total}, Success: {summary.success}, "
        f"Failed: {summary.failed}, Skipped: {summary.skipped}"
    )
    return lines


def render_status(records: Mapping[str, StateRecord]) -> list[str]:
    lines = []
    for name, record in records.items():
        line = f"{record.status.upper()} {name}, {record.timestamp or 'unknown time'}"
        if record.exit_code is not None:
            line += f", exit code = {record.exit_code}"
        if record.version is not None:
            line += f", version {record.version}"
        if record.error_message:
            line += f", {record.error_message}"
        lines.append(line)
    return lines
