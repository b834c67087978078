from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class TaskStatus(Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCESS = "Success"
    FAILED = "Failed"
    SKIPPED = "Skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SUCCESS, TaskStatus.FAILED, TaskStatus.SKIPPED)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TaskResult:
    task_name: str
    status: TaskStatus
    exit_code: int | None = None
    error_message: str | None = None
    timestamp: datetime = field(default_factory=utc_now)
    duration_s: float = 0.0
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    attempts: int = 1

    @classmethod
    def skipped(cls, task_name: str, reason: str) -> TaskResult:
        return cls(task_name, TaskStatus.SKIPPED, error_message=reason, attempts=0)

    @classmethod
    def failed(cls, task_name: str, message: str, duration_s: float = 0.0) -> TaskResult:
        return cls(task_name, TaskStatus.FAILED, error_message=message, duration_s=duration_s)

    @property
    def ok(self) -> bool:
        return self.status is TaskStatus.SUCCESS


class RunnerError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class HandlerNotFoundError(RunnerError):
    def __init__(self, handler: str):
        super().__init__(f"handler not found: {handler}")
        self.handler = handler
