from .exitcodes import describe_exit_code
from .runner import RunningTask, TaskRunner, classify
from .types import HandlerNotFoundError, RunnerError, TaskResult, TaskStatus

__all__ = [
    "describe_exit_code",
    "RunningTask",
    "TaskRunner",
    "classify",
    "HandlerNotFoundError",
    "RunnerError",
    "TaskResult",
    "TaskStatus",
]
