from __future__ import annotations

import os
import re
import shutil
import subprocess
import sys
import tempfile
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable

from deployforge.config.types import TaskConfig
from deployforge.log import get_logger

from .exitcodes import describe_exit_code
from .types import HandlerNotFoundError, RunnerError, TaskResult, TaskStatus, utc_now

log = get_logger("runner")

INTERPRETERS: dict[str, list[str]] = {
    ".ps1": [
        "powershell.exe",
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy",
        "Bypass",
        "-File",
    ],
    ".cmd": ["cmd.exe", "/c"],
    ".bat": ["cmd.exe", "/c"],
    ".py": [sys.executable],
}

ERROR_LINE = re.compile(r"error|fail|exception|fatal|denied", re.IGNORECASE)
MAX_ERROR_LINES = 5


def classify(
    task_name: str,
    exit_code: int | None,
    success_codes: Iterable[int],
    *,
    stdout: str = "",
    stderr: str = "",
    timed_out: bool = False,
    timeout_s: float | None = None,
    timestamp: datetime | None = None,
    duration_s: float = 0.0,
) -> TaskResult:
    """Map a finished process onto a TaskResult. Output never changes the status."""
    timestamp = timestamp or utc_now()

    if timed_out:
        message = f"timed out after {timeout_s:g}s" if timeout_s is not None else "timed out"
        return TaskResult(
            task_name,
            TaskStatus.FAILED,
            exit_code=None,
            error_message=message,
            timestamp=timestamp,
            duration_s=duration_s,
            stdout=stdout,
            stderr=stderr,
            timed_out=True,
        )

    if exit_code in frozenset(success_codes):
        return TaskResult(
            task_name,
            TaskStatus.SUCCESS,
            exit_code=exit_code,
            timestamp=timestamp,
            duration_s=duration_s,
            stdout=stdout,
            stderr=stderr,
        )

    message = describe_exit_code(exit_code) if exit_code is not None else "no exit code"
    fragments = [line.strip() for line in stderr.splitlines() if ERROR_LINE.search(line)]
    if fragments:
        message += ": " + " | ".join(fragments[:MAX_ERROR_LINES])

    return TaskResult(
        task_name,
        TaskStatus.FAILED,
        exit_code=exit_code,
        error_message=message,
        timestamp=timestamp,
        duration_s=duration_s,
        stdout=stdout,
        stderr=stderr,
    )


class RunningTask:
    """Handle on a launched handler process; `join()` waits and classifies it."""

    def __init__(
        self,
        task: TaskConfig,
        process: subprocess.Popen,
        stdout_path: Path,
        stderr_path: Path,
        timeout_s: float | None,
        on_done: Callable[[str], None],
    ):
        self.task = task
        self.process = process
        self.timeout_s = timeout_s
        self.timestamp = utc_now()
        self._started = time.monotonic()
        self._stdout_path = stdout_path
        self._stderr_path = stderr_path
        self._on_done = on_done
        self._result: TaskResult | None = None

    @property
    def status(self) -> TaskStatus:
        if self._result is None:
            return TaskStatus.RUNNING
        return self._result.status

    def join(self) -> TaskResult:
        if self._result is not None:
            return self._result

        timed_out = False
        try:
            exit_code = self.process.wait(timeout=self._remaining())
        except subprocess.TimeoutExpired:
            timed_out = True
            log.warning(f"{self.task.name}: timed out after {self.timeout_s:g}s, terminating")
            self.process.kill()
            exit_code = self.process.wait()
        finally:
            duration = time.monotonic() - self._started
            self._on_done(self.task.name)

        stdout, stderr = self._collect()
        self._result = classify(
            self.task.name,
            exit_code,
            self.task.success_codes,
            stdout=stdout,
            stderr=stderr,
            timed_out=timed_out,
            timeout_s=self.timeout_s,
            timestamp=self.timestamp,
            duration_s=duration,
        )
        return self._result

    def _remaining(self) -> float | None:
        if self.timeout_s is None:
            return None
        return max(0.0, self._started + self.timeout_s - time.monotonic())

    def _collect(self) -> tuple[str, str]:
        out = []
        for path in (self._stdout_path, self._stderr_path):
            try:
                out.append(path.read_text(encoding="utf-8", errors="replace"))
            except OSError:
                out.append("")
            finally:
                path.unlink(missing_ok=True)
        return out[0], out[1]


class TaskRunner:
    def __init__(self, temp_dir: str | Path | None = None):
        self.temp_dir = Path(temp_dir or tempfile.gettempdir())
        self._in_flight: set[str] = set()

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    def resolve_handler(self, handler: str) -> str | None:
        path = Path(handler)
        if path.is_file():
            return str(path)
        return shutil.which(handler)

    def command_for(self, task: TaskConfig, resolved: str) -> list[str]:
        prefix = INTERPRETERS.get(Path(resolved).suffix.lower(), [])
        return [*prefix, resolved, *task.args]

    def launch(self, task: TaskConfig, timeout_s: float | None = None) -> RunningTask:
        if task.name in self._in_flight:
            raise RunnerError(f"{task.name}: already running")

        resolved = self.resolve_handler(task.handler)
        if resolved is None:
            raise HandlerNotFoundError(task.handler)

        argv = self.command_for(task, resolved)
        stdout_path, stderr_path = self._sink_paths(task.name)
        log.debug(f"{task.name}: exec {' '.join(argv)}")

        try:
            with open(stdout_path, "wb") as out, open(stderr_path, "wb") as err:
                process = subprocess.Popen(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=err,
                    cwd=task.working_dir or None,
                    env={**os.environ, **task.env},
                    creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
                )
        except (OSError, ValueError) as exc:
            stdout_path.unlink(missing_ok=True)
            stderr_path.unlink(missing_ok=True)
            raise RunnerError(f"{task.name}: cannot start {resolved}: {exc}") from exc

        self._in_flight.add(task.name)
        return RunningTask(
            task, process, stdout_path, stderr_path, timeout_s, self._in_flight.discard
        )

    def run(self, task: TaskConfig, timeout_s: float | None = None) -> TaskResult:
        return self.launch(task, timeout_s).join()

    def _sink_paths(self, name: str) -> tuple[Path, Path]:
        safe = re.sub(r"[^A-Za-z0-9_.-]+", "_", name)
        stem = f"deployforge-{safe}-{uuid.uuid4().hex}"
        return self.temp_dir / f"{stem}.out", self.temp_dir / f"{stem}.err"
