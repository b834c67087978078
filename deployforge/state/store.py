from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from deployforge.log import get_logger
from deployforge.runner.types import TaskResult, TaskStatus, utc_now

log = get_logger("state")

UNKNOWN_STATUS = "Unknown"


class StateStoreError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


@dataclass(frozen=True)
class StateRecord:
    status: str
    timestamp: str | None = None
    exit_code: int | None = None
    error_message: str | None = None
    version: str | None = None

    @classmethod
    def from_result(cls, result: TaskResult, version: str | None = None) -> StateRecord:
        return cls(
            status=result.status.value,
            timestamp=result.timestamp.isoformat(),
            exit_code=result.exit_code,
            error_message=result.error_message,
            version=version,
        )

    @classmethod
    def from_raw(cls, raw: Any) -> StateRecord:
        """Lenient: whatever a previous, possibly interrupted, run left behind."""
        if not isinstance(raw, Mapping):
            return cls(status=UNKNOWN_STATUS)

        status = raw.get("Status")
        exit_code = raw.get("ExitCode")
        if isinstance(exit_code, bool) or not isinstance(exit_code, int):
            exit_code = None

        return cls(
            status=status if isinstance(status, str) and status else UNKNOWN_STATUS,
            timestamp=_str_or_none(raw.get("Timestamp")),
            exit_code=exit_code,
            error_message=_str_or_none(raw.get("ErrorMessage")),
            version=_str_or_none(raw.get("Version")),
        )

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"Status": self.status, "Timestamp": self.timestamp}
        if self.exit_code is not None:
            out["ExitCode"] = self.exit_code
        if self.error_message is not None:
            out["ErrorMessage"] = self.error_message
        if self.version is not None:
            out["Version"] = self.version
        return out


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


class StateStore:
    """
    Last known outcome per task name, kept in one JSON file.

    Every write replaces the whole file through a temporary sibling and
    `os.replace`, so readers only ever see a complete document. There is a
    single writer (the orchestrator thread), hence no locking.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._records: dict[str, Any] = {}

    @classmethod
    def open(cls, path: str | Path, *, read_only: bool = False) -> StateStore:
        store = cls(Path(path).expanduser())
        if not read_only:
            try:
                store.path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StateStoreError(f"Cannot create state directory {store.path.parent}: {exc}") from exc
            store._check_writable()
        store.reload()
        return store

    def _check_writable(self) -> None:
        try:
            fd, tmp_name = self._temp_sibling()
        except OSError as exc:
            raise StateStoreError(f"State directory {self.path.parent} is not writable: {exc}") from exc
        os.close(fd)
        Path(tmp_name).unlink(missing_ok=True)

    def _temp_sibling(self) -> tuple[int, str]:
        return tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")

    def reload(self) -> None:
        if not self.path.exists():
            self._records = {}
            return

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            raise StateStoreError(f"Cannot read state file {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise StateStoreError(f"{self.path}: invalid JSON") from exc

        if not isinstance(raw, Mapping):
            raise StateStoreError(f"{self.path}: top-level value is not an object")

        tasks = raw.get("tasks", {})
        self._records = dict(tasks) if isinstance(tasks, Mapping) else {}

    def put(self, task_name: str, result: TaskResult, version: str | None = None) -> StateRecord:
        record = StateRecord.from_result(result, version)
        self._write(task_name, record)
        return record

    def mark_running(self, task_name: str, version: str | None = None) -> StateRecord:
        record = StateRecord(
            status=TaskStatus.RUNNING.value,
            timestamp=utc_now().isoformat(),
            version=version,
        )
        self._write(task_name, record)
        return record

    def get(self, task_name: str) -> StateRecord | None:
        if task_name not in self._records:
            return None
        return StateRecord.from_raw(self._records[task_name])

    def get_all(self) -> dict[str, StateRecord]:
        return {name: StateRecord.from_raw(raw) for name, raw in self._records.items()}

    def __len__(self):
        return len(self._records)

    def _write(self, task_name: str, record: StateRecord) -> None:
        records = {**self._records, task_name: record.as_dict()}
        payload = json.dumps({"tasks": records}, indent=2, sort_keys=True)

        try:
            fd, tmp_name = self._temp_sibling()
        except OSError as exc:
            raise StateStoreError(f"Cannot write state file {self.path}: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StateStoreError(f"Cannot write state file {self.path}: {exc}") from exc

        self._records = records
