from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import pytest

from deployforge.config.types import ExecutionGroup, NetworkSettings, RetryPolicy, TaskConfig
from deployforge.log import logger
from deployforge.network.gate import NetworkGate


class FakeProbe:
    """Returns the scripted answers in order, then keeps repeating the last one."""

    def __init__(self, answers: list[bool]):
        self.answers = list(answers)
        self.calls = 0

    def __call__(self) -> bool:
        index = min(self.calls, len(self.answers) - 1)
        self.calls += 1
        return self.answers[index]


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture(autouse=True)
def _reset_log_handlers():
    # The CLI binds a handler to the stderr of the test that created it.
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def make_handler(tmp_path: Path) -> Callable[..., str]:
    """Write a Python handler script; the runner executes it with this interpreter."""

    def make(name: str, code: str = "raise SystemExit(0)") -> str:
        path = tmp_path / "handlers" / f"{name}.py"
        path.parent.mkdir(exist_ok=True)
        path.write_text(code, encoding="utf-8")
        return str(path)

    return make


@pytest.fixture
def make_task() -> Callable[..., TaskConfig]:
    def make(name: str, handler: str, *, parallel: str | None = None, order: int = 0, **fields) -> TaskConfig:
        group = ExecutionGroup.parallel(parallel) if parallel else ExecutionGroup.sequential(order)
        if "success_codes" in fields:
            fields["success_codes"] = frozenset(fields["success_codes"])
        return TaskConfig(name=name, handler=handler, group=group, **fields)

    return make


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_gate(sleep: RecordingSleep) -> Callable[..., tuple[NetworkGate, FakeProbe]]:
    def make(answers: list[bool], max_attempts: int = 3, delay_s: float = 5.0) -> tuple[NetworkGate, FakeProbe]:
        probe = FakeProbe(answers)
        settings = NetworkSettings(
            stability_probes=3,
            stability_interval_s=2.0,
            retry=RetryPolicy(max_attempts=max_attempts, delay_s=delay_s),
        )
        return NetworkGate(probe, settings, sleep=sleep), probe

    return make
