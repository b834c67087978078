from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

DEFAULT_SUCCESS_CODES: frozenset[int] = frozenset({0})

# Package-manager codes are reported as signed 32-bit integers.
BUILTIN_SUCCESS_CODES: dict[str, frozenset[int]] = {
    "strict": frozenset({0}),
    "msi": frozenset({0, 1641, 3010}),
    "winget": frozenset({0, 1641, 3010, -1978335189, -1978335135}),
}


class BackoffKind(Enum):
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 1
    delay_s: float = 0.0
    backoff: BackoffKind = BackoffKind.FIXED
    max_delay_s: float | None = None

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the `attempt`-th failed try (1-based)."""
        match self.backoff:
            case BackoffKind.FIXED:
                delay = self.delay_s
            case BackoffKind.LINEAR:
                delay = self.delay_s * attempt
            case BackoffKind.EXPONENTIAL:
                delay = self.delay_s * 2 ** (attempt - 1)
            case _:
                raise AssertionError("Unreachable")

        if self.max_delay_s is not None:
            delay = min(delay, self.max_delay_s)
        return delay


@dataclass(frozen=True)
class NetworkSettings:
    probe_url: str = "http://www.msftconnecttest.com/connecttest.txt"
    probe_timeout_s: float = 5.0
    stability_probes: int = 3
    stability_interval_s: float = 2.0
    retry: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(max_attempts=10, delay_s=5.0)
    )


@dataclass(frozen=True)
class Settings:
    state_file: str | None = None
    default_timeout_s: float | None = None
    network: NetworkSettings = field(default_factory=NetworkSettings)
    success_codes: dict[str, frozenset[int]] = field(
        default_factory=lambda: dict(BUILTIN_SUCCESS_CODES)
    )


@dataclass(frozen=True)
class ExecutionGroup:
    group_id: str | None = None
    order: int | None = None

    @classmethod
    def parallel(cls, group_id: str) -> ExecutionGroup:
        return cls(group_id=group_id)

    @classmethod
    def sequential(cls, order: int) -> ExecutionGroup:
        return cls(order=order)

    @property
    def is_parallel(self) -> bool:
        return self.group_id is not None


@dataclass
class TaskConfig:
    name: str
    handler: str
    group: ExecutionGroup
    args: list[str] = field(default_factory=list)
    requires_network: bool = False
    requires_stable_network: bool = False
    critical: bool = False
    prerequisite: str | None = None
    success_codes: frozenset[int] = DEFAULT_SUCCESS_CODES
    timeout_s: float | None = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    env: dict[str, str] = field(default_factory=dict)
    working_dir: str | None = None
    version: str | None = None

    @property
    def needs_network(self) -> bool:
        return self.requires_network or self.requires_stable_network


@dataclass
class RegistryConfig:
    tasks: dict[str, TaskConfig]
    settings: Settings = field(default_factory=Settings)
    source: str | None = None

    def __iter__(self):
        # Declaration order, not sorted: the plan depends on it.
        yield from self.tasks.values()

    def __len__(self):
        return len(self.tasks)

    def has_task(self, name: str) -> bool:
        return name in self.tasks

    def get_task(self, name: str) -> TaskConfig:
        if not self.has_task(name):
            raise KeyError(name)

        return self.tasks[name]

    def task_names(self) -> list[str]:
        return list(self.tasks.keys())


class ConfigError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class UnsupportedConfigFormatError(ConfigError):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)
