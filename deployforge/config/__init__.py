from .loader import load_registry
from .types import (
    BackoffKind,
    ConfigError,
    ExecutionGroup,
    NetworkSettings,
    RegistryConfig,
    RetryPolicy,
    Settings,
    TaskConfig,
    UnsupportedConfigFormatError,
)

__all__ = [
    "load_registry",
    "BackoffKind",
    "ConfigError",
    "ExecutionGroup",
    "NetworkSettings",
    "RegistryConfig",
    "RetryPolicy",
    "Settings",
    "TaskConfig",
    "UnsupportedConfigFormatError",
]
