import json
import tomllib
from pathlib import Path
from typing import Any, Mapping

import yaml

from .types import (
    BUILTIN_SUCCESS_CODES,
    DEFAULT_SUCCESS_CODES,
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

DEFAULT_STATE_FILE = "deployforge-state.json"

_TASK_KEYS = {
    "handler",
    "args",
    "parallel",
    "order",
    "requires_network",
    "requires_stable_network",
    "critical",
    "prerequisite",
    "success_codes",
    "timeout_s",
    "retry",
    "env",
    "working_dir",
    "version",
}
_SETTINGS_KEYS = {"state_file", "default_timeout_s", "success_codes", "network"}
_NETWORK_KEYS = {
    "probe_url",
    "probe_timeout_s",
    "stability_probes",
    "stability_interval_s",
    "retry",
}
_RETRY_KEYS = {"max_attempts", "delay_s", "backoff", "max_delay_s"}


def load_registry(path: str | Path) -> RegistryConfig:
    pure_path = Path(path).expanduser().resolve()

    if not pure_path.exists():
        raise ConfigError(f"Config file not found: {pure_path}")

    if not pure_path.is_file():
        raise ConfigError(f"Config path is not a file: {pure_path}")

    fmt = _detect_format(pure_path)
    raw_file = _parse_file(pure_path, fmt)
    registry = _build_registry(raw_file, pure_path.parent)
    registry.source = str(pure_path)
    return registry


def _detect_format(path: Path) -> str:
    fmt = path.suffix
    match fmt:
        case ".yaml" | ".yml":
            return "yaml"
        case ".toml":
            return "toml"
        case ".json":
            return "json"
        case _:
            raise UnsupportedConfigFormatError(
                f"Non supported file extension: {fmt}\n Expected format: .yml/.yaml, .toml, .json"
            )


def _parse_file(path: Path, fmt: str) -> Mapping[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"{path}: cannot read file") from exc

    match fmt:
        case "yaml":
            try:
                raw_file = yaml.safe_load(text)
            except yaml.YAMLError as exc:
                raise ConfigError(f"{path}: invalid YAML") from exc
        case "toml":
            try:
                raw_file = tomllib.loads(text)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigError(f"{path}: invalid TOML") from exc
        case "json":
            try:
                raw_file = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"{path}: invalid JSON") from exc
        case _:
            raise AssertionError("Unreachable")

    if not isinstance(raw_file, Mapping):
        raise ConfigError(
            f"{path}: {fmt.upper()} parsed successfully but top-level value is not an object: {type(raw_file)}"
        )

    return raw_file


def _build_registry(raw: Mapping[str, Any], base_dir: Path) -> RegistryConfig:
    tasks: dict[str, TaskConfig] = {}

    unknown = set(raw.keys()) - {"tasks", "settings"}
    if unknown:
        raise ConfigError(f"Unknown top-level field(s): {', '.join(sorted(map(str, unknown)))}")

    settings = _build_settings(raw.get("settings"), base_dir)

    if "tasks" not in raw:
        raise ConfigError("Missing 'tasks' field")

    if not isinstance(raw["tasks"], Mapping):
        raise ConfigError(f"'tasks' must be a mapping, got {type(raw['tasks'])}")

    if len(raw["tasks"]) < 1:
        raise ConfigError("There must be at least one task in the config file")

    for index, (name, fields) in enumerate(raw["tasks"].items()):
        if not isinstance(name, str):
            raise ConfigError(f"Task name must be a string, got {type(name)}")

        if not isinstance(fields, Mapping):
            raise ConfigError(f"{name} must be a mapping")

        name_norm = name.strip()

        if len(name_norm) < 1:
            raise ConfigError("A task name can't be empty")

        if name_norm in tasks:
            raise ConfigError(f"Duplicate task name after normalization: {name_norm}")

        tasks[name_norm] = _build_task_config(name_norm, index, fields, settings, base_dir)

    for task in tasks.values():
        if task.prerequisite is None:
            continue
        if task.prerequisite not in tasks:
            raise ConfigError(
                f"Task '{task.name}' has unknown prerequisite '{task.prerequisite}'"
            )

    return RegistryConfig(tasks=tasks, settings=settings)


def _build_settings(raw: Any, base_dir: Path) -> Settings:
    state_file = str(base_dir / DEFAULT_STATE_FILE)

    if raw is None:
        return Settings(state_file=state_file)

    if not isinstance(raw, Mapping):
        raise ConfigError(f"'settings' must be a mapping, got {type(raw)}")

    _check_keys("settings", raw, _SETTINGS_KEYS)

    if "state_file" in raw:
        value = _non_empty_str("settings", "state_file", raw["state_file"])
        state_path = Path(value).expanduser()
        if not state_path.is_absolute():
            state_path = base_dir / state_path
        state_file = str(state_path)

    default_timeout_s = None
    if raw.get("default_timeout_s") is not None:
        default_timeout_s = _positive_number("settings", "default_timeout_s", raw["default_timeout_s"])

    success_codes = dict(BUILTIN_SUCCESS_CODES)
    if "success_codes" in raw:
        tables = raw["success_codes"]
        if not isinstance(tables, Mapping):
            raise ConfigError("settings: 'success_codes' should be a mapping of table name to codes")
        for table, codes in tables.items():
            if not isinstance(table, str) or len(table.strip()) < 1:
                raise ConfigError(f"settings: success code table name must be a non-empty string, got {table!r}")
            success_codes[table.strip()] = _code_list(f"settings.success_codes.{table}", codes)

    network = NetworkSettings()
    if "network" in raw:
        network = _build_network(raw["network"])

    return Settings(
        state_file=state_file,
        default_timeout_s=default_timeout_s,
        network=network,
        success_codes=success_codes,
    )


def _build_network(raw: Any) -> NetworkSettings:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"settings: 'network' must be a mapping, got {type(raw)}")

    _check_keys("settings.network", raw, _NETWORK_KEYS)
    defaults = NetworkSettings()
    where = "settings.network"

    probe_url = defaults.probe_url
    if "probe_url" in raw:
        probe_url = _non_empty_str(where, "probe_url", raw["probe_url"])

    probe_timeout_s = defaults.probe_timeout_s
    if "probe_timeout_s" in raw:
        probe_timeout_s = _positive_number(where, "probe_timeout_s", raw["probe_timeout_s"])

    stability_probes = defaults.stability_probes
    if "stability_probes" in raw:
        stability_probes = _int(where, "stability_probes", raw["stability_probes"], minimum=1)

    stability_interval_s = defaults.stability_interval_s
    if "stability_interval_s" in raw:
        stability_interval_s = _number(where, "stability_interval_s", raw["stability_interval_s"])

    retry = defaults.retry
    if "retry" in raw:
        retry = _build_retry(where, raw["retry"])

    return NetworkSettings(
        probe_url=probe_url,
        probe_timeout_s=probe_timeout_s,
        stability_probes=stability_probes,
        stability_interval_s=stability_interval_s,
        retry=retry,
    )


def _build_retry(where: str, raw: Any) -> RetryPolicy:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{where}: 'retry' should be a mapping")

    _check_keys(f"{where}.retry", raw, _RETRY_KEYS)
    defaults = RetryPolicy()

    max_attempts = defaults.max_attempts
    if "max_attempts" in raw:
        max_attempts = _int(where, "retry.max_attempts", raw["max_attempts"], minimum=1)

    delay_s = defaults.delay_s
    if "delay_s" in raw:
        delay_s = _number(where, "retry.delay_s", raw["delay_s"])

    backoff = defaults.backoff
    if "backoff" in raw:
        try:
            backoff = BackoffKind(raw["backoff"])
        except ValueError as exc:
            kinds = ", ".join(kind.value for kind in BackoffKind)
            raise ConfigError(
                f"{where}: unknown retry backoff {raw['backoff']!r}, expected one of: {kinds}"
            ) from exc

    max_delay_s = None
    if raw.get("max_delay_s") is not None:
        max_delay_s = _number(where, "retry.max_delay_s", raw["max_delay_s"])

    return RetryPolicy(
        max_attempts=max_attempts,
        delay_s=delay_s,
        backoff=backoff,
        max_delay_s=max_delay_s,
    )


def _build_task_config(
    name: str,
    index: int,
    fields: Mapping[str, Any],
    settings: Settings,
    base_dir: Path,
) -> TaskConfig:
    _check_keys(name, fields, _TASK_KEYS)

    if "handler" not in fields:
        raise ConfigError(f"{name}: missing 'handler'")

    handler = _resolve_handler(_non_empty_str(name, "handler", fields["handler"]), base_dir)

    args: list[str] = []
    if "args" in fields:
        if not isinstance(fields["args"], list):
            raise ConfigError(f"{name}: 'args' should be a list")
        for item in fields["args"]:
            if not isinstance(item, str):
                raise ConfigError(f"{name}: {item!r} should be a string in the args list")
            args.append(item)

    if "parallel" in fields and "order" in fields:
        raise ConfigError(f"{name}: 'parallel' and 'order' are mutually exclusive")

    if "parallel" in fields:
        group = ExecutionGroup.parallel(_non_empty_str(name, "parallel", fields["parallel"]))
    elif "order" in fields:
        group = ExecutionGroup.sequential(_int(name, "order", fields["order"]))
    else:
        group = ExecutionGroup.sequential(index)

    requires_network = _bool(name, "requires_network", fields.get("requires_network", False))
    requires_stable_network = _bool(
        name, "requires_stable_network", fields.get("requires_stable_network", False)
    )
    critical = _bool(name, "critical", fields.get("critical", False))

    prerequisite = None
    if "prerequisite" in fields:
        prerequisite = _non_empty_str(name, "prerequisite", fields["prerequisite"])

        if prerequisite == name:
            raise ConfigError(f"{name}: A task cannot be its own prerequisite")

        if group.is_parallel:
            raise ConfigError(f"{name}: only sequential tasks can declare a prerequisite")

    success_codes = DEFAULT_SUCCESS_CODES
    if "success_codes" in fields:
        raw_codes = fields["success_codes"]
        if isinstance(raw_codes, str):
            table = raw_codes.strip()
            if table not in settings.success_codes:
                raise ConfigError(f"{name}: unknown success code table '{table}'")
            success_codes = settings.success_codes[table]
        else:
            success_codes = _code_list(name, raw_codes)

    timeout_s = None
    if fields.get("timeout_s") is not None:
        timeout_s = _positive_number(name, "timeout_s", fields["timeout_s"])

    retry = RetryPolicy()
    if "retry" in fields:
        retry = _build_retry(name, fields["retry"])

    env = {}
    if "env" in fields:
        if not isinstance(fields["env"], Mapping):
            raise ConfigError(f"{name}: Env should be a mapping")

        for key, item in fields["env"].items():
            if not isinstance(key, str):
                raise ConfigError(f"{name}: {key} should be a string")

            if len(key.strip()) < 1:
                raise ConfigError(f"{name}: A key can't be empty")

            if not isinstance(item, str):
                raise ConfigError(f"{name}: {item} should be a string")

            env[key.strip()] = item

    working_dir = None
    if "working_dir" in fields:
        working_dir = _non_empty_str(name, "working_dir", fields["working_dir"])

    version = None
    if fields.get("version") is not None:
        version = _non_empty_str(name, "version", str(fields["version"]))

    return TaskConfig(
        name=name,
        handler=handler,
        group=group,
        args=args,
        requires_network=requires_network,
        requires_stable_network=requires_stable_network,
        critical=critical,
        prerequisite=prerequisite,
        success_codes=success_codes,
        timeout_s=timeout_s,
        retry=retry,
        env=env,
        working_dir=working_dir,
        version=version,
    )


def _resolve_handler(handler: str, base_dir: Path) -> str:
    path = Path(handler).expanduser()
    if path.is_absolute():
        return str(path)

    local = base_dir / path
    if local.exists():
        return str(local)

    # Left as-is, looked up on PATH when the task runs.
    return handler


def _check_keys(where: str, fields: Mapping[str, Any], allowed: set[str]) -> None:
    for key in fields.keys():
        if key not in allowed:
            raise ConfigError(f"{where}: Can't process: {key}")


def _non_empty_str(where: str, key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{where}: '{key}' should be a string")

    if len(value.strip()) < 1:
        raise ConfigError(f"{where}: '{key}' can't be empty")

    return value.strip()


def _bool(where: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{where}: '{key}' should be true or false")
    return value


def _int(where: str, key: str, value: Any, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{where}: '{key}' should be an integer")

    if minimum is not None and value < minimum:
        raise ConfigError(f"{where}: '{key}' should be at least {minimum}")

    return value


def _number(where: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{where}: '{key}' should be a number")

    if value < 0:
        raise ConfigError(f"{where}: '{key}' can't be negative")

    return float(value)


def _positive_number(where: str, key: str, value: Any) -> float:
    number = _number(where, key, value)
    if number == 0:
        raise ConfigError(f"{where}: '{key}' should be greater than zero")
    return number


def _code_list(where: str, value: Any) -> frozenset[int]:
    if not isinstance(value, list) or len(value) < 1:
        raise ConfigError(f"{where}: success codes should be a non-empty list of integers")

    for code in value:
        if isinstance(code, bool) or not isinstance(code, int):
            raise ConfigError(f"{where}: success code {code!r} should be an integer")

    return frozenset(value)
