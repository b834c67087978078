from __future__ import annotations

import argparse
import sys

from deployforge.config import ConfigError, load_registry
from deployforge.executor import Orchestrator, RunReport
from deployforge.graph import GraphError, build_plan
from deployforge.log import setup_logging
from deployforge.report import render_report, render_status
from deployforge.state import StateStore, StateStoreError

from .args import build_parser


def run_cli(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        setup_logging(args.log_level)

        match args.command:
            case "run":
                return cmd_run(args)
            case "list":
                return cmd_list(args)
            case "plan":
                return cmd_plan(args)
            case "status":
                return cmd_status(args)
            case _:
                return 2

    except (ConfigError, GraphError, StateStoreError) as exc:
        print(str(exc), file=sys.stderr)
        return 2

    except KeyError as exc:
        print(f"Unknown task: {exc.args[0]}", file=sys.stderr)
        return 2

    except KeyboardInterrupt:
        return 130


def main() -> None:
    sys.exit(run_cli())


def cmd_run(args: argparse.Namespace) -> int:
    orchestrator = Orchestrator.from_config(args.config, args.state_file)
    report = orchestrator.run(args.targets or None)
    critical = [task.name for task in orchestrator.registry if task.critical]
    _print_report(report, critical)
    return report.exit_code


def cmd_list(args: argparse.Namespace) -> int:
    registry = load_registry(args.config)
    for name in registry.task_names():
        print(name)
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    registry = load_registry(args.config)
    plan = build_plan(registry, args.targets or None)
    for stage in plan:
        names = " ".join(task.name for task in stage.tasks)
        print(f"{stage.label}: {names}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    state_file = args.state_file or load_registry(args.config).settings.state_file
    store = StateStore.open(state_file, read_only=True)
    records = store.get_all()
    if not records:
        print("No deployment state recorded")
        return 0
    for line in render_status(records):
        print(line)
    return 0


def _print_report(report: RunReport, critical: list[str]) -> None:
    for line in render_report(report.ordered_results(), report.summary, critical):
        print(line)
