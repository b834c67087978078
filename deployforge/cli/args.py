from __future__ import annotations

import argparse

from deployforge.log import LOG_LEVELS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deployforge")

    parser.add_argument(
        "--config",
        default="deployforge.yml",
        help="Path to the task registry file",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=LOG_LEVELS,
        help="Logging verbosity (default: $DEPLOYFORGE_LOG_LEVEL or INFO)",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        required=True,
    )

    # run
    run = subparsers.add_parser("run", help="Run the deployment pipeline")
    run.add_argument(
        "targets",
        nargs="*",
        help="Only run these tasks (and their prerequisites)",
    )
    run.add_argument(
        "--state-file",
        default=None,
        help="Override the state file from the registry settings",
    )

    # list
    subparsers.add_parser("list", help="List tasks")

    # plan
    plan = subparsers.add_parser("plan", help="Show execution stages")
    plan.add_argument(
        "targets",
        nargs="*",
        help="Only plan these tasks (and their prerequisites)",
    )

    # status
    status = subparsers.add_parser("status", help="Show last deployment status")
    status.add_argument(
        "--state-file",
        default=None,
        help="Override the state file from the registry settings",
    )

    return parser
