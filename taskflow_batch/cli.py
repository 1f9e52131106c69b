"""
Command-line entry point for the automation commands.

Usage:
    taskflow auto-flow [--timeout HOURS] [--dry-run]
    taskflow workflow-schedule [--type all|timeout|health|reminder]
                               [--timeout HOURS] [--dry-run]

Common options:
    --database-url URL   SQLAlchemy URL (default: config database_url,
                         then $TASKFLOW_DATABASE_URL, then sqlite:///taskflow.db)
    --config PATH        Workflow YAML (default: $TASKFLOW_CONFIG or bundled)
    --log-level LEVEL    DEBUG, INFO, WARNING or ERROR (default: INFO)

Exit status is 0 when every examined task was handled, 1 when the command
failed or any task failed.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Sequence

from taskflow_config import get_active_config
from taskflow_kernel.db.engine import create_tables, init_engine_from_url, session_scope
from taskflow_kernel.exceptions import TaskflowError
from taskflow_kernel.logging_config import configure_logging, get_logger

from taskflow_batch.domain.types import AutomationRunResult
from taskflow_batch.orchestrator import (
    AUTO_FLOW,
    SCHEDULE_TYPES,
    WORKFLOW_SCHEDULE,
    AutomationOrchestrator,
)

logger = get_logger("batch.cli")

DATABASE_URL_ENV_VAR = "TASKFLOW_DATABASE_URL"
DEFAULT_DATABASE_URL = "sqlite:///taskflow.db"


def _non_negative_hours(value: str) -> float:
    try:
        hours = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None
    if hours < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative: {value!r}")
    return hours


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskflow",
        description="Run workflow automation sweeps over the task store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--timeout",
        type=_non_negative_hours,
        default=None,
        help="Timeout horizon in hours (default: config timeout_hours, 72).",
    )
    common.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would happen; change nothing and emit no events.",
    )
    common.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy database URL.",
    )
    common.add_argument(
        "--config",
        default=None,
        help="Path to a workflow YAML file.",
    )
    common.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Log level for the JSON logs on stderr.",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser(
        AUTO_FLOW,
        parents=[common],
        help="Timeout blocking, parent auto-completion, child auto-start.",
    )
    schedule = commands.add_parser(
        WORKFLOW_SCHEDULE,
        parents=[common],
        help="Timeout detection, health audit, reminders.",
    )
    schedule.add_argument(
        "--type",
        dest="schedule_type",
        default="all",
        choices=SCHEDULE_TYPES,
        help="Which part of the schedule to run (default: all).",
    )
    return parser


def format_counts(result: AutomationRunResult) -> str:
    """Per-category count table."""
    rows = [("category", "count")]
    rows.extend((category, str(count)) for category, count in result.counts.items())
    if result.failed:
        rows.append(("failed", str(result.failed)))
    width = max(len(name) for name, _ in rows)
    lines = [f"{name:<{width}}  {count:>5}" for name, count in rows]
    lines.insert(1, "-" * (width + 7))
    title = f"{result.command}{' (dry run)' if result.dry_run else ''}"
    return "\n".join([title, *lines])


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=getattr(logging, args.log_level))

    try:
        config = get_active_config(args.config)
        database_url = (
            args.database_url
            or config.database_url
            or os.environ.get(DATABASE_URL_ENV_VAR)
            or DEFAULT_DATABASE_URL
        )
        init_engine_from_url(database_url)
        create_tables()

        with session_scope() as session:
            orchestrator = AutomationOrchestrator.from_session(session, config=config)
            if args.command == AUTO_FLOW:
                result = orchestrator.run_auto_flow(
                    timeout_hours=args.timeout, dry_run=args.dry_run
                )
            else:
                result = orchestrator.run_workflow_schedule(
                    schedule_type=args.schedule_type,
                    timeout_hours=args.timeout,
                    dry_run=args.dry_run,
                )
    except TaskflowError as exc:
        logger.error(
            "automation_command_failed",
            extra={"command": args.command, "error_code": exc.code, "error": str(exc)},
        )
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        logger.exception("automation_command_crashed", extra={"command": args.command})
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    print(format_counts(result))
    return 0 if result.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
