"""CLI entry point for docket."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from docket.models import BatchManifest, Progress
    from docket.registry import ServiceRegistry

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the docket CLI."""
    parser = argparse.ArgumentParser(
        prog="docket",
        description="Token-bounded batches and a validation-gated task queue",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Generate .docket/docket.toml from source defaults",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log progress to stderr",
    )

    subparsers = parser.add_subparsers(dest="command")

    plan_parser = subparsers.add_parser("plan", help="Scan, batch and plan tasks")
    plan_parser.add_argument(
        "--fresh",
        action="store_true",
        help="Discard the stored plan and task history first",
    )
    plan_parser.add_argument(
        "--priority",
        action="append",
        default=[],
        metavar="PATH=N",
        help="Override the priority of a file's task (repeatable)",
    )

    subparsers.add_parser("next", help="Claim the next eligible task")

    submit_parser = subparsers.add_parser("submit", help="Submit outputs for a task")
    submit_parser.add_argument("task_id")
    submit_parser.add_argument(
        "--output",
        action="append",
        default=[],
        dest="outputs",
        metavar="PATH",
        help="Produced file, relative to the output directory (repeatable)",
    )
    submit_parser.add_argument("--notes", default="", help="Implementation notes")

    subparsers.add_parser("status", help="Show progress")

    reset_parser = subparsers.add_parser("reset", help="Return a failed task to pending")
    reset_parser.add_argument("task_id")

    skip_parser = subparsers.add_parser("skip", help="Skip a pending or failed task")
    skip_parser.add_argument("task_id")
    skip_parser.add_argument("--reason", default="")

    _args = parser.parse_args(argv)

    if _args.verbose:
        _configure_logging(logging.INFO)

    if _args.init:
        from docket.config import init_config

        path = init_config(Path.cwd())
        print(f"Wrote {path}")
        return 0

    if _args.command is None:
        parser.print_help()
        return 0

    from docket.errors import DocketError
    from docket.pipeline import build_registry

    project_root = Path.cwd()
    registry = build_registry(project_root)
    try:
        return _run(_args, project_root, registry)
    except DocketError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    finally:
        registry.close()


def _run(args: argparse.Namespace, project_root: Path, registry: ServiceRegistry) -> int:
    from docket.models import Dispatched, Submission

    console = Console()

    if args.command == "plan":
        from docket.pipeline import prepare_project

        result = prepare_project(
            project_root,
            registry,
            priorities=_parse_priorities(args.priority),
            fresh=args.fresh,
        )
        console.print(_manifest_table(result.manifest))
        console.print(f"{result.task_count} tasks planned")
        return 0

    dispatcher = registry.get("dispatcher")

    if args.command == "next":
        outcome = dispatcher.next_task()
        print(outcome.model_dump_json(indent=2))
        return 0 if isinstance(outcome, Dispatched) else 3

    if args.command == "submit":
        result = dispatcher.submit_completion(
            Submission(task_id=args.task_id, outputs=args.outputs, notes=args.notes)
        )
        print(result.model_dump_json(indent=2))
        return 0 if result.accepted else 4

    if args.command == "status":
        console.print(_progress_table(dispatcher.status()))
        return 0

    if args.command == "reset":
        task = dispatcher.reset_task(args.task_id)
        print(f"{task.id}: {task.status.value}")
        return 0

    if args.command == "skip":
        task = dispatcher.skip_task(args.task_id, args.reason)
        print(f"{task.id}: {task.status.value}")
        return 0

    return 0


def _parse_priorities(values: list[str]) -> dict[str, int]:
    priorities: dict[str, int] = {}
    for value in values:
        path, sep, number = value.rpartition("=")
        if not sep or not path:
            msg = f"Invalid priority override {value!r}, expected PATH=N"
            raise ValueError(msg)
        priorities[path] = int(number)
    return priorities


def _manifest_table(manifest: BatchManifest) -> Table:
    table = Table(title="Batches")
    table.add_column("Batch", style="bold")
    table.add_column("Strategy")
    table.add_column("Tokens", justify="right")
    table.add_column("Files")
    for batch in manifest.batches:
        table.add_row(
            batch.batch_id,
            batch.strategy.value,
            str(batch.tokens),
            ", ".join(batch.files),
        )
    table.caption = (
        f"{manifest.total_files} files, {manifest.total_batches} batches, "
        f"{len(manifest.deferred)} deferred, {len(manifest.skipped)} skipped"
    )
    return table


def _progress_table(progress: Progress) -> Table:
    table = Table(title="Progress", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Phase", progress.phase)
    table.add_row("Completed", f"{progress.completed}/{progress.total} ({progress.percentage}%)")
    table.add_row("Remaining", str(progress.remaining))
    table.add_row("Skipped", str(progress.skipped))
    table.add_row("Errors", str(progress.errored))
    table.add_row("Current task", progress.current_task or "-")
    table.add_row("Time remaining", progress.time_remaining)
    return table


def _configure_logging(level: int) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    root = logging.getLogger("docket")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def _get_version() -> str:
    from docket import __version__

    return __version__


if __name__ == "__main__":
    sys.exit(main())
