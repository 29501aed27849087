# =============================================================================
# chattube/cli/worker.py -- Ingestion Worker CLI
# =============================================================================
#
# Operator entry point for the ingestion queue.  One process runs one
# IngestionWorker; scale out by starting more processes against the same
# STORE_PATH.
#
# Subcommands:
#
#   start            Run the worker loop until SIGINT/SIGTERM
#   start --once     Run a single claim/execute cycle and exit
#   status           Print job counts per status
#   cleanup [days]   Delete done/failed jobs older than DAYS (default 7)
#                    and sweep stale temp files
#   enqueue ID       Enqueue a registered source under its stored kind
#   job-status ID    Print the latest job report for a source
#
# Usage examples:
#   chattube-worker start
#   python -m chattube.cli status
#   python -m chattube.cli cleanup 30
# =============================================================================

"""Command-line interface for the ingestion worker.

Usage::

    chattube-worker start
    chattube-worker status
    chattube-worker cleanup 14
    chattube-worker enqueue <source-id>
    chattube-worker job-status <source-id>
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from chattube.config.settings import Settings
from chattube.utils.errors import ChatTubeError
from chattube.utils.logging import configure_logging

# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_start(args: argparse.Namespace, app_settings: Settings) -> int:
    """Build every component and run the worker loop."""
    from chattube.main import build_components, close_components, initialize_components

    components = build_components(app_settings)
    worker = components["worker"]

    try:
        await initialize_components(components)
        if args.once:
            count = await worker.run_once()
            print(f"Processed {count} job(s).")
            return 0

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, worker.stop)
        try:
            await worker.run()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
    finally:
        await close_components(components)

    stats = worker.stats
    print(f"Worker stopped: {stats['completed']} completed, {stats['failed']} failed.")
    return 0


async def _handle_status(app_settings: Settings) -> int:
    """Display queue statistics."""
    from chattube.main import build_queue

    queue = build_queue(app_settings)
    await queue.initialize()
    stats = await queue.get_stats()

    print("Queue Statistics")
    print("=" * 40)
    print(f"  Pending:     {stats.pending}")
    print(f"  Processing:  {stats.processing}")
    print(f"  Done:        {stats.done}")
    print(f"  Failed:      {stats.failed}")
    print(f"  Total:       {stats.total}")
    return 0


async def _handle_cleanup(args: argparse.Namespace, app_settings: Settings) -> int:
    """Delete old terminal jobs and stale temp files."""
    from chattube.main import build_queue
    from chattube.utils.temp_files import sweep_stale_files

    if args.days is not None and args.days < 0:
        print("Error: days must not be negative.", file=sys.stderr)
        return 1

    queue = build_queue(app_settings)
    await queue.initialize()
    deleted = await queue.cleanup(args.days)
    swept = await asyncio.to_thread(
        sweep_stale_files, app_settings.temp_dir, app_settings.temp_file_max_age_hours
    )

    days = queue.policy.retention_days if args.days is None else args.days
    print(f"Deleted {deleted} job(s) older than {days} day(s).")
    print(f"Removed {swept} stale temp file(s).")
    return 0


async def _handle_enqueue(args: argparse.Namespace, app_settings: Settings) -> int:
    """Enqueue a source that already exists in the source store."""
    from chattube.main import build_queue
    from chattube.providers.store.sqlite_source_repository import SQLiteSourceRepository

    sources = SQLiteSourceRepository(app_settings.store_path)
    await sources.initialize()
    source = await sources.get(args.source_id)
    if source is None:
        print(f"Error: source '{args.source_id}' not found.", file=sys.stderr)
        return 1

    queue = build_queue(app_settings)
    await queue.initialize()
    job = await queue.enqueue(source.id, source.kind)

    print(f"Job {job.id} ({job.status.value}) for {source.kind.value} source {source.id}")
    return 0


async def _handle_job_status(args: argparse.Namespace, app_settings: Settings) -> int:
    """Print the most recent job report for a source."""
    from chattube.main import build_queue

    queue = build_queue(app_settings)
    await queue.initialize()
    report = await queue.get_job_status(args.source_id)
    if report is None:
        print(f"No job found for source '{args.source_id}'.")
        return 1

    print(f"Job {report.job_id}")
    print(f"  Status:      {report.status.value}")
    print(f"  Attempts:    {report.attempts}")
    print(f"  Next run at: {report.next_run_at.isoformat()}")
    if report.last_error:
        print(f"  Last error:  {report.last_error}")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the worker CLI."""
    parser = argparse.ArgumentParser(
        prog="chattube-worker",
        description="Run and inspect the source ingestion worker.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Worker commands")

    # -- start --
    start_parser = subparsers.add_parser("start", help="Run the worker loop")
    start_parser.add_argument(
        "--once", action="store_true", help="Run a single cycle and exit"
    )

    # -- status --
    subparsers.add_parser("status", help="Show queue statistics")

    # -- cleanup --
    cleanup_parser = subparsers.add_parser(
        "cleanup", help="Delete done/failed jobs older than DAYS"
    )
    cleanup_parser.add_argument(
        "days",
        nargs="?",
        type=int,
        default=None,
        help="Retention in days (default: JOB_RETENTION_DAYS, 7)",
    )

    # -- enqueue --
    enqueue_parser = subparsers.add_parser("enqueue", help="Enqueue a registered source")
    enqueue_parser.add_argument("source_id", help="Source identifier")

    # -- job-status --
    job_status_parser = subparsers.add_parser(
        "job-status", help="Show the latest job for a source"
    )
    job_status_parser.add_argument("source_id", help="Source identifier")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ingestion worker.

    Parses the subcommand, loads Settings from the environment / .env file,
    configures logging and dispatches to the matching handler.  Exits with
    the handler's return code; configuration and store errors exit with 1.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=app_settings.app_env == "production",
    )

    if args.command == "start":
        handler = _handle_start(args, app_settings)
    elif args.command == "status":
        handler = _handle_status(app_settings)
    elif args.command == "cleanup":
        handler = _handle_cleanup(args, app_settings)
    elif args.command == "enqueue":
        handler = _handle_enqueue(args, app_settings)
    elif args.command == "job-status":
        handler = _handle_job_status(args, app_settings)
    else:
        parser.print_help()
        sys.exit(1)

    try:
        exit_code = asyncio.run(handler)
    except ChatTubeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
