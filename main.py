"""CLI entry point for the scrape task orchestrator."""

import argparse
import asyncio
import logging
import signal
import sqlite3
import sys

import httpx

from src.controller.client import TaskControllerClient
from src.core.config import Settings
from src.core.db import get_recent_runs, init_db
from src.pipeline.control import ScrapeControl
from src.pipeline.orchestrator import ScrapeOrchestrator
from src.pipeline.persistence import JobPersistenceAdapter, SqliteJobStore
from src.scheduling.registry import ScheduleRegistry
from src.scheduling.timers import APSchedulerTimers

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Scrape task orchestrator - schedule and track remote job scraping runs",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    subparsers = parser.add_subparsers(dest="command")

    # --- serve subcommand (default) ---
    serve_parser = subparsers.add_parser(
        "serve", parents=[common], help="Run the scheduler until interrupted",
    )
    serve_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the schedules that would be registered and exit",
    )

    # --- run-now subcommand ---
    run_parser = subparsers.add_parser(
        "run-now", parents=[common], help="Scrape one platform immediately",
    )
    run_parser.add_argument("--platform", required=True, help="Platform id (e.g. linkedin)")

    # --- status subcommand ---
    subparsers.add_parser(
        "status", parents=[common], help="Show tasks running on the remote controller",
    )

    # --- history subcommand ---
    history_parser = subparsers.add_parser(
        "history", parents=[common], help="Show recorded scrape runs",
    )
    history_parser.add_argument("--platform", help="Only show runs for this platform")
    history_parser.add_argument("--limit", type=int, default=10, help="Number of runs (default: 10)")

    # --- top-level flags when no subcommand is given ---
    parser.add_argument("--config", default="config/settings.yaml", help=argparse.SUPPRESS)
    parser.add_argument("--dry-run", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument("--verbose", "-v", action="store_true", help=argparse.SUPPRESS)

    args = parser.parse_args(argv)

    # Default to serve when no subcommand given
    if args.command is None:
        args.command = "serve"

    return args


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO; polling makes that noisy.
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def build_orchestrator(settings: Settings, conn: sqlite3.Connection) -> ScrapeOrchestrator:
    client = TaskControllerClient(settings.controller)
    persistence = JobPersistenceAdapter(SqliteJobStore(conn))
    return ScrapeOrchestrator(client, persistence, settings.enabled_platforms(), conn=conn)


def build_control(settings: Settings, conn: sqlite3.Connection) -> ScrapeControl:
    """Wire orchestrator and registry. Call from inside the event loop."""
    registry = ScheduleRegistry(
        APSchedulerTimers(settings.scheduler.timezone),
        start_immediately=settings.scheduler.start_immediately,
    )
    return ScrapeControl(registry, build_orchestrator(settings, conn))


def dry_run(settings: Settings) -> None:
    """Print what would be scheduled without starting anything."""
    enabled = set(settings.enabled_platforms())
    print(f"[DRY RUN] {len(settings.schedules)} schedules configured "
          f"({settings.scheduler.timezone})")
    for schedule in settings.schedules:
        state = "OK" if schedule.platform in enabled else "PLATFORM DISABLED"
        print(f"[DRY RUN] '{schedule.name}': {schedule.platform} at '{schedule.cron}' - {state}")
    print(f"[DRY RUN] Controller: {settings.controller.base_url} "
          f"(poll {settings.controller.poll_interval_seconds:g}s, "
          f"timeout {settings.controller.timeout_seconds:g}s)")


async def serve(settings: Settings) -> None:
    """Run scheduled scrapes until SIGINT/SIGTERM."""
    conn = init_db(settings.database.path)
    control = build_control(settings, conn)
    enabled = set(settings.enabled_platforms())
    await control.init(s for s in settings.schedules if s.platform in enabled)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass  # Windows: KeyboardInterrupt still ends asyncio.run

    logger.info("Scheduler running - press Ctrl+C to stop")
    try:
        await stop_event.wait()
    finally:
        await control.destroy()
        conn.close()


async def run_now(settings: Settings, platform: str) -> bool:
    """Run one scrape and print its summary. Returns True on success."""
    conn = init_db(settings.database.path)
    orchestrator = build_orchestrator(settings, conn)
    await orchestrator.init()
    try:
        result = await orchestrator.start(platform)
    finally:
        await orchestrator.destroy()
        conn.close()

    print(result.message)
    if result.summary is not None:
        s = result.summary
        print(f"  saved {s.saved}, duplicates {s.duplicates}, errors {s.errors}, total {s.total}")
    return result.success


async def show_status(settings: Settings) -> None:
    async with TaskControllerClient(settings.controller) as client:
        status = await client.get_status()
    print(f"{status.count} task(s) running on {settings.controller.base_url}")
    for name in status.running:
        print(f"  {name}")


def show_history(settings: Settings, platform: str | None, limit: int) -> None:
    conn = init_db(settings.database.path)
    runs = get_recent_runs(conn, platform=platform, limit=limit)
    conn.close()
    if not runs:
        print("No scrape runs recorded.")
        return
    for run in runs:
        line = (f"{run.started_at:%Y-%m-%d %H:%M:%S}  {run.platform:<10} {run.state.value:<9} "
                f"jobs={run.jobs_scraped} saved={run.saved} dup={run.duplicates} err={run.errors}")
        if run.error_message:
            line += f"  ({run.error_message})"
        print(line)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "run-now":
        if not asyncio.run(run_now(settings, args.platform.lower())):
            sys.exit(1)
    elif args.command == "status":
        try:
            asyncio.run(show_status(settings))
        except (httpx.HTTPError, ValueError) as e:
            print(f"Error: failed to fetch tasks status from task controller: {e}", file=sys.stderr)
            sys.exit(1)
    elif args.command == "history":
        show_history(settings, args.platform, args.limit)
    else:
        # serve (default)
        if args.dry_run:
            dry_run(settings)
        else:
            asyncio.run(serve(settings))


if __name__ == "__main__":
    main()
