"""Orchestrator: per-platform single-flight scrape runs.

Run lifecycle per platform:
  1. Check-and-set idle/finished -> running (one critical section)
  2. Runner start + poll of the remote task
  3. Persistence of returned records (dedup by url)
  4. Terminal state: completed | error | stopped
  5. Run recorded in scrape_runs

The lock guards RunStatus reads/writes only. It is never held across an
await, so status queries never wait on a poll or an HTTP call.
"""

import asyncio
import logging
import sqlite3
import threading
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from src.controller.base import TaskRunner
from src.core.db import get_recent_runs, insert_scrape_run
from src.core.errors import AlreadyRunningError, OrchestrationError, UnsupportedPlatformError
from src.core.schemas import (
    RunHistoryEntry,
    RunState,
    RunStatus,
    SaveSummary,
    ScrapeResult,
)
from src.pipeline.persistence import JobPersistenceAdapter

logger = logging.getLogger(__name__)

STOPPED_MESSAGE = "manually stopped"


class ScrapeOrchestrator:
    """Owns one RunStatus per platform and drives runs through the runner.

    Construct once, ``await init()``, pass by reference to the registry and
    the control surface, ``await destroy()`` on shutdown.
    """

    def __init__(
        self,
        runner: TaskRunner,
        persistence: JobPersistenceAdapter,
        platforms: Iterable[str],
        conn: sqlite3.Connection | None = None,
    ) -> None:
        self._runner = runner
        self._persistence = persistence
        self._conn = conn
        self._lock = threading.Lock()
        self._statuses: dict[str, RunStatus] = {p: RunStatus(platform=p) for p in platforms}
        self._summaries: dict[str, SaveSummary] = {}
        self._inflight: dict[str, asyncio.Future[Any]] = {}
        self._stopped_runs: set[int] = set()
        self._last_run_id = 0
        self._initialized = False

    @property
    def platforms(self) -> list[str]:
        return list(self._statuses)

    async def init(self) -> None:
        if self._initialized:
            logger.debug("Orchestrator already initialized")
            return
        self._initialized = True
        running = await self._runner.running_tasks()
        if running:
            logger.info("Tasks already running on controller: %s", ", ".join(running))
        logger.info("Orchestrator ready for platforms: %s", ", ".join(self._statuses))

    async def destroy(self) -> None:
        """Cancel local awaits of in-flight runs and release the runner."""
        pending = [f for f in self._inflight.values() if not f.done()]
        for future in pending:
            future.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self._runner.aclose()
        self._initialized = False
        logger.info("Orchestrator destroyed (%d in-flight runs abandoned)", len(pending))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, platform: str) -> RunStatus:
        """Snapshot of one platform's status.

        Raises:
            UnsupportedPlatformError: The platform is not configured.
        """
        with self._lock:
            current = self._statuses.get(platform)
        if current is None:
            raise UnsupportedPlatformError(platform)
        return current

    def statuses(self) -> dict[str, RunStatus]:
        with self._lock:
            return dict(self._statuses)

    def history(self, platform: str | None = None, limit: int = 10) -> list[RunHistoryEntry]:
        """Recent runs, newest first.

        Without a database only the last run of each platform is known.
        """
        if self._conn is not None:
            return get_recent_runs(self._conn, platform=platform, limit=limit)

        entries = []
        for status in self.statuses().values():
            if platform is not None and status.platform != platform:
                continue
            if status.last_run_started_at is None:
                continue
            entries.append(self._history_entry(status, self._summaries.get(status.platform)))
        entries.sort(key=lambda e: e.started_at, reverse=True)
        return entries[:limit]

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(
        self,
        platform: str,
        credentials: dict[str, Any] | None = None,
    ) -> ScrapeResult:
        """Run one scrape for ``platform`` to completion.

        Never raises for run failures; the returned result carries the reason.
        A second call while the platform is running fails immediately.
        """
        try:
            run_id = self._begin(platform)
        except (AlreadyRunningError, UnsupportedPlatformError) as e:
            logger.warning("Not starting %s: %s", platform, e)
            return _failure(platform, e)

        logger.info("Starting %s scraper (run %d)", platform, run_id)
        future = asyncio.ensure_future(self._runner.run(platform, credentials))
        self._inflight[platform] = future
        try:
            outcome = await future
        except asyncio.CancelledError:
            if run_id in self._stopped_runs:
                self._stopped_runs.discard(run_id)
                return _stopped(platform)
            self._finish(platform, run_id, RunState.ERROR, error_message="cancelled")
            raise
        except Exception as e:
            if run_id in self._stopped_runs:
                self._stopped_runs.discard(run_id)
                return _stopped(platform)
            self._finish(platform, run_id, RunState.ERROR, error_message=str(e))
            logger.error("Scraping error for %s: %s", platform, e)
            return _failure(platform, e)
        finally:
            if self._inflight.get(platform) is future:
                del self._inflight[platform]

        # Stopped after the runner finished but before this coroutine resumed.
        if run_id in self._stopped_runs:
            self._stopped_runs.discard(run_id)
            return _stopped(platform)

        summary = self._persistence.save_all(outcome.records)
        self._finish(
            platform,
            run_id,
            RunState.COMPLETED,
            jobs_scraped=outcome.jobs_scraped,
            summary=summary,
        )
        logger.info("%s scraping completed. Jobs scraped: %d", platform, outcome.jobs_scraped)
        return ScrapeResult(
            success=True,
            message=f"Successfully scraped {outcome.jobs_scraped} jobs from {platform}",
            platform=platform,
            jobs_scraped=outcome.jobs_scraped,
            summary=summary,
            note=outcome.note,
        )

    def stop(self, platform: str | None = None) -> ScrapeResult:
        """Mark running platform(s) as stopped.

        Local only: the await on the runner is cancelled, the remote task is
        left running. With no platform, every running platform is stopped.
        """
        now = datetime.now()
        stopped: list[RunStatus] = []
        with self._lock:
            for name, current in self._statuses.items():
                if not current.is_running or (platform is not None and name != platform):
                    continue
                updated = current.model_copy(update={
                    "state": RunState.STOPPED,
                    "error_message": STOPPED_MESSAGE,
                    "last_run_finished_at": now,
                })
                self._statuses[name] = updated
                self._stopped_runs.add(current.run_id)
                stopped.append(updated)

        if not stopped:
            return ScrapeResult(
                success=False,
                message="No scraping process is currently running",
                platform=platform,
                error_code="not_running",
            )

        for status in stopped:
            future = self._inflight.get(status.platform)
            if future is not None and not future.done():
                future.cancel()
            self._record_history(status, None)
            logger.info("Stopped %s scraper locally; remote task left running", status.platform)

        return ScrapeResult(
            success=True,
            message="Scraping stopped successfully",
            platform=stopped[0].platform if len(stopped) == 1 else platform,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _begin(self, platform: str) -> int:
        with self._lock:
            current = self._statuses.get(platform)
            if current is None:
                raise UnsupportedPlatformError(platform)
            if current.is_running:
                raise AlreadyRunningError(platform)
            self._last_run_id += 1
            self._statuses[platform] = RunStatus(
                platform=platform,
                state=RunState.RUNNING,
                last_run_started_at=datetime.now(),
                jobs_scraped=0,
                error_message=None,
                run_id=self._last_run_id,
            )
            return self._last_run_id

    def _finish(
        self,
        platform: str,
        run_id: int,
        state: RunState,
        *,
        jobs_scraped: int = 0,
        error_message: str | None = None,
        summary: SaveSummary | None = None,
    ) -> bool:
        """Move run ``run_id`` to a terminal state unless it was superseded."""
        with self._lock:
            current = self._statuses[platform]
            if current.run_id != run_id or not current.is_running:
                logger.debug("Run %d for %s already left running - not overwriting", run_id, platform)
                return False
            finished = current.model_copy(update={
                "state": state,
                "jobs_scraped": jobs_scraped,
                "error_message": error_message,
                "last_run_finished_at": datetime.now(),
            })
            self._statuses[platform] = finished
            if summary is not None:
                self._summaries[platform] = summary
        self._record_history(finished, summary)
        return True

    def _record_history(self, status: RunStatus, summary: SaveSummary | None) -> None:
        if self._conn is None:
            return
        try:
            insert_scrape_run(self._conn, self._history_entry(status, summary))
        except sqlite3.Error as e:
            logger.error("Failed to record %s run history: %s", status.platform, e)

    @staticmethod
    def _history_entry(status: RunStatus, summary: SaveSummary | None) -> RunHistoryEntry:
        summary = summary or SaveSummary()
        return RunHistoryEntry(
            platform=status.platform,
            state=status.state,
            started_at=status.last_run_started_at or datetime.now(),
            finished_at=status.last_run_finished_at,
            jobs_scraped=status.jobs_scraped,
            error_message=status.error_message,
            saved=summary.saved,
            duplicates=summary.duplicates,
            errors=summary.errors,
        )


def _stopped(platform: str) -> ScrapeResult:
    return ScrapeResult(
        success=False,
        message=f"Scraping for {platform} was stopped manually",
        platform=platform,
        error_code="stopped",
    )


def _failure(platform: str, error: Exception) -> ScrapeResult:
    code = error.code if isinstance(error, OrchestrationError) else "scrape_failed"
    return ScrapeResult(success=False, message=str(error), platform=platform, error_code=code)
