"""Control surface consumed by the HTTP layer: schedules plus scrape runs."""

import functools
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from src.core.config import ScheduleConfig
from src.core.schemas import RunHistoryEntry, RunStatus, ScrapeResult, TaskStatus
from src.pipeline.orchestrator import ScrapeOrchestrator
from src.scheduling.registry import ScheduleRegistry

logger = logging.getLogger(__name__)


class ScrapeControl:
    """Pairs a ScheduleRegistry with the ScrapeOrchestrator its timers drive."""

    def __init__(self, registry: ScheduleRegistry, orchestrator: ScrapeOrchestrator) -> None:
        self._registry = registry
        self._orchestrator = orchestrator

    @property
    def registry(self) -> ScheduleRegistry:
        return self._registry

    @property
    def orchestrator(self) -> ScrapeOrchestrator:
        return self._orchestrator

    async def init(self, schedules: Iterable[ScheduleConfig]) -> None:
        await self._orchestrator.init()
        self._registry.init(schedules, self.scheduled_run)

    async def destroy(self) -> None:
        self._registry.destroy()
        await self._orchestrator.destroy()

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    def register_task(
        self,
        name: str,
        cron_expression: str,
        platform: str,
        *,
        description: str | None = None,
        start: bool | None = None,
        on_fire: Callable[[], Awaitable[Any]] | None = None,
    ) -> TaskStatus:
        """Add a recurring task. By default each firing scrapes ``platform``."""
        callback = on_fire or functools.partial(self.scheduled_run, platform)
        task = self._registry.register(
            name, cron_expression, platform, callback, description=description, start=start,
        )
        return task.snapshot()

    def add_custom_task(self, name: str, cron_expression: str, platform: str) -> TaskStatus:
        return self.register_task(
            name, cron_expression, platform,
            description=f"Custom task for {platform}", start=True,
        )

    def start_task(self, name: str) -> None:
        self._registry.start(name)

    def stop_task(self, name: str) -> None:
        self._registry.stop(name)

    def remove_task(self, name: str) -> None:
        self._registry.remove(name)

    def start_all_tasks(self) -> None:
        logger.info("Starting all scraper tasks")
        self._registry.start_all()

    def stop_all_tasks(self) -> None:
        logger.info("Stopping all scraper tasks")
        self._registry.stop_all()

    def list_statuses(self) -> Mapping[str, TaskStatus]:
        return self._registry.list_statuses()

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def start_scraping(
        self,
        platform: str,
        credentials: dict[str, Any] | None = None,
    ) -> ScrapeResult:
        return await self._orchestrator.start(platform, credentials)

    def stop_scraping(self, platform: str | None = None) -> ScrapeResult:
        return self._orchestrator.stop(platform)

    def get_status(self, platform: str) -> RunStatus:
        return self._orchestrator.status(platform)

    def get_history(self, platform: str | None = None, limit: int = 10) -> list[RunHistoryEntry]:
        return self._orchestrator.history(platform, limit=limit)

    async def run_task_now(self, platform: str) -> ScrapeResult:
        """One immediate scrape outside the schedule."""
        logger.info("Running immediate %s scraping", platform)
        return await self.scheduled_run(platform)

    async def scheduled_run(self, platform: str) -> ScrapeResult:
        result = await self._orchestrator.start(platform)
        if result.success:
            logger.info("%s scraping completed - %d jobs scraped", platform, result.jobs_scraped)
        else:
            logger.warning("%s scraping failed: %s", platform, result.message)
        return result
