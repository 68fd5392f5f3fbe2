"""Schedule registry: named recurring timers that trigger platform scrapes.

Firings are purely wall-clock driven. A stopped task does not queue the
firings it misses, and stopping never interrupts a run already in progress.
"""

import functools
import logging
import threading
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from src.core.config import ScheduleConfig
from src.core.errors import DuplicateNameError, OrchestrationError, TaskNotFoundError
from src.core.schemas import TaskStatus
from src.scheduling.timers import TimerBackend

logger = logging.getLogger(__name__)

FireCallback = Callable[[], Awaitable[Any]]


@dataclass
class ScheduledTask:
    name: str
    cron_expression: str
    platform: str
    description: str
    enabled: bool

    def snapshot(self) -> TaskStatus:
        return TaskStatus(
            platform=self.platform,
            cron_expression=self.cron_expression,
            description=self.description,
            enabled=self.enabled,
        )


class ScheduleRegistry:
    """Owns named cron timers. Names are unique.

    Usage::

        registry = ScheduleRegistry(APSchedulerTimers("Asia/Kolkata"))
        registry.register("linkedin-daily", "0 9 * * *", "linkedin", run_linkedin)
        registry.stop("linkedin-daily")
        registry.list_statuses()
    """

    def __init__(self, timers: TimerBackend, *, start_immediately: bool = True) -> None:
        self._timers = timers
        self._start_immediately = start_immediately
        self._tasks: dict[str, ScheduledTask] = {}
        self._lock = threading.Lock()
        self._initialized = False

    def init(
        self,
        schedules: Iterable[ScheduleConfig],
        on_fire: Callable[[str], Awaitable[Any]],
    ) -> None:
        """Register the configured schedules and start dispatching.

        ``on_fire`` receives the schedule's platform. Calling twice is a no-op.
        If any schedule fails to register, the ones added before it are
        removed again and the error propagates.
        """
        if self._initialized:
            logger.info("Scraper tasks already initialized")
            return
        added: list[str] = []
        try:
            for schedule in schedules:
                self.register(
                    schedule.name,
                    schedule.cron,
                    schedule.platform,
                    functools.partial(on_fire, schedule.platform),
                    description=schedule.description or None,
                )
                added.append(schedule.name)
        except OrchestrationError:
            logger.error("Scraper task setup failed; rolling back %d tasks", len(added))
            for name in added:
                self.remove(name)
            raise
        self._timers.start()
        self._initialized = True
        logger.info("Active scheduled tasks: %s", ", ".join(self._tasks) or "(none)")

    def destroy(self) -> None:
        """Remove every timer and stop dispatching."""
        with self._lock:
            names = list(self._tasks)
            self._tasks.clear()
        for name in names:
            self._timers.remove(name)
        self._timers.shutdown()
        self._initialized = False
        logger.info("All scraper tasks cleaned up")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register(
        self,
        name: str,
        cron_expression: str,
        platform: str,
        on_fire: FireCallback,
        *,
        description: str | None = None,
        start: bool | None = None,
    ) -> ScheduledTask:
        """Create a timer for ``name``.

        Raises:
            DuplicateNameError: ``name`` is already registered.
            InvalidScheduleError: ``cron_expression`` cannot be parsed.
        """
        if name in self._tasks:
            raise DuplicateNameError(name)

        enabled = self._start_immediately if start is None else start
        self._timers.add(name, cron_expression, self._guarded(name, on_fire), paused=not enabled)

        task = ScheduledTask(
            name=name,
            cron_expression=cron_expression,
            platform=platform,
            description=description or f"Scheduled {platform} job scraping",
            enabled=enabled,
        )
        with self._lock:
            self._tasks[name] = task
        logger.info("Scheduled '%s' for %s: %s%s",
                    name, platform, cron_expression, "" if enabled else " (stopped)")
        return task

    def start(self, name: str) -> None:
        task = self._get(name)
        self._timers.resume(name)
        with self._lock:
            task.enabled = True
        logger.info("Started task: %s", name)

    def stop(self, name: str) -> None:
        task = self._get(name)
        self._timers.pause(name)
        with self._lock:
            task.enabled = False
        logger.info("Stopped task: %s", name)

    def remove(self, name: str) -> None:
        self._get(name)
        self._timers.remove(name)
        with self._lock:
            del self._tasks[name]
        logger.info("Removed task: %s", name)

    def start_all(self) -> None:
        for name in self.names():
            self.start(name)

    def stop_all(self) -> None:
        for name in self.names():
            self.stop(name)

    def list_statuses(self) -> Mapping[str, TaskStatus]:
        """Immutable snapshot of every registered task."""
        with self._lock:
            snapshot = {name: task.snapshot() for name, task in self._tasks.items()}
        return MappingProxyType(snapshot)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def _get(self, name: str) -> ScheduledTask:
        task = self._tasks.get(name)
        if task is None:
            raise TaskNotFoundError(name)
        return task

    @staticmethod
    def _guarded(name: str, on_fire: FireCallback) -> FireCallback:
        """Wrap a callback so a failing run never reaches the scheduler."""

        async def fire() -> None:
            logger.info("Running scheduled task '%s'", name)
            try:
                await on_fire()
            except Exception:
                logger.exception("Scheduled task '%s' failed", name)

        return fire
