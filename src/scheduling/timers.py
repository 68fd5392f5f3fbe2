"""Recurring cron timers.

``TimerBackend`` is the capability the schedule registry needs: add a cron
timer, pause/resume it, remove it, shut everything down. ``APSchedulerTimers``
implements it on APScheduler's asyncio scheduler, so each firing runs as its
own task on the event loop and the dispatcher never waits on a scrape.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.core.errors import InvalidScheduleError

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[Any]]


def parse_cron(expression: str, timezone: str) -> CronTrigger:
    """Build a trigger from a standard 5-field crontab expression.

    Raises:
        InvalidScheduleError: The expression is malformed.
    """
    try:
        return CronTrigger.from_crontab(expression, timezone=ZoneInfo(timezone))
    except ValueError as e:
        raise InvalidScheduleError(expression, str(e)) from e


class TimerBackend(ABC):
    """Base class for recurring timer implementations."""

    @abstractmethod
    def add(
        self,
        timer_id: str,
        cron_expression: str,
        callback: TimerCallback,
        *,
        paused: bool = False,
    ) -> None:
        """Create a timer firing ``callback`` on the cron schedule.

        Raises:
            InvalidScheduleError: The cron expression cannot be parsed.
        """

    @abstractmethod
    def pause(self, timer_id: str) -> None:
        """Stop future firings. A running callback is not interrupted."""

    @abstractmethod
    def resume(self, timer_id: str) -> None:
        """Re-arm from the next matching time. Missed firings are dropped."""

    @abstractmethod
    def remove(self, timer_id: str) -> None:
        """Discard the timer permanently."""

    @abstractmethod
    def start(self) -> None:
        """Begin dispatching."""

    @abstractmethod
    def shutdown(self) -> None:
        """Stop dispatching and drop every timer."""


class APSchedulerTimers(TimerBackend):
    """TimerBackend on ``AsyncIOScheduler``.

    Must be constructed while an event loop is running; firings are
    dispatched on that loop.
    """

    def __init__(self, timezone: str, scheduler: AsyncIOScheduler | None = None) -> None:
        self._timezone = timezone
        self._scheduler = scheduler or AsyncIOScheduler(
            timezone=ZoneInfo(timezone),
            event_loop=asyncio.get_running_loop(),
            job_defaults={"coalesce": True, "max_instances": 1},
        )

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    @property
    def timezone(self) -> str:
        return self._timezone

    def add(
        self,
        timer_id: str,
        cron_expression: str,
        callback: TimerCallback,
        *,
        paused: bool = False,
    ) -> None:
        trigger = parse_cron(cron_expression, self._timezone)
        kwargs: dict[str, Any] = {"next_run_time": None} if paused else {}
        self._scheduler.add_job(callback, trigger, id=timer_id, name=timer_id, **kwargs)
        logger.debug("Timer '%s' added: %s (%s)%s",
                     timer_id, cron_expression, self._timezone, " [paused]" if paused else "")

    def pause(self, timer_id: str) -> None:
        self._scheduler.pause_job(timer_id)

    def resume(self, timer_id: str) -> None:
        self._scheduler.resume_job(timer_id)

    def remove(self, timer_id: str) -> None:
        try:
            self._scheduler.remove_job(timer_id)
        except JobLookupError:
            logger.debug("Timer '%s' already gone", timer_id)

    def has(self, timer_id: str) -> bool:
        return self._scheduler.get_job(timer_id) is not None

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()

    def shutdown(self) -> None:
        self._scheduler.remove_all_jobs()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
