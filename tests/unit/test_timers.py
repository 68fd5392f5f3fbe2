"""Tests for the APScheduler-backed timer backend."""

import asyncio
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from src.core.errors import InvalidScheduleError
from src.scheduling.timers import APSchedulerTimers, parse_cron

UTC = ZoneInfo("UTC")


class TestParseCron:
    def test_valid(self) -> None:
        trigger = parse_cron("0 9 * * *", "Asia/Kolkata")
        assert str(trigger.timezone) == "Asia/Kolkata"

    @pytest.mark.parametrize("expression", ["not a cron", "61 * * * *", "* * * *", ""])
    def test_invalid(self, expression: str) -> None:
        with pytest.raises(InvalidScheduleError) as exc_info:
            parse_cron(expression, "UTC")
        assert exc_info.value.code == "invalid_schedule"


class TestAPSchedulerTimers:
    async def test_fires_callback(self) -> None:
        timers = APSchedulerTimers("UTC")
        fired = asyncio.Event()

        async def callback() -> None:
            fired.set()

        timers.add("t", "0 0 1 1 *", callback)
        timers.start()
        timers.scheduler.modify_job("t", next_run_time=datetime.now(UTC))
        try:
            await asyncio.wait_for(fired.wait(), timeout=2)
        finally:
            timers.shutdown()

    async def test_paused_timer_has_no_next_run(self) -> None:
        timers = APSchedulerTimers("UTC")

        async def callback() -> None:
            pass

        timers.add("t", "* * * * *", callback, paused=True)
        timers.start()
        try:
            assert timers.scheduler.get_job("t").next_run_time is None
            timers.resume("t")
            next_run = timers.scheduler.get_job("t").next_run_time
            assert next_run is not None
            assert next_run > datetime.now(UTC)  # no catch-up for missed firings
            timers.pause("t")
            assert timers.scheduler.get_job("t").next_run_time is None
        finally:
            timers.shutdown()

    async def test_removed_timer_never_fires(self) -> None:
        timers = APSchedulerTimers("UTC")
        calls: list[str] = []

        async def callback() -> None:
            calls.append("fired")

        timers.add("t", "* * * * *", callback)
        timers.start()
        timers.remove("t")
        await asyncio.sleep(0.05)
        try:
            assert timers.has("t") is False
            assert calls == []
            timers.remove("t")  # second removal is a no-op
        finally:
            timers.shutdown()

    async def test_invalid_expression_not_added(self) -> None:
        timers = APSchedulerTimers("UTC")

        async def callback() -> None:
            pass

        with pytest.raises(InvalidScheduleError):
            timers.add("bad", "99 99 * * *", callback)
        assert timers.has("bad") is False
