"""In-memory TimerBackend: records timers, fires them on demand."""

from dataclasses import dataclass

from src.scheduling.timers import TimerBackend, TimerCallback, parse_cron


@dataclass
class FakeTimer:
    cron: str
    callback: TimerCallback
    paused: bool


class FakeTimers(TimerBackend):
    """``fire`` simulates a wall-clock firing of one timer."""

    def __init__(self) -> None:
        self.timers: dict[str, FakeTimer] = {}
        self.started = False
        self.shut_down = False

    def add(self, timer_id: str, cron_expression: str, callback: TimerCallback,
            *, paused: bool = False) -> None:
        parse_cron(cron_expression, "UTC")
        self.timers[timer_id] = FakeTimer(cron_expression, callback, paused)

    def pause(self, timer_id: str) -> None:
        self.timers[timer_id].paused = True

    def resume(self, timer_id: str) -> None:
        self.timers[timer_id].paused = False

    def remove(self, timer_id: str) -> None:
        self.timers.pop(timer_id, None)

    def start(self) -> None:
        self.started = True

    def shutdown(self) -> None:
        self.shut_down = True
        self.timers.clear()

    async def fire(self, timer_id: str) -> bool:
        timer = self.timers.get(timer_id)
        if timer is None or timer.paused:
            return False
        await timer.callback()
        return True
