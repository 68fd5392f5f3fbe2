"""HTTP client for the remote task controller.

Contract consumed:
  POST /tasks/start/{name}   -> {"message": "started" | "already_started", "task": name}
  GET  /tasks/status         -> {"count": int, "running": [name, ...]}
  POST /tasks/stop?name=...  -> controller-defined ack

A started task is considered finished as soon as its name disappears from
``running``. Timeouts stop local polling only; the remote task is never
cancelled from here.
"""

import asyncio
import logging
import time
from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx

from src.controller.base import (
    ControllerStatus,
    RemoteRunOutcome,
    RemoteTaskHandle,
    TaskRunner,
)
from src.core.config import ControllerConfig
from src.core.errors import ControllerError, ControllerUnreachableError, TaskTimeoutError

logger = logging.getLogger(__name__)

# The controller has shipped with a misspelled variant of this message.
_ALREADY_STARTED = frozenset({"already_started", "alredy_started"})


class TaskControllerClient(TaskRunner):
    """Starts and polls remote scrape tasks by name.

    Usage::

        async with TaskControllerClient(settings.controller) as client:
            outcome = await client.run("linkedin")
    """

    def __init__(
        self,
        config: ControllerConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._http = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.request_timeout_seconds,
            headers={"accept": "application/json"},
            transport=transport,
        )

    @property
    def config(self) -> ControllerConfig:
        return self._config

    async def __aenter__(self) -> "TaskControllerClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Controller endpoints
    # ------------------------------------------------------------------

    async def start_remote(self, platform: str) -> RemoteTaskHandle | None:
        """Ask the controller to start the task for ``platform``.

        Returns a handle to poll, or None when the controller reports the task
        as already started (nothing to wait for).
        """
        try:
            response = await self._http.post(f"/tasks/start/{quote(platform, safe='')}")
        except httpx.TransportError as e:
            msg = f"Task controller unreachable at {self._config.base_url}: {e}"
            raise ControllerUnreachableError(msg) from e
        _raise_for_controller_error(response)

        data = _json_object(response)
        message = str(data.get("message", ""))
        task_name = str(data.get("task") or default_task_name(platform))

        if message in _ALREADY_STARTED:
            logger.info("Task '%s' already started on controller", task_name)
            return None
        if message != "started":
            logger.debug("Unexpected start message %r for '%s' - polling anyway", message, task_name)

        logger.info("Started remote task '%s'", task_name)
        return RemoteTaskHandle(remote_task_name=task_name)

    async def get_status(self) -> ControllerStatus:
        """Fetch the controller's running set.

        Raises httpx.HTTPError on transport or HTTP status failures and
        ValueError on an unparseable body.
        """
        response = await self._http.get("/tasks/status")
        response.raise_for_status()
        return ControllerStatus.model_validate(response.json())

    async def running_tasks(self) -> list[str]:
        """Controller's running set, or an empty list when it cannot be read."""
        try:
            status = await self.get_status()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Could not read task controller status: %s", e)
            return []
        return list(status.running)

    async def stop_remote(self, task_name: str) -> dict[str, Any]:
        """Ask the controller to cancel a task. Not used by local stop."""
        try:
            response = await self._http.post("/tasks/stop", params={"name": task_name})
        except httpx.TransportError as e:
            msg = f"Task controller unreachable at {self._config.base_url}: {e}"
            raise ControllerUnreachableError(msg) from e
        _raise_for_controller_error(response)
        return _json_object(response)

    # ------------------------------------------------------------------
    # Start + poll
    # ------------------------------------------------------------------

    async def await_completion(self, handle: RemoteTaskHandle) -> float:
        """Poll until the task leaves the running set. Returns seconds waited.

        Each poll is cut off at the remaining budget. Per-poll failures are
        logged and retried on the next tick; they count against the same
        overall budget.
        """
        name = handle.remote_task_name
        budget = self._config.timeout_seconds
        interval = self._config.poll_interval_seconds
        started = time.monotonic()
        polls = 0

        while True:
            elapsed = time.monotonic() - started
            if elapsed >= budget:
                raise TaskTimeoutError(name, elapsed, budget)

            polls += 1
            try:
                status = await asyncio.wait_for(self.get_status(), timeout=budget - elapsed)
            except asyncio.TimeoutError:
                logger.warning("Poll %d for task '%s' failed: no answer within budget", polls, name)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("Poll %d for task '%s' failed: %s", polls, name, e)
            else:
                if name not in status.running:
                    elapsed = time.monotonic() - started
                    logger.info("Task '%s' finished after %d polls (%.1fs)", name, polls, elapsed)
                    return elapsed
                logger.debug("Task '%s' still running (poll %d)", name, polls)

            remaining = budget - (time.monotonic() - started)
            if remaining > 0:
                await asyncio.sleep(min(interval, remaining))

    async def run(
        self,
        platform: str,
        credentials: dict[str, Any] | None = None,
    ) -> RemoteRunOutcome:
        if credentials:
            # The controller's start endpoint takes no body.
            logger.debug("Credentials for '%s' are not forwarded to the controller", platform)

        handle = await self.start_remote(platform)
        if handle is None:
            return RemoteRunOutcome(task_name=default_task_name(platform), note="already_started")

        await self.await_completion(handle)
        return RemoteRunOutcome(task_name=handle.remote_task_name, note="completed")


def default_task_name(platform: str) -> str:
    """Controller task name used when the controller does not echo one."""
    return f"scrape_{platform}"


def _json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _raise_for_controller_error(response: httpx.Response) -> None:
    if response.is_success:
        return
    data = _json_object(response)
    detail = data.get("detail") or data.get("message") or response.text or response.reason_phrase
    raise ControllerError(str(detail), status_code=response.status_code)
