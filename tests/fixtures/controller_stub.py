"""Scriptable in-memory task controller served through httpx.MockTransport."""

import httpx


class FakeController:
    """Mimics the remote task controller's three endpoints.

    Args:
        present_polls: How many successful status polls list the task as
            running before it disappears.
        never_finish: Keep the task in the running set forever.
        start_message: ``message`` field returned by the start endpoint.
        start_status: HTTP status of the start endpoint.
        start_error: Exception raised instead of answering the start call.
        failing_polls: Number of initial status polls answered with 503.
        task: Name echoed in the start response (None omits the field).
    """

    def __init__(
        self,
        *,
        present_polls: int = 0,
        never_finish: bool = False,
        start_message: str = "started",
        start_status: int = 200,
        start_error: Exception | None = None,
        failing_polls: int = 0,
        task: str | None = "scrape_linkedin",
    ) -> None:
        self.present_polls = present_polls
        self.never_finish = never_finish
        self.start_message = start_message
        self.start_status = start_status
        self.start_error = start_error
        self.failing_polls = failing_polls
        self.task = task
        self.running: set[str] = set()
        self.start_calls = 0
        self.status_calls = 0
        self.stop_calls: list[str] = []
        self._polls_left = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST" and path.startswith("/tasks/start/"):
            return self._start(request, path.rsplit("/", 1)[-1])
        if request.method == "GET" and path == "/tasks/status":
            return self._status()
        if request.method == "POST" and path == "/tasks/stop":
            name = request.url.params.get("name", "")
            self.stop_calls.append(name)
            self.running.discard(name)
            return httpx.Response(200, json={"message": "stopped", "task": name})
        return httpx.Response(404, json={"detail": "Not Found"})

    def _start(self, request: httpx.Request, platform: str) -> httpx.Response:
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error
        if self.start_status >= 400:
            return httpx.Response(self.start_status, json={"detail": f"unknown task {platform}"})

        name = self.task or f"scrape_{platform}"
        if self.start_message == "started":
            self.running.add(name)
            self._polls_left = self.present_polls
        body = {"message": self.start_message}
        if self.task is not None:
            body["task"] = name
        return httpx.Response(200, json=body)

    def _status(self) -> httpx.Response:
        self.status_calls += 1
        if self.status_calls <= self.failing_polls:
            return httpx.Response(503, json={"detail": "busy"})

        if not self.never_finish:
            if self._polls_left > 0:
                self._polls_left -= 1
            else:
                self.running.clear()
        running = sorted(self.running)
        return httpx.Response(200, json={"count": len(running), "running": running})
