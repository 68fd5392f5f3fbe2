"""Error taxonomy for scheduling, orchestration and the controller client.

Each error carries a stable ``code`` that ends up in ``ScrapeResult.error_code``
when the orchestrator converts a failure into a result.
"""


class OrchestrationError(Exception):
    """Base class for every error raised by this package."""

    code = "orchestration_error"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class DuplicateNameError(OrchestrationError):
    """A scheduled task with this name is already registered."""

    code = "duplicate_name"

    def __init__(self, name: str) -> None:
        super().__init__(f"Task already registered: {name}")
        self.name = name


class InvalidScheduleError(OrchestrationError):
    """The cron expression could not be parsed."""

    code = "invalid_schedule"

    def __init__(self, expression: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"Invalid cron expression '{expression}'{detail}")
        self.expression = expression


class TaskNotFoundError(OrchestrationError):
    """No scheduled task with this name."""

    code = "not_found"

    def __init__(self, name: str) -> None:
        super().__init__(f"Task not found: {name}")
        self.name = name


# ---------------------------------------------------------------------------
# Orchestrator / controller client
# ---------------------------------------------------------------------------


class AlreadyRunningError(OrchestrationError):
    code = "already_running"

    def __init__(self, platform: str) -> None:
        super().__init__(
            f"Scraper for '{platform}' is already running. Please wait for it to complete."
        )
        self.platform = platform


class UnsupportedPlatformError(OrchestrationError):
    code = "unsupported_platform"

    def __init__(self, platform: str) -> None:
        super().__init__(f"Unsupported platform: {platform}")
        self.platform = platform


class ControllerUnreachableError(OrchestrationError):
    """The start request never reached the task controller."""

    code = "controller_unreachable"


class ControllerError(OrchestrationError):
    """The task controller answered with a non-2xx status."""

    code = "controller_error"

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        super().__init__(f"Task controller error: {detail}")
        self.detail = detail
        self.status_code = status_code


class TaskTimeoutError(OrchestrationError):
    """The remote task stayed in the running set for the whole poll budget."""

    code = "task_timeout"

    def __init__(self, task_name: str, elapsed: float, budget: float) -> None:
        super().__init__(
            f"Task '{task_name}' did not complete within {budget:g}s "
            f"(waited {elapsed:.1f}s)"
        )
        self.task_name = task_name
        self.elapsed = elapsed
        self.budget = budget


class PersistenceError(OrchestrationError):
    """A single record could not be stored. Counted, never fatal to a batch."""

    code = "persistence_error"

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to save job {url}: {reason}")
        self.url = url
