"""Abstract base class for task runners and the models they exchange."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.core.schemas import ScrapedJobRecord


class RemoteTaskHandle(BaseModel):
    """Name under which the controller lists a started task as running."""

    model_config = ConfigDict(frozen=True)

    remote_task_name: str


class ControllerStatus(BaseModel):
    """Body of ``GET /tasks/status``."""

    count: int = 0
    running: list[str] = Field(default_factory=list)


class RemoteRunOutcome(BaseModel):
    """Result of one start+poll cycle.

    The controller reports completion only, never job counts, so
    ``jobs_scraped`` is the caller's bookkeeping (zero unless records came back).
    """

    task_name: str
    note: str
    records: list[ScrapedJobRecord] = Field(default_factory=list)

    @property
    def jobs_scraped(self) -> int:
        return len(self.records)


class TaskRunner(ABC):
    """Base class for anything that can execute a platform scrape to completion."""

    @abstractmethod
    async def run(
        self,
        platform: str,
        credentials: dict[str, Any] | None = None,
    ) -> RemoteRunOutcome:
        """Start the scrape for ``platform`` and wait until it finishes.

        Raises:
            ControllerUnreachableError: The start request could not be sent.
            ControllerError: The controller rejected the request.
            TaskTimeoutError: The task did not finish within the poll budget.
        """

    async def running_tasks(self) -> list[str]:
        """Names of tasks already executing outside this process, if known."""
        return []

    async def aclose(self) -> None:
        """Release any resources held by the runner."""
