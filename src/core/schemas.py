"""Core data models for the scrape orchestrator."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RunState(str, Enum):
    """Lifecycle of a single platform run.

    idle -> running -> {completed | error | stopped}, then running again.
    """

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    STOPPED = "stopped"


class ScrapedJobRecord(BaseModel):
    """A job listing produced by a remote scrape.

    Frozen: consumed once by the persistence adapter, never mutated.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    company: str
    location: str = ""
    url: str
    source: str
    platform_job_id: str = ""
    scraped_at: datetime = Field(default_factory=datetime.now)
    extra_data: dict[str, Any] = Field(default_factory=dict)
    description: str = ""
    salary: str = ""
    experience: str = ""
    employment_type: str = "full-time"
    skills: list[str] = Field(default_factory=list)
    posted_at: datetime | None = None

    @field_validator("url")
    @classmethod
    def url_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "url must not be empty"
            raise ValueError(msg)
        return v.strip()

    @field_validator("source")
    @classmethod
    def source_lower(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("skills")
    @classmethod
    def skills_lower(cls, v: list[str]) -> list[str]:
        return [s.strip().lower() for s in v if s.strip()]


class SaveSummary(BaseModel):
    """Outcome of one persistence batch."""

    saved: int = 0
    duplicates: int = 0
    errors: int = 0
    total: int = 0


class RunStatus(BaseModel):
    """Read-only snapshot of one platform's run state."""

    model_config = ConfigDict(frozen=True)

    platform: str
    state: RunState = RunState.IDLE
    last_run_started_at: datetime | None = None
    last_run_finished_at: datetime | None = None
    jobs_scraped: int = 0
    error_message: str | None = None
    run_id: int = 0

    @property
    def is_running(self) -> bool:
        return self.state is RunState.RUNNING


class ScrapeResult(BaseModel):
    """What the orchestrator hands back to callers for start/stop."""

    success: bool
    message: str
    platform: str | None = None
    jobs_scraped: int = 0
    summary: SaveSummary | None = None
    error_code: str | None = None
    note: str | None = None


class TaskStatus(BaseModel):
    """Registry snapshot entry for one scheduled task."""

    model_config = ConfigDict(frozen=True)

    platform: str
    cron_expression: str
    description: str
    enabled: bool


class RunHistoryEntry(BaseModel):
    """One recorded run, as stored in the scrape_runs table."""

    platform: str
    state: RunState
    started_at: datetime
    finished_at: datetime | None = None
    jobs_scraped: int = 0
    error_message: str | None = None
    saved: int = 0
    duplicates: int = 0
    errors: int = 0
