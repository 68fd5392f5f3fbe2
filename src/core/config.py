"""Configuration models and YAML loader for the scrape orchestrator."""

import os
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from src.core.errors import InvalidScheduleError
from src.scheduling.timers import parse_cron

TASKS_API_BASE_ENV = "TASKS_API_BASE"


class ControllerConfig(BaseModel):
    """Remote task controller endpoint and polling budget."""

    base_url: str = "http://127.0.0.1:8000"
    poll_interval_seconds: float = Field(default=3.0, gt=0)
    timeout_seconds: float = Field(default=300.0, gt=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            msg = "base_url must not be empty"
            raise ValueError(msg)
        return v


class SchedulerConfig(BaseModel):
    """Timer settings shared by every scheduled task."""

    timezone: str = "Asia/Kolkata"
    start_immediately: bool = True

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            msg = f"unknown timezone: {v}"
            raise ValueError(msg) from e
        return v


class PlatformConfig(BaseModel):
    """A job board the remote controller knows how to scrape."""

    id: str
    name: str = ""
    description: str = ""
    enabled: bool = True

    @field_validator("id")
    @classmethod
    def id_normalized(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            msg = "platform id must not be empty"
            raise ValueError(msg)
        return v


class ScheduleConfig(BaseModel):
    """A recurring scrape registered at startup."""

    name: str
    platform: str
    cron: str
    description: str = ""

    @field_validator("name", "cron")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "must not be empty"
            raise ValueError(msg)
        return v.strip()

    @field_validator("cron")
    @classmethod
    def cron_parses(cls, v: str) -> str:
        try:
            parse_cron(v, "UTC")
        except InvalidScheduleError as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("platform")
    @classmethod
    def platform_lower(cls, v: str) -> str:
        return v.strip().lower()


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/jobs.db"


def _default_platforms() -> list[PlatformConfig]:
    return [
        PlatformConfig(id="linkedin", name="LinkedIn", description="Professional networking platform"),
        PlatformConfig(id="naukri", name="Naukri.com", description="Leading job portal in India"),
        PlatformConfig(id="indeed", name="Indeed", description="Global job search engine"),
    ]


def _default_schedules() -> list[ScheduleConfig]:
    return [
        ScheduleConfig(name="linkedin-daily", platform="linkedin", cron="0 9 * * *",
                       description="Daily LinkedIn job scraping"),
        ScheduleConfig(name="naukri-daily", platform="naukri", cron="0 14 * * *",
                       description="Daily Naukri job scraping"),
        ScheduleConfig(name="indeed-daily", platform="indeed", cron="0 18 * * *",
                       description="Daily Indeed job scraping"),
    ]


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    controller: ControllerConfig = Field(default_factory=ControllerConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    platforms: list[PlatformConfig] = Field(default_factory=_default_platforms)
    schedules: list[ScheduleConfig] = Field(default_factory=_default_schedules)

    @model_validator(mode="after")
    def schedules_consistent(self) -> "Settings":
        names = [s.name for s in self.schedules]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            msg = f"duplicate schedule names: {', '.join(dupes)}"
            raise ValueError(msg)
        known = {p.id for p in self.platforms}
        unknown = sorted({s.platform for s in self.schedules} - known)
        if unknown:
            msg = f"schedules reference unknown platforms: {', '.join(unknown)}"
            raise ValueError(msg)
        return self

    def enabled_platforms(self) -> list[str]:
        """Return ids of platforms that may be scraped."""
        return [p.id for p in self.platforms if p.enabled]

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file.

        ``TASKS_API_BASE`` in the environment overrides ``controller.base_url``.
        """
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        env_base = os.environ.get(TASKS_API_BASE_ENV)
        if env_base:
            controller = dict(raw.get("controller") or {})
            controller["base_url"] = env_base
            raw["controller"] = controller
        return cls.model_validate(raw)
