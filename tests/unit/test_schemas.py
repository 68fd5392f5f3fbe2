"""Tests for core data models."""

import pytest
from pydantic import ValidationError

from src.core.schemas import RunState, RunStatus, SaveSummary, ScrapedJobRecord


def _record(**kw: object) -> ScrapedJobRecord:
    defaults: dict[str, object] = {
        "title": "Backend Developer",
        "company": "Acme",
        "url": "https://linkedin.com/job/1",
        "source": "linkedin",
    }
    defaults.update(kw)
    return ScrapedJobRecord(**defaults)  # type: ignore[arg-type]


class TestScrapedJobRecord:
    def test_frozen(self) -> None:
        r = _record()
        with pytest.raises(ValidationError):
            r.title = "Other"  # type: ignore[misc]

    def test_url_required(self) -> None:
        with pytest.raises(ValidationError):
            _record(url="   ")

    def test_source_and_skills_lowercased(self) -> None:
        r = _record(source="LinkedIn", skills=["Python", " SQL ", ""])
        assert r.source == "linkedin"
        assert r.skills == ["python", "sql"]

    def test_defaults(self) -> None:
        r = _record()
        assert r.employment_type == "full-time"
        assert r.extra_data == {}
        assert r.posted_at is None


class TestRunStatus:
    def test_idle_by_default(self) -> None:
        s = RunStatus(platform="linkedin")
        assert s.state is RunState.IDLE
        assert s.is_running is False
        assert s.error_message is None

    def test_is_running(self) -> None:
        assert RunStatus(platform="linkedin", state=RunState.RUNNING).is_running is True

    def test_frozen(self) -> None:
        s = RunStatus(platform="linkedin")
        with pytest.raises(ValidationError):
            s.state = RunState.RUNNING  # type: ignore[misc]


class TestSaveSummary:
    def test_zeroed(self) -> None:
        assert SaveSummary().model_dump() == {"saved": 0, "duplicates": 0, "errors": 0, "total": 0}
