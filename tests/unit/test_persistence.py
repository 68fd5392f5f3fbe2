"""Tests for JobPersistenceAdapter: dedup by url, per-record error isolation."""

import sqlite3
from typing import Any

import pytest

from src.core.db import count_jobs, find_job_by_url, init_db, insert_job
from src.core.schemas import SaveSummary, ScrapedJobRecord
from src.pipeline.persistence import JobPersistenceAdapter, JobStore, SqliteJobStore


def _record(n: int, **kw: object) -> ScrapedJobRecord:
    defaults: dict[str, object] = {
        "title": f"Engineer {n}",
        "company": "Acme",
        "url": f"https://linkedin.com/job/{n}",
        "source": "linkedin",
    }
    defaults.update(kw)
    return ScrapedJobRecord(**defaults)  # type: ignore[arg-type]


@pytest.fixture
def db(tmp_path: pytest.TempPathFactory) -> sqlite3.Connection:  # type: ignore[type-arg]
    return init_db(tmp_path / "test.db")


class FlakyStore(JobStore):
    """In-memory store whose insert fails for chosen urls."""

    def __init__(self, failing_urls: set[str]) -> None:
        self.jobs: dict[str, ScrapedJobRecord] = {}
        self.failing_urls = failing_urls

    def find_by_url(self, url: str) -> dict[str, Any] | None:
        record = self.jobs.get(url)
        return record.model_dump() if record else None

    def insert(self, record: ScrapedJobRecord) -> int:
        if record.url in self.failing_urls:
            msg = "disk full"
            raise OSError(msg)
        self.jobs[record.url] = record
        return len(self.jobs)


# ---------------------------------------------------------------------------
# SQLite-backed
# ---------------------------------------------------------------------------


class TestSaveAll:
    def test_all_new(self, db: sqlite3.Connection) -> None:
        adapter = JobPersistenceAdapter(SqliteJobStore(db))
        summary = adapter.save_all([_record(1), _record(2)])
        assert summary == SaveSummary(saved=2, duplicates=0, errors=0, total=2)
        assert count_jobs(db) == 2

    def test_one_existing_url_is_skipped(self, db: sqlite3.Connection) -> None:
        insert_job(db, _record(2))
        adapter = JobPersistenceAdapter(SqliteJobStore(db))

        summary = adapter.save_all([_record(1), _record(2), _record(3)])

        assert summary == SaveSummary(saved=2, duplicates=1, errors=0, total=3)
        assert count_jobs(db) == 3

    def test_duplicate_not_overwritten(self, db: sqlite3.Connection) -> None:
        insert_job(db, _record(1, title="Original"))
        adapter = JobPersistenceAdapter(SqliteJobStore(db))
        adapter.save_all([_record(1, title="Rewritten")])
        stored = find_job_by_url(db, "https://linkedin.com/job/1")
        assert stored is not None
        assert stored["title"] == "Original"

    def test_duplicates_within_batch(self, db: sqlite3.Connection) -> None:
        adapter = JobPersistenceAdapter(SqliteJobStore(db))
        summary = adapter.save_all([_record(1), _record(1, title="Same url")])
        assert summary.saved == 1
        assert summary.duplicates == 1
        assert count_jobs(db) == 1

    def test_no_fuzzy_matching(self, db: sqlite3.Connection) -> None:
        """Same title and company but different url → both stored."""
        adapter = JobPersistenceAdapter(SqliteJobStore(db))
        summary = adapter.save_all([
            _record(1, title="Dev", company="Acme"),
            _record(2, title="Dev", company="Acme"),
        ])
        assert summary.saved == 2

    def test_empty_batch(self, db: sqlite3.Connection) -> None:
        adapter = JobPersistenceAdapter(SqliteJobStore(db))
        assert adapter.save_all([]) == SaveSummary()


# ---------------------------------------------------------------------------
# Error isolation
# ---------------------------------------------------------------------------


class TestErrors:
    def test_failure_counted_batch_continues(self) -> None:
        store = FlakyStore(failing_urls={"https://linkedin.com/job/2"})
        adapter = JobPersistenceAdapter(store)

        summary = adapter.save_all([_record(1), _record(2), _record(3)])

        assert summary == SaveSummary(saved=2, duplicates=0, errors=1, total=3)
        assert set(store.jobs) == {"https://linkedin.com/job/1", "https://linkedin.com/job/3"}

    def test_lookup_failure_counted(self) -> None:
        class BrokenLookup(FlakyStore):
            def find_by_url(self, url: str) -> dict[str, Any] | None:
                msg = "connection lost"
                raise RuntimeError(msg)

        adapter = JobPersistenceAdapter(BrokenLookup(set()))
        summary = adapter.save_all([_record(1), _record(2)])
        assert summary.errors == 2
        assert summary.saved == 0
        assert summary.total == 2

    def test_failure_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        adapter = JobPersistenceAdapter(FlakyStore(failing_urls={"https://linkedin.com/job/1"}))
        with caplog.at_level("ERROR"):
            adapter.save_all([_record(1)])
        assert "Failed to save job https://linkedin.com/job/1: disk full" in caplog.text
