"""Job persistence: dedup-by-url save of scraped records.

The url is the only dedup key. A record whose url is already stored is
skipped (never overwritten); no fuzzy matching on title or company.
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from src.core.db import find_job_by_url, insert_job
from src.core.errors import PersistenceError
from src.core.schemas import SaveSummary, ScrapedJobRecord

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """External job storage the adapter writes to."""

    @abstractmethod
    def find_by_url(self, url: str) -> dict[str, Any] | None:
        """Return the stored job for ``url``, or None."""

    @abstractmethod
    def insert(self, record: ScrapedJobRecord) -> int:
        """Store a new job and return its id."""


class SqliteJobStore(JobStore):
    """JobStore backed by the ``jobs`` table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def find_by_url(self, url: str) -> dict[str, Any] | None:
        return find_job_by_url(self._conn, url)

    def insert(self, record: ScrapedJobRecord) -> int:
        return insert_job(self._conn, record)


class JobPersistenceAdapter:
    """Saves a batch of scraped records, skipping urls already stored.

    Usage::

        adapter = JobPersistenceAdapter(SqliteJobStore(conn))
        summary = adapter.save_all(records)
        print(summary.saved, summary.duplicates, summary.errors)
    """

    def __init__(self, store: JobStore) -> None:
        self._store = store

    def save_all(self, records: Iterable[ScrapedJobRecord]) -> SaveSummary:
        """Save every new record; per-record failures are counted, not raised."""
        batch = list(records)
        summary = SaveSummary(total=len(batch))
        logger.info("Saving %d jobs", len(batch))

        for record in batch:
            try:
                if self._store.find_by_url(record.url) is not None:
                    summary.duplicates += 1
                    continue
                self._store.insert(record)
                summary.saved += 1
            except Exception as e:
                summary.errors += 1
                logger.error("%s", PersistenceError(record.url, str(e)))

        logger.info(
            "Saved %d new jobs, skipped %d duplicates, %d errors",
            summary.saved, summary.duplicates, summary.errors,
        )
        return summary
