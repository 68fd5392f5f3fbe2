"""SQLite database layer for scraped jobs and scrape run history."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from src.core.schemas import RunHistoryEntry, RunState, ScrapedJobRecord

_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    url             TEXT    NOT NULL UNIQUE,
    title           TEXT    NOT NULL,
    company         TEXT    NOT NULL,
    location        TEXT    NOT NULL DEFAULT '',
    description     TEXT    NOT NULL DEFAULT '',
    source          TEXT    NOT NULL,
    platform_job_id TEXT    NOT NULL DEFAULT '',
    salary          TEXT    NOT NULL DEFAULT '',
    experience      TEXT    NOT NULL DEFAULT '',
    employment_type TEXT    NOT NULL DEFAULT 'full-time',
    skills_json     TEXT    NOT NULL DEFAULT '[]',
    posted_at       TEXT,
    scraped_at      TEXT    NOT NULL,
    status          TEXT    NOT NULL DEFAULT 'active',
    extra_data_json TEXT    NOT NULL DEFAULT '{}'
);
"""

_SCRAPE_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS scrape_runs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    platform        TEXT    NOT NULL,
    state           TEXT    NOT NULL,
    started_at      TEXT    NOT NULL,
    finished_at     TEXT,
    jobs_scraped    INTEGER NOT NULL DEFAULT 0,
    error_message   TEXT,
    saved           INTEGER NOT NULL DEFAULT 0,
    duplicates      INTEGER NOT NULL DEFAULT 0,
    errors          INTEGER NOT NULL DEFAULT 0
);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_JOBS_TABLE)
    conn.execute(_SCRAPE_RUNS_TABLE)
    conn.commit()
    return conn


def find_job_by_url(conn: sqlite3.Connection, url: str) -> dict[str, Any] | None:
    """Return the stored job with this url, or None."""
    row = conn.execute("SELECT * FROM jobs WHERE url = ? LIMIT 1", (url,)).fetchone()
    if row is None:
        return None
    return dict(row)


def insert_job(conn: sqlite3.Connection, record: ScrapedJobRecord) -> int:
    """Insert a scraped job. Returns the row ID.

    Raises sqlite3.IntegrityError if the url is already stored.
    """
    cursor = conn.execute(
        """
        INSERT INTO jobs
            (url, title, company, location, description, source, platform_job_id,
             salary, experience, employment_type, skills_json, posted_at,
             scraped_at, extra_data_json)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            record.url,
            record.title,
            record.company,
            record.location,
            record.description,
            record.source,
            record.platform_job_id,
            record.salary,
            record.experience,
            record.employment_type,
            json.dumps(record.skills),
            record.posted_at.isoformat() if record.posted_at else None,
            record.scraped_at.isoformat(),
            json.dumps(record.extra_data, default=str),
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


def count_jobs(conn: sqlite3.Connection, source: str | None = None) -> int:
    """Count stored jobs, optionally for a single source platform."""
    if source is None:
        row = conn.execute("SELECT COUNT(*) FROM jobs").fetchone()
    else:
        row = conn.execute("SELECT COUNT(*) FROM jobs WHERE source = ?", (source,)).fetchone()
    return int(row[0])


def insert_scrape_run(conn: sqlite3.Connection, entry: RunHistoryEntry) -> int:
    """Record a finished (or stopped) scrape run. Returns the row ID."""
    cursor = conn.execute(
        """
        INSERT INTO scrape_runs
            (platform, state, started_at, finished_at, jobs_scraped,
             error_message, saved, duplicates, errors)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            entry.platform,
            entry.state.value,
            entry.started_at.isoformat(),
            entry.finished_at.isoformat() if entry.finished_at else None,
            entry.jobs_scraped,
            entry.error_message,
            entry.saved,
            entry.duplicates,
            entry.errors,
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


def get_recent_runs(
    conn: sqlite3.Connection,
    platform: str | None = None,
    limit: int = 10,
) -> list[RunHistoryEntry]:
    """Return the most recent runs, newest first."""
    if platform is None:
        rows = conn.execute(
            "SELECT * FROM scrape_runs ORDER BY id DESC LIMIT ?", (limit,)
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM scrape_runs WHERE platform = ? ORDER BY id DESC LIMIT ?",
            (platform, limit),
        ).fetchall()
    return [_row_to_entry(r) for r in rows]


def _row_to_entry(row: sqlite3.Row) -> RunHistoryEntry:
    finished = row["finished_at"]
    return RunHistoryEntry(
        platform=row["platform"],
        state=RunState(row["state"]),
        started_at=datetime.fromisoformat(row["started_at"]),
        finished_at=datetime.fromisoformat(finished) if finished else None,
        jobs_scraped=row["jobs_scraped"],
        error_message=row["error_message"],
        saved=row["saved"],
        duplicates=row["duplicates"],
        errors=row["errors"],
    )
