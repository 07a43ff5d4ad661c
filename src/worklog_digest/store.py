from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from worklog_digest.errors import ErrorKind, WorklogError
from worklog_digest.models import CachedEnhancement, DailySummaryRecord, UsageRecord, UsageStats
from worklog_digest.usage import aggregate_usage

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS cached_enhancements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    author_name TEXT NOT NULL,
    day TEXT NOT NULL,
    commit_hashes TEXT NOT NULL,
    enhanced_text TEXT NOT NULL,
    model_identifier TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(author_name, day)
);

CREATE TABLE IF NOT EXISTS daily_summaries (
    id TEXT PRIMARY KEY,
    author_name TEXT NOT NULL,
    day TEXT NOT NULL,
    basic_text TEXT NOT NULL,
    repository TEXT NOT NULL,
    enhancement_id INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(author_name, day, repository),
    FOREIGN KEY (enhancement_id) REFERENCES cached_enhancements(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS usage_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    model TEXT NOT NULL,
    tokens_used INTEGER NOT NULL,
    duration_ms INTEGER NOT NULL,
    status TEXT NOT NULL,
    error_message TEXT,
    author_name TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_daily_summaries_author_day ON daily_summaries(author_name, day);
CREATE INDEX IF NOT EXISTS idx_usage_records_timestamp ON usage_records(timestamp);
CREATE INDEX IF NOT EXISTS idx_usage_records_author ON usage_records(author_name);
"""

SUMMARY_SELECT = """
    SELECT s.id, s.author_name, s.day, s.basic_text, s.repository, s.created_at, s.updated_at,
           e.id AS enhancement_id, e.enhanced_text, e.model_identifier
    FROM daily_summaries s
    LEFT JOIN cached_enhancements e ON s.enhancement_id = e.id
"""

_HASH_SET = TypeAdapter(frozenset[str])


class Store:
    """SQLite persistence for daily summaries, cached enhancements and usage."""

    def __init__(self, db_path: Path, now: Callable[[], datetime] | None = None):
        self.db_path = Path(db_path)
        self._now = now or (lambda: datetime.now(timezone.utc))

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with _persistence("init_db", db=str(self.db_path)):
            with self._connect() as conn:
                conn.executescript(SCHEMA_SQL)

    def get_daily_summaries(self, author: str, since: date, repository: str) -> list[DailySummaryRecord]:
        with _persistence("get_daily_summaries", author=author, since=since):
            with self._connect() as conn:
                rows = conn.execute(
                    SUMMARY_SELECT
                    + " WHERE s.author_name = ? AND s.day >= ? AND s.repository = ? ORDER BY s.day",
                    (author, since.isoformat(), repository),
                ).fetchall()
        return [_row_to_summary(row) for row in rows]

    def save_daily_summary(
        self,
        author: str,
        day: date,
        basic_text: str,
        repository: str,
        enhancement_id: int | None = None,
    ) -> DailySummaryRecord:
        """Upsert the summary for ``(author, day, repository)`` and return it as stored.

        ``updated_at`` only moves when the text or the enhancement link changes.
        """
        stamp = _ts(self._now())
        with _persistence("save_daily_summary", author=author, day=day):
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO daily_summaries(
                        id, author_name, day, basic_text, repository, enhancement_id, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(author_name, day, repository) DO UPDATE SET
                        updated_at = CASE
                            WHEN basic_text IS excluded.basic_text AND enhancement_id IS excluded.enhancement_id
                            THEN updated_at
                            ELSE excluded.updated_at
                        END,
                        basic_text = excluded.basic_text,
                        enhancement_id = excluded.enhancement_id
                    """,
                    (uuid.uuid4().hex, author, day.isoformat(), basic_text, repository, enhancement_id, stamp, stamp),
                )
                row = conn.execute(
                    SUMMARY_SELECT + " WHERE s.author_name = ? AND s.day = ? AND s.repository = ?",
                    (author, day.isoformat(), repository),
                ).fetchone()
        return _row_to_summary(row)

    def get_cached_enhancement(self, author: str, day: date) -> CachedEnhancement | None:
        with _persistence("get_cached_enhancement", author=author, day=day):
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM cached_enhancements WHERE author_name = ? AND day = ?",
                    (author, day.isoformat()),
                ).fetchone()
        return _row_to_enhancement(row) if row else None

    def save_cached_enhancement(
        self,
        author: str,
        day: date,
        commit_hashes: frozenset[str],
        enhanced_text: str,
        model_identifier: str,
    ) -> CachedEnhancement:
        """Upsert the enhancement for ``(author, day)``; the row id survives updates."""
        stamp = _ts(self._now())
        with _persistence("save_cached_enhancement", author=author, day=day):
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO cached_enhancements(
                        author_name, day, commit_hashes, enhanced_text, model_identifier, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(author_name, day) DO UPDATE SET
                        commit_hashes = excluded.commit_hashes,
                        enhanced_text = excluded.enhanced_text,
                        model_identifier = excluded.model_identifier,
                        updated_at = excluded.updated_at
                    """,
                    (
                        author,
                        day.isoformat(),
                        json.dumps(sorted(commit_hashes)),
                        enhanced_text,
                        model_identifier,
                        stamp,
                        stamp,
                    ),
                )
                row = conn.execute(
                    "SELECT * FROM cached_enhancements WHERE author_name = ? AND day = ?",
                    (author, day.isoformat()),
                ).fetchone()
        return _row_to_enhancement(row)

    def delete_cached_enhancements(self, author: str, since: date, until: date | None = None) -> int:
        """Delete the author's enhancements with ``since <= day [<= until]``."""
        query = "DELETE FROM cached_enhancements WHERE author_name = ? AND day >= ?"
        params: tuple = (author, since.isoformat())
        if until is not None:
            query += " AND day <= ?"
            params = (*params, until.isoformat())

        with _persistence("delete_cached_enhancements", author=author, since=since):
            with self._connect() as conn:
                deleted = conn.execute(query, params).rowcount
        if deleted:
            logger.info("[store] deleted %d cached enhancement(s) author=%s since=%s", deleted, author, since)
        return deleted

    def record_usage(self, entry: UsageRecord) -> None:
        with _persistence("record_usage", author=entry.author_name):
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO usage_records(
                        timestamp, model, tokens_used, duration_ms, status, error_message, author_name
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        _ts(entry.timestamp),
                        entry.model,
                        entry.tokens_used,
                        entry.duration_ms,
                        entry.status,
                        entry.error_message,
                        entry.author_name,
                    ),
                )

    def list_usage(self, start: datetime, end: datetime) -> list[UsageRecord]:
        """Return usage records with ``start <= timestamp < end`` in insertion order."""
        with _persistence("list_usage"):
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM usage_records WHERE timestamp >= ? AND timestamp < ? ORDER BY id",
                    (_ts(start), _ts(end)),
                ).fetchall()
        return [
            UsageRecord(
                timestamp=datetime.fromisoformat(row["timestamp"]),
                model=row["model"],
                tokens_used=row["tokens_used"],
                duration_ms=row["duration_ms"],
                status=row["status"],
                error_message=row["error_message"],
                author_name=row["author_name"],
            )
            for row in rows
        ]

    def get_today_usage_stats(self, tz: tzinfo) -> UsageStats:
        start, end = self._today_window(tz)
        return aggregate_usage(self.list_usage(start, end))

    def get_last_error_today(self, tz: tzinfo) -> str | None:
        start, end = self._today_window(tz)
        errors = [record for record in self.list_usage(start, end) if record.status == "error"]
        return errors[-1].error_message if errors else None

    def _today_window(self, tz: tzinfo) -> tuple[datetime, datetime]:
        today = self._now().astimezone(tz).date()
        start = datetime.combine(today, time.min, tzinfo=tz)
        return start, start + timedelta(days=1)


@contextmanager
def _persistence(operation: str, **context: Any) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        logger.error("[store] %s failed %s: %s", operation, context, exc)
        raise WorklogError(
            ErrorKind.PERSISTENCE,
            f"{operation} failed: {exc}",
            context={"operation": operation, **{key: str(value) for key, value in context.items()}},
        ) from exc


def _ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def decode_commit_hashes(raw: str | None) -> frozenset[str] | None:
    """Validate a stored hash list; ``None`` signals a corrupt entry."""
    if raw is None:
        return None
    try:
        return _HASH_SET.validate_json(raw)
    except ValidationError:
        return None


def _row_to_enhancement(row: sqlite3.Row) -> CachedEnhancement:
    hashes = decode_commit_hashes(row["commit_hashes"])
    if hashes is None:
        logger.warning(
            "[store] corrupt commit hash list author=%s day=%s",
            row["author_name"],
            row["day"],
        )
    return CachedEnhancement(
        id=row["id"],
        author_name=row["author_name"],
        day=date.fromisoformat(row["day"]),
        commit_hashes=hashes,
        enhanced_text=row["enhanced_text"],
        model_identifier=row["model_identifier"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_summary(row: sqlite3.Row) -> DailySummaryRecord:
    enhancement_id = row["enhancement_id"]
    return DailySummaryRecord(
        id=row["id"],
        author_name=row["author_name"],
        day=date.fromisoformat(row["day"]),
        basic_text=row["basic_text"],
        repository=row["repository"],
        has_enhancement=enhancement_id is not None,
        enhancement_id=enhancement_id,
        enhanced_text=row["enhanced_text"],
        model_identifier=row["model_identifier"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
