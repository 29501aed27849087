"""SQLite-backed job store.

Persists ingestion jobs at ``data/chattube.db`` using ``aiosqlite``.

Two store-level guarantees back the queue's invariants:

- a partial unique index on ``source_id`` over pending/processing rows, so
  a source can never have two active jobs;
- :meth:`SQLiteJobStore.claim_next`, a single ``UPDATE ... RETURNING``
  executed under ``BEGIN IMMEDIATE``, so two claimers (threads, tasks or
  separate processes) can never move the same row to processing;
- :meth:`SQLiteJobStore.update`, which matches on the caller's lease, so a
  worker whose lease was reclaimed cannot overwrite the job afterwards.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

import aiosqlite
import structlog

from chattube.interfaces.job_store import DuplicateActiveJobError, IJobStore
from chattube.models.ingestion import Job, JobStatus, SourceKind
from chattube.providers.store._sqlite import (
    create_schema,
    from_db,
    open_db,
    to_db,
    write_transaction,
)

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/chattube.db")

_COLUMNS = (
    "id, source_id, kind, status, attempts, next_run_at, "
    "lease_expires_at, last_error, created_at, updated_at"
)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS jobs (
    id                TEXT    PRIMARY KEY,
    source_id         TEXT    NOT NULL,
    kind              TEXT    NOT NULL,
    status            TEXT    NOT NULL
                      CHECK (status IN ('pending', 'processing', 'done', 'failed')),
    attempts          INTEGER NOT NULL DEFAULT 0,
    next_run_at       TEXT    NOT NULL,
    lease_expires_at  TEXT,
    last_error        TEXT,
    created_at        TEXT    NOT NULL,
    updated_at        TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    # At most one active job per source.
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_jobs_active_source "
    "ON jobs(source_id) WHERE status IN ('pending', 'processing');",
    "CREATE INDEX IF NOT EXISTS idx_jobs_claim ON jobs(status, next_run_at);",
    "CREATE INDEX IF NOT EXISTS idx_jobs_lease ON jobs(status, lease_expires_at);",
    "CREATE INDEX IF NOT EXISTS idx_jobs_source_created ON jobs(source_id, created_at);",
]

_INSERT_SQL = f"""\
INSERT INTO jobs ({_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_CLAIM_SQL = f"""\
UPDATE jobs
SET status = 'processing',
    lease_expires_at = ?,
    updated_at = ?
WHERE status = 'pending'
  AND id = (
      SELECT id FROM jobs
      WHERE status = 'pending' AND next_run_at <= ?
      ORDER BY next_run_at ASC, created_at ASC
      LIMIT 1
  )
RETURNING {_COLUMNS};
"""

_UPDATE_SQL = """\
UPDATE jobs
SET status = ?, attempts = ?, next_run_at = ?, lease_expires_at = ?,
    last_error = ?, updated_at = ?
WHERE id = ? AND status = 'processing' AND lease_expires_at = ?;
"""

_RECLAIM_SQL = """\
UPDATE jobs
SET status = 'pending',
    lease_expires_at = NULL,
    next_run_at = ?,
    last_error = ?,
    updated_at = ?
WHERE status = 'processing' AND lease_expires_at IS NOT NULL AND lease_expires_at < ?
RETURNING id, source_id;
"""

_DELETE_TERMINAL_SQL = """\
DELETE FROM jobs
WHERE status IN ('done', 'failed') AND updated_at < ?;
"""


def _row_to_job(row: aiosqlite.Row) -> Job:
    return Job(
        id=row["id"],
        source_id=row["source_id"],
        kind=SourceKind(row["kind"]),
        status=JobStatus(row["status"]),
        attempts=row["attempts"],
        next_run_at=from_db(row["next_run_at"]),
        lease_expires_at=from_db(row["lease_expires_at"]),
        last_error=row["last_error"],
        created_at=from_db(row["created_at"]),
        updated_at=from_db(row["updated_at"]),
    )


class SQLiteJobStore(IJobStore):
    """SQLite-backed job persistence with an atomic claim."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the jobs table and indices if they don't exist."""
        await create_schema(self._db_path, [_CREATE_TABLE_SQL, *_CREATE_INDICES_SQL])
        logger.info("job_store_initialized", path=str(self._db_path))

    async def insert(self, job: Job) -> Job:
        async with open_db(self._db_path) as db:
            try:
                await db.execute(
                    _INSERT_SQL,
                    (
                        job.id,
                        job.source_id,
                        job.kind.value,
                        job.status.value,
                        job.attempts,
                        to_db(job.next_run_at),
                        to_db(job.lease_expires_at),
                        job.last_error,
                        to_db(job.created_at),
                        to_db(job.updated_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateActiveJobError(job.source_id) from exc
        return job

    async def find_active(self, source_id: str) -> Job | None:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM jobs "
                "WHERE source_id = ? AND status IN ('pending', 'processing') LIMIT 1",
                (source_id,),
            )
            row = await cursor.fetchone()
        return _row_to_job(row) if row else None

    async def find_latest(self, source_id: str) -> Job | None:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM jobs WHERE source_id = ? "
                "ORDER BY created_at DESC, rowid DESC LIMIT 1",
                (source_id,),
            )
            row = await cursor.fetchone()
        return _row_to_job(row) if row else None

    async def get(self, job_id: str) -> Job | None:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(f"SELECT {_COLUMNS} FROM jobs WHERE id = ?", (job_id,))
            row = await cursor.fetchone()
        return _row_to_job(row) if row else None

    async def claim_next(self, now: datetime, lease_expires_at: datetime) -> Job | None:
        async with open_db(self._db_path) as db:
            async with write_transaction(db):
                cursor = await db.execute(
                    _CLAIM_SQL, (to_db(lease_expires_at), to_db(now), to_db(now))
                )
                # Step RETURNING to completion before COMMIT.
                rows = await cursor.fetchall()
        return _row_to_job(rows[0]) if rows else None

    async def update(self, job: Job, expected_lease: datetime | None) -> bool:
        if expected_lease is None:
            return False
        async with open_db(self._db_path) as db:
            cursor = await db.execute(
                _UPDATE_SQL,
                (
                    job.status.value,
                    job.attempts,
                    to_db(job.next_run_at),
                    to_db(job.lease_expires_at),
                    job.last_error,
                    to_db(job.updated_at),
                    job.id,
                    to_db(expected_lease),
                ),
            )
            return cursor.rowcount == 1

    async def reclaim_expired(self, now: datetime, message: str) -> int:
        async with open_db(self._db_path) as db:
            async with write_transaction(db):
                cursor = await db.execute(
                    _RECLAIM_SQL, (to_db(now), message, to_db(now), to_db(now))
                )
                rows = await cursor.fetchall()
        for row in rows:
            logger.warning("job_lease_reclaimed", job_id=row["id"], source_id=row["source_id"])
        return len(rows)

    async def delete_terminal_before(self, cutoff: datetime) -> int:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(_DELETE_TERMINAL_SQL, (to_db(cutoff),))
            return cursor.rowcount

    async def count_by_status(self) -> dict[JobStatus, int]:
        async with open_db(self._db_path) as db:
            cursor = await db.execute("SELECT status, COUNT(*) AS n FROM jobs GROUP BY status")
            rows = await cursor.fetchall()
        counts = {status: 0 for status in JobStatus}
        for row in rows:
            counts[JobStatus(row["status"])] = row["n"]
        return counts
