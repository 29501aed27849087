"""SQLite-backed source repository.

Source rows are written by source management.  The ingestion core only
rewrites the ``processing`` JSON column and the kind-specific ``metadata``
JSON column (plus ``title`` when a processor resolves one).
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from chattube.interfaces.source_repository import ISourceRepository
from chattube.models.ingestion import ProcessingMetadata, Source, SourceKind, SourceMetadata
from chattube.providers.store._sqlite import create_schema, from_db, open_db, to_db
from chattube.utils.errors import SourceNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/chattube.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS sources (
    id          TEXT PRIMARY KEY,
    kind        TEXT NOT NULL CHECK (kind IN ('video', 'web', 'document', 'file')),
    locator     TEXT NOT NULL,
    title       TEXT,
    metadata    TEXT,
    processing  TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

_SELECT_SQL = """\
SELECT id, kind, locator, title, metadata, processing, created_at, updated_at
FROM sources WHERE id = ?;
"""

_INSERT_SQL = """\
INSERT INTO sources (id, kind, locator, title, metadata, processing, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?);
"""


def _row_to_source(row: aiosqlite.Row) -> Source:
    return Source(
        id=row["id"],
        kind=SourceKind(row["kind"]),
        locator=row["locator"],
        title=row["title"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else None,
        processing=ProcessingMetadata.model_validate_json(row["processing"]),
        created_at=from_db(row["created_at"]),
        updated_at=from_db(row["updated_at"]),
    )


class SQLiteSourceRepository(ISourceRepository):
    """SQLite-backed source reads and ingestion-state writes."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        await create_schema(self._db_path, [_CREATE_TABLE_SQL])
        logger.info("source_store_initialized", path=str(self._db_path))

    async def get(self, source_id: str) -> Source | None:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(_SELECT_SQL, (source_id,))
            row = await cursor.fetchone()
        return _row_to_source(row) if row else None

    async def add(self, source: Source) -> None:
        now = datetime.now(timezone.utc)
        async with open_db(self._db_path) as db:
            await db.execute(
                _INSERT_SQL,
                (
                    source.id,
                    source.kind.value,
                    source.locator,
                    source.title,
                    source.metadata.model_dump_json() if source.metadata else None,
                    source.processing.model_dump_json(),
                    to_db(source.created_at or now),
                    to_db(now),
                ),
            )

    async def update_processing(self, source_id: str, processing: ProcessingMetadata) -> None:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(
                "UPDATE sources SET processing = ?, updated_at = ? WHERE id = ?",
                (processing.model_dump_json(), to_db(datetime.now(timezone.utc)), source_id),
            )
            if cursor.rowcount == 0:
                raise SourceNotFoundError(source_id)

    async def update_metadata(
        self, source_id: str, metadata: SourceMetadata, title: str | None = None
    ) -> None:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(
                "UPDATE sources SET metadata = ?, title = COALESCE(?, title), updated_at = ? "
                "WHERE id = ? AND kind = ?",
                (
                    metadata.model_dump_json(),
                    title,
                    to_db(datetime.now(timezone.utc)),
                    source_id,
                    metadata.kind,
                ),
            )
            if cursor.rowcount == 0:
                raise SourceNotFoundError(source_id)
