"""SQLite-backed chunk store.

Embeddings are stored as JSON arrays; similarity search belongs to the
external query engine, so the store never needs to index vectors.
``replace_for_source`` deletes and inserts inside one ``BEGIN IMMEDIATE``
transaction, which keeps ``(source_id, chunk_index)`` unique across
re-ingestion.
"""

from __future__ import annotations

import json
from pathlib import Path

import aiosqlite
import structlog

from chattube.interfaces.chunk_store import IChunkStore
from chattube.models.ingestion import Chunk
from chattube.providers.store._sqlite import (
    create_schema,
    from_db,
    open_db,
    to_db,
    write_transaction,
)

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/chattube.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS chunks (
    id           TEXT    PRIMARY KEY,
    source_id    TEXT    NOT NULL,
    chunk_index  INTEGER NOT NULL,
    text         TEXT    NOT NULL,
    start_time   REAL,
    end_time     REAL,
    embedding    TEXT    NOT NULL,
    token_count  INTEGER NOT NULL DEFAULT 0,
    metadata     TEXT    NOT NULL DEFAULT '{}',
    created_at   TEXT    NOT NULL,
    UNIQUE(source_id, chunk_index)
);
"""

_INSERT_SQL = """\
INSERT INTO chunks (id, source_id, chunk_index, text, start_time, end_time,
                    embedding, token_count, metadata, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_SQL = """\
SELECT id, source_id, chunk_index, text, start_time, end_time,
       embedding, token_count, metadata, created_at
FROM chunks WHERE source_id = ? ORDER BY chunk_index ASC;
"""


def _row_to_chunk(row: aiosqlite.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        source_id=row["source_id"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        start_time=row["start_time"],
        end_time=row["end_time"],
        embedding=json.loads(row["embedding"]),
        token_count=row["token_count"],
        metadata=json.loads(row["metadata"]),
        created_at=from_db(row["created_at"]),
    )


class SQLiteChunkStore(IChunkStore):
    """SQLite-backed chunk persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        await create_schema(self._db_path, [_CREATE_TABLE_SQL])
        logger.info("chunk_store_initialized", path=str(self._db_path))

    async def replace_for_source(self, source_id: str, chunks: list[Chunk]) -> int:
        rows = [
            (
                c.id,
                source_id,
                c.chunk_index,
                c.text,
                c.start_time,
                c.end_time,
                json.dumps(c.embedding),
                c.token_count,
                json.dumps(c.metadata),
                to_db(c.created_at),
            )
            for c in chunks
        ]
        async with open_db(self._db_path) as db:
            async with write_transaction(db):
                cursor = await db.execute("DELETE FROM chunks WHERE source_id = ?", (source_id,))
                replaced = cursor.rowcount
                await db.executemany(_INSERT_SQL, rows)

        logger.info(
            "chunks_persisted",
            source_id=source_id,
            inserted=len(rows),
            replaced=replaced,
        )
        return replaced

    async def list_for_source(self, source_id: str) -> list[Chunk]:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(_SELECT_SQL, (source_id,))
            rows = await cursor.fetchall()
        return [_row_to_chunk(r) for r in rows]

    async def count_for_source(self, source_id: str) -> int:
        async with open_db(self._db_path) as db:
            cursor = await db.execute(
                "SELECT COUNT(*) AS n FROM chunks WHERE source_id = ?", (source_id,)
            )
            row = await cursor.fetchone()
        return row["n"]
