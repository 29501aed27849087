"""Connection and timestamp helpers shared by the SQLite stores.

Every store opens a short-lived connection per operation, the same way the
other aiosqlite providers do.  Connections run in autocommit mode so that
multi-statement writes can take the write lock up front with
``BEGIN IMMEDIATE``; that lock is what makes job claiming safe across
worker processes.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from chattube.utils.errors import StoreUnavailableError

# Fixed-width UTC format so TEXT comparisons order the same as the instants.
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
_BUSY_TIMEOUT_SECONDS = 30.0


def to_db(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def from_db(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


@asynccontextmanager
async def open_db(db_path: Path) -> AsyncIterator[aiosqlite.Connection]:
    """Open an autocommit connection with ``Row`` results.

    ``OperationalError`` (locked database, missing file) surfaces as the
    transient :class:`StoreUnavailableError`.
    """
    try:
        async with aiosqlite.connect(
            str(db_path), timeout=_BUSY_TIMEOUT_SECONDS, isolation_level=None
        ) as db:
            db.row_factory = aiosqlite.Row
            yield db
    except aiosqlite.OperationalError as exc:
        raise StoreUnavailableError(
            message=f"SQLite operation failed on {db_path}: {exc}",
            provider_name="sqlite",
        ) from exc


@asynccontextmanager
async def write_transaction(db: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
    """Run the block inside ``BEGIN IMMEDIATE`` ... ``COMMIT``; roll back on error."""
    await db.execute("BEGIN IMMEDIATE")
    try:
        yield db
    except BaseException:
        await db.execute("ROLLBACK")
        raise
    await db.execute("COMMIT")


async def create_schema(db_path: Path, statements: list[str]) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    async with open_db(db_path) as db:
        # WAL lets status readers run while a worker holds the write lock.
        await db.execute("PRAGMA journal_mode=WAL")
        for sql in statements:
            await db.execute(sql)
