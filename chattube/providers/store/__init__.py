"""aiosqlite-backed stores for jobs, sources and chunks.

All three may share one database file (``STORE_PATH``).
"""

from chattube.providers.store.sqlite_chunk_store import SQLiteChunkStore
from chattube.providers.store.sqlite_job_store import SQLiteJobStore
from chattube.providers.store.sqlite_source_repository import SQLiteSourceRepository

__all__ = ["SQLiteChunkStore", "SQLiteJobStore", "SQLiteSourceRepository"]
