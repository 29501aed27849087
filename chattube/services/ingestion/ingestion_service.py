"""Orchestrator for one source ingestion, end to end.

Source-level state machine: **pending -> processing -> completed | failed**.
It mirrors ``Source.processing.status`` and is independent of the job's
own pending/processing/done/failed lifecycle in the queue.

The :class:`IngestionService` coordinates its collaborators without any of
them knowing about each other:

    1. ISourceRepository -- load the source, record processing state
    2. ProcessorRegistry -- pick the processor for ``source.kind``
    3. SourceProcessor   -- turn the source into chunk drafts + metadata
    4. ISourceRepository -- store the extracted metadata
    5. IChunkStore       -- replace the source's chunks in one batch
    6. ISourceRepository -- mark the source completed

Every failure is written to the source before it is re-raised, so the
source's status and the queue's retry bookkeeping never disagree.

The three writes are not one transaction.  If marking the source completed
fails after step 5, the source reads failed while its new chunks are
already stored; the queue retries the job, and the retry's step 5 replaces
those chunks again, so a successful retry converges on the same state.
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

import structlog

from chattube.models.ingestion import (
    Chunk,
    ChunkDraft,
    IngestionOutcome,
    ProcessingMetadata,
    ProcessingStatus,
    Source,
)
from chattube.utils.errors import EmbeddingDimensionError, SourceNotFoundError

if TYPE_CHECKING:
    from chattube.interfaces.chunk_store import IChunkStore
    from chattube.interfaces.source_repository import ISourceRepository
    from chattube.models.ingestion import Job
    from chattube.services.ingestion.queue import IngestionQueue
    from chattube.services.ingestion.registry import ProcessorRegistry

logger = structlog.get_logger(logger_name=__name__)

_MAX_ERROR_LENGTH = 2000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionService:
    """Runs a single source through its processor and persists the result.

    Parameters
    ----------
    source_repository:
        Reads sources and stores their processing state and metadata.
    chunk_store:
        Persists chunks; each successful run replaces the source's chunks.
    registry:
        Kind → processor lookup.
    embedding_dimension:
        Length every chunk embedding must have.  Checked before persistence.
    queue:
        Optional job queue, needed only by :meth:`queue_source`.
    """

    def __init__(
        self,
        source_repository: ISourceRepository,
        chunk_store: IChunkStore,
        registry: ProcessorRegistry,
        embedding_dimension: int,
        queue: IngestionQueue | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sources = source_repository
        self._chunks = chunk_store
        self._registry = registry
        self._dimension = embedding_dimension
        self._queue = queue
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process_source(self, source_id: str) -> IngestionOutcome:
        """Ingest *source_id* and record the outcome on the source.

        Raises
        ------
        SourceNotFoundError
            If the source does not exist (permanent).
        Exception
            Whatever the processor or a store raised, after the source has
            been marked failed.
        """
        source = await self._sources.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)

        log = logger.bind(source_id=source_id, kind=source.kind.value)
        started_at = self._clock()
        t0 = time.monotonic()

        await self._sources.update_processing(
            source_id,
            ProcessingMetadata(status=ProcessingStatus.PROCESSING, started_at=started_at),
        )
        log.info("source_processing_started")

        try:
            processor = self._registry.get(source.kind)
            result = await processor.ingest(source)

            chunks = self._build_chunks(source, result.chunks)

            if result.metadata is not None:
                await self._sources.update_metadata(
                    source_id,
                    result.metadata,
                    title=getattr(result.metadata, "title", None),
                )
            replaced = await self._chunks.replace_for_source(source_id, chunks)

            elapsed_ms = int((time.monotonic() - t0) * 1000)
            await self._sources.update_processing(
                source_id,
                ProcessingMetadata(
                    status=ProcessingStatus.COMPLETED,
                    started_at=started_at,
                    completed_at=self._clock(),
                    chunks_count=len(chunks),
                    total_processing_time_ms=elapsed_ms,
                ),
            )
        except Exception as exc:
            await self._record_failure(source_id, started_at, exc, log)
            raise

        log.info(
            "source_processing_completed",
            chunks=len(chunks),
            replaced=replaced,
            time_ms=elapsed_ms,
        )
        return IngestionOutcome(
            source_id=source_id,
            kind=source.kind,
            chunks_count=len(chunks),
            total_processing_time_ms=elapsed_ms,
            replaced_chunks=replaced,
        )

    async def get_processing_status(self, source_id: str) -> ProcessingMetadata | None:
        source = await self._sources.get(source_id)
        return source.processing if source else None

    async def queue_source(self, source_id: str) -> Job:
        """Look up *source_id* and enqueue it under its own kind."""
        if self._queue is None:
            raise RuntimeError("IngestionService was built without a queue")
        source = await self._sources.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return await self._queue.enqueue(source.id, source.kind)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_chunks(self, source: Source, drafts: list[ChunkDraft]) -> list[Chunk]:
        """Validate embeddings and bind drafts to the source with dense indices."""
        now = self._clock()
        chunks: list[Chunk] = []
        for new_index, draft in enumerate(sorted(drafts, key=lambda d: d.chunk_index)):
            if len(draft.embedding) != self._dimension:
                raise EmbeddingDimensionError(
                    expected=self._dimension,
                    actual=len(draft.embedding),
                    chunk_index=draft.chunk_index,
                )
            chunks.append(
                Chunk(
                    **draft.model_dump(exclude={"chunk_index"}),
                    chunk_index=new_index,
                    id=uuid.uuid4().hex,
                    source_id=source.id,
                    created_at=now,
                )
            )
        return chunks

    async def _record_failure(
        self,
        source_id: str,
        started_at: datetime,
        exc: Exception,
        log: structlog.BoundLogger,
    ) -> None:
        log.error("source_processing_failed", error=str(exc), error_type=type(exc).__name__)
        try:
            await self._sources.update_processing(
                source_id,
                ProcessingMetadata(
                    status=ProcessingStatus.FAILED,
                    started_at=started_at,
                    failed_at=self._clock(),
                    error_message=str(exc)[:_MAX_ERROR_LENGTH] or type(exc).__name__,
                ),
            )
        except Exception as record_exc:  # noqa: BLE001
            log.error("source_failure_not_recorded", error=str(record_exc))
