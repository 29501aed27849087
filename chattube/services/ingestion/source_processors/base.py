"""Processor contract shared by every source kind.

A processor turns one :class:`Source` into chunk drafts plus optional
kind-specific metadata.  It does not persist anything; the ingestion
service owns chunk persistence and source bookkeeping.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import structlog

from chattube.interfaces.embedding_provider import IEmbeddingProvider
from chattube.models.ingestion import ChunkDraft, ProcessorResult, Source, SourceKind
from chattube.services.ingestion.chunker import approximate_token_count
from chattube.utils.errors import EmbeddingError, SourceKindMismatchError

logger = structlog.get_logger(logger_name=__name__)


class SourceProcessor(ABC):
    """Base class for per-kind source processors."""

    kind: SourceKind

    async def ingest(self, source: Source) -> ProcessorResult:
        """Validate the source kind, then delegate to :meth:`_ingest`."""
        if source.kind != self.kind:
            raise SourceKindMismatchError(expected=self.kind.value, actual=source.kind.value)
        return await self._ingest(source)

    @abstractmethod
    async def _ingest(self, source: Source) -> ProcessorResult:
        """Produce chunk drafts for a source already known to be of :attr:`kind`."""


async def embed_text_windows(
    embedding_provider: IEmbeddingProvider,
    windows: list[str],
    metadata: list[dict] | None = None,
) -> list[ChunkDraft]:
    """Embed *windows* in one batch and wrap them as indexed drafts.

    Used by the text-based processors, where one failed batch fails the job
    (the queue retries it) rather than dropping individual windows.
    """
    if not windows:
        return []

    vectors = await embedding_provider.embed(windows)
    if len(vectors) != len(windows):
        raise EmbeddingError(
            message=f"Expected {len(windows)} embeddings, got {len(vectors)}",
            provider_name=embedding_provider.get_provider_name(),
        )

    return [
        ChunkDraft(
            chunk_index=idx,
            text=text,
            embedding=vector,
            token_count=approximate_token_count(text),
            metadata=metadata[idx] if metadata else {},
        )
        for idx, (text, vector) in enumerate(zip(windows, vectors))
    ]
