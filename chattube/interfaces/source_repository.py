"""Abstract base class for source records.

Sources are owned by source management.  The ingestion core reads them and
writes only processing bookkeeping and kind-specific metadata.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from chattube.models.ingestion import ProcessingMetadata, Source, SourceMetadata


class ISourceRepository(ABC):
    """Contract for reading sources and updating their ingestion state."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def get(self, source_id: str) -> Source | None: ...

    @abstractmethod
    async def add(self, source: Source) -> None:
        """Register a source.  Used by source management and tests."""

    @abstractmethod
    async def update_processing(self, source_id: str, processing: ProcessingMetadata) -> None:
        """Replace the source's processing metadata."""

    @abstractmethod
    async def update_metadata(
        self, source_id: str, metadata: SourceMetadata, title: str | None = None
    ) -> None:
        """Store processor-resolved metadata and, when given, the resolved title."""
