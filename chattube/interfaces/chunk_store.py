"""Abstract base class for persisted chunks.

Chunks for a source are always written as one batch.  Replacing a source's
chunks is atomic: readers see either the old set or the new one.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from chattube.models.ingestion import Chunk


class IChunkStore(ABC):
    """Contract for chunk persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def replace_for_source(self, source_id: str, chunks: list[Chunk]) -> int:
        """Delete existing chunks of *source_id* and insert *chunks* in one transaction.

        Returns the number of chunks that were replaced.
        """

    @abstractmethod
    async def list_for_source(self, source_id: str) -> list[Chunk]:
        """Return the source's chunks ordered by ``chunk_index``."""

    @abstractmethod
    async def count_for_source(self, source_id: str) -> int: ...
