"""Static lookup from source kind to processor.

The registry makes the routing decision; processors only double-check the
kind they were handed.
"""

from __future__ import annotations

from collections.abc import Iterable

from chattube.models.ingestion import SourceKind
from chattube.services.ingestion.source_processors.base import SourceProcessor
from chattube.utils.errors import UnsupportedSourceKindError


class ProcessorRegistry:
    """Maps each :class:`SourceKind` to one processor instance."""

    def __init__(self, processors: Iterable[SourceProcessor]) -> None:
        self._processors: dict[SourceKind, SourceProcessor] = {}
        for processor in processors:
            if processor.kind in self._processors:
                raise ValueError(f"Duplicate processor for kind '{processor.kind.value}'")
            self._processors[processor.kind] = processor

    def get(self, kind: SourceKind | str) -> SourceProcessor:
        """Return the processor for *kind*.

        Raises
        ------
        UnsupportedSourceKindError
            If *kind* is unknown or has no registered processor.  The error
            is permanent, so the job fails without retries.
        """
        try:
            resolved = SourceKind(kind)
        except ValueError:
            raise UnsupportedSourceKindError(str(kind)) from None
        processor = self._processors.get(resolved)
        if processor is None:
            raise UnsupportedSourceKindError(resolved.value)
        return processor

    def is_supported(self, kind: SourceKind | str) -> bool:
        try:
            return SourceKind(kind) in self._processors
        except ValueError:
            return False

    def list_supported_kinds(self) -> list[SourceKind]:
        return sorted(self._processors, key=lambda k: k.value)
