"""Source processor for generic local text files.

Handles plain text, Markdown and HTML.  HTML is stripped to visible text
with BeautifulSoup; the other formats are read as UTF-8 (undecodable bytes
are replaced rather than failing the job).
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog
from bs4 import BeautifulSoup

from chattube.interfaces.embedding_provider import IEmbeddingProvider
from chattube.models.ingestion import FileMetadata, ProcessorResult, Source, SourceKind
from chattube.services.ingestion.chunker import TextChunker
from chattube.services.ingestion.source_processors.base import SourceProcessor, embed_text_windows
from chattube.utils.errors import (
    InvalidLocatorError,
    PermanentIngestionError,
    UnsupportedFileTypeError,
)

logger = structlog.get_logger(logger_name=__name__)

_TEXT_EXTENSIONS = frozenset({".txt", ".text", ".md", ".markdown", ".rst", ".csv"})
_HTML_EXTENSIONS = frozenset({".html", ".htm", ".xhtml"})


def _read_text(path: Path) -> tuple[str, str | None]:
    """Return ``(text, title)`` for *path*."""
    raw = path.read_text(encoding="utf-8", errors="replace")
    if path.suffix.lower() not in _HTML_EXTENSIONS:
        return raw, None

    soup = BeautifulSoup(raw, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    title = soup.title.get_text(strip=True) if soup.title else None
    return soup.get_text(separator="\n"), title or None


class FileProcessor(SourceProcessor):
    """Chunks and embeds a local text, Markdown or HTML file."""

    kind = SourceKind.FILE

    def __init__(self, embedding_provider: IEmbeddingProvider, chunker: TextChunker) -> None:
        self._embedder = embedding_provider
        self._chunker = chunker

    @staticmethod
    def supported_extensions() -> list[str]:
        return sorted(_TEXT_EXTENSIONS | _HTML_EXTENSIONS)

    async def _ingest(self, source: Source) -> ProcessorResult:
        path = Path(source.locator.strip()).expanduser()
        if not path.is_file():
            raise InvalidLocatorError(message=f"File not found: {source.locator}")

        extension = path.suffix.lower()
        if extension not in _TEXT_EXTENSIONS and extension not in _HTML_EXTENSIONS:
            raise UnsupportedFileTypeError(
                message=f"Unsupported file type '{extension or path.name}'"
            )

        text, title = await asyncio.to_thread(_read_text, path)
        windows = self._chunker.chunk(text)
        if not windows:
            raise PermanentIngestionError(message=f"File has no text content: {path.name}")

        drafts = await embed_text_windows(self._embedder, windows)

        metadata = FileMetadata(
            filename=path.name,
            extension=extension,
            size_bytes=path.stat().st_size,
            content_length=len(text),
            title=title,
        )
        logger.info("file_ingested", source_id=source.id, file=path.name, chunks=len(drafts))
        return ProcessorResult(chunks=drafts, metadata=metadata)
