"""Source processor for PDF documents.

Reads PDFs using PyMuPDF (fitz) from a local path or an http(s) URL,
extracts text page by page, and chunks each page separately so every
chunk carries the page it came from.  Parsing runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from chattube.interfaces.article_provider import IArticleProvider
from chattube.interfaces.embedding_provider import IEmbeddingProvider
from chattube.models.ingestion import DocumentMetadata, ProcessorResult, Source, SourceKind
from chattube.services.ingestion.chunker import TextChunker
from chattube.services.ingestion.source_processors.base import SourceProcessor, embed_text_windows
from chattube.utils.errors import (
    InvalidLocatorError,
    PermanentIngestionError,
    UnsupportedFileTypeError,
)

logger = structlog.get_logger(logger_name=__name__)


@dataclass(frozen=True)
class _ParsedPDF:
    pages: list[tuple[int, str]]
    title: str | None
    author: str | None
    page_count: int


def _parse_pdf(data: bytes | None, path: str | None) -> _ParsedPDF:
    """Extract ``(page_number, text)`` pairs; page numbers are 1-based."""
    try:
        doc = fitz.open(stream=data, filetype="pdf") if data is not None else fitz.open(path)
    except (RuntimeError, ValueError, OSError) as exc:
        raise UnsupportedFileTypeError(message=f"Cannot open PDF: {exc}") from exc

    try:
        pages: list[tuple[int, str]] = []
        for page_num in range(len(doc)):
            text = doc[page_num].get_text("text").strip()
            if text:
                pages.append((page_num + 1, text))
        meta = doc.metadata or {}
        return _ParsedPDF(
            pages=pages,
            title=meta.get("title") or None,
            author=meta.get("author") or None,
            page_count=len(doc),
        )
    finally:
        doc.close()


class DocumentProcessor(SourceProcessor):
    """Chunks and embeds the text layer of a PDF document."""

    kind = SourceKind.DOCUMENT

    def __init__(
        self,
        article_provider: IArticleProvider,
        embedding_provider: IEmbeddingProvider,
        chunker: TextChunker,
    ) -> None:
        self._fetcher = article_provider
        self._embedder = embedding_provider
        self._chunker = chunker

    async def _ingest(self, source: Source) -> ProcessorResult:
        locator = source.locator.strip()
        if locator.startswith(("http://", "https://")):
            data = await self._fetcher.fetch_bytes(locator)
            parsed = await asyncio.to_thread(_parse_pdf, data, None)
        else:
            path = Path(locator).expanduser()
            if not path.is_file():
                raise InvalidLocatorError(message=f"Document not found: {locator}")
            if path.suffix.lower() != ".pdf":
                raise UnsupportedFileTypeError(message=f"Not a PDF document: {path.name}")
            parsed = await asyncio.to_thread(_parse_pdf, None, str(path))

        if not parsed.pages:
            raise PermanentIngestionError(
                message=f"PDF has no extractable text layer ({parsed.page_count} pages)"
            )

        windows: list[str] = []
        chunk_meta: list[dict] = []
        for page_number, text in parsed.pages:
            for window in self._chunker.chunk(text):
                windows.append(window)
                chunk_meta.append({"page_number": page_number})

        drafts = await embed_text_windows(self._embedder, windows, chunk_meta)

        metadata = DocumentMetadata(
            title=parsed.title,
            author=parsed.author,
            page_count=parsed.page_count,
            content_length=sum(len(text) for _, text in parsed.pages),
        )
        logger.info(
            "document_ingested",
            source_id=source.id,
            pages=parsed.page_count,
            chunks=len(drafts),
        )
        return ProcessorResult(chunks=drafts, metadata=metadata)
