"""Per-kind source processors.

Each processor implements ``ingest(source) -> ProcessorResult`` for one
:class:`~chattube.models.ingestion.SourceKind`:

- **VideoProcessor** -- audio transcription via the AudioPipeline.
- **WebProcessor** -- httpx + trafilatura article extraction.
- **DocumentProcessor** -- PDF text via PyMuPDF, chunked per page.
- **FileProcessor** -- local text, Markdown and HTML files.
"""

from chattube.services.ingestion.source_processors.base import SourceProcessor
from chattube.services.ingestion.source_processors.document_processor import DocumentProcessor
from chattube.services.ingestion.source_processors.file_processor import FileProcessor
from chattube.services.ingestion.source_processors.video_processor import (
    VideoProcessor,
    parse_video_id,
)
from chattube.services.ingestion.source_processors.web_processor import WebProcessor

__all__ = [
    "DocumentProcessor",
    "FileProcessor",
    "SourceProcessor",
    "VideoProcessor",
    "WebProcessor",
    "parse_video_id",
]
