"""Unit tests for the per-kind source processors and the processor registry.

Network, PyMuPDF and the audio pipeline are mocked; file processors read
real files written to ``tmp_path``.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from chattube.interfaces.article_provider import ArticleContent, IArticleProvider
from chattube.models.ingestion import (
    ChunkDraft,
    DocumentMetadata,
    FileMetadata,
    Source,
    SourceKind,
    VideoMetadata,
    WebMetadata,
)
from chattube.services.ingestion.audio_pipeline import AudioPipeline, AudioPipelineResult
from chattube.services.ingestion.chunker import TextChunker
from chattube.services.ingestion.registry import ProcessorRegistry
from chattube.services.ingestion.source_processors.document_processor import DocumentProcessor
from chattube.services.ingestion.source_processors.file_processor import FileProcessor
from chattube.services.ingestion.source_processors.video_processor import (
    VideoProcessor,
    parse_video_id,
)
from chattube.services.ingestion.source_processors.web_processor import WebProcessor
from chattube.utils.errors import (
    ContentExtractionError,
    EmbeddingError,
    InvalidLocatorError,
    PermanentIngestionError,
    SourceKindMismatchError,
    UnsupportedFileTypeError,
    UnsupportedSourceKindError,
)
from tests.conftest import EMBEDDING_DIM, MockEmbeddingProvider, MockMediaProvider

_VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


def _article_provider(article: ArticleContent | None = None) -> MagicMock:
    mock = MagicMock(spec=IArticleProvider)
    mock.get_provider_name.return_value = "mock-scraper"
    mock.extract_content = AsyncMock(return_value=article)
    mock.fetch_bytes = AsyncMock(return_value=b"%PDF-1.7 fake")
    return mock


def _mock_pdf(pages: list[str], metadata: dict | None = None) -> MagicMock:
    page_mocks = []
    for text in pages:
        page = MagicMock()
        page.get_text.return_value = text
        page_mocks.append(page)
    doc = MagicMock()
    doc.__len__.return_value = len(page_mocks)
    doc.__getitem__.side_effect = lambda i: page_mocks[i]
    doc.metadata = metadata or {}
    return doc


# ======================================================================
# Registry
# ======================================================================


class TestProcessorRegistry:
    def _registry(self) -> ProcessorRegistry:
        embedder = MockEmbeddingProvider()
        return ProcessorRegistry(
            [
                WebProcessor(_article_provider(), embedder, TextChunker()),
                FileProcessor(embedder, TextChunker()),
            ]
        )

    def test_get_returns_processor_for_kind(self) -> None:
        registry = self._registry()
        assert isinstance(registry.get(SourceKind.WEB), WebProcessor)
        assert isinstance(registry.get("file"), FileProcessor)

    def test_unregistered_kind_is_unsupported(self) -> None:
        with pytest.raises(UnsupportedSourceKindError):
            self._registry().get(SourceKind.VIDEO)

    def test_unknown_kind_string_is_unsupported(self) -> None:
        registry = self._registry()
        with pytest.raises(UnsupportedSourceKindError) as exc_info:
            registry.get("podcast")
        assert exc_info.value.retryable is False
        assert registry.is_supported("podcast") is False

    def test_list_supported_kinds(self) -> None:
        assert self._registry().list_supported_kinds() == [SourceKind.FILE, SourceKind.WEB]

    def test_duplicate_kind_rejected(self) -> None:
        embedder = MockEmbeddingProvider()
        with pytest.raises(ValueError):
            ProcessorRegistry([FileProcessor(embedder, TextChunker())] * 2)


# ======================================================================
# Kind check
# ======================================================================


class TestKindMismatch:
    @pytest.mark.asyncio
    async def test_processor_rejects_other_kind(self) -> None:
        processor = FileProcessor(MockEmbeddingProvider(), TextChunker())
        source = Source(id="s1", kind=SourceKind.WEB, locator="https://example.com")

        with pytest.raises(SourceKindMismatchError) as exc_info:
            await processor.ingest(source)
        assert exc_info.value.retryable is False


# ======================================================================
# Video
# ======================================================================


class TestParseVideoId:
    @pytest.mark.parametrize(
        "locator",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "https://www.youtube.com/embed/dQw4w9WgXcQ",
            "https://www.youtube.com/v/dQw4w9WgXcQ?version=3",
        ],
    )
    def test_recognised_forms(self, locator: str) -> None:
        assert parse_video_id(locator) == "dQw4w9WgXcQ"

    @pytest.mark.parametrize("locator", ["https://vimeo.com/12345", "not a url", ""])
    def test_rejects_other_locators(self, locator: str) -> None:
        with pytest.raises(InvalidLocatorError):
            parse_video_id(locator)


class TestVideoProcessor:
    def _pipeline(self, duration: float = 300.0) -> MagicMock:
        pipeline = MagicMock(spec=AudioPipeline)
        pipeline.run = AsyncMock(
            return_value=AudioPipelineResult(
                drafts=[
                    ChunkDraft(
                        chunk_index=0,
                        text="hello",
                        start_time=0.0,
                        end_time=2.0,
                        embedding=[1.0] * EMBEDDING_DIM,
                    )
                ],
                duration_seconds=duration,
                size_bytes=1024,
                audio_chunks=1,
                segments_total=1,
                segments_filtered=0,
                embedding_failures=0,
            )
        )
        return pipeline

    @pytest.mark.asyncio
    async def test_fetches_metadata_when_not_cached(self) -> None:
        media = MockMediaProvider(duration=300.0, title="Fetched")
        pipeline = self._pipeline()
        processor = VideoProcessor(media, pipeline)

        result = await processor.ingest(Source(id="v1", kind=SourceKind.VIDEO, locator=_VIDEO_URL))

        assert media.metadata_calls == ["dQw4w9WgXcQ"]
        pipeline.run.assert_awaited_once_with("dQw4w9WgXcQ", known_duration=300.0)
        assert isinstance(result.metadata, VideoMetadata)
        assert result.metadata.title == "Fetched"
        assert len(result.chunks) == 1

    @pytest.mark.asyncio
    async def test_uses_cached_metadata(self) -> None:
        media = MockMediaProvider()
        cached = VideoMetadata(video_id="dQw4w9WgXcQ", title="Cached", duration_seconds=42.0)
        processor = VideoProcessor(media, self._pipeline())

        result = await processor.ingest(
            Source(id="v1", kind=SourceKind.VIDEO, locator=_VIDEO_URL, metadata=cached)
        )

        assert media.metadata_calls == []
        assert result.metadata.title == "Cached"

    @pytest.mark.asyncio
    async def test_fills_duration_from_pipeline(self) -> None:
        media = MockMediaProvider()
        media.fetch_metadata = AsyncMock(
            return_value=VideoMetadata(video_id="dQw4w9WgXcQ", title="No duration")
        )
        processor = VideoProcessor(media, self._pipeline(duration=512.5))

        result = await processor.ingest(Source(id="v1", kind=SourceKind.VIDEO, locator=_VIDEO_URL))

        assert result.metadata.duration_seconds == 512.5

    @pytest.mark.asyncio
    async def test_invalid_locator_is_permanent(self) -> None:
        processor = VideoProcessor(MockMediaProvider(), self._pipeline())

        with pytest.raises(InvalidLocatorError):
            await processor.ingest(
                Source(id="v1", kind=SourceKind.VIDEO, locator="https://example.com/video")
            )


# ======================================================================
# Web
# ======================================================================


class TestWebProcessor:
    @pytest.mark.asyncio
    async def test_extracts_chunks_and_metadata(self) -> None:
        article = ArticleContent(
            url="https://example.com/post",
            title="A Post",
            text="First paragraph here.\n\nSecond paragraph here.",
            author="Jane Writer",
            site_name="Example",
        )
        embedder = MockEmbeddingProvider()
        processor = WebProcessor(_article_provider(article), embedder, TextChunker(chunk_size=4, overlap=0))

        result = await processor.ingest(
            Source(id="w1", kind=SourceKind.WEB, locator="https://example.com/post")
        )

        assert [c.text for c in result.chunks] == ["First paragraph here.", "Second paragraph here."]
        assert [c.chunk_index for c in result.chunks] == [0, 1]
        assert all(len(c.embedding) == EMBEDDING_DIM for c in result.chunks)
        assert len(embedder.batch_calls) == 1
        assert isinstance(result.metadata, WebMetadata)
        assert result.metadata.author == "Jane Writer"
        assert result.metadata.content_length == len(article.text)

    @pytest.mark.asyncio
    async def test_no_content_is_transient(self) -> None:
        processor = WebProcessor(_article_provider(None), MockEmbeddingProvider(), TextChunker())

        with pytest.raises(ContentExtractionError) as exc_info:
            await processor.ingest(Source(id="w1", kind=SourceKind.WEB, locator="https://x.org"))
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_non_http_locator_is_permanent(self) -> None:
        processor = WebProcessor(_article_provider(), MockEmbeddingProvider(), TextChunker())

        with pytest.raises(InvalidLocatorError):
            await processor.ingest(Source(id="w1", kind=SourceKind.WEB, locator="ftp://x.org/a"))

    @pytest.mark.asyncio
    async def test_embedding_failure_fails_the_source(self) -> None:
        article = ArticleContent(url="https://x.org", title="t", text="Some words to embed.")
        embedder = MockEmbeddingProvider()
        embedder.fail_all = True
        processor = WebProcessor(_article_provider(article), embedder, TextChunker())

        with pytest.raises(EmbeddingError):
            await processor.ingest(Source(id="w1", kind=SourceKind.WEB, locator="https://x.org"))


# ======================================================================
# Document
# ======================================================================


_FITZ = "chattube.services.ingestion.source_processors.document_processor.fitz"


class TestDocumentProcessor:
    @pytest.mark.asyncio
    @patch(_FITZ)
    async def test_local_pdf_chunks_per_page(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        pdf = tmp_path / "paper.pdf"
        pdf.write_bytes(b"%PDF-1.7")
        mock_fitz.open.return_value = _mock_pdf(
            ["Page one text.", "", "Page three text."],
            metadata={"title": "A Paper", "author": "R. Searcher"},
        )
        processor = DocumentProcessor(_article_provider(), MockEmbeddingProvider(), TextChunker())

        result = await processor.ingest(Source(id="d1", kind=SourceKind.DOCUMENT, locator=str(pdf)))

        mock_fitz.open.assert_called_once_with(str(pdf))
        assert [c.metadata["page_number"] for c in result.chunks] == [1, 3]
        assert isinstance(result.metadata, DocumentMetadata)
        assert result.metadata.page_count == 3
        assert result.metadata.title == "A Paper"

    @pytest.mark.asyncio
    @patch(_FITZ)
    async def test_remote_pdf_is_fetched(self, mock_fitz: MagicMock) -> None:
        mock_fitz.open.return_value = _mock_pdf(["Remote text."])
        articles = _article_provider()
        processor = DocumentProcessor(articles, MockEmbeddingProvider(), TextChunker())

        result = await processor.ingest(
            Source(id="d1", kind=SourceKind.DOCUMENT, locator="https://example.com/doc.pdf")
        )

        articles.fetch_bytes.assert_awaited_once_with("https://example.com/doc.pdf")
        mock_fitz.open.assert_called_once_with(stream=b"%PDF-1.7 fake", filetype="pdf")
        assert len(result.chunks) == 1

    @pytest.mark.asyncio
    @patch(_FITZ)
    async def test_no_text_layer_is_permanent(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        pdf = tmp_path / "scan.pdf"
        pdf.write_bytes(b"%PDF-1.7")
        mock_fitz.open.return_value = _mock_pdf(["", "   "])
        processor = DocumentProcessor(_article_provider(), MockEmbeddingProvider(), TextChunker())

        with pytest.raises(PermanentIngestionError):
            await processor.ingest(Source(id="d1", kind=SourceKind.DOCUMENT, locator=str(pdf)))

    @pytest.mark.asyncio
    @patch(_FITZ)
    async def test_corrupt_pdf_is_unsupported(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        pdf = tmp_path / "broken.pdf"
        pdf.write_bytes(b"garbage")
        mock_fitz.open.side_effect = RuntimeError("cannot open broken document")
        processor = DocumentProcessor(_article_provider(), MockEmbeddingProvider(), TextChunker())

        with pytest.raises(UnsupportedFileTypeError):
            await processor.ingest(Source(id="d1", kind=SourceKind.DOCUMENT, locator=str(pdf)))

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path) -> None:
        processor = DocumentProcessor(_article_provider(), MockEmbeddingProvider(), TextChunker())

        with pytest.raises(InvalidLocatorError):
            await processor.ingest(
                Source(id="d1", kind=SourceKind.DOCUMENT, locator=str(tmp_path / "nope.pdf"))
            )

    @pytest.mark.asyncio
    async def test_non_pdf_extension(self, tmp_path: Path) -> None:
        doc = tmp_path / "notes.docx"
        doc.write_bytes(b"x")
        processor = DocumentProcessor(_article_provider(), MockEmbeddingProvider(), TextChunker())

        with pytest.raises(UnsupportedFileTypeError):
            await processor.ingest(Source(id="d1", kind=SourceKind.DOCUMENT, locator=str(doc)))


# ======================================================================
# File
# ======================================================================


class TestFileProcessor:
    @pytest.mark.asyncio
    async def test_plain_text(self, tmp_path: Path) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("Alpha beta gamma.\n\nDelta epsilon.", encoding="utf-8")
        processor = FileProcessor(MockEmbeddingProvider(), TextChunker())

        result = await processor.ingest(Source(id="f1", kind=SourceKind.FILE, locator=str(path)))

        assert len(result.chunks) == 1
        assert result.chunks[0].token_count == 5
        assert isinstance(result.metadata, FileMetadata)
        assert result.metadata.filename == "notes.txt"
        assert result.metadata.extension == ".txt"
        assert result.metadata.size_bytes == path.stat().st_size

    @pytest.mark.asyncio
    async def test_html_is_stripped(self, tmp_path: Path) -> None:
        path = tmp_path / "page.html"
        path.write_text(
            "<html><head><title>Saved Page</title><style>p{}</style></head>"
            "<body><script>var x = 1;</script><p>Visible words only.</p></body></html>",
            encoding="utf-8",
        )
        processor = FileProcessor(MockEmbeddingProvider(), TextChunker())

        result = await processor.ingest(Source(id="f1", kind=SourceKind.FILE, locator=str(path)))

        text = " ".join(c.text for c in result.chunks)
        assert "Visible words only." in text
        assert "var x" not in text
        assert result.metadata.title == "Saved Page"

    @pytest.mark.asyncio
    async def test_empty_file_is_permanent(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.md"
        path.write_text("   \n\n  ", encoding="utf-8")
        processor = FileProcessor(MockEmbeddingProvider(), TextChunker())

        with pytest.raises(PermanentIngestionError):
            await processor.ingest(Source(id="f1", kind=SourceKind.FILE, locator=str(path)))

    @pytest.mark.asyncio
    async def test_unsupported_extension(self, tmp_path: Path) -> None:
        path = tmp_path / "image.png"
        path.write_bytes(b"\x89PNG")
        processor = FileProcessor(MockEmbeddingProvider(), TextChunker())

        with pytest.raises(UnsupportedFileTypeError):
            await processor.ingest(Source(id="f1", kind=SourceKind.FILE, locator=str(path)))

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path) -> None:
        processor = FileProcessor(MockEmbeddingProvider(), TextChunker())

        with pytest.raises(InvalidLocatorError):
            await processor.ingest(
                Source(id="f1", kind=SourceKind.FILE, locator=str(tmp_path / "gone.txt"))
            )

    def test_supported_extensions(self) -> None:
        extensions = FileProcessor.supported_extensions()
        assert ".md" in extensions
        assert ".html" in extensions
        assert extensions == sorted(extensions)
