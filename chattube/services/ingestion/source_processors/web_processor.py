"""Source processor for web pages.

Fetches the page through the article provider (httpx + trafilatura), splits
the extracted text with :class:`TextChunker`, and embeds every window in
one batch.
"""

from __future__ import annotations

import structlog

from chattube.interfaces.article_provider import IArticleProvider
from chattube.interfaces.embedding_provider import IEmbeddingProvider
from chattube.models.ingestion import ProcessorResult, Source, SourceKind, WebMetadata
from chattube.services.ingestion.chunker import TextChunker
from chattube.services.ingestion.source_processors.base import SourceProcessor, embed_text_windows
from chattube.utils.errors import ContentExtractionError, InvalidLocatorError

logger = structlog.get_logger(logger_name=__name__)


class WebProcessor(SourceProcessor):
    """Extracts, chunks and embeds the readable text of a web page."""

    kind = SourceKind.WEB

    def __init__(
        self,
        article_provider: IArticleProvider,
        embedding_provider: IEmbeddingProvider,
        chunker: TextChunker,
    ) -> None:
        self._articles = article_provider
        self._embedder = embedding_provider
        self._chunker = chunker

    async def _ingest(self, source: Source) -> ProcessorResult:
        url = source.locator.strip()
        if not url.startswith(("http://", "https://")):
            raise InvalidLocatorError(message=f"Web source locator is not an http(s) URL: {url!r}")

        article = await self._articles.extract_content(url)
        if article is None:
            raise ContentExtractionError(
                message=f"No readable content extracted from {url}",
                provider_name=self._articles.get_provider_name(),
            )

        windows = self._chunker.chunk(article.text)
        drafts = await embed_text_windows(self._embedder, windows)

        metadata = WebMetadata(
            url=url,
            title=article.title or None,
            description=article.description,
            author=article.author,
            site_name=article.site_name,
            image=article.image,
            published=article.published,
            content_length=len(article.text),
        )
        logger.info("web_page_ingested", source_id=source.id, url=url, chunks=len(drafts))
        return ProcessorResult(chunks=drafts, metadata=metadata)
