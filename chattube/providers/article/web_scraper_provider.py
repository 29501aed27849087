"""Web scraper article provider using httpx and trafilatura.

Extracts clean article text from web pages by fetching HTML via httpx
and parsing with trafilatura's content extraction engine.  Page metadata
(title, description, author, site name, image, date) comes from the same
trafilatura pass with ``with_metadata=True``.
"""

from __future__ import annotations

import json

import httpx
import structlog
import trafilatura

from chattube.interfaces.article_provider import ArticleContent, IArticleProvider
from chattube.utils.errors import ContentExtractionError, InvalidLocatorError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; chattube-ingest/0.1)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class WebScraperProvider(IArticleProvider):
    """Article extraction backed by httpx + trafilatura."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers=_DEFAULT_HEADERS,
            follow_redirects=True,
        )

    async def _get(self, url: str) -> httpx.Response:
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.InvalidURL as exc:
            raise InvalidLocatorError(
                message=f"Invalid URL {url!r}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.TimeoutException as exc:
            raise ContentExtractionError(
                message=f"Timeout fetching {url}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                raise RateLimitError(
                    message=f"HTTP 429 for {url}",
                    provider_name=self.get_provider_name(),
                ) from exc
            raise ContentExtractionError(
                message=f"HTTP {exc.response.status_code} for {url}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise ContentExtractionError(
                message=f"HTTP error fetching {url}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return response

    # ------------------------------------------------------------------
    # IArticleProvider implementation
    # ------------------------------------------------------------------

    async def extract_content(self, url: str) -> ArticleContent | None:
        """Fetch *url* and extract readable article text via trafilatura."""
        response = await self._get(url)
        html = response.text

        text = trafilatura.extract(html, include_comments=False, include_tables=True)
        if not text:
            logger.warning("trafilatura_extraction_empty", url=url)
            return None

        meta: dict = {}
        raw_meta = trafilatura.extract(
            html,
            include_comments=False,
            output_format="json",
            with_metadata=True,
        )
        if raw_meta:
            try:
                meta = json.loads(raw_meta)
            except json.JSONDecodeError:
                logger.debug("metadata_parse_failed", url=url)

        logger.info(
            "article_extracted",
            url=url,
            title=meta.get("title", ""),
            text_length=len(text),
        )

        return ArticleContent(
            url=url,
            title=meta.get("title") or "",
            text=text,
            description=meta.get("description") or None,
            author=meta.get("author") or None,
            site_name=meta.get("sitename") or None,
            image=meta.get("image") or None,
            published=meta.get("date") or None,
        )

    async def fetch_bytes(self, url: str) -> bytes:
        response = await self._get(url)
        return response.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def get_provider_name(self) -> str:
        return "web_scraper"
