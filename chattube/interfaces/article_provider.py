"""Abstract base class for web article extraction providers.

Implementations fetch a page and strip navigation, ads and boilerplate,
returning readable text plus whatever page metadata could be recovered.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ArticleContent:
    """Extracted content from a web page.

    Attributes
    ----------
    url:
        The source URL the content was extracted from.
    title:
        The article's headline or page title.
    text:
        The main body text with markup stripped.
    """

    url: str
    title: str
    text: str
    description: str | None = None
    author: str | None = None
    site_name: str | None = None
    image: str | None = None
    published: str | None = None


class IArticleProvider(ABC):
    """Contract for services that extract readable content from web URLs."""

    @abstractmethod
    async def extract_content(self, url: str) -> ArticleContent | None:
        """Fetch and extract readable content from *url*.

        Returns
        -------
        ArticleContent or None
            ``None`` if the page contains no usable text.

        Raises
        ------
        chattube.utils.errors.ContentExtractionError
            If the HTTP request fails.
        """

    @abstractmethod
    async def fetch_bytes(self, url: str) -> bytes:
        """Download the raw body of *url* (used for remote documents)."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this article provider."""
