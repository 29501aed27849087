"""Abstract base class for text-embedding service providers.

Defines the contract for generating embedding vectors from text.  The
ingestion service validates every vector against :meth:`get_dimension`
before persistence, so implementations must report the dimension of the
model actually in use.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider -- text-embedding-3-small (requires API key)
# Located in: chattube/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the source processors."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations should
            handle batching internally if the underlying API has a per-call
            limit.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.

        Raises
        ------
        chattube.utils.errors.EmbeddingError
            If the embedding API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        The audio pipeline calls this once per transcript segment so a
        failure is isolated to that segment.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Example values: ``1536`` (OpenAI ``text-embedding-3-small``).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
