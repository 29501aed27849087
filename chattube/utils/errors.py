"""Custom exception hierarchy for the ingestion pipeline.

All application exceptions inherit from :class:`ChatTubeError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "yt-dlp", "sqlite") caused the failure.

The hierarchy is organized by how the job queue must react:

    ChatTubeError  (base -- catch-all for any ingestion error)
    +-- PermanentIngestionError   (never retried; job fails immediately)
    |   +-- SourceNotFoundError
    |   +-- UnsupportedSourceKindError
    |   +-- SourceKindMismatchError
    |   +-- InvalidLocatorError
    |   +-- UnsupportedFileTypeError
    |   +-- EmbeddingDimensionError
    +-- TransientIngestionError   (retried with backoff up to max attempts)
    |   +-- MediaDownloadError
    |   +-- MediaProcessingError
    |   +-- TranscriptionError
    |   +-- EmbeddingError
    |   +-- ContentExtractionError
    |   +-- RateLimitError
    |   +-- StoreUnavailableError
    +-- ConfigurationError        (startup / missing config)

Each class exposes a ``retryable`` flag; the queue consults
:func:`is_retryable` rather than matching on concrete types.
"""


class ChatTubeError(Exception):
    """Base exception for all ingestion errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    retryable: bool = True

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Permanent errors
# ---------------------------------------------------------------------------

class PermanentIngestionError(ChatTubeError):
    """Raised when retrying the job cannot possibly succeed."""

    retryable = False

    def __init__(
        self,
        message: str = "Ingestion failed permanently",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class SourceNotFoundError(PermanentIngestionError):
    """Raised when a job references a source that no longer exists."""

    def __init__(self, source_id: str) -> None:
        self.source_id = source_id
        super().__init__(message=f"Source not found: {source_id}")


class UnsupportedSourceKindError(PermanentIngestionError):
    """Raised when no processor is registered for a source kind."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(message=f"Unsupported source kind: {kind}")


class SourceKindMismatchError(PermanentIngestionError):
    """Raised when a processor receives a source of a different kind."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            message=f"Processor for '{expected}' cannot ingest source of kind '{actual}'"
        )


class InvalidLocatorError(PermanentIngestionError):
    """Raised when a source locator cannot be parsed."""

    def __init__(
        self,
        message: str = "Invalid source locator",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsupportedFileTypeError(PermanentIngestionError):
    """Raised when a file source has an extension no processor understands."""

    def __init__(
        self,
        message: str = "Unsupported file type",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingDimensionError(PermanentIngestionError):
    """Raised when an embedding vector has an unexpected length."""

    def __init__(self, expected: int, actual: int, chunk_index: int | None = None) -> None:
        self.expected = expected
        self.actual = actual
        where = f" (chunk {chunk_index})" if chunk_index is not None else ""
        super().__init__(
            message=f"Embedding dimension mismatch{where}: expected {expected}, got {actual}"
        )


# ---------------------------------------------------------------------------
# Transient errors
# ---------------------------------------------------------------------------

class TransientIngestionError(ChatTubeError):
    """Raised on failures that may succeed on a later attempt."""

    def __init__(
        self,
        message: str = "Ingestion failed temporarily",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MediaDownloadError(TransientIngestionError):
    """Raised when audio download fails or times out."""

    def __init__(
        self,
        message: str = "Media download failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MediaProcessingError(TransientIngestionError):
    """Raised when probing or segmenting a local media file fails."""

    def __init__(
        self,
        message: str = "Media processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class TranscriptionError(TransientIngestionError):
    """Raised when the speech-to-text service call fails."""

    def __init__(
        self,
        message: str = "Transcription failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(TransientIngestionError):
    """Raised when the embedding service call fails."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ContentExtractionError(TransientIngestionError):
    """Raised when fetching or parsing web/document content fails."""

    def __init__(
        self,
        message: str = "Content extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(TransientIngestionError):
    """Raised when an API rate limit is exceeded.

    The job queue's backoff schedule handles the retry.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StoreUnavailableError(TransientIngestionError):
    """Raised when the document store is locked or unreachable."""

    def __init__(
        self,
        message: str = "Document store unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(ChatTubeError):
    """Raised when configuration is invalid or missing at startup."""

    retryable = False

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


def is_retryable(exc: BaseException) -> bool:
    """Return whether the queue should schedule another attempt for *exc*.

    Exceptions from outside the hierarchy are treated as transient.
    """
    if isinstance(exc, ChatTubeError):
        return exc.retryable
    return True
