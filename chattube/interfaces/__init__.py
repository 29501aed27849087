"""Public interface definitions for every external collaborator.

Business logic talks to these abstract base classes only.  Concrete
adapters implement them and are wired together in ``chattube.main``.

    Interface               →  Concrete implementation (chattube/providers/)
    ───────────────────────────────────────────────────────────────────────
    IEmbeddingProvider      →  OpenAIEmbeddingProvider
    ITranscriptionProvider  →  WhisperAPIProvider
    IMediaProvider          →  YtDlpMediaProvider
    IArticleProvider        →  WebScraperProvider
    IJobStore               →  SQLiteJobStore
    ISourceRepository       →  SQLiteSourceRepository
    IChunkStore             →  SQLiteChunkStore
"""

from chattube.interfaces.article_provider import ArticleContent, IArticleProvider
from chattube.interfaces.chunk_store import IChunkStore
from chattube.interfaces.embedding_provider import IEmbeddingProvider
from chattube.interfaces.job_store import DuplicateActiveJobError, IJobStore
from chattube.interfaces.media_provider import IMediaProvider
from chattube.interfaces.source_repository import ISourceRepository
from chattube.interfaces.transcription_provider import ITranscriptionProvider

__all__ = [
    "ArticleContent",
    "DuplicateActiveJobError",
    "IArticleProvider",
    "IChunkStore",
    "IEmbeddingProvider",
    "IJobStore",
    "IMediaProvider",
    "ISourceRepository",
    "ITranscriptionProvider",
]
