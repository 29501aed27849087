"""Composition root for the ingestion worker.

Wires every provider, store and service from a :class:`Settings` instance.
Nothing here runs at import time; the CLI and :mod:`chattube.api` call
:func:`build_components` and then :func:`initialize_components`.
"""

from __future__ import annotations

from typing import Any

import structlog

from chattube.config.settings import Settings
from chattube.models.ingestion import SourceKind
from chattube.providers.article.web_scraper_provider import WebScraperProvider
from chattube.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from chattube.providers.media.yt_dlp_provider import YtDlpMediaProvider
from chattube.providers.store.sqlite_chunk_store import SQLiteChunkStore
from chattube.providers.store.sqlite_job_store import SQLiteJobStore
from chattube.providers.store.sqlite_source_repository import SQLiteSourceRepository
from chattube.providers.transcription.whisper_api_provider import WhisperAPIProvider
from chattube.services.ingestion.audio_pipeline import AudioPipeline, ChunkingPolicy
from chattube.services.ingestion.chunker import TextChunker
from chattube.services.ingestion.ingestion_service import IngestionService
from chattube.services.ingestion.queue import IngestionQueue, QueuePolicy
from chattube.services.ingestion.registry import ProcessorRegistry
from chattube.services.ingestion.source_processors.document_processor import DocumentProcessor
from chattube.services.ingestion.source_processors.file_processor import FileProcessor
from chattube.services.ingestion.source_processors.video_processor import VideoProcessor
from chattube.services.ingestion.source_processors.web_processor import WebProcessor
from chattube.services.ingestion.worker import IngestionWorker

_logger = structlog.get_logger(logger_name=__name__)


def build_queue(app_settings: Settings) -> IngestionQueue:
    """Queue only.  Enough for producers and the CLI status commands."""
    policy = QueuePolicy(
        max_attempts=app_settings.job_max_attempts,
        base_delay_seconds=app_settings.job_base_delay_seconds,
        cap_delay_seconds=app_settings.job_cap_delay_seconds,
        lease_seconds=app_settings.job_lease_seconds,
        retention_days=app_settings.job_retention_days,
    )
    return IngestionQueue(store=SQLiteJobStore(app_settings.store_path), policy=policy)


def build_components(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance for the worker.

    Returns
    -------
    dict
        Component instances keyed by role name.  Stores are not yet
        initialized; await :func:`initialize_components` before use.
    """
    # -- Stores --
    source_repository = SQLiteSourceRepository(app_settings.store_path)
    chunk_store = SQLiteChunkStore(app_settings.store_path)
    queue = build_queue(app_settings)

    # -- External providers --
    embedding_provider = OpenAIEmbeddingProvider(settings=app_settings)
    transcription_provider = WhisperAPIProvider(settings=app_settings)
    media_provider = YtDlpMediaProvider(download_timeout=app_settings.download_timeout_seconds)
    article_provider = WebScraperProvider(timeout=app_settings.http_timeout_seconds)

    # -- Processors --
    audio_pipeline = AudioPipeline(
        media_provider=media_provider,
        transcription_provider=transcription_provider,
        embedding_provider=embedding_provider,
        temp_dir=app_settings.temp_dir,
        policy=ChunkingPolicy(
            size_threshold_mb=app_settings.audio_chunk_threshold_mb,
            duration_threshold_seconds=app_settings.audio_chunk_threshold_seconds,
            chunk_seconds=app_settings.audio_chunk_seconds,
            min_segment_chars=app_settings.min_segment_chars,
        ),
    )
    chunker = TextChunker(
        chunk_size=app_settings.text_chunk_size,
        overlap=app_settings.text_chunk_overlap,
    )
    registry = ProcessorRegistry(
        [
            VideoProcessor(media_provider=media_provider, audio_pipeline=audio_pipeline),
            WebProcessor(
                article_provider=article_provider,
                embedding_provider=embedding_provider,
                chunker=chunker,
            ),
            DocumentProcessor(
                article_provider=article_provider,
                embedding_provider=embedding_provider,
                chunker=chunker,
            ),
            FileProcessor(embedding_provider=embedding_provider, chunker=chunker),
        ]
    )

    # -- Services --
    service = IngestionService(
        source_repository=source_repository,
        chunk_store=chunk_store,
        registry=registry,
        embedding_dimension=app_settings.embedding_dimension,
        queue=queue,
    )
    worker = IngestionWorker(
        queue=queue,
        service=service,
        concurrency=app_settings.worker_concurrency,
        poll_interval_ms=app_settings.worker_poll_interval,
        temp_dir=app_settings.temp_dir,
        temp_max_age_hours=app_settings.temp_file_max_age_hours,
    )

    _logger.info(
        "components_built",
        store_path=app_settings.store_path,
        embedding_provider=embedding_provider.get_provider_name(),
        transcription_provider=transcription_provider.get_provider_name(),
        kinds=[k.value for k in registry.list_supported_kinds()],
    )

    return {
        "settings": app_settings,
        "source_repository": source_repository,
        "chunk_store": chunk_store,
        "queue": queue,
        "embedding_provider": embedding_provider,
        "transcription_provider": transcription_provider,
        "media_provider": media_provider,
        "article_provider": article_provider,
        "audio_pipeline": audio_pipeline,
        "registry": registry,
        "service": service,
        "worker": worker,
    }


async def initialize_components(components: dict[str, Any]) -> None:
    """Create tables for every store and check external tooling."""
    await components["source_repository"].initialize()
    await components["chunk_store"].initialize()
    await components["queue"].initialize()

    registry: ProcessorRegistry = components["registry"]
    if registry.is_supported(SourceKind.VIDEO):
        components["media_provider"].check_tools()


async def close_components(components: dict[str, Any]) -> None:
    await components["article_provider"].aclose()
