"""Source processor for video sources.

Resolves the canonical media id from the locator, makes sure duration and
title are known (fetching them once when the source has none cached), and
hands the media id to the :class:`AudioPipeline`.
"""

from __future__ import annotations

import re

import structlog

from chattube.interfaces.media_provider import IMediaProvider
from chattube.models.ingestion import ProcessorResult, Source, SourceKind, VideoMetadata
from chattube.services.ingestion.audio_pipeline import AudioPipeline
from chattube.services.ingestion.source_processors.base import SourceProcessor
from chattube.utils.errors import InvalidLocatorError

logger = structlog.get_logger(logger_name=__name__)

# watch?v=, /v/, /e/, /embed/, /<user>/<x>/ and youtu.be short links.
_VIDEO_ID_PATTERN = re.compile(
    r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?)/|.*[?&]v=)|youtu\.be/)([^\"&?/\s]{11})"
)


def parse_video_id(locator: str) -> str:
    """Extract the 11-character media id from a watch, embed or short-link URL."""
    match = _VIDEO_ID_PATTERN.search(locator)
    if match is None:
        raise InvalidLocatorError(message=f"Not a recognised video URL: {locator!r}")
    return match.group(1)


class VideoProcessor(SourceProcessor):
    """Transcribes and embeds the audio track of a video source."""

    kind = SourceKind.VIDEO

    def __init__(self, media_provider: IMediaProvider, audio_pipeline: AudioPipeline) -> None:
        self._media = media_provider
        self._pipeline = audio_pipeline

    async def _ingest(self, source: Source) -> ProcessorResult:
        video_id = parse_video_id(source.locator)
        metadata = await self._resolve_metadata(source, video_id)

        result = await self._pipeline.run(video_id, known_duration=metadata.duration_seconds)

        if metadata.duration_seconds is None:
            metadata = metadata.model_copy(update={"duration_seconds": result.duration_seconds})

        logger.info(
            "video_ingested",
            source_id=source.id,
            video_id=video_id,
            title=metadata.title,
            chunks=len(result.drafts),
        )
        return ProcessorResult(chunks=result.drafts, metadata=metadata)

    async def _resolve_metadata(self, source: Source, video_id: str) -> VideoMetadata:
        cached = source.metadata
        if (
            isinstance(cached, VideoMetadata)
            and cached.video_id == video_id
            and cached.title
            and cached.duration_seconds is not None
        ):
            return cached

        metadata = await self._media.fetch_metadata(video_id)
        logger.info(
            "video_metadata_fetched",
            source_id=source.id,
            video_id=video_id,
            duration_s=metadata.duration_seconds,
        )
        return metadata
