"""Domain models -- re-exports all public model classes.

    - ingestion.py -- jobs, sources, chunks, per-kind metadata, queue reports
    - media.py     -- transcript segments and audio spans
"""

from __future__ import annotations

from chattube.models.ingestion import (
    Chunk,
    ChunkDraft,
    DocumentMetadata,
    FileMetadata,
    IngestionOutcome,
    Job,
    JobStatus,
    JobStatusReport,
    ProcessingMetadata,
    ProcessingStatus,
    ProcessorResult,
    QueueStats,
    Source,
    SourceKind,
    SourceMetadata,
    VideoMetadata,
    WebMetadata,
)
from chattube.models.media import AudioSpan, TranscriptionResult, TranscriptSegment

__all__ = [
    "AudioSpan",
    "Chunk",
    "ChunkDraft",
    "DocumentMetadata",
    "FileMetadata",
    "IngestionOutcome",
    "Job",
    "JobStatus",
    "JobStatusReport",
    "ProcessingMetadata",
    "ProcessingStatus",
    "ProcessorResult",
    "QueueStats",
    "Source",
    "SourceKind",
    "SourceMetadata",
    "TranscriptSegment",
    "TranscriptionResult",
    "VideoMetadata",
    "WebMetadata",
]
