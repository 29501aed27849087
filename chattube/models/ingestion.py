"""Ingestion data models: jobs, sources, chunks and queue reports.

All models are Pydantic v2 and frozen.  State transitions never mutate a
record in place; the queue and the ingestion service build the next state
with ``model_copy(update=...)`` and hand it to the store.

Per-kind source metadata is a tagged union keyed on ``kind`` so a stored
JSON blob always deserializes back to the right model.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SourceKind(str, Enum):  # noqa: UP042
    """Kinds of content the pipeline knows how to ingest."""

    VIDEO = "video"
    WEB = "web"
    DOCUMENT = "document"
    FILE = "file"


class JobStatus(str, Enum):  # noqa: UP042
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class ProcessingStatus(str, Enum):  # noqa: UP042
    """Source-level ingestion state, independent of the job's own state."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Per-kind source metadata (tagged union)
# ---------------------------------------------------------------------------

class VideoMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["video"] = "video"
    video_id: str = Field(description="Canonical 11-character media id.")
    title: str | None = None
    description: str | None = None
    duration_seconds: float | None = Field(default=None, ge=0)
    upload_date: str | None = None
    channel_name: str | None = None
    channel_id: str | None = None
    thumbnail_url: str | None = None
    view_count: int | None = None


class WebMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["web"] = "web"
    url: str
    title: str | None = None
    description: str | None = None
    author: str | None = None
    site_name: str | None = None
    image: str | None = None
    published: str | None = None
    content_length: int = Field(default=0, ge=0)


class DocumentMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["document"] = "document"
    title: str | None = None
    author: str | None = None
    page_count: int = Field(default=0, ge=0)
    content_length: int = Field(default=0, ge=0)


class FileMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["file"] = "file"
    filename: str
    extension: str
    size_bytes: int = Field(default=0, ge=0)
    content_length: int = Field(default=0, ge=0)
    title: str | None = None


SourceMetadata = Annotated[
    Union[VideoMetadata, WebMetadata, DocumentMetadata, FileMetadata],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------

class ProcessingMetadata(BaseModel):
    """Source-level ingestion bookkeeping written only by the ingestion service."""

    model_config = ConfigDict(frozen=True)

    status: ProcessingStatus = ProcessingStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    error_message: str | None = None
    chunks_count: int | None = Field(default=None, ge=0)
    total_processing_time_ms: int | None = Field(default=None, ge=0)


class Source(BaseModel):
    """A piece of external content registered by source management."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Source identifier assigned by source management.")
    kind: SourceKind
    locator: str = Field(min_length=1, description="URL or file reference.")
    title: str | None = None
    metadata: SourceMetadata | None = Field(
        default=None, description="Kind-specific metadata populated by the processor."
    )
    processing: ProcessingMetadata = Field(default_factory=ProcessingMetadata)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def _metadata_matches_kind(self) -> Source:
        if self.metadata is not None and self.metadata.kind != self.kind.value:
            raise ValueError(
                f"metadata kind '{self.metadata.kind}' does not match source kind '{self.kind.value}'"
            )
        return self


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------

class ChunkDraft(BaseModel):
    """A chunk as produced by a processor, before it is bound to a source."""

    model_config = ConfigDict(frozen=True)

    chunk_index: int = Field(ge=0)
    text: str = Field(min_length=1)
    start_time: float | None = Field(default=None, ge=0, description="Seconds on the original media timeline.")
    end_time: float | None = Field(default=None, ge=0)
    embedding: list[float] = Field(min_length=1)
    token_count: int = Field(default=0, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _time_range_ordered(self) -> ChunkDraft:
        if (
            self.start_time is not None
            and self.end_time is not None
            and self.end_time < self.start_time
        ):
            raise ValueError("end_time must not precede start_time")
        return self


class Chunk(ChunkDraft):
    """A persisted chunk.  ``(source_id, chunk_index)`` is unique."""

    id: str
    source_id: str
    created_at: datetime


class ProcessorResult(BaseModel):
    """Output of ``SourceProcessor.ingest``."""

    model_config = ConfigDict(frozen=True)

    chunks: list[ChunkDraft] = Field(default_factory=list)
    metadata: SourceMetadata | None = None


# ---------------------------------------------------------------------------
# Jobs and queue reporting
# ---------------------------------------------------------------------------

class Job(BaseModel):
    """One unit of ingestion work for a single source."""

    model_config = ConfigDict(frozen=True)

    id: str
    source_id: str
    kind: SourceKind
    status: JobStatus = JobStatus.PENDING
    attempts: int = Field(default=0, ge=0)
    next_run_at: datetime
    lease_expires_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime


class JobStatusReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    status: JobStatus
    attempts: int
    next_run_at: datetime
    last_error: str | None = None


class QueueStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    pending: int = 0
    processing: int = 0
    done: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.processing + self.done + self.failed


class IngestionOutcome(BaseModel):
    """Summary returned by ``IngestionService.process_source``."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    kind: SourceKind
    chunks_count: int = Field(ge=0)
    total_processing_time_ms: int = Field(ge=0)
    replaced_chunks: int = Field(default=0, ge=0)
