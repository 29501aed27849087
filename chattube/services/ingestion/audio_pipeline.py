"""Audio pipeline: spoken content from long-form media to embedded chunk drafts.

# ─── STAGES ──────────────────────────────────────────────────────────
#
#   download  → one audio file in a per-job temp directory
#   decide    → chunk iff size >= 25 MB or duration >= 600 s
#   segment   → fixed 300 s spans, re-encoded so boundaries are exact
#   transcribe→ all spans concurrently; all settle before a failure raises
#   normalize → segment times shifted by their span's start offset
#   filter    → drop segments whose trimmed text is under 3 characters
#   embed     → one request per segment, concurrently; failures skipped
#   assemble  → dense chunk_index across all spans, in timeline order
#   cleanup   → every temp file removed on success and on error
#
# Transcription and embedding fan-out is bounded only by the number of
# spans/segments in the job.  A three-hour video issues 36 concurrent
# transcription calls; the OpenAI client's own retries absorb 429s.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import math
import tempfile
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field

from chattube.interfaces.embedding_provider import IEmbeddingProvider
from chattube.interfaces.media_provider import IMediaProvider
from chattube.interfaces.transcription_provider import ITranscriptionProvider
from chattube.models.ingestion import ChunkDraft
from chattube.models.media import AudioSpan, TranscriptionResult, TranscriptSegment
from chattube.services.ingestion.chunker import approximate_token_count
from chattube.utils.concurrency import gather_settled
from chattube.utils.errors import EmbeddingError
from chattube.utils.timestamps import format_timestamp_range, video_timestamp_url

logger = structlog.get_logger(logger_name=__name__)

_BYTES_PER_MB = 1024 * 1024


class ChunkingPolicy(BaseModel):
    """Thresholds deciding whether and how a download is split."""

    model_config = ConfigDict(frozen=True)

    size_threshold_mb: float = Field(default=25.0, gt=0)
    duration_threshold_seconds: float = Field(default=600.0, gt=0)
    chunk_seconds: float = Field(default=300.0, gt=0)
    min_segment_chars: int = Field(default=3, ge=0)


class AudioPipelineResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    drafts: list[ChunkDraft]
    duration_seconds: float
    size_bytes: int
    audio_chunks: int
    segments_total: int
    segments_filtered: int
    embedding_failures: int


# ---------------------------------------------------------------------------
# Pure stage functions
# ---------------------------------------------------------------------------

def should_chunk(size_bytes: int, duration_seconds: float, policy: ChunkingPolicy) -> bool:
    return (
        size_bytes >= policy.size_threshold_mb * _BYTES_PER_MB
        or duration_seconds >= policy.duration_threshold_seconds
    )


def plan_audio_chunks(duration_seconds: float, chunk_seconds: float) -> list[AudioSpan]:
    """Sequential, non-overlapping spans ``[i*c, min((i+1)*c, duration))``."""
    if duration_seconds <= 0:
        return [AudioSpan(index=0, start=0.0, end=0.0)]
    count = math.ceil(duration_seconds / chunk_seconds)
    return [
        AudioSpan(
            index=i,
            start=i * chunk_seconds,
            end=min((i + 1) * chunk_seconds, duration_seconds),
        )
        for i in range(count)
    ]


def normalize_segments(segments: list[TranscriptSegment], offset: float) -> list[TranscriptSegment]:
    """Shift span-relative segment times onto the original media timeline."""
    return [
        seg.model_copy(update={"start": seg.start + offset, "end": seg.end + offset})
        for seg in segments
    ]


def filter_segments(segments: list[TranscriptSegment], min_chars: int = 3) -> list[TranscriptSegment]:
    return [seg for seg in segments if len(seg.text.strip()) >= min_chars]


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class AudioPipeline:
    """Runs the download → transcribe → embed stages for one media id.

    Parameters
    ----------
    media_provider:
        Download, probe and segmentation tooling.
    transcription_provider:
        Speech-to-text backend returning span-relative segments.
    embedding_provider:
        Embedding backend, called once per surviving segment.
    temp_dir:
        Parent directory for per-job scratch directories.
    policy:
        Chunking thresholds; defaults are 25 MB / 600 s / 300 s / 3 chars.
    """

    def __init__(
        self,
        media_provider: IMediaProvider,
        transcription_provider: ITranscriptionProvider,
        embedding_provider: IEmbeddingProvider,
        temp_dir: str | Path,
        policy: ChunkingPolicy | None = None,
    ) -> None:
        self._media = media_provider
        self._transcriber = transcription_provider
        self._embedder = embedding_provider
        self._temp_dir = Path(temp_dir)
        self._policy = policy or ChunkingPolicy()

    @property
    def policy(self) -> ChunkingPolicy:
        return self._policy

    async def run(self, media_id: str, known_duration: float | None = None) -> AudioPipelineResult:
        """Produce chunk drafts for *media_id*.

        Transcription failures propagate (the queue retries the job);
        individual embedding failures are logged and the segment skipped.
        """
        log = logger.bind(media_id=media_id)
        self._temp_dir.mkdir(parents=True, exist_ok=True)
        job_dir = Path(tempfile.mkdtemp(prefix=f"{media_id}_", dir=self._temp_dir))
        created: list[Path] = []

        try:
            audio_path = await self._media.download_audio(media_id, job_dir)
            created.append(audio_path)

            size_bytes = audio_path.stat().st_size
            duration = await self._media.probe_duration(audio_path)
            if duration <= 0 and known_duration:
                duration = known_duration

            spans = await self._segment(audio_path, job_dir, size_bytes, duration, created, log)
            transcripts = await self._transcribe_all(spans)

            kept: list[tuple[int, TranscriptSegment]] = []
            segments_total = 0
            segments_filtered = 0
            for span, result in transcripts:
                normalized = normalize_segments(result.segments, span.start)
                survivors = filter_segments(normalized, self._policy.min_segment_chars)
                segments_total += len(normalized)
                segments_filtered += len(normalized) - len(survivors)
                kept.extend((span.index, seg) for seg in survivors)

            drafts, failures = await self._embed_and_assemble(media_id, kept, log)

            log.info(
                "audio_pipeline_complete",
                duration_s=round(duration, 2),
                size_mb=round(size_bytes / _BYTES_PER_MB, 2),
                audio_chunks=len(spans),
                segments=segments_total,
                filtered=segments_filtered,
                embedding_failures=failures,
                chunks=len(drafts),
            )
            return AudioPipelineResult(
                drafts=drafts,
                duration_seconds=duration,
                size_bytes=size_bytes,
                audio_chunks=len(spans),
                segments_total=segments_total,
                segments_filtered=segments_filtered,
                embedding_failures=failures,
            )
        finally:
            self._cleanup(created, job_dir, log)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _segment(
        self,
        audio_path: Path,
        job_dir: Path,
        size_bytes: int,
        duration: float,
        created: list[Path],
        log: structlog.BoundLogger,
    ) -> list[tuple[AudioSpan, Path]]:
        if not should_chunk(size_bytes, duration, self._policy):
            log.info("audio_single_segment", duration_s=round(duration, 2), size_bytes=size_bytes)
            return [(AudioSpan(index=0, start=0.0, end=duration), audio_path)]

        spans = plan_audio_chunks(duration, self._policy.chunk_seconds)
        log.info(
            "audio_chunked",
            duration_s=round(duration, 2),
            size_bytes=size_bytes,
            chunks=len(spans),
            chunk_seconds=self._policy.chunk_seconds,
        )

        out: list[tuple[AudioSpan, Path]] = []
        for span in spans:
            dest = job_dir / f"{audio_path.stem}_chunk_{span.index:03d}{audio_path.suffix or '.mp3'}"
            created.append(dest)
            await self._media.extract_segment(audio_path, dest, span.start, span.duration)
            out.append((span, dest))
        return out

    async def _transcribe_all(
        self, spans: list[tuple[AudioSpan, Path]]
    ) -> list[tuple[AudioSpan, TranscriptionResult]]:
        # Every call settles before the first failure propagates, so the
        # caller's cleanup never deletes a file a request is still reading.
        outcomes = await gather_settled(
            [self._transcriber.transcribe(str(path)) for _, path in spans]
        )
        results: list[tuple[AudioSpan, TranscriptionResult]] = []
        for (span, _), outcome in zip(spans, outcomes):
            if isinstance(outcome, BaseException):
                raise outcome
            results.append((span, outcome))
        return sorted(results, key=lambda pair: pair[0].index)

    async def _embed_and_assemble(
        self,
        media_id: str,
        kept: list[tuple[int, TranscriptSegment]],
        log: structlog.BoundLogger,
    ) -> tuple[list[ChunkDraft], int]:
        if not kept:
            return [], 0

        outcomes = await gather_settled(
            [self._embedder.embed_single(seg.text.strip()) for _, seg in kept]
        )

        failures = 0
        first_error: BaseException | None = None
        drafts: list[ChunkDraft] = []
        model = self._transcriber.get_model_name()
        for (span_index, seg), outcome in zip(kept, outcomes):
            if isinstance(outcome, BaseException):
                failures += 1
                first_error = first_error or outcome
                log.warning(
                    "segment_embedding_failed",
                    audio_chunk=span_index,
                    segment_id=seg.id,
                    start=seg.start,
                    error=str(outcome),
                )
                continue

            text = seg.text.strip()
            drafts.append(
                ChunkDraft(
                    chunk_index=len(drafts),
                    text=text,
                    start_time=seg.start,
                    end_time=max(seg.end, seg.start),
                    embedding=outcome,
                    token_count=approximate_token_count(text),
                    metadata={
                        "audio_source": "whisper",
                        "whisper_model": model,
                        "segment_id": seg.id,
                        "audio_chunk_index": span_index,
                        "avg_logprob": seg.avg_logprob,
                        "no_speech_prob": seg.no_speech_prob,
                        "compression_ratio": seg.compression_ratio,
                        "timestamp": format_timestamp_range(seg.start, max(seg.end, seg.start)),
                        "timestamp_url": video_timestamp_url(media_id, seg.start),
                    },
                )
            )

        if not drafts:
            # Every request failed: the embedding service is down, not one bad segment.
            raise EmbeddingError(
                message=f"All {failures} segment embeddings failed: {first_error}",
                provider_name=self._embedder.get_provider_name(),
            ) from first_error

        return drafts, failures

    @staticmethod
    def _cleanup(created: list[Path], job_dir: Path, log: structlog.BoundLogger) -> None:
        removed = 0
        for path in created:
            try:
                if path.exists():
                    path.unlink()
                    removed += 1
            except OSError as exc:
                log.warning("temp_file_cleanup_failed", path=str(path), error=str(exc))

        # Stray files (e.g. yt-dlp partials) go with the directory.
        try:
            for leftover in job_dir.iterdir():
                leftover.unlink()
                removed += 1
            job_dir.rmdir()
        except OSError as exc:
            log.warning("temp_dir_cleanup_failed", path=str(job_dir), error=str(exc))

        log.debug("audio_cleanup_complete", removed=removed)
