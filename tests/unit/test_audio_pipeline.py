"""Unit tests for the audio pipeline stages and the AudioPipeline runner."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from chattube.models.media import TranscriptionResult, TranscriptSegment
from chattube.services.ingestion.audio_pipeline import (
    AudioPipeline,
    ChunkingPolicy,
    filter_segments,
    normalize_segments,
    plan_audio_chunks,
    should_chunk,
)
from chattube.utils.errors import EmbeddingError, TranscriptionError
from tests.conftest import (
    MockEmbeddingProvider,
    MockMediaProvider,
    MockTranscriptionProvider,
    make_segments,
)

_MB = 1024 * 1024


# ======================================================================
# Pure stage functions
# ======================================================================


class TestShouldChunk:
    @pytest.mark.parametrize(
        ("size_mb", "duration", "expected"),
        [
            (10, 300, False),
            (25, 300, True),
            (24.9, 599.9, False),
            (1, 600, True),
            (40, 1200, True),
        ],
    )
    def test_thresholds(self, size_mb: float, duration: float, expected: bool) -> None:
        assert should_chunk(int(size_mb * _MB), duration, ChunkingPolicy()) is expected

    def test_thresholds_are_configurable(self) -> None:
        policy = ChunkingPolicy(size_threshold_mb=1, duration_threshold_seconds=60)
        assert should_chunk(2 * _MB, 10, policy) is True
        assert should_chunk(1000, 61, policy) is True
        assert should_chunk(1000, 59, policy) is False


class TestPlanAudioChunks:
    def test_twenty_minutes_gives_four_spans(self) -> None:
        spans = plan_audio_chunks(1200, 300)
        assert [(s.start, s.end) for s in spans] == [
            (0, 300),
            (300, 600),
            (600, 900),
            (900, 1200),
        ]
        assert [s.index for s in spans] == [0, 1, 2, 3]

    def test_last_span_is_truncated(self) -> None:
        spans = plan_audio_chunks(720, 300)
        assert [(s.start, s.end) for s in spans] == [(0, 300), (300, 600), (600, 720)]
        assert spans[-1].duration == 120

    def test_spans_cover_duration_without_overlap(self) -> None:
        spans = plan_audio_chunks(1234.5, 300)
        assert spans[0].start == 0
        assert spans[-1].end == 1234.5
        for prev, nxt in zip(spans, spans[1:]):
            assert prev.end == nxt.start


class TestNormalizeAndFilter:
    def test_offsets_are_added(self) -> None:
        segments = [TranscriptSegment(id=0, start=1.5, end=4.0, text="hi there")]
        normalized = normalize_segments(segments, 300)
        assert (normalized[0].start, normalized[0].end) == (301.5, 304.0)

    def test_zero_offset_is_identity(self) -> None:
        segments = make_segments(3)
        assert normalize_segments(segments, 0) == segments

    def test_short_and_blank_segments_dropped(self) -> None:
        segments = [
            TranscriptSegment(id=0, start=0, end=1, text="  "),
            TranscriptSegment(id=1, start=1, end=2, text=" ok "),
            TranscriptSegment(id=2, start=2, end=3, text="yes"),
            TranscriptSegment(id=3, start=3, end=4, text=""),
        ]
        assert [s.id for s in filter_segments(segments, 3)] == [2]


# ======================================================================
# AudioPipeline.run
# ======================================================================


def _pipeline(
    tmp_path: Path,
    media: MockMediaProvider,
    transcriber: MockTranscriptionProvider,
    embedder: MockEmbeddingProvider | None = None,
) -> AudioPipeline:
    return AudioPipeline(
        media_provider=media,
        transcription_provider=transcriber,
        embedding_provider=embedder or MockEmbeddingProvider(),
        temp_dir=tmp_path / "tmp",
    )


class TestAudioPipelineRun:
    @pytest.mark.asyncio
    async def test_long_media_is_split_into_four_chunks(self, tmp_path: Path) -> None:
        media = MockMediaProvider(duration=1200, size_bytes=40 * _MB)
        transcriber = MockTranscriptionProvider(lambda idx: make_segments(2))

        result = await _pipeline(tmp_path, media, transcriber).run("dQw4w9WgXcQ")

        assert result.audio_chunks == 4
        assert [(start, duration) for _, start, duration in media.segments] == [
            (0, 300),
            (300, 300),
            (600, 300),
            (900, 300),
        ]
        assert len(transcriber.calls) == 4
        assert len(result.drafts) == 8

    @pytest.mark.asyncio
    async def test_short_media_is_not_split(self, tmp_path: Path) -> None:
        media = MockMediaProvider(duration=300, size_bytes=10 * _MB)
        transcriber = MockTranscriptionProvider()

        result = await _pipeline(tmp_path, media, transcriber).run("dQw4w9WgXcQ")

        assert result.audio_chunks == 1
        assert media.segments == []
        assert transcriber.calls == [str(media.downloads[0])]

    @pytest.mark.asyncio
    async def test_times_are_on_the_original_timeline(self, tmp_path: Path) -> None:
        media = MockMediaProvider(duration=720, size_bytes=_MB)
        transcriber = MockTranscriptionProvider(lambda idx: make_segments(1, start=10.0))

        result = await _pipeline(tmp_path, media, transcriber).run("dQw4w9WgXcQ")

        assert [d.start_time for d in result.drafts] == [10.0, 310.0, 610.0]
        assert [d.metadata["audio_chunk_index"] for d in result.drafts] == [0, 1, 2]
        assert [d.chunk_index for d in result.drafts] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_chunk_metadata(self, tmp_path: Path) -> None:
        media = MockMediaProvider(duration=60)
        transcriber = MockTranscriptionProvider(lambda idx: make_segments(1, start=75.0))

        result = await _pipeline(tmp_path, media, transcriber).run("dQw4w9WgXcQ")

        meta = result.drafts[0].metadata
        assert meta["audio_source"] == "whisper"
        assert meta["whisper_model"] == "whisper-1"
        assert meta["segment_id"] == 0
        assert meta["avg_logprob"] == -0.2
        assert meta["no_speech_prob"] == 0.01
        assert meta["compression_ratio"] == 1.4
        assert meta["timestamp"] == "1:15 - 1:20"
        assert meta["timestamp_url"] == "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=75s"
        assert result.drafts[0].token_count == 5

    @pytest.mark.asyncio
    async def test_short_segments_are_filtered(self, tmp_path: Path) -> None:
        media = MockMediaProvider(duration=60)
        texts = ["a real sentence", "", "uh", "another real one"]
        transcriber = MockTranscriptionProvider(
            lambda idx: make_segments(4, text=lambda i: texts[i])
        )

        result = await _pipeline(tmp_path, media, transcriber).run("dQw4w9WgXcQ")

        assert [d.text for d in result.drafts] == ["a real sentence", "another real one"]
        assert result.segments_total == 4
        assert result.segments_filtered == 2

    @pytest.mark.asyncio
    async def test_single_embedding_failure_is_skipped(self, tmp_path: Path) -> None:
        media = MockMediaProvider(duration=60)
        transcriber = MockTranscriptionProvider(lambda idx: make_segments(3))
        embedder = MockEmbeddingProvider(fail_on={"segment number 1 says something"})

        result = await _pipeline(tmp_path, media, transcriber, embedder).run("dQw4w9WgXcQ")

        assert [d.metadata["segment_id"] for d in result.drafts] == [0, 2]
        assert [d.chunk_index for d in result.drafts] == [0, 1]
        assert result.embedding_failures == 1

    @pytest.mark.asyncio
    async def test_all_embeddings_failing_raises(self, tmp_path: Path) -> None:
        embedder = MockEmbeddingProvider()
        embedder.fail_all = True

        with pytest.raises(EmbeddingError):
            await _pipeline(
                tmp_path, MockMediaProvider(duration=60), MockTranscriptionProvider(), embedder
            ).run("dQw4w9WgXcQ")

    @pytest.mark.asyncio
    async def test_silent_media_yields_no_drafts(self, tmp_path: Path) -> None:
        transcriber = MockTranscriptionProvider(lambda idx: [])

        result = await _pipeline(tmp_path, MockMediaProvider(duration=30), transcriber).run(
            "dQw4w9WgXcQ"
        )

        assert result.drafts == []

    @pytest.mark.asyncio
    async def test_known_duration_used_when_probe_returns_zero(self, tmp_path: Path) -> None:
        media = MockMediaProvider(duration=0)

        result = await _pipeline(tmp_path, media, MockTranscriptionProvider()).run(
            "dQw4w9WgXcQ", known_duration=900
        )

        assert result.duration_seconds == 900
        assert result.audio_chunks == 3


class _FirstSpanFailsTranscriber(MockTranscriptionProvider):
    """Span 0 fails at once; the other spans finish a little later."""

    def __init__(self) -> None:
        super().__init__()
        self.finished: list[tuple[str, bool]] = []

    async def transcribe(self, audio_path: str, language: str | None = None) -> TranscriptionResult:
        path = Path(audio_path)
        if path.stem.endswith("_chunk_000"):
            raise TranscriptionError(message="span 0 rejected")
        await asyncio.sleep(0.05)
        self.finished.append((path.name, path.exists()))
        return await super().transcribe(audio_path, language)


class TestAudioPipelineCleanup:
    @pytest.mark.asyncio
    async def test_temp_files_removed_on_success(self, tmp_path: Path) -> None:
        media = MockMediaProvider(duration=1200, size_bytes=40 * _MB)

        await _pipeline(tmp_path, media, MockTranscriptionProvider()).run("dQw4w9WgXcQ")

        assert list((tmp_path / "tmp").iterdir()) == []
        assert not any(p.exists() for p in media.downloads)
        assert not any(path.exists() for path, _, _ in media.segments)

    @pytest.mark.asyncio
    async def test_temp_files_removed_on_transcription_error(self, tmp_path: Path) -> None:
        media = MockMediaProvider(duration=1200, size_bytes=40 * _MB)
        transcriber = MockTranscriptionProvider(error=TranscriptionError(message="503"))

        with pytest.raises(TranscriptionError):
            await _pipeline(tmp_path, media, transcriber).run("dQw4w9WgXcQ")

        assert list((tmp_path / "tmp").iterdir()) == []

    @pytest.mark.asyncio
    async def test_sibling_transcriptions_settle_before_cleanup(self, tmp_path: Path) -> None:
        media = MockMediaProvider(duration=1200, size_bytes=40 * _MB)
        transcriber = _FirstSpanFailsTranscriber()

        with pytest.raises(TranscriptionError):
            await _pipeline(tmp_path, media, transcriber).run("dQw4w9WgXcQ")

        # Every other span finished while its file was still on disk.
        assert sorted(transcriber.finished) == [
            ("dQw4w9WgXcQ_chunk_001.mp3", True),
            ("dQw4w9WgXcQ_chunk_002.mp3", True),
            ("dQw4w9WgXcQ_chunk_003.mp3", True),
        ]
        assert list((tmp_path / "tmp").iterdir()) == []

    @pytest.mark.asyncio
    async def test_stray_files_in_job_dir_removed(self, tmp_path: Path) -> None:
        media = MockMediaProvider(duration=60)
        original_download = media.download_audio

        async def _download_with_partial(media_id: str, dest_dir: Path) -> Path:
            (Path(dest_dir) / f"{media_id}.webm.part").write_bytes(b"partial")
            return await original_download(media_id, dest_dir)

        media.download_audio = _download_with_partial

        await _pipeline(tmp_path, media, MockTranscriptionProvider()).run("dQw4w9WgXcQ")

        assert list((tmp_path / "tmp").iterdir()) == []
