"""Shared pytest fixtures for the chattube ingestion test suite."""

from __future__ import annotations

import hashlib
import struct
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest
import pytest_asyncio

from chattube.interfaces.embedding_provider import IEmbeddingProvider
from chattube.interfaces.media_provider import IMediaProvider
from chattube.interfaces.transcription_provider import ITranscriptionProvider
from chattube.models.ingestion import VideoMetadata
from chattube.models.media import TranscriptionResult, TranscriptSegment
from chattube.providers.store.sqlite_chunk_store import SQLiteChunkStore
from chattube.providers.store.sqlite_job_store import SQLiteJobStore
from chattube.providers.store.sqlite_source_repository import SQLiteSourceRepository
from chattube.services.ingestion.queue import IngestionQueue
from chattube.utils.errors import EmbeddingError

EMBEDDING_DIM = 8


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------


def _hash_to_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Deterministic unit vector derived from the SHA-256 of *text*."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim * 4:
        raw += hashlib.sha256(raw).digest()
    raw = raw[: dim * 4]
    # Unsigned ints avoid NaN/inf bit patterns that raw floats can produce.
    values = [v / 2**32 + 0.01 for v in struct.unpack(f"<{dim}I", raw)]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider.

    Texts listed in ``fail_on`` raise :class:`EmbeddingError`; ``fail_all``
    makes every call fail.
    """

    def __init__(self, dim: int = EMBEDDING_DIM, fail_on: set[str] | None = None) -> None:
        self.dim = dim
        self.fail_on = fail_on or set()
        self.fail_all = False
        self.single_calls: list[str] = []
        self.batch_calls: list[list[str]] = []

    def _check(self, text: str) -> None:
        if self.fail_all or text in self.fail_on:
            raise EmbeddingError(message=f"mock failure for {text!r}", provider_name="mock")

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls.append(list(texts))
        for text in texts:
            self._check(text)
        return [_hash_to_vector(t, self.dim) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.single_calls.append(text)
        self._check(text)
        return _hash_to_vector(text, self.dim)

    def get_dimension(self) -> int:
        return self.dim

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Transcription
# ---------------------------------------------------------------------------


def make_segments(
    count: int,
    start: float = 0.0,
    step: float = 5.0,
    text: Callable[[int], str] | None = None,
) -> list[TranscriptSegment]:
    """Build *count* consecutive segments of *step* seconds each."""
    text = text or (lambda i: f"segment number {i} says something")
    return [
        TranscriptSegment(
            id=i,
            start=start + i * step,
            end=start + (i + 1) * step,
            text=text(i),
            avg_logprob=-0.2,
            no_speech_prob=0.01,
            compression_ratio=1.4,
        )
        for i in range(count)
    ]


class MockTranscriptionProvider(ITranscriptionProvider):
    """Returns canned segments per file.

    ``segments_for`` maps the position of the call's file in chunk order
    (0 for an unchunked file) to the span-relative segments to return.
    Files are matched by their ``_chunk_NNN`` suffix.
    """

    def __init__(
        self,
        segments_for: Callable[[int], list[TranscriptSegment]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self._segments_for = segments_for or (lambda idx: make_segments(3))
        self._error = error
        self.calls: list[str] = []

    async def transcribe(self, audio_path: str, language: str | None = None) -> TranscriptionResult:
        self.calls.append(audio_path)
        if self._error is not None:
            raise self._error
        stem = Path(audio_path).stem
        idx = int(stem.rsplit("_chunk_", 1)[1]) if "_chunk_" in stem else 0
        segments = self._segments_for(idx)
        return TranscriptionResult(
            text=" ".join(s.text for s in segments),
            language="en",
            duration_seconds=max((s.end for s in segments), default=0.0),
            segments=segments,
            provider_name="mock-whisper",
        )

    def get_provider_name(self) -> str:
        return "mock-whisper"

    def get_model_name(self) -> str:
        return "whisper-1"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------


class MockMediaProvider(IMediaProvider):
    """Writes placeholder files instead of downloading and re-encoding."""

    def __init__(
        self,
        duration: float = 120.0,
        size_bytes: int = 1024,
        title: str = "Test Video",
    ) -> None:
        self.duration = duration
        self.size_bytes = size_bytes
        self.title = title
        self.downloads: list[Path] = []
        self.segments: list[tuple[Path, float, float]] = []
        self.metadata_calls: list[str] = []

    async def fetch_metadata(self, media_id: str) -> VideoMetadata:
        self.metadata_calls.append(media_id)
        return VideoMetadata(
            video_id=media_id,
            title=self.title,
            duration_seconds=self.duration,
            channel_name="Test Channel",
        )

    async def download_audio(self, media_id: str, dest_dir: Path) -> Path:
        path = Path(dest_dir) / f"{media_id}.mp3"
        # Sparse file: st_size reports size_bytes without writing it all.
        with path.open("wb") as fh:
            fh.truncate(self.size_bytes)
        self.downloads.append(path)
        return path

    async def probe_duration(self, path: Path) -> float:
        return self.duration

    async def extract_segment(self, source: Path, dest: Path, start: float, duration: float) -> Path:
        Path(dest).write_bytes(b"\x00" * 16)
        self.segments.append((Path(dest), start, duration))
        return Path(dest)

    def get_provider_name(self) -> str:
        return "mock-media"


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def mock_transcription_provider() -> MockTranscriptionProvider:
    return MockTranscriptionProvider()


@pytest.fixture
def mock_media_provider() -> MockMediaProvider:
    return MockMediaProvider()


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# SQLite stores
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "chattube_test.db"


@pytest_asyncio.fixture
async def job_store(db_path: Path) -> SQLiteJobStore:
    store = SQLiteJobStore(db_path)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def source_repository(db_path: Path) -> SQLiteSourceRepository:
    repo = SQLiteSourceRepository(db_path)
    await repo.initialize()
    return repo


@pytest_asyncio.fixture
async def chunk_store(db_path: Path) -> SQLiteChunkStore:
    store = SQLiteChunkStore(db_path)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def queue(job_store: SQLiteJobStore, clock: FakeClock) -> IngestionQueue:
    return IngestionQueue(store=job_store, clock=clock)
