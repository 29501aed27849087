"""Models exchanged with the media and speech-to-text collaborators.

Times on :class:`TranscriptSegment` are relative to whatever file was
submitted for transcription until the audio pipeline normalizes them onto
the original media timeline.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TranscriptSegment(BaseModel):
    """One time-stamped piece of transcribed speech."""

    model_config = ConfigDict(frozen=True)

    id: int = 0
    start: float = Field(ge=0)
    end: float = Field(ge=0)
    text: str = ""
    avg_logprob: float | None = None
    no_speech_prob: float | None = None
    compression_ratio: float | None = None


class TranscriptionResult(BaseModel):
    """Result of transcribing one audio file."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Full transcript text.")
    language: str = Field(default="", description="Detected language code.")
    duration_seconds: float = Field(default=0.0, ge=0)
    segments: list[TranscriptSegment] = Field(default_factory=list)
    provider_name: str = Field(default="", description="Transcription backend that produced this result.")


class AudioSpan(BaseModel):
    """A contiguous time range of the original audio, ``[start, end)`` in seconds."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    start: float = Field(ge=0)
    end: float = Field(ge=0)

    @property
    def duration(self) -> float:
        return self.end - self.start
