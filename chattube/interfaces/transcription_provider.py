"""Abstract base class for speech-to-text providers.

Implementations wrap a transcription backend behind a common interface so
the audio pipeline does not need to know which service is in use.  Segment
times in the returned result are relative to the submitted file.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from chattube.models.media import TranscriptionResult


class ITranscriptionProvider(ABC):
    """Contract for audio transcription backends."""

    @abstractmethod
    async def transcribe(
        self,
        audio_path: str,
        language: str | None = None,
    ) -> TranscriptionResult:
        """Transcribe an audio file to text.

        Parameters
        ----------
        audio_path:
            Path to the audio file on disk.
        language:
            Optional ISO 639-1 language code (e.g. "en", "de").
            If None, the provider should auto-detect the language.

        Returns
        -------
        TranscriptionResult
            Full text plus segments carrying start/end, text and the three
            confidence signals.

        Raises
        ------
        chattube.utils.errors.TranscriptionError
            If the service call fails after the client's own retries.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable name for this provider."""

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the model identifier recorded in chunk metadata."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the provider is ready to accept transcription requests."""
