"""OpenAI Whisper API transcription provider.

# ─── CLOUD TRANSCRIPTION ────────────────────────────────────────────
#
# Max file size: 25 MB per request, which is why the audio pipeline
# splits long or large downloads before they get here.
#
# Requests ``verbose_json`` with segment granularity so every segment
# comes back with start/end (relative to the submitted file) plus
# avg_logprob, no_speech_prob and compression_ratio.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import openai
import structlog

from chattube.config.settings import Settings
from chattube.interfaces.transcription_provider import ITranscriptionProvider
from chattube.models.media import TranscriptionResult, TranscriptSegment
from chattube.utils.errors import RateLimitError, TranscriptionError

logger = structlog.get_logger(logger_name=__name__)


def _field(seg: Any, name: str, default: Any = None) -> Any:
    # The SDK returns typed objects; some compatible servers return dicts.
    if isinstance(seg, dict):
        return seg.get(name, default)
    return getattr(seg, name, default)


class WhisperAPIProvider(ITranscriptionProvider):
    """Transcription via the OpenAI Whisper API.

    Parameters
    ----------
    settings:
        Supplies the API key, optional base URL, model name, and the
        client-level timeout and retry count.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key
        self._model = settings.transcription_model

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": settings.openai_timeout_seconds,
            "max_retries": settings.openai_max_retries,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url
        self._client = openai.AsyncOpenAI(**client_kwargs)

    async def transcribe(
        self,
        audio_path: str,
        language: str | None = None,
    ) -> TranscriptionResult:
        """Transcribe audio using the OpenAI Whisper API."""
        audio_file = Path(audio_path)
        try:
            with open(audio_file, "rb") as f:
                kwargs: dict[str, Any] = {
                    "model": self._model,
                    "file": f,
                    "response_format": "verbose_json",
                    "timestamp_granularities": ["segment"],
                }
                if language:
                    kwargs["language"] = language

                response = await self._client.audio.transcriptions.create(**kwargs)
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"Whisper rate limited for {audio_file.name}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise TranscriptionError(
                message=f"Whisper API error for {audio_file.name}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except OSError as exc:
            raise TranscriptionError(
                message=f"Cannot read audio file {audio_file}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        segments = [
            TranscriptSegment(
                id=_field(seg, "id", idx) or idx,
                start=float(_field(seg, "start", 0.0) or 0.0),
                end=float(_field(seg, "end", 0.0) or 0.0),
                text=_field(seg, "text", "") or "",
                avg_logprob=_field(seg, "avg_logprob"),
                no_speech_prob=_field(seg, "no_speech_prob"),
                compression_ratio=_field(seg, "compression_ratio"),
            )
            for idx, seg in enumerate(getattr(response, "segments", None) or [])
        ]

        duration = float(getattr(response, "duration", 0.0) or 0.0)
        detected_language = getattr(response, "language", None) or language or ""

        logger.info(
            "whisper_api_transcription_complete",
            file=audio_file.name,
            duration=duration,
            language=detected_language,
            segments=len(segments),
        )

        return TranscriptionResult(
            text=response.text,
            language=detected_language,
            duration_seconds=duration,
            segments=segments,
            provider_name=self.get_provider_name(),
        )

    def get_provider_name(self) -> str:
        return "whisper_api"

    def get_model_name(self) -> str:
        return self._model

    def is_available(self) -> bool:
        return bool(self._api_key)
