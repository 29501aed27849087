"""Abstract base class for media download and segmentation tools.

One adapter covers the four operations the video processor needs from the
media platform and local tooling: metadata lookup, audio download,
duration probing, and cutting an exact time span into a new file.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from chattube.models.ingestion import VideoMetadata


class IMediaProvider(ABC):
    """Contract for media platform and audio file tooling."""

    @abstractmethod
    async def fetch_metadata(self, media_id: str) -> VideoMetadata:
        """Look up title, duration, channel etc. for *media_id*.

        Raises
        ------
        chattube.utils.errors.MediaDownloadError
            If the platform cannot be reached.
        """

    @abstractmethod
    async def download_audio(self, media_id: str, dest_dir: Path) -> Path:
        """Download the best audio track for *media_id* into *dest_dir*.

        Returns the path of the single audio file written.

        Raises
        ------
        chattube.utils.errors.MediaDownloadError
            On network failure, non-zero tool exit or timeout.
        """

    @abstractmethod
    async def probe_duration(self, path: Path) -> float:
        """Return the duration of a local audio file in seconds."""

    @abstractmethod
    async def extract_segment(
        self, source: Path, dest: Path, start: float, duration: float
    ) -> Path:
        """Re-encode ``[start, start + duration)`` of *source* into *dest*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable name for this provider."""
