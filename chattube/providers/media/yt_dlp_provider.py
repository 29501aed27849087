"""Media provider backed by the yt-dlp, ffprobe and ffmpeg command-line tools.

# ─── TOOLING ─────────────────────────────────────────────────────────
#
#   yt-dlp   metadata (--dump-json) and audio download (-x, mp3 192K)
#   ffprobe  duration of a local file
#   ffmpeg   cut an exact time range, re-encoded with libmp3lame
#
# Every tool runs through asyncio.create_subprocess_exec so nothing blocks
# the event loop.  Failures talking to the platform are MediaDownloadError;
# failures on local files are MediaProcessingError.  Both are transient.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import json
import shutil
from pathlib import Path

import structlog

from chattube.interfaces.media_provider import IMediaProvider
from chattube.models.ingestion import VideoMetadata
from chattube.utils.errors import ConfigurationError, MediaDownloadError, MediaProcessingError

logger = structlog.get_logger(logger_name=__name__)

_WATCH_URL = "https://www.youtube.com/watch?v={media_id}"
_METADATA_TIMEOUT = 60.0
_PROBE_TIMEOUT = 30.0
_SEGMENT_TIMEOUT = 300.0
_AUDIO_BITRATE = "192k"


class _ToolFailed(Exception):
    def __init__(self, tool: str, detail: str) -> None:
        self.tool = tool
        self.detail = detail
        super().__init__(f"{tool}: {detail}")


async def _run(args: list[str], timeout: float) -> str:
    """Run *args* and return stdout; raise ``_ToolFailed`` on timeout or non-zero exit."""
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise _ToolFailed(args[0], f"timed out after {timeout:.0f}s") from None

    if proc.returncode != 0:
        raise _ToolFailed(args[0], stderr.decode(errors="replace")[:500].strip())
    return stdout.decode(errors="replace")


class YtDlpMediaProvider(IMediaProvider):
    """Downloads and slices audio using external command-line tools.

    Parameters
    ----------
    download_timeout:
        Seconds allowed for one audio download before it is killed.
    """

    def __init__(
        self,
        download_timeout: float = 120.0,
        yt_dlp_binary: str = "yt-dlp",
        ffmpeg_binary: str = "ffmpeg",
        ffprobe_binary: str = "ffprobe",
    ) -> None:
        self._download_timeout = download_timeout
        self._yt_dlp = yt_dlp_binary
        self._ffmpeg = ffmpeg_binary
        self._ffprobe = ffprobe_binary

    def check_tools(self) -> None:
        """Raise ConfigurationError if any required binary is missing from PATH."""
        missing = [b for b in (self._yt_dlp, self._ffmpeg, self._ffprobe) if not shutil.which(b)]
        if missing:
            raise ConfigurationError(
                message=f"Required media tools not found on PATH: {', '.join(missing)}",
                provider_name=self.get_provider_name(),
            )

    # ------------------------------------------------------------------
    # IMediaProvider implementation
    # ------------------------------------------------------------------

    async def fetch_metadata(self, media_id: str) -> VideoMetadata:
        url = _WATCH_URL.format(media_id=media_id)
        try:
            raw = await _run(
                [self._yt_dlp, "--dump-json", "--skip-download", "--no-warnings", "--no-playlist", url],
                timeout=_METADATA_TIMEOUT,
            )
            info = json.loads(raw)
        except _ToolFailed as exc:
            raise MediaDownloadError(
                message=f"Metadata lookup failed for {media_id}: {exc.detail}",
                provider_name=self.get_provider_name(),
            ) from exc
        except json.JSONDecodeError as exc:
            raise MediaDownloadError(
                message=f"Unparseable metadata for {media_id}",
                provider_name=self.get_provider_name(),
            ) from exc

        thumbnails = info.get("thumbnails") or []
        return VideoMetadata(
            video_id=media_id,
            title=info.get("title"),
            description=info.get("description"),
            duration_seconds=info.get("duration"),
            upload_date=info.get("upload_date"),
            channel_name=info.get("channel") or info.get("uploader"),
            channel_id=info.get("channel_id"),
            thumbnail_url=info.get("thumbnail") or (thumbnails[-1].get("url") if thumbnails else None),
            view_count=info.get("view_count"),
        )

    async def download_audio(self, media_id: str, dest_dir: Path) -> Path:
        dest_dir.mkdir(parents=True, exist_ok=True)
        template = dest_dir / f"{media_id}.%(ext)s"
        logger.info("audio_download_started", media_id=media_id, dest=str(dest_dir))
        try:
            await _run(
                [
                    self._yt_dlp,
                    "--extract-audio",
                    "--audio-format", "mp3",
                    "--audio-quality", "192K",
                    "--no-playlist",
                    "--no-warnings",
                    "--output", str(template),
                    _WATCH_URL.format(media_id=media_id),
                ],
                timeout=self._download_timeout,
            )
        except _ToolFailed as exc:
            raise MediaDownloadError(
                message=f"Audio download failed for {media_id}: {exc.detail}",
                provider_name=self.get_provider_name(),
            ) from exc

        audio_files = sorted(dest_dir.glob(f"{media_id}.*"))
        if not audio_files:
            raise MediaDownloadError(
                message=f"yt-dlp produced no output file for {media_id}",
                provider_name=self.get_provider_name(),
            )
        return audio_files[0]

    async def probe_duration(self, path: Path) -> float:
        try:
            raw = await _run(
                [
                    self._ffprobe,
                    "-v", "error",
                    "-show_entries", "format=duration",
                    "-of", "default=noprint_wrappers=1:nokey=1",
                    str(path),
                ],
                timeout=_PROBE_TIMEOUT,
            )
            return float(raw.strip())
        except (_ToolFailed, ValueError) as exc:
            raise MediaProcessingError(
                message=f"Could not read duration of {path.name}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def extract_segment(
        self, source: Path, dest: Path, start: float, duration: float
    ) -> Path:
        try:
            await _run(
                [
                    self._ffmpeg,
                    "-y",
                    "-hide_banner",
                    "-loglevel", "error",
                    "-ss", f"{start:.3f}",
                    "-i", str(source),
                    "-t", f"{duration:.3f}",
                    "-acodec", "libmp3lame",
                    "-b:a", _AUDIO_BITRATE,
                    str(dest),
                ],
                timeout=_SEGMENT_TIMEOUT,
            )
        except _ToolFailed as exc:
            raise MediaProcessingError(
                message=f"Segmenting {source.name} at {start:.0f}s failed: {exc.detail}",
                provider_name=self.get_provider_name(),
            ) from exc
        return dest

    def get_provider_name(self) -> str:
        return "yt-dlp"
