"""Worker settings loaded from environment variables via pydantic-settings.

Values are read, in priority order, from environment variables and then
from a ``.env`` file in the working directory.  Field ``worker_concurrency``
maps to ``WORKER_CONCURRENCY``, ``store_path`` to ``STORE_PATH`` and so on.
Defaults apply when neither source sets a value.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Ingestion worker settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # === OpenAI (embeddings + Whisper) ===
    openai_api_key: str = ""
    openai_base_url: str = ""
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = Field(default=1536, gt=0)
    transcription_model: str = "whisper-1"
    # Client-level timeout and retry count; job-level retries are the queue's.
    openai_timeout_seconds: float = 120.0
    openai_max_retries: int = 2

    # === Document store ===
    # SQLite file shared by every worker process on the host.
    store_path: str = "data/chattube.db"

    # === Worker loop ===
    worker_concurrency: int = Field(default=2, ge=1)
    worker_poll_interval: int = Field(default=2000, ge=0)  # milliseconds

    # === Job queue policy ===
    job_max_attempts: int = Field(default=5, ge=1)
    job_base_delay_seconds: float = 60.0
    job_cap_delay_seconds: float = 1800.0
    job_lease_seconds: float = 600.0
    job_retention_days: int = 7

    # === Audio pipeline ===
    # Chunk iff size >= threshold_mb OR duration >= threshold_seconds.
    audio_chunk_threshold_mb: float = 25.0
    audio_chunk_threshold_seconds: float = 600.0
    audio_chunk_seconds: float = 300.0
    min_segment_chars: int = 3
    download_timeout_seconds: float = 120.0
    temp_dir: str = "data/tmp"
    temp_file_max_age_hours: float = 24.0

    # === Text sources (web / document / file) ===
    text_chunk_size: int = 512
    text_chunk_overlap: int = 128
    http_timeout_seconds: float = 30.0

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"
