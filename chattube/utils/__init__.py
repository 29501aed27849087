"""Utility modules for the ingestion pipeline.

- **errors** -- Exception hierarchy rooted at ChatTubeError; every class
  declares whether the job queue may retry it.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **concurrency** -- ``gather_settled`` fan-out and the ``TaskSupervisor``
  used for supervised background tasks.
- **timestamps** -- ``M:SS`` / ``H:MM:SS`` formatting and timestamped links.
- **temp_files** -- sweep of stale temporary media files.
"""

from chattube.utils.errors import (
    ChatTubeError,
    ConfigurationError,
    PermanentIngestionError,
    TransientIngestionError,
    is_retryable,
)
from chattube.utils.logging import configure_logging, get_logger

__all__ = [
    "ChatTubeError",
    "ConfigurationError",
    "PermanentIngestionError",
    "TransientIngestionError",
    "configure_logging",
    "get_logger",
    "is_retryable",
]
