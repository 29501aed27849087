"""Sweep of temporary media files left behind by crashed workers.

The audio pipeline removes its own files in a ``finally`` block, so this
only matters when a worker process dies mid-job.
"""

from __future__ import annotations

import shutil
import time
from pathlib import Path

import structlog

logger = structlog.get_logger(logger_name=__name__)


def sweep_stale_files(directory: str | Path, max_age_hours: float = 24.0) -> int:
    """Delete files and job directories under *directory* older than *max_age_hours*.

    Returns the number of entries removed.  Individual failures are logged
    and skipped.
    """
    root = Path(directory)
    if not root.is_dir():
        return 0

    cutoff = time.time() - max_age_hours * 3600
    removed = 0
    for entry in root.iterdir():
        try:
            if entry.stat().st_mtime >= cutoff:
                continue
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed += 1
        except OSError as exc:
            logger.warning("temp_sweep_failed", path=str(entry), error=str(exc))

    if removed:
        logger.info("temp_sweep_complete", directory=str(root), removed=removed)
    return removed
