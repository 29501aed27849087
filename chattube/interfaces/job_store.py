"""Abstract base class for the persistent job store.

The store holds no policy.  It persists job records and offers the two
atomic primitives the queue needs: claim the earliest eligible pending job,
and write a claimed job only while the writer's lease is still current.
Both are single compare-and-set updates.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from chattube.models.ingestion import Job, JobStatus


class DuplicateActiveJobError(Exception):
    """Raised by :meth:`IJobStore.insert` when the source already has an active job."""

    def __init__(self, source_id: str) -> None:
        self.source_id = source_id
        super().__init__(f"Active job already exists for source {source_id}")


class IJobStore(ABC):
    """Contract for job persistence with an atomic claim."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def insert(self, job: Job) -> Job:
        """Persist a new job.

        Raises
        ------
        DuplicateActiveJobError
            If another job for the same source is pending or processing.
        """

    @abstractmethod
    async def find_active(self, source_id: str) -> Job | None:
        """Return the pending/processing job for *source_id*, if any."""

    @abstractmethod
    async def find_latest(self, source_id: str) -> Job | None:
        """Return the most recently created job for *source_id*, if any."""

    @abstractmethod
    async def get(self, job_id: str) -> Job | None: ...

    @abstractmethod
    async def claim_next(self, now: datetime, lease_expires_at: datetime) -> Job | None:
        """Atomically move the earliest eligible pending job to processing.

        Eligible means ``status = pending`` and ``next_run_at <= now``;
        ties break on ``next_run_at`` ascending.  Returns ``None`` when no
        job is eligible.  Concurrent callers, including other processes,
        never receive the same job.
        """

    @abstractmethod
    async def update(self, job: Job, expected_lease: datetime | None) -> bool:
        """Overwrite the mutable fields of a job the caller still holds.

        The write applies only while the stored row is processing under
        *expected_lease*, the lease the caller was last granted.  Returns
        ``False`` and leaves the row untouched when that lease has been
        reclaimed (and possibly re-claimed by another worker).
        """

    @abstractmethod
    async def reclaim_expired(self, now: datetime, message: str) -> int:
        """Return processing jobs whose lease ended before *now* to pending."""

    @abstractmethod
    async def delete_terminal_before(self, cutoff: datetime) -> int:
        """Delete done/failed jobs last updated before *cutoff*."""

    @abstractmethod
    async def count_by_status(self) -> dict[JobStatus, int]: ...
