"""Durable ingestion job queue.

Owns every policy decision about jobs: idempotent enqueue, lease length,
retry backoff, the attempt bound and retention.  Persistence and the atomic
claim primitive belong to the injected :class:`IJobStore`.

A claimed job is owned through its lease.  Every later write for it
(renewal, completion, retry, failure) names the lease it was granted, so
once a lease is reclaimed the original worker can no longer change the job.

Each queue is an explicitly constructed object; tests build several
isolated queues over separate database files.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog
from pydantic import BaseModel, ConfigDict, Field

from chattube.interfaces.job_store import DuplicateActiveJobError, IJobStore
from chattube.models.ingestion import Job, JobStatus, JobStatusReport, QueueStats, SourceKind
from chattube.utils.errors import ChatTubeError, is_retryable

logger = structlog.get_logger(logger_name=__name__)

_LEASE_EXPIRED_MESSAGE = "lease expired before the job finished"
_MAX_ERROR_LENGTH = 2000


class QueuePolicy(BaseModel):
    """Retry, lease and retention settings for :class:`IngestionQueue`."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=5, ge=1)
    base_delay_seconds: float = Field(default=60.0, gt=0)
    cap_delay_seconds: float = Field(default=1800.0, gt=0)
    lease_seconds: float = Field(default=600.0, gt=0)
    retention_days: int = Field(default=7, ge=0)


def compute_backoff(attempts: int, policy: QueuePolicy) -> timedelta:
    """Delay before the next attempt after *attempts* failures.

    ``min(base * 2 ** (attempts - 1), cap)``: with the defaults
    1, 2, 4, 8, 16 minutes, then capped at 30.
    """
    exponent = max(attempts, 1) - 1
    delay = min(policy.base_delay_seconds * (2 ** exponent), policy.cap_delay_seconds)
    return timedelta(seconds=delay)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _describe(error: BaseException) -> str:
    text = str(error) if isinstance(error, ChatTubeError) else f"{type(error).__name__}: {error}"
    return text[:_MAX_ERROR_LENGTH]


class IngestionQueue:
    """Job queue over a persistent store.

    Parameters
    ----------
    store:
        Job persistence with an atomic claim.
    policy:
        Retry/lease/retention settings.  Defaults match production.
    clock:
        Returns the current UTC time.  Injected so tests can move time.
    """

    def __init__(
        self,
        store: IJobStore,
        policy: QueuePolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._policy = policy or QueuePolicy()
        self._clock = clock

    @property
    def policy(self) -> QueuePolicy:
        return self._policy

    async def initialize(self) -> None:
        await self._store.initialize()

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def enqueue(self, source_id: str, kind: SourceKind) -> Job:
        """Create a pending job, or return the source's existing active job."""
        existing = await self._store.find_active(source_id)
        if existing is not None:
            logger.info("job_already_active", job_id=existing.id, source_id=source_id)
            return existing

        now = self._clock()
        job = Job(
            id=uuid.uuid4().hex,
            source_id=source_id,
            kind=kind,
            status=JobStatus.PENDING,
            attempts=0,
            next_run_at=now,
            created_at=now,
            updated_at=now,
        )
        try:
            await self._store.insert(job)
        except DuplicateActiveJobError:
            # Lost a race with a concurrent enqueue for the same source.
            active = await self._store.find_active(source_id)
            if active is None:
                raise
            logger.info("job_already_active", job_id=active.id, source_id=source_id)
            return active

        logger.info("job_enqueued", job_id=job.id, source_id=source_id, kind=kind.value)
        return job

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def claim(self) -> Job | None:
        """Claim the earliest eligible pending job, or ``None`` when idle."""
        now = self._clock()
        lease = now + timedelta(seconds=self._policy.lease_seconds)
        job = await self._store.claim_next(now=now, lease_expires_at=lease)
        if job is not None:
            logger.info(
                "job_claimed",
                job_id=job.id,
                source_id=job.source_id,
                attempts=job.attempts,
                lease_expires_at=lease.isoformat(),
            )
        return job

    async def extend_lease(self, job: Job) -> Job | None:
        """Push the lease of a running job one full lease into the future.

        Returns the job carrying its new lease, or ``None`` when the lease
        was already reclaimed.
        """
        now = self._clock()
        renewed = job.model_copy(
            update={
                "lease_expires_at": now + timedelta(seconds=self._policy.lease_seconds),
                "updated_at": now,
            }
        )
        if not await self._write(renewed, job):
            return None
        logger.debug(
            "job_lease_extended",
            job_id=job.id,
            lease_expires_at=renewed.lease_expires_at.isoformat(),
        )
        return renewed

    async def complete(self, job: Job) -> Job | None:
        """Mark a claimed job done.  ``None`` when its lease was lost."""
        done = job.model_copy(
            update={
                "status": JobStatus.DONE,
                "lease_expires_at": None,
                "updated_at": self._clock(),
            }
        )
        if not await self._write(done, job):
            return None
        logger.info("job_completed", job_id=job.id, source_id=job.source_id)
        return done

    async def retry_or_fail(self, job: Job, error: BaseException) -> Job | None:
        """Record a failed attempt and either reschedule or fail the job.

        Permanent errors fail the job on the first attempt; transient ones
        are rescheduled with exponential backoff until ``max_attempts``.
        Returns ``None`` without touching the job when the caller's lease
        was reclaimed while it ran.
        """
        now = self._clock()
        attempts = job.attempts + 1
        message = _describe(error)
        retryable = is_retryable(error)

        if not retryable or attempts >= self._policy.max_attempts:
            failed = job.model_copy(
                update={
                    "status": JobStatus.FAILED,
                    "attempts": attempts,
                    "lease_expires_at": None,
                    "last_error": message,
                    "updated_at": now,
                }
            )
            if not await self._write(failed, job):
                return None
            logger.error(
                "job_failed",
                job_id=job.id,
                source_id=job.source_id,
                attempts=attempts,
                permanent=not retryable,
                error=message,
            )
            return failed

        delay = compute_backoff(attempts, self._policy)
        retry = job.model_copy(
            update={
                "status": JobStatus.PENDING,
                "attempts": attempts,
                "next_run_at": now + delay,
                "lease_expires_at": None,
                "last_error": message,
                "updated_at": now,
            }
        )
        if not await self._write(retry, job):
            return None
        logger.warning(
            "job_retry_scheduled",
            job_id=job.id,
            source_id=job.source_id,
            attempts=attempts,
            delay_s=delay.total_seconds(),
            error=message,
        )
        return retry

    async def _write(self, updated: Job, held: Job) -> bool:
        # Applies only while *held*'s lease is the stored one.
        if await self._store.update(updated, expected_lease=held.lease_expires_at):
            return True
        logger.warning(
            "job_lease_lost",
            job_id=held.id,
            source_id=held.source_id,
            lease_expires_at=held.lease_expires_at.isoformat() if held.lease_expires_at else None,
            dropped_status=updated.status.value,
        )
        return False

    async def reclaim_expired_leases(self) -> int:
        """Return processing jobs whose lease has lapsed to pending."""
        return await self._store.reclaim_expired(self._clock(), _LEASE_EXPIRED_MESSAGE)

    # ------------------------------------------------------------------
    # Maintenance and reporting
    # ------------------------------------------------------------------

    async def cleanup(self, older_than_days: int | None = None) -> int:
        """Delete done/failed jobs last updated more than *older_than_days* ago."""
        days = self._policy.retention_days if older_than_days is None else older_than_days
        cutoff = self._clock() - timedelta(days=days)
        deleted = await self._store.delete_terminal_before(cutoff)
        logger.info("jobs_cleaned_up", deleted=deleted, older_than_days=days)
        return deleted

    async def get_job_status(self, source_id: str) -> JobStatusReport | None:
        job = await self._store.find_latest(source_id)
        if job is None:
            return None
        return JobStatusReport(
            job_id=job.id,
            status=job.status,
            attempts=job.attempts,
            next_run_at=job.next_run_at,
            last_error=job.last_error,
        )

    async def get_stats(self) -> QueueStats:
        counts = await self._store.count_by_status()
        return QueueStats(
            pending=counts.get(JobStatus.PENDING, 0),
            processing=counts.get(JobStatus.PROCESSING, 0),
            done=counts.get(JobStatus.DONE, 0),
            failed=counts.get(JobStatus.FAILED, 0),
        )
