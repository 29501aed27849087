"""Polling worker loop for the ingestion queue.

# ─── SCHEDULING ──────────────────────────────────────────────────────
#
# One cycle:
#   1. return jobs with lapsed leases to pending
#   2. issue ``concurrency`` concurrent claim() calls
#   3. run every claimed job concurrently through the IngestionService,
#      renewing its lease every ``heartbeat_seconds`` while it runs
#   4. report complete / retry_or_fail to the queue under the latest lease
# then wait ``poll_interval_ms`` (cut short by stop()) and repeat.
#
# At most ``concurrency`` jobs are in flight per process.  Several worker
# processes may share one store; the store's atomic claim keeps them from
# running the same job.  A worker whose lease was reclaimed (a stalled
# process) has its late report dropped by the queue.  stop() is checked at
# the top of every cycle and never cancels in-flight jobs.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from chattube.utils.temp_files import sweep_stale_files

if TYPE_CHECKING:
    from chattube.models.ingestion import Job
    from chattube.services.ingestion.ingestion_service import IngestionService
    from chattube.services.ingestion.queue import IngestionQueue

logger = structlog.get_logger(logger_name=__name__)


class IngestionWorker:
    """Claims jobs from the queue and executes them with bounded concurrency.

    Parameters
    ----------
    queue:
        Source of jobs and sink for their outcomes.
    service:
        Executes one job's source end to end.
    concurrency:
        Maximum jobs claimed and run per cycle.
    poll_interval_ms:
        Pause between cycles, whether or not work was found.
    temp_dir:
        When set, stale files left here by crashed workers are swept on start.
    heartbeat_seconds:
        Lease renewal interval for running jobs.  Defaults to a third of
        the queue's lease, so two renewals can fail before it lapses.
    """

    def __init__(
        self,
        queue: IngestionQueue,
        service: IngestionService,
        concurrency: int = 2,
        poll_interval_ms: int = 2000,
        temp_dir: str | Path | None = None,
        temp_max_age_hours: float = 24.0,
        heartbeat_seconds: float | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._queue = queue
        self._service = service
        self._concurrency = concurrency
        self._poll_interval = poll_interval_ms / 1000
        self._temp_dir = Path(temp_dir) if temp_dir else None
        self._temp_max_age_hours = temp_max_age_hours
        self._heartbeat_seconds = heartbeat_seconds
        self._stop_event = asyncio.Event()
        self._running = False
        self._completed = 0
        self._failed = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def stats(self) -> dict[str, int]:
        return {"completed": self._completed, "failed": self._failed}

    async def run(self) -> None:
        """Run cycles until :meth:`stop` is called."""
        self._stop_event.clear()
        self._running = True
        if self._temp_dir is not None:
            await asyncio.to_thread(sweep_stale_files, self._temp_dir, self._temp_max_age_hours)

        logger.info(
            "worker_started",
            concurrency=self._concurrency,
            poll_interval_ms=int(self._poll_interval * 1000),
        )
        try:
            while not self._stop_event.is_set():
                await self.run_once()
                if self._stop_event.is_set():
                    break
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("worker_stopped", **self.stats)

    def stop(self) -> None:
        """Ask the loop to exit after the current cycle's jobs finish."""
        if not self._stop_event.is_set():
            logger.info("worker_stopping")
        self._stop_event.set()

    async def run_once(self) -> int:
        """Execute one claim/execute cycle and return the number of jobs run."""
        try:
            reclaimed = await self._queue.reclaim_expired_leases()
            if reclaimed:
                logger.warning("worker_reclaimed_leases", count=reclaimed)
        except Exception as exc:  # noqa: BLE001
            logger.error("lease_reclaim_failed", error=str(exc))

        claims = await asyncio.gather(
            *(self._queue.claim() for _ in range(self._concurrency)),
            return_exceptions=True,
        )

        jobs: list[Job] = []
        for claim in claims:
            if isinstance(claim, BaseException):
                logger.error("job_claim_failed", error=str(claim))
            elif claim is not None:
                jobs.append(claim)

        if jobs:
            await asyncio.gather(*(self._execute(job) for job in jobs))
        return len(jobs)

    def _heartbeat_interval(self) -> float:
        if self._heartbeat_seconds is not None:
            return self._heartbeat_seconds
        return self._queue.policy.lease_seconds / 3

    async def _execute(self, job: Job) -> None:
        # Each job runs in its own gather task, so the binding stays per job.
        structlog.contextvars.bind_contextvars(job_id=job.id, source_id=job.source_id)
        log = logger.bind(kind=job.kind.value, attempt=job.attempts + 1)

        heartbeat = _LeaseHeartbeat(self._queue, job, self._heartbeat_interval())
        heartbeat.start()
        error: Exception | None = None
        try:
            outcome = await self._service.process_source(job.source_id)
        except Exception as exc:  # noqa: BLE001 -- classified by the queue
            error = exc
        finally:
            await heartbeat.stop()

        # Report under the latest lease; the queue drops it if that lease is gone.
        held = heartbeat.job
        if error is not None:
            self._failed += 1
            try:
                await self._queue.retry_or_fail(held, error)
            except Exception as report_exc:  # noqa: BLE001
                log.error("job_outcome_not_recorded", error=str(report_exc), cause=str(error))
            return

        self._completed += 1
        try:
            await self._queue.complete(held)
        except Exception as report_exc:  # noqa: BLE001
            log.error("job_outcome_not_recorded", error=str(report_exc))
            return
        log.info(
            "job_executed",
            chunks=outcome.chunks_count,
            time_ms=outcome.total_processing_time_ms,
        )


class _LeaseHeartbeat:
    """Renews a claimed job's lease every *interval* seconds while it runs.

    ``job`` always holds the most recently granted lease.  Renewal stops for
    good once the queue rejects a renewal.  :meth:`stop` waits for an
    in-flight renewal, so ``job`` is settled before the outcome is reported.
    """

    def __init__(self, queue: IngestionQueue, job: Job, interval: float) -> None:
        self.job = job
        self._queue = queue
        self._interval = interval
        self._stopped = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._beat(), name=f"lease:{self.job.id}")

    async def stop(self) -> None:
        self._stopped.set()
        if self._task is not None:
            await self._task

    async def _beat(self) -> None:
        while not self._stopped.is_set():
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self._interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                renewed = await self._queue.extend_lease(self.job)
            except Exception as exc:  # noqa: BLE001 -- retried on the next beat
                logger.warning("lease_renewal_failed", job_id=self.job.id, error=str(exc))
                continue
            if renewed is None:
                logger.warning("lease_renewal_rejected", job_id=self.job.id)
                return
            self.job = renewed
