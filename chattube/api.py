"""Producer-facing entry points into the ingestion queue.

Callers that register or refresh a source hand it to the worker through
:class:`IngestionAPI`.  Nothing here runs a processor; the worker does that.

Usage::

    api = IngestionAPI.from_settings(Settings())
    await api.initialize()
    job_id = await api.enqueue_ingestion(source_id, SourceKind.VIDEO)
    report = await api.get_job_status(source_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from chattube.main import build_queue
from chattube.models.ingestion import JobStatusReport, QueueStats, SourceKind
from chattube.utils.concurrency import TaskSupervisor

if TYPE_CHECKING:
    from chattube.config.settings import Settings
    from chattube.services.ingestion.queue import IngestionQueue

logger = structlog.get_logger(logger_name=__name__)


class IngestionAPI:
    """Enqueue sources and report on their jobs.

    Parameters
    ----------
    queue:
        The shared job queue.
    supervisor:
        Tracks enqueues started with :meth:`schedule_ingestion`.  A private
        supervisor is created when omitted.
    """

    def __init__(self, queue: IngestionQueue, supervisor: TaskSupervisor | None = None) -> None:
        self._queue = queue
        self._supervisor = supervisor or TaskSupervisor(name="ingestion_api")

    @classmethod
    def from_settings(cls, app_settings: Settings) -> IngestionAPI:
        return cls(queue=build_queue(app_settings))

    async def initialize(self) -> None:
        await self._queue.initialize()

    async def enqueue_ingestion(self, source_id: str, kind: SourceKind | str) -> str:
        """Enqueue *source_id* and return the job id.

        Idempotent: when the source already has a pending or processing job,
        that job's id is returned and nothing new is created.
        """
        job = await self._queue.enqueue(source_id, SourceKind(kind))
        return job.id

    def schedule_ingestion(self, source_id: str, kind: SourceKind | str) -> None:
        """Enqueue in the background without awaiting the store.

        For callers on a request path.  A failed enqueue is logged by the
        supervisor; :meth:`aclose` waits for outstanding enqueues.
        """
        self._supervisor.spawn(
            self.enqueue_ingestion(source_id, kind),
            name=f"enqueue:{source_id}",
        )
        logger.debug("ingestion_scheduled", source_id=source_id, kind=str(kind))

    async def get_job_status(self, source_id: str) -> JobStatusReport | None:
        """Report on the most recently created job for *source_id*."""
        return await self._queue.get_job_status(source_id)

    async def get_queue_stats(self) -> QueueStats:
        return await self._queue.get_stats()

    async def aclose(self) -> None:
        await self._supervisor.drain()
