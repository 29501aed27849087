"""Shared asyncio primitives for the ingestion worker.

Two patterns are exposed:

1. **gather_settled** -- ``asyncio.gather`` with ``return_exceptions=True``
   and an optional semaphore.  Used by the audio pipeline to fan out
   transcription and embedding calls where one failure must not cancel
   its siblings.

2. **TaskSupervisor** -- a tracked set of background tasks.  Anything that
   would otherwise be a fire-and-forget ``create_task`` is spawned here so
   the task is kept alive, its failure is logged, and shutdown can wait for
   it with :meth:`TaskSupervisor.drain`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Coroutine, TypeVar

import structlog

from chattube.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def gather_settled(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
) -> list[_T | BaseException]:
    """Run awaitables concurrently and collect results or exceptions.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional semaphore bounding how many run at once.  ``None`` means
        every awaitable starts immediately.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input awaitables.
    """
    if semaphore is None:
        return await asyncio.gather(*coros, return_exceptions=True)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    return await asyncio.gather(*(_wrapped(c) for c in coros), return_exceptions=True)


class TaskSupervisor:
    """Owns background tasks so none of them run unobserved.

    Parameters
    ----------
    name:
        Label included in log events for tasks spawned here.
    on_error:
        Optional callback invoked with ``(task_name, exception)`` when a
        supervised task raises.
    """

    def __init__(
        self,
        name: str = "supervisor",
        on_error: Callable[[str, BaseException], None] | None = None,
    ) -> None:
        self._name = name
        self._on_error = on_error
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, _T], name: str | None = None) -> asyncio.Task[_T]:
        """Schedule *coro* on the running loop and track it until done."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        _logger.error(
            "supervised_task_failed",
            supervisor=self._name,
            task=task.get_name(),
            error=str(exc),
            error_type=type(exc).__name__,
        )
        if self._on_error is not None:
            self._on_error(task.get_name(), exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every tracked task to finish.  Failures are already logged."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
