"""Job supervisor: persist synchronously, run asynchronously.

``create_and_dispatch`` returns as soon as the pending job is committed,
so the id is immediately valid for polling. The run is scheduled as a
tracked asyncio task on the same loop as request handling. Tasks stay in
the registry until they finish, which lets tests and shutdown await them.
"""

import asyncio
import logging
from typing import Any, Protocol

from src.db.models import JobType

logger = logging.getLogger(__name__)


class Orchestrator(Protocol):
    """What the supervisor needs from a job family's orchestrator."""

    async def create_job(self, owner_id: str, *args: Any, **kwargs: Any) -> Any: ...

    async def run(self, job_id: str) -> None: ...


class JobSupervisor:
    """Dispatches orchestrator runs and tracks their tasks."""

    def __init__(self, orchestrators: dict[JobType, Orchestrator]) -> None:
        self._orchestrators = orchestrators
        self._tasks: dict[str, asyncio.Task[None]] = {}

    async def create_and_dispatch(self, job_type: JobType, **params: Any) -> str:
        """Create a pending job and schedule its run without awaiting it.

        Args:
            job_type: Which orchestrator owns the job.
            **params: Passed to the orchestrator's ``create_job``.

        Returns:
            The new job id.

        Raises:
            DomainError: From validation in ``create_job``; nothing is dispatched.
        """
        orchestrator = self._orchestrators[job_type]
        job = await orchestrator.create_job(**params)
        self.dispatch(job_type, job.id)
        return job.id

    def dispatch(self, job_type: JobType, job_id: str) -> asyncio.Task[None]:
        """Schedule the run of an already persisted job."""
        existing = self._tasks.get(job_id)
        if existing is not None and not existing.done():
            return existing

        orchestrator = self._orchestrators[job_type]
        task = asyncio.create_task(
            orchestrator.run(job_id), name=f"{job_type.value}-job-{job_id}"
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._on_done(job_id, t))
        logger.debug("Dispatched %s job %s", job_type.value, job_id)
        return task

    def _on_done(self, job_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if task.cancelled():
            logger.warning("Job %s task was cancelled", job_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Job %s task escaped with %r", job_id, exc, exc_info=exc)

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    @property
    def running_job_ids(self) -> list[str]:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    async def wait_for(self, job_id: str, timeout: float | None = None) -> None:
        """Wait until a dispatched job's task finishes. No-op if unknown."""
        task = self._tasks.get(job_id)
        if task is None:
            return
        await asyncio.wait_for(asyncio.shield(task), timeout=timeout)

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for every tracked task.

        Returns:
            True if all tasks finished within the timeout.
        """
        tasks = [t for t in self._tasks.values() if not t.done()]
        if not tasks:
            return True
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        return not pending

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Drain, then cancel whatever is still running."""
        if await self.drain(timeout):
            return
        stragglers = [t for t in self._tasks.values() if not t.done()]
        logger.warning("Cancelling %d unfinished job task(s) on shutdown", len(stragglers))
        for task in stragglers:
            task.cancel()
        await asyncio.gather(*stragglers, return_exceptions=True)
