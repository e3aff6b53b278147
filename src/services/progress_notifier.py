"""Progress notifier for live job snapshots.

Maps a job id to the sinks currently watching it (one per open stream,
so several browser tabs can follow the same job). Delivery is
best-effort: the job store stays authoritative and pollable, so a sink
that fails is dropped and the publish carries on.

The registry is process-local and lost on restart. It is created once
per application and injected into the job store and orchestrators.
"""

import asyncio
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    """Consumer of job snapshots."""

    async def send(self, snapshot: dict[str, Any]) -> None:
        """Deliver one snapshot. May raise if the consumer is gone."""
        ...


class QueueSink:
    """Sink backed by an asyncio.Queue, drained by a streaming route."""

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)

    async def send(self, snapshot: dict[str, Any]) -> None:
        # A full queue means the consumer stopped reading
        self.queue.put_nowait(snapshot)

    async def get(self, timeout: float | None = None) -> dict[str, Any]:
        """Wait for the next snapshot.

        Raises:
            asyncio.TimeoutError: If nothing arrives within ``timeout``.
        """
        return await asyncio.wait_for(self.queue.get(), timeout=timeout)


class ProgressNotifier:
    """Registry of live-update sinks keyed by job id."""

    def __init__(self) -> None:
        self._sinks: dict[str, list[ProgressSink]] = {}

    def register(self, job_id: str, sink: ProgressSink) -> None:
        """Attach a sink to a job. Registering the same sink twice is a no-op."""
        sinks = self._sinks.setdefault(job_id, [])
        if sink not in sinks:
            sinks.append(sink)
            logger.debug("Registered sink for job %s (%d total)", job_id, len(sinks))

    def unregister(self, job_id: str, sink: ProgressSink | None = None) -> None:
        """Detach one sink, or every sink for the job when ``sink`` is None.

        No-op if nothing is registered.
        """
        if sink is None:
            if self._sinks.pop(job_id, None) is not None:
                logger.debug("Removed all sinks for job %s", job_id)
            return

        sinks = self._sinks.get(job_id)
        if not sinks:
            return
        if sink in sinks:
            sinks.remove(sink)
        if not sinks:
            del self._sinks[job_id]
        logger.debug("Removed sink for job %s", job_id)

    def is_registered(self, job_id: str) -> bool:
        """Return True if at least one sink watches the job."""
        return bool(self._sinks.get(job_id))

    async def publish(self, job_id: str, snapshot: dict[str, Any]) -> None:
        """Send a snapshot to every sink watching the job. Never raises."""
        for sink in list(self._sinks.get(job_id, ())):
            try:
                await sink.send(snapshot)
            except Exception as e:
                logger.debug("Dropping sink for job %s after failed publish: %s", job_id, e)
                self.unregister(job_id, sink)
