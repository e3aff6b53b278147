"""Server-Sent Events streaming of job snapshots.

Shared by the sync and generation routers. A stream sends the job's
current snapshot first, then every snapshot the job store publishes,
with a ping every 15 seconds so proxies keep the connection open. It
ends after a terminal snapshot or when the client goes away.
"""

import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import Request
from sse_starlette.sse import EventSourceResponse

from src.db.models import TERMINAL_STATUSES, JobType
from src.services.job_store import JobStore, job_snapshot
from src.services.progress_notifier import ProgressNotifier, QueueSink

logger = logging.getLogger(__name__)

PING_INTERVAL_SECONDS = 15.0


async def _event_generator(
    request: Request,
    job_id: str,
    first_snapshot: dict,
    sink: QueueSink,
    notifier: ProgressNotifier,
) -> AsyncGenerator[dict, None]:
    """Yield snapshot events from the sink until the job is terminal.

    Yields:
        Event dictionaries with a JSON 'data' payload.
    """
    try:
        yield {"data": json.dumps({"event": "snapshot", "data": first_snapshot})}
        if first_snapshot["status"] in TERMINAL_STATUSES:
            return

        while True:
            if await request.is_disconnected():
                logger.debug("Stream client for job %s disconnected", job_id)
                break
            try:
                snapshot = await sink.get(timeout=PING_INTERVAL_SECONDS)
            except asyncio.TimeoutError:
                yield {"data": json.dumps({"event": "ping"})}
                continue

            yield {"data": json.dumps({"event": "snapshot", "data": snapshot})}
            if snapshot["status"] in TERMINAL_STATUSES:
                break
    finally:
        notifier.unregister(job_id, sink)


async def stream_job(
    request: Request,
    job_store: JobStore,
    notifier: ProgressNotifier,
    job_type: JobType,
    job_id: str,
    owner_id: str,
) -> EventSourceResponse:
    """Open an SSE stream for one of the owner's jobs.

    The sink is registered before the snapshot is read so no update falls
    between the two.

    Raises:
        NotFoundError: If the job is absent or not the owner's.
    """
    await job_store.get_by_id(job_type, job_id, owner_id=owner_id)

    sink = QueueSink()
    notifier.register(job_id, sink)
    try:
        job = await job_store.get_by_id(job_type, job_id)
    except Exception:
        notifier.unregister(job_id, sink)
        raise

    return EventSourceResponse(
        _event_generator(request, job_id, job_snapshot(job), sink, notifier),
        media_type="text/event-stream",
    )
