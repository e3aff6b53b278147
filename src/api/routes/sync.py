"""API routes for catalog sync jobs.

Starting a sync persists a pending job and returns 202 immediately; the
run happens on the job supervisor. Progress is available by polling or
over Server-Sent Events.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request
from sse_starlette.sse import EventSourceResponse

from src.api.dependencies import AppServices, get_owner_id, get_services
from src.api.routes.progress import stream_job
from src.api.schemas import (
    JobAcceptedResponse,
    SyncJobResponse,
    SyncJobStatusEnum,
    SyncStartRequest,
)
from src.db.models import JobType
from src.services.job_store import job_snapshot

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sync"])


@router.post(
    "/connections/{connection_id}/sync",
    response_model=JobAcceptedResponse,
    status_code=202,
)
async def start_sync(
    connection_id: str,
    body: SyncStartRequest | None = None,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> JobAcceptedResponse:
    """Queue a catalog sync for a connection.

    Returns 409 with the active job id when a sync is already running.
    """
    only_in_stock = body.only_in_stock if body else False
    job_id = await services.supervisor.create_and_dispatch(
        JobType.sync,
        owner_id=owner_id,
        connection_id=connection_id,
        only_in_stock=only_in_stock,
    )
    logger.info("Queued sync job %s for connection %s", job_id, connection_id)
    return JobAcceptedResponse(job_id=job_id)


@router.get(
    "/connections/{connection_id}/sync/active",
    response_model=SyncJobResponse | None,
)
async def get_active_sync(
    connection_id: str,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> SyncJobResponse | None:
    """The connection's running sync, or null."""
    await services.connections.get_connection(owner_id, connection_id)
    active = await services.job_store.list_active(
        JobType.sync, owner_id, connection_id=connection_id
    )
    if not active:
        return None
    return SyncJobResponse(**job_snapshot(active[0]))


@router.get("/sync/jobs", response_model=list[SyncJobResponse])
async def list_sync_jobs(
    status: SyncJobStatusEnum | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> list[SyncJobResponse]:
    jobs = await services.job_store.list_by_owner(
        JobType.sync, owner_id, status=status.value if status else None, limit=limit
    )
    return [SyncJobResponse(**job_snapshot(job)) for job in jobs]


@router.get("/sync/jobs/{job_id}", response_model=SyncJobResponse)
async def get_sync_job(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> SyncJobResponse:
    job = await services.job_store.get_by_id(JobType.sync, job_id, owner_id=owner_id)
    return SyncJobResponse(**job_snapshot(job))


@router.get("/sync/jobs/{job_id}/stream")
async def stream_sync_job(
    request: Request,
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> EventSourceResponse:
    """Stream sync job snapshots via Server-Sent Events."""
    return await stream_job(
        request,
        services.job_store,
        services.notifier,
        JobType.sync,
        job_id,
        owner_id,
    )
