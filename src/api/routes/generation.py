"""API routes for generation jobs: polling and SSE progress."""

from fastapi import APIRouter, Depends, Query, Request
from sse_starlette.sse import EventSourceResponse

from src.api.dependencies import AppServices, get_owner_id, get_services
from src.api.routes.progress import stream_job
from src.api.schemas import GenerationJobResponse, GenerationJobStatusEnum
from src.db.models import JobType
from src.services.job_store import job_snapshot

router = APIRouter(prefix="/generation/jobs", tags=["generation"])


@router.get("", response_model=list[GenerationJobResponse])
async def list_generation_jobs(
    status: GenerationJobStatusEnum | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> list[GenerationJobResponse]:
    jobs = await services.job_store.list_by_owner(
        JobType.generation,
        owner_id,
        status=status.value if status else None,
        limit=limit,
    )
    return [GenerationJobResponse(**job_snapshot(job)) for job in jobs]


@router.get("/active", response_model=list[GenerationJobResponse])
async def list_active_generation_jobs(
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> list[GenerationJobResponse]:
    """The owner's pending and processing jobs, newest first."""
    jobs = await services.job_store.list_active(JobType.generation, owner_id)
    return [GenerationJobResponse(**job_snapshot(job)) for job in jobs]


@router.get("/{job_id}", response_model=GenerationJobResponse)
async def get_generation_job(
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> GenerationJobResponse:
    job = await services.job_store.get_by_id(
        JobType.generation, job_id, owner_id=owner_id
    )
    return GenerationJobResponse(**job_snapshot(job))


@router.get("/{job_id}/stream")
async def stream_generation_job(
    request: Request,
    job_id: str,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> EventSourceResponse:
    """Stream generation job snapshots via Server-Sent Events."""
    return await stream_job(
        request,
        services.job_store,
        services.notifier,
        JobType.generation,
        job_id,
        owner_id,
    )
