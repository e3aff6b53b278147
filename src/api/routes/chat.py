"""API routes for chat sessions.

Posting a message stores the prompt and queues a generation job; the
assistant reply is threaded into the session when the job finishes.

Endpoints:
    POST   /chat/sessions                — Create session
    GET    /chat/sessions                — List sessions
    GET    /chat/sessions/{id}           — Session with its messages
    PATCH  /chat/sessions/{id}           — Rename or archive
    DELETE /chat/sessions/{id}           — Delete with messages and jobs
    POST   /chat/sessions/{id}/messages  — Send prompt, 202 with job id
"""

import logging

from fastapi import APIRouter, Depends, Response

from src.api.dependencies import AppServices, get_owner_id, get_services
from src.api.schemas import (
    ChatMessageCreate,
    ChatSessionCreate,
    ChatSessionDetailResponse,
    ChatSessionResponse,
    ChatSessionUpdate,
    JobAcceptedResponse,
)
from src.clients.models import GenerationRequest
from src.db.models import JobType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat/sessions", tags=["chat"])


@router.post("", response_model=ChatSessionResponse, status_code=201)
async def create_session(
    body: ChatSessionCreate,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> ChatSessionResponse:
    chat = await services.chat.create_session(
        owner_id, product_id=body.product_id, title=body.title
    )
    return ChatSessionResponse.model_validate(chat)


@router.get("", response_model=list[ChatSessionResponse])
async def list_sessions(
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> list[ChatSessionResponse]:
    sessions = await services.chat.list_sessions(owner_id)
    return [ChatSessionResponse.model_validate(s) for s in sessions]


@router.get("/{session_id}", response_model=ChatSessionDetailResponse)
async def get_session(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> ChatSessionDetailResponse:
    chat = await services.chat.get_session(owner_id, session_id, with_messages=True)
    return ChatSessionDetailResponse.model_validate(chat)


@router.patch("/{session_id}", response_model=ChatSessionResponse)
async def update_session(
    session_id: str,
    body: ChatSessionUpdate,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> ChatSessionResponse:
    chat = await services.chat.update_session(
        owner_id, session_id, title=body.title, archived=body.archived
    )
    return ChatSessionResponse.model_validate(chat)


@router.delete("/{session_id}", status_code=204)
async def delete_session(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> Response:
    await services.chat.delete_session(owner_id, session_id)
    return Response(status_code=204)


@router.post(
    "/{session_id}/messages",
    response_model=JobAcceptedResponse,
    status_code=202,
)
async def send_message(
    session_id: str,
    body: ChatMessageCreate,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> JobAcceptedResponse:
    """Store the prompt and queue a generation job for it."""
    request = GenerationRequest(
        prompt=body.prompt,
        options=body.options,
        reference_payloads=body.reference_payloads,
    )
    job_id = await services.supervisor.create_and_dispatch(
        JobType.generation,
        owner_id=owner_id,
        session_id=session_id,
        request=request,
    )
    logger.info("Queued generation job %s for session %s", job_id, session_id)
    return JobAcceptedResponse(job_id=job_id)
