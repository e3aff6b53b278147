"""API routes for store connection management.

All endpoints use the /api/v1/connections prefix and are scoped to the
owner in the X-User-Id header. Credentials are write-only.
"""

import logging

from fastapi import APIRouter, Depends, Response

from src.api.dependencies import AppServices, get_owner_id, get_services
from src.api.schemas import (
    ConnectionCreate,
    ConnectionResponse,
    ConnectionTestRequest,
    ConnectionTestResponse,
    ConnectionUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connections", tags=["connections"])


@router.post("", response_model=ConnectionResponse, status_code=201)
async def create_connection(
    body: ConnectionCreate,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> ConnectionResponse:
    """Test the credentials against the store, then save the connection."""
    row = await services.connections.create_connection(
        owner_id,
        name=body.name,
        store_url=body.store_url,
        consumer_key=body.consumer_key,
        consumer_secret=body.consumer_secret,
    )
    return ConnectionResponse.model_validate(row)


@router.get("", response_model=list[ConnectionResponse])
async def list_connections(
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> list[ConnectionResponse]:
    rows = await services.connections.list_connections(owner_id)
    return [ConnectionResponse.model_validate(row) for row in rows]


@router.post("/test", response_model=ConnectionTestResponse)
async def test_unsaved_connection(
    body: ConnectionTestRequest,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> ConnectionTestResponse:
    """Check credentials without saving them."""
    result = await services.connections.test_credentials(
        body.store_url, body.consumer_key, body.consumer_secret
    )
    return ConnectionTestResponse(**result)


@router.get("/{connection_id}", response_model=ConnectionResponse)
async def get_connection(
    connection_id: str,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> ConnectionResponse:
    row = await services.connections.get_connection(owner_id, connection_id)
    return ConnectionResponse.model_validate(row)


@router.patch("/{connection_id}", response_model=ConnectionResponse)
async def update_connection(
    connection_id: str,
    body: ConnectionUpdate,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> ConnectionResponse:
    """Update a connection; changed credentials are re-tested first."""
    row = await services.connections.update_connection(
        owner_id, connection_id, **body.model_dump(exclude_unset=True)
    )
    return ConnectionResponse.model_validate(row)


@router.delete("/{connection_id}", status_code=204)
async def delete_connection(
    connection_id: str,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> Response:
    await services.connections.delete_connection(owner_id, connection_id)
    return Response(status_code=204)


@router.post("/{connection_id}/test", response_model=ConnectionTestResponse)
async def test_connection(
    connection_id: str,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> ConnectionTestResponse:
    result = await services.connections.test_connection(owner_id, connection_id)
    return ConnectionTestResponse(**result)
