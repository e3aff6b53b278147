"""API routes for per-owner settings.

The generation key is write-only: reads report only whether one is set.
All endpoints use the /api/v1/settings prefix.
"""

import logging

from fastapi import APIRouter, Depends

from src.api.dependencies import AppServices, get_owner_id, get_services
from src.api.schemas import GenerationKeyUpdate, SettingsResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=SettingsResponse)
async def get_settings(
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> SettingsResponse:
    return SettingsResponse(**await services.settings.get_settings(owner_id))


@router.put("/generation-key", response_model=SettingsResponse)
async def set_generation_key(
    body: GenerationKeyUpdate,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> SettingsResponse:
    """Set or clear the owner's generation key.

    Bumps the credential version so cached clients built from the old key
    are not reused.
    """
    await services.settings.set_generation_key(owner_id, body.api_key)
    return SettingsResponse(**await services.settings.get_settings(owner_id))
