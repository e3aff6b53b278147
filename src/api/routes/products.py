"""API routes for browsing the synced product catalog."""

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import AppServices, get_owner_id, get_services
from src.api.schemas import ProductResponse

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=list[ProductResponse])
async def list_products(
    connection_id: str | None = Query(None),
    include_variations: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> list[ProductResponse]:
    products = await services.products.list_products(
        owner_id,
        connection_id=connection_id,
        include_variations=include_variations,
        limit=limit,
        offset=offset,
    )
    return [ProductResponse.model_validate(p) for p in products]


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> ProductResponse:
    product = await services.products.get_product(owner_id, product_id)
    return ProductResponse.model_validate(product)


@router.get("/{product_id}/variations", response_model=list[ProductResponse])
async def list_variations(
    product_id: str,
    owner_id: str = Depends(get_owner_id),
    services: AppServices = Depends(get_services),
) -> list[ProductResponse]:
    products = await services.products.list_variations(owner_id, product_id)
    return [ProductResponse.model_validate(p) for p in products]
