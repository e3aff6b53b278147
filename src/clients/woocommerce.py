"""WooCommerce catalog source.

Implements CatalogSource for the WooCommerce REST API v3. Products are
listed page by page with the totals taken from the X-WP-Total and
X-WP-TotalPages headers; variations of variable products are fetched
from the per-product variations endpoint until its last page.

Authentication passes consumer key/secret as query parameters, which
works with hosts that strip the Authorization header.

API Reference: https://woocommerce.github.io/woocommerce-rest-api-docs/
"""

import logging
from typing import Any

import httpx

from src.clients.base import CatalogSource
from src.clients.models import (
    CatalogFilter,
    CatalogItem,
    CatalogPage,
    ProductType,
    SourceConnection,
    VariantAttribute,
)
from src.errors import AdapterError
from src.utils.redaction import redact_for_logging, sanitize_error_message

logger = logging.getLogger(__name__)

CHILDREN_PAGE_SIZE = 100


class WooCommerceAPIError(AdapterError):
    """Raised when the WooCommerce API is unreachable or returns an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__("woocommerce", sanitize_error_message(message) or message)
        self.status_code = status_code


def normalize_store_url(store_url: str) -> str:
    """Strip trailing slashes and default to https when no scheme is given."""
    base_url = store_url.strip().rstrip("/")
    if not base_url.startswith(("http://", "https://")):
        base_url = f"https://{base_url}"
    return base_url


class WooCommerceCatalogSource(CatalogSource):
    """WooCommerce catalog source using REST API v3.

    Example usage:
        source = WooCommerceCatalogSource()
        page = await source.list_page(connection, 1, 100, CatalogFilter())
    """

    # WooCommerce REST API v3 base path
    API_VERSION = "wc/v3"

    def __init__(
        self,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the source.

        Args:
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self._timeout = timeout
        self._transport = transport

    @property
    def source_name(self) -> str:
        return "woocommerce"

    async def list_page(
        self,
        connection: SourceConnection,
        page: int,
        page_size: int,
        filters: CatalogFilter,
    ) -> CatalogPage:
        params: dict[str, Any] = {
            "per_page": page_size,
            "page": page,
            "status": "publish",
        }
        if filters.only_in_stock:
            params["stock_status"] = "instock"

        data, headers = await self._make_request(connection, "products", params)
        if not isinstance(data, list):
            raise WooCommerceAPIError("Unexpected response format from WooCommerce API")

        items = [self._normalize_product(p) for p in data]
        total_count = _header_int(headers, "x-wp-total", len(items))
        total_pages = _header_int(headers, "x-wp-totalpages", 1)
        logger.debug(
            "Fetched page %d/%d (%d items) from %s",
            page, total_pages, len(items), connection.store_url,
        )
        return CatalogPage(items=items, total_count=total_count, total_pages=total_pages)

    async def list_children(
        self,
        connection: SourceConnection,
        parent_external_id: str,
    ) -> list[CatalogItem]:
        children: list[CatalogItem] = []
        page = 1
        while True:
            data, headers = await self._make_request(
                connection,
                f"products/{parent_external_id}/variations",
                {"per_page": CHILDREN_PAGE_SIZE, "page": page},
            )
            if not isinstance(data, list):
                raise WooCommerceAPIError(
                    f"Unexpected variations response for product {parent_external_id}"
                )
            children.extend(self._normalize_variation(v) for v in data)
            if page >= _header_int(headers, "x-wp-totalpages", 1):
                break
            page += 1
        return children

    async def test_connection(self, connection: SourceConnection) -> bool:
        if not connection.store_url:
            raise WooCommerceAPIError("Store URL is required")
        if not connection.consumer_key:
            raise WooCommerceAPIError("Consumer Key is required")
        if not connection.consumer_secret:
            raise WooCommerceAPIError("Consumer Secret is required")

        data, _ = await self._make_request(connection, "products", {"per_page": 1})
        if not isinstance(data, list):
            raise WooCommerceAPIError("Unexpected response format from WooCommerce API")
        return True

    async def _make_request(
        self,
        connection: SourceConnection,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> tuple[Any, httpx.Headers]:
        """Make an authenticated GET request to the WooCommerce REST API.

        Args:
            connection: Store URL and credentials.
            endpoint: API endpoint (e.g., 'products', 'products/12/variations')
            params: Query parameters

        Returns:
            Parsed JSON body and the response headers.

        Raises:
            WooCommerceAPIError: If the request fails or the API returns an error
        """
        base_url = normalize_store_url(connection.store_url)
        url = f"{base_url}/wp-json/{self.API_VERSION}/{endpoint}"
        query = {
            "consumer_key": connection.consumer_key,
            "consumer_secret": connection.consumer_secret,
            **(params or {}),
        }
        logger.debug("GET %s params=%s", url, redact_for_logging(query))

        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json", "User-Agent": "Storeloom/1.0"},
        ) as client:
            try:
                response = await client.get(url, params=query)
            except httpx.ConnectError as e:
                raise WooCommerceAPIError(
                    f"Could not connect to store. Please check the URL: {base_url}"
                ) from e
            except httpx.TimeoutException as e:
                raise WooCommerceAPIError(f"Request to {base_url} timed out") from e
            except httpx.RequestError as e:
                raise WooCommerceAPIError(f"Network error: {e}") from e

        return self._parse_response(response), response.headers

    def _parse_response(self, response: httpx.Response) -> Any:
        """Decode a response body, turning HTML and error payloads into errors."""
        content_type = response.headers.get("content-type", "")
        body = response.text
        stripped = body.lstrip()
        status = response.status_code

        if "text/html" in content_type or stripped.startswith(("<!DOCTYPE", "<html")):
            if status == 404:
                raise WooCommerceAPIError(
                    "WooCommerce REST API not found. Make sure WooCommerce is "
                    'installed and permalinks are set to something other than "Plain".',
                    status,
                )
            if status in (401, 403):
                raise WooCommerceAPIError(
                    "Authentication failed. Please check your Consumer Key and "
                    "Consumer Secret.",
                    status,
                )
            raise WooCommerceAPIError(
                "Received HTML instead of JSON. The WooCommerce REST API may not "
                f"be accessible. Status: {status}",
                status,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise WooCommerceAPIError(
                f"Invalid JSON response from WooCommerce API. Response: {body[:200]}",
                status,
            ) from e

        if not response.is_success:
            if isinstance(data, dict) and data.get("code") and data.get("message"):
                raise WooCommerceAPIError(
                    f"WooCommerce API error: {data['message']} ({data['code']})",
                    status,
                )
            raise WooCommerceAPIError(
                f"WooCommerce API error: {status} - {body[:200]}", status
            )
        return data

    def _normalize_product(self, data: dict[str, Any]) -> CatalogItem:
        """Convert a WooCommerce product to a CatalogItem."""
        return CatalogItem(
            external_id=str(data["id"]),
            product_type=data.get("type") or ProductType.SIMPLE.value,
            name=data.get("name", ""),
            slug=data.get("slug"),
            sku=data.get("sku") or None,
            description=data.get("description"),
            short_description=data.get("short_description"),
            price=data.get("price"),
            regular_price=data.get("regular_price"),
            sale_price=data.get("sale_price") or None,
            stock_status=data.get("stock_status"),
            stock_quantity=data.get("stock_quantity"),
            categories=[c.get("name", "") for c in data.get("categories", [])],
            tags=[t.get("name", "") for t in data.get("tags", [])],
            images=[
                {"src": i.get("src"), "alt": i.get("alt", "")}
                for i in data.get("images", [])
            ],
            attributes=[
                {
                    "name": a.get("name"),
                    "options": a.get("options", []),
                    "variation": a.get("variation", False),
                }
                for a in data.get("attributes", [])
            ],
            permalink=data.get("permalink"),
        )

    def _normalize_variation(self, data: dict[str, Any]) -> CatalogItem:
        """Convert a WooCommerce variation to a CatalogItem without a name.

        The display name depends on the parent and is built during sync.
        """
        image = data.get("image")
        return CatalogItem(
            external_id=str(data["id"]),
            product_type=ProductType.VARIATION.value,
            sku=data.get("sku") or None,
            price=data.get("price"),
            regular_price=data.get("regular_price"),
            sale_price=data.get("sale_price") or None,
            stock_status=data.get("stock_status"),
            stock_quantity=data.get("stock_quantity"),
            images=[{"src": image.get("src"), "alt": image.get("alt", "")}] if image else [],
            variant_attributes=[
                VariantAttribute(name=a.get("name", ""), option=a.get("option", ""))
                for a in data.get("attributes", [])
            ],
            permalink=data.get("permalink"),
        )


def _header_int(headers: httpx.Headers, name: str, default: int) -> int:
    value = headers.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default
