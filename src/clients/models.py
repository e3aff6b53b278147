"""Models exchanged with the external catalog and generation adapters."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ProductType(str, Enum):
    """Catalog item types reported by the store."""

    SIMPLE = "simple"
    VARIABLE = "variable"
    VARIATION = "variation"
    GROUPED = "grouped"
    EXTERNAL = "external"


class SourceConnection(BaseModel):
    """Decrypted connection details handed to a catalog source."""

    id: str = Field(..., description="Local connection id")
    store_url: str = Field(..., description="Store base URL")
    consumer_key: str = Field(..., repr=False, description="REST API consumer key")
    consumer_secret: str = Field(..., repr=False, description="REST API consumer secret")


class CatalogFilter(BaseModel):
    """Filters applied when listing catalog pages."""

    only_in_stock: bool = Field(default=False, description="Restrict to in-stock items")


class VariantAttribute(BaseModel):
    """One attribute/option pair that defines a variation."""

    name: str = Field(..., description="Attribute name (e.g. 'Color')")
    option: str = Field(..., description="Selected option (e.g. 'Red')")


class CatalogItem(BaseModel):
    """Catalog item normalized from the external store."""

    external_id: str = Field(..., description="Store-side item id")
    product_type: str = Field(default=ProductType.SIMPLE.value, description="Item type")
    name: str = Field(default="", description="Display name")
    slug: str | None = Field(None, description="URL slug")
    sku: str | None = Field(None, description="Stock keeping unit")
    description: str | None = Field(None, description="Long description (HTML)")
    short_description: str | None = Field(None, description="Short description (HTML)")
    price: str | None = Field(None, description="Current price as decimal string")
    regular_price: str | None = Field(None, description="Regular price")
    sale_price: str | None = Field(None, description="Sale price")
    stock_status: str | None = Field(None, description="instock/outofstock/onbackorder")
    stock_quantity: int | None = Field(None, description="Units in stock")
    categories: list[str] = Field(default_factory=list, description="Category names")
    tags: list[str] = Field(default_factory=list, description="Tag names")
    images: list[dict[str, Any]] = Field(default_factory=list, description="Images as {src, alt}")
    attributes: list[dict[str, Any]] = Field(
        default_factory=list, description="Product attributes with their options"
    )
    variant_attributes: list[VariantAttribute] = Field(
        default_factory=list, description="Attribute/option pairs of a variation"
    )
    permalink: str | None = Field(None, description="Public product URL")

    @property
    def has_children(self) -> bool:
        """Variable products carry child variations."""
        return self.product_type == ProductType.VARIABLE.value


class CatalogPage(BaseModel):
    """One page of catalog items plus the store's totals."""

    items: list[CatalogItem] = Field(default_factory=list)
    total_count: int = Field(default=0, ge=0, description="Total items across all pages")
    total_pages: int = Field(default=1, ge=0, description="Total number of pages")


class AspectRatio(str, Enum):
    """Supported output aspect ratios."""

    SQUARE = "1:1"
    PORTRAIT = "3:4"
    LANDSCAPE = "4:3"
    TALL = "9:16"
    WIDE = "16:9"


class ImageSize(str, Enum):
    """Supported output resolutions."""

    ONE_K = "1K"
    TWO_K = "2K"
    FOUR_K = "4K"


class GenerationOptions(BaseModel):
    """Knobs passed through to the generation adapter."""

    aspect_ratio: AspectRatio = Field(default=AspectRatio.SQUARE)
    image_size: ImageSize = Field(default=ImageSize.ONE_K)
    use_search: bool = Field(default=False, description="Ground the reply with web search")


class GenerationRequest(BaseModel):
    """Everything a generation job needs, captured once at creation time."""

    prompt: str = Field(..., min_length=1, description="User message")
    options: GenerationOptions = Field(default_factory=GenerationOptions)
    reference_payloads: list[str] = Field(
        default_factory=list, description="Base64-encoded reference images"
    )


class GenerationCredential(BaseModel):
    """API key resolved for one owner, versioned for client caching."""

    owner_id: str
    api_key: str = Field(..., repr=False)
    version: int = Field(default=0, description="Owner credential version at resolution time")
    is_override: bool = Field(default=False, description="True when the owner supplied the key")

    @property
    def cache_key(self) -> tuple[str, int, bool]:
        return (self.owner_id, self.version, self.is_override)


class GenerationResult(BaseModel):
    """Outcome of one generation call. ``error`` set means nothing else is usable."""

    text: str | None = None
    media: str | None = Field(None, description="Base64-encoded binary media")
    media_mime_type: str | None = None
    error: str | None = None

    @property
    def has_media(self) -> bool:
        return bool(self.media)
