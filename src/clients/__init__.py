"""Adapters for the external catalog and AI generation services."""

from src.clients.base import CatalogSource, GenerationAdapter
from src.clients.gemini import GeminiGenerationAdapter
from src.clients.woocommerce import WooCommerceAPIError, WooCommerceCatalogSource

__all__ = [
    "CatalogSource",
    "GenerationAdapter",
    "GeminiGenerationAdapter",
    "WooCommerceAPIError",
    "WooCommerceCatalogSource",
]
