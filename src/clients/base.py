"""Interfaces for the external collaborators of the job engine.

The catalog source mirrors the store's product API and the generation
adapter wraps the AI content model. Orchestrators only talk to these
interfaces, so tests swap in fakes.

Example implementation:
    class StaticCatalogSource(CatalogSource):
        @property
        def source_name(self) -> str:
            return "static"

        async def list_page(self, connection, page, page_size, filters):
            return CatalogPage(items=[...], total_count=1, total_pages=1)
"""

from abc import ABC, abstractmethod
from typing import Protocol

from src.clients.models import (
    CatalogFilter,
    CatalogItem,
    CatalogPage,
    GenerationCredential,
    GenerationOptions,
    GenerationResult,
    SourceConnection,
)


class CatalogSource(ABC):
    """Abstract base class for paginated external catalogs.

    Implementations must raise an AdapterError subclass for network, auth
    or format failures and leave timeouts to their HTTP client.
    """

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Return the source identifier (e.g. 'woocommerce')."""
        ...

    @abstractmethod
    async def list_page(
        self,
        connection: SourceConnection,
        page: int,
        page_size: int,
        filters: CatalogFilter,
    ) -> CatalogPage:
        """Fetch one 1-based page of top-level catalog items.

        Returns:
            The page items plus the store's total item and page counts.
        """
        ...

    @abstractmethod
    async def list_children(
        self,
        connection: SourceConnection,
        parent_external_id: str,
    ) -> list[CatalogItem]:
        """Fetch every child variation of a parent item (all pages)."""
        ...

    @abstractmethod
    async def test_connection(self, connection: SourceConnection) -> bool:
        """Check the connection works.

        Raises:
            AdapterError: With a human-readable reason when it does not.
        """
        ...


class GenerationAdapter(Protocol):
    """External AI content generation call.

    Implementations report failures through ``GenerationResult.error``
    rather than raising; an exception is treated as unexpected.
    """

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions,
        reference_payloads: list[str],
        credential: GenerationCredential,
    ) -> GenerationResult:
        ...
