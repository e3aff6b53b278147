"""Catalog sync orchestrator.

Mirrors a store's catalog into the local products table. A sync job walks
the store's pages strictly in order:

    pending -> fetching -> processing -> completed | failed

Page 1 supplies the authoritative item and page totals. Every item is
upserted by its natural key (external_id, connection_id), so re-running a
sync never duplicates rows. Variable products also pull their variations;
a failure there is isolated to that item (logged, counted as skipped, its
child writes rolled back) and the job carries on. Anything else aborts
the remaining pages and fails the job. The job is unregistered from the
progress notifier on every terminal path.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.clients.base import CatalogSource
from src.clients.models import CatalogFilter, CatalogItem, SourceConnection
from src.db.models import (
    JobType,
    Product,
    StoreConnection,
    SyncJob,
    SyncJobStatus,
    generate_uuid,
    utc_now_iso,
)
from src.errors import ConflictError, NotFoundError, PartialItemError, ValidationError
from src.services.connection_service import ConnectionService
from src.services.job_store import JobStore
from src.services.progress_notifier import ProgressNotifier

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
FLUSH_EVERY = 5


def get_sync_page_size() -> int:
    """Page size from CATALOG_SYNC_PAGE_SIZE (default 100, clamped to 1-100)."""
    raw = os.environ.get("CATALOG_SYNC_PAGE_SIZE", "").strip()
    if not raw:
        return DEFAULT_PAGE_SIZE
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid CATALOG_SYNC_PAGE_SIZE=%r", raw)
        return DEFAULT_PAGE_SIZE
    return max(1, min(value, DEFAULT_PAGE_SIZE))


class SyncInProgressError(ConflictError):
    """A sync for this connection is already pending or running."""

    def __init__(self, job_id: str) -> None:
        super().__init__("Sync already in progress")
        self.job_id = job_id


@dataclass
class SyncProgress:
    """Running counters of one sync job."""

    total: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0

    def as_fields(self) -> dict[str, int]:
        return {
            "processed_products": self.processed,
            "created_count": self.created,
            "updated_count": self.updated,
            "skipped_count": self.skipped,
        }


def variation_display_name(parent_name: str, child: CatalogItem) -> str:
    """Name a variation after its parent and its attribute options.

    "T-Shirt - Red / XL", or "T-Shirt - Variation 123" without attributes.
    """
    options = [a.option for a in child.variant_attributes if a.option]
    if options:
        return f"{parent_name} - {' / '.join(options)}"
    return f"{parent_name} - Variation {child.external_id}"


def _business_fields(item: CatalogItem, name: str, synced_at: str) -> dict[str, Any]:
    return {
        "product_type": item.product_type,
        "name": name,
        "slug": item.slug,
        "sku": item.sku,
        "description": item.description,
        "short_description": item.short_description,
        "price": item.price,
        "regular_price": item.regular_price,
        "sale_price": item.sale_price,
        "stock_status": item.stock_status,
        "stock_quantity": item.stock_quantity,
        "categories": list(item.categories),
        "tags": list(item.tags),
        "images": list(item.images),
        "attributes": list(item.attributes),
        "variant_attributes": [a.model_dump() for a in item.variant_attributes],
        "permalink": item.permalink,
        "synced_at": synced_at,
    }


class SyncOrchestrator:
    """Creates and runs catalog sync jobs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        job_store: JobStore,
        notifier: ProgressNotifier,
        catalog_source: CatalogSource,
        connections: ConnectionService,
        page_size: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.job_store = job_store
        self.notifier = notifier
        self.catalog_source = catalog_source
        self.connections = connections
        self.page_size = page_size or get_sync_page_size()

    async def create_job(
        self,
        owner_id: str,
        connection_id: str,
        only_in_stock: bool = False,
    ) -> SyncJob:
        """Validate the connection and persist a pending sync job.

        The active-job check is a read before the insert; two concurrent
        calls can both pass it.

        Raises:
            NotFoundError: If the connection is absent or not the owner's.
            ValidationError: If the connection is inactive.
            SyncInProgressError: If a sync for the connection is still active.
        """
        connection = await self.connections.get_connection(owner_id, connection_id)
        if not connection.is_active:
            raise ValidationError("Connection is not active")

        active = await self.job_store.list_active(
            JobType.sync, owner_id, connection_id=connection_id
        )
        if active:
            raise SyncInProgressError(active[0].id)

        return await self.job_store.create(
            JobType.sync,
            owner_id=owner_id,
            connection_id=connection_id,
            only_in_stock=only_in_stock,
        )

    async def run(self, job_id: str) -> None:
        """Execute a pending sync job to a terminal state. Never raises."""
        try:
            job = await self.job_store.get_by_id(JobType.sync, job_id)
        except NotFoundError:
            logger.warning("Sync job %s vanished before it started", job_id)
            return
        if job.status != SyncJobStatus.pending.value:
            logger.info("Sync job %s is %s, not pending; skipping", job_id, job.status)
            return

        progress = SyncProgress()
        try:
            await self._execute(job, progress)
        except Exception as e:
            logger.exception("Sync job %s failed", job_id)
            await self._mark_failed(job_id, e, progress)
        finally:
            self.notifier.unregister(job_id)

    async def _execute(self, job: SyncJob, progress: SyncProgress) -> None:
        started_at = utc_now_iso()
        await self.job_store.update_fields(
            JobType.sync,
            job.id,
            status=SyncJobStatus.fetching,
            started_at=started_at,
        )

        row = await self.connections.get_connection(job.owner_id, job.connection_id)
        connection = self.connections.to_source_connection(row)
        filters = CatalogFilter(only_in_stock=job.only_in_stock)

        page = await self.catalog_source.list_page(connection, 1, self.page_size, filters)
        progress.total = page.total_count
        total_pages = page.total_pages
        await self.job_store.update_fields(
            JobType.sync,
            job.id,
            status=SyncJobStatus.processing,
            total_products=progress.total,
        )
        logger.info(
            "Sync job %s: %d items over %d page(s)", job.id, progress.total, total_pages
        )

        page_number = 1
        while True:
            is_last_page = page_number >= total_pages
            for index, item in enumerate(page.items):
                await self._reconcile_item(job, connection, item, progress, started_at)
                progress.processed += 1

                is_last_item = is_last_page and index == len(page.items) - 1
                if (
                    progress.processed % FLUSH_EVERY == 0
                    or progress.processed == progress.total
                    or is_last_item
                ):
                    await self.job_store.update_fields(
                        JobType.sync, job.id, **progress.as_fields()
                    )

            if is_last_page:
                break
            page_number += 1
            page = await self.catalog_source.list_page(
                connection, page_number, self.page_size, filters
            )

        async with self.session_factory() as session:
            await session.execute(
                update(StoreConnection)
                .where(StoreConnection.id == job.connection_id)
                .values(last_sync_at=started_at)
            )
            await session.commit()

        await self.job_store.update_fields(
            JobType.sync,
            job.id,
            status=SyncJobStatus.completed,
            **progress.as_fields(),
        )
        logger.info(
            "Sync job %s completed: %d processed, %d created, %d updated, %d skipped",
            job.id, progress.processed, progress.created, progress.updated, progress.skipped,
        )

    async def _reconcile_item(
        self,
        job: SyncJob,
        connection: SourceConnection,
        item: CatalogItem,
        progress: SyncProgress,
        synced_at: str,
    ) -> None:
        """Upsert one top-level item, then its variations in isolation."""
        async with self.session_factory() as session:
            parent_id, created = await self._upsert(
                session, job, item, item.name, synced_at
            )
            await session.commit()
        if created:
            progress.created += 1
        else:
            progress.updated += 1

        if not item.has_children:
            return

        try:
            child_created, child_updated = await self._sync_variations(
                job, connection, item, parent_id, synced_at
            )
        except PartialItemError as e:
            logger.warning("Sync job %s: skipping variations. %s", job.id, e)
            progress.skipped += 1
            return

        progress.created += child_created
        progress.updated += child_updated

    async def _sync_variations(
        self,
        job: SyncJob,
        connection: SourceConnection,
        item: CatalogItem,
        parent_id: str,
        synced_at: str,
    ) -> tuple[int, int]:
        """Upsert all variations of one item in a single transaction.

        Returns:
            (created, updated) counts for the variations.

        Raises:
            PartialItemError: If fetching or writing any variation fails; none
                of the item's variation writes are kept.
        """
        try:
            children = await self.catalog_source.list_children(connection, item.external_id)
            created = updated = 0
            async with self.session_factory() as session:
                for child in children:
                    _, was_created = await self._upsert(
                        session,
                        job,
                        child,
                        variation_display_name(item.name, child),
                        synced_at,
                        parent_id=parent_id,
                        external_parent_id=item.external_id,
                    )
                    if was_created:
                        created += 1
                    else:
                        updated += 1
                await session.commit()
        except Exception as e:
            raise PartialItemError(item.external_id, str(e) or type(e).__name__) from e
        return created, updated

    async def _upsert(
        self,
        session: AsyncSession,
        job: SyncJob,
        item: CatalogItem,
        name: str,
        synced_at: str,
        parent_id: str | None = None,
        external_parent_id: str | None = None,
    ) -> tuple[str, bool]:
        """Insert or overwrite a product by natural key.

        Returns:
            (local product id, True if inserted)
        """
        result = await session.execute(
            select(Product).where(
                Product.external_id == item.external_id,
                Product.connection_id == job.connection_id,
            )
        )
        existing = result.scalar_one_or_none()
        fields = _business_fields(item, name, synced_at)
        fields["parent_id"] = parent_id
        fields["external_parent_id"] = external_parent_id

        if existing is not None:
            for key, value in fields.items():
                setattr(existing, key, value)
            await session.flush()
            return existing.id, False

        product = Product(
            id=generate_uuid(),
            owner_id=job.owner_id,
            connection_id=job.connection_id,
            external_id=item.external_id,
            **fields,
        )
        session.add(product)
        await session.flush()
        return product.id, True

    async def _mark_failed(
        self, job_id: str, error: Exception, progress: SyncProgress
    ) -> None:
        message = str(error) or type(error).__name__
        try:
            await self.job_store.update_fields(
                JobType.sync,
                job_id,
                status=SyncJobStatus.failed,
                error_message=message,
                **progress.as_fields(),
            )
        except Exception:
            logger.exception("Could not record failure of sync job %s", job_id)
