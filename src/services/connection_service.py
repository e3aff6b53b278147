"""ConnectionService: CRUD, validation and encryption for store connections.

Consumer key/secret are sealed in an AES-256-GCM envelope bound to the
connection id. New or changed credentials are tested against the store
before they are saved.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.clients.base import CatalogSource
from src.clients.models import SourceConnection
from src.clients.woocommerce import normalize_store_url
from src.db.models import StoreConnection, generate_uuid
from src.errors import AdapterError, NotFoundError, ValidationError
from src.services.credential_encryption import (
    CredentialCipher,
    CredentialDecryptionError,
)

logger = logging.getLogger(__name__)


def _build_aad(connection_id: str) -> str:
    return f"store_connection:{connection_id}"


def _require(value: str | None, label: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{label} is required")
    return value.strip()


class ConnectionService:
    """Owner-scoped management of store connections."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: CredentialCipher,
        catalog_source: CatalogSource,
    ) -> None:
        self.session_factory = session_factory
        self.cipher = cipher
        self.catalog_source = catalog_source

    async def _verify(self, connection: SourceConnection) -> None:
        try:
            await self.catalog_source.test_connection(connection)
        except AdapterError as e:
            raise ValidationError(f"Connection failed: {e}") from e

    async def test_credentials(
        self, store_url: str, consumer_key: str, consumer_secret: str
    ) -> dict:
        """Test unsaved credentials.

        Returns:
            {"success": bool, "error": str | None}
        """
        candidate = SourceConnection(
            id="unsaved",
            store_url=store_url or "",
            consumer_key=consumer_key or "",
            consumer_secret=consumer_secret or "",
        )
        try:
            await self.catalog_source.test_connection(candidate)
        except AdapterError as e:
            return {"success": False, "error": str(e)}
        return {"success": True, "error": None}

    async def create_connection(
        self,
        owner_id: str,
        name: str,
        store_url: str,
        consumer_key: str,
        consumer_secret: str,
    ) -> StoreConnection:
        """Test and persist a new connection.

        Raises:
            ValidationError: If a field is missing or the store rejects the credentials.
        """
        name = _require(name, "Name")
        store_url = normalize_store_url(_require(store_url, "Store URL"))
        consumer_key = _require(consumer_key, "Consumer Key")
        consumer_secret = _require(consumer_secret, "Consumer Secret")

        connection_id = generate_uuid()
        await self._verify(
            SourceConnection(
                id=connection_id,
                store_url=store_url,
                consumer_key=consumer_key,
                consumer_secret=consumer_secret,
            )
        )

        row = StoreConnection(
            id=connection_id,
            owner_id=owner_id,
            name=name,
            store_url=store_url,
            encrypted_credentials=self.cipher.seal(
                {"consumer_key": consumer_key, "consumer_secret": consumer_secret},
                _build_aad(connection_id),
            ),
            is_active=True,
        )
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()
        logger.info("Created store connection %s for owner %s", row.id, owner_id)
        return row

    async def list_connections(self, owner_id: str) -> list[StoreConnection]:
        stmt = (
            select(StoreConnection)
            .where(StoreConnection.owner_id == owner_id)
            .order_by(StoreConnection.created_at.desc())
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_connection(self, owner_id: str, connection_id: str) -> StoreConnection:
        """Fetch an owner's connection.

        Raises:
            NotFoundError: If absent or owned by someone else.
        """
        async with self.session_factory() as session:
            row = await session.get(StoreConnection, connection_id)
        if row is None or row.owner_id != owner_id:
            raise NotFoundError("StoreConnection", connection_id)
        return row

    async def update_connection(
        self,
        owner_id: str,
        connection_id: str,
        name: str | None = None,
        store_url: str | None = None,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
        is_active: bool | None = None,
    ) -> StoreConnection:
        """Update fields; credential changes are tested first.

        Raises:
            NotFoundError: If the connection is not the owner's.
            ValidationError: If the new credentials fail the store test.
        """
        async with self.session_factory() as session:
            row = await session.get(StoreConnection, connection_id)
            if row is None or row.owner_id != owner_id:
                raise NotFoundError("StoreConnection", connection_id)

            if store_url or consumer_key or consumer_secret:
                current = self._decrypt(row)
                candidate = SourceConnection(
                    id=row.id,
                    store_url=normalize_store_url(store_url or row.store_url),
                    consumer_key=consumer_key or current.consumer_key,
                    consumer_secret=consumer_secret or current.consumer_secret,
                )
                await self._verify(candidate)
                row.store_url = candidate.store_url
                row.encrypted_credentials = self.cipher.seal(
                    {
                        "consumer_key": candidate.consumer_key,
                        "consumer_secret": candidate.consumer_secret,
                    },
                    _build_aad(row.id),
                )
            if name is not None:
                row.name = _require(name, "Name")
            if is_active is not None:
                row.is_active = is_active
            await session.commit()
        return row

    async def delete_connection(self, owner_id: str, connection_id: str) -> None:
        """Delete a connection and, by cascade, its sync jobs.

        Raises:
            NotFoundError: If the connection is not the owner's.
        """
        async with self.session_factory() as session:
            row = await session.get(StoreConnection, connection_id)
            if row is None or row.owner_id != owner_id:
                raise NotFoundError("StoreConnection", connection_id)
            await session.delete(row)
            await session.commit()
        logger.info("Deleted store connection %s", connection_id)

    async def test_connection(self, owner_id: str, connection_id: str) -> dict:
        """Test a saved connection against the store."""
        row = await self.get_connection(owner_id, connection_id)
        connection = self._decrypt(row)
        try:
            await self.catalog_source.test_connection(connection)
        except AdapterError as e:
            return {"success": False, "error": str(e)}
        return {"success": True, "error": None}

    def _decrypt(self, row: StoreConnection) -> SourceConnection:
        try:
            creds = self.cipher.open(row.encrypted_credentials, _build_aad(row.id))
        except CredentialDecryptionError as e:
            raise ValidationError(
                f"Stored credentials for connection '{row.id}' cannot be decrypted"
            ) from e
        return SourceConnection(
            id=row.id,
            store_url=row.store_url,
            consumer_key=creds.get("consumer_key", ""),
            consumer_secret=creds.get("consumer_secret", ""),
        )

    def to_source_connection(self, row: StoreConnection) -> SourceConnection:
        """Decrypt a row into the shape catalog sources consume."""
        return self._decrypt(row)
