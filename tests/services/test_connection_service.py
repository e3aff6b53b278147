"""Tests for ConnectionService CRUD, credential encryption and testing."""

import pytest

from src.db.models import StoreConnection
from src.errors import NotFoundError, ValidationError
from tests.helpers import OTHER_OWNER_ID, OWNER_ID


class TestCreate:

    async def test_credentials_are_encrypted_at_rest(
        self, connection_service, connection, session_factory
    ):
        async with session_factory() as session:
            row = await session.get(StoreConnection, connection.id)

        assert row.store_url == "https://shop.example.com"
        assert "ck_demo" not in row.encrypted_credentials
        assert "cs_demo" not in row.encrypted_credentials
        source = connection_service.to_source_connection(row)
        assert source.consumer_key == "ck_demo"
        assert source.consumer_secret == "cs_demo"

    async def test_rejected_credentials_are_not_saved(
        self, connection_service, catalog_source, owner
    ):
        catalog_source.reject_credentials = True

        with pytest.raises(ValidationError, match="Connection failed"):
            await connection_service.create_connection(
                OWNER_ID, "Shop", "shop.test", "ck", "cs"
            )
        assert await connection_service.list_connections(OWNER_ID) == []

    @pytest.mark.parametrize(
        "field, kwargs",
        [
            ("Name", {"name": " "}),
            ("Store URL", {"store_url": ""}),
            ("Consumer Key", {"consumer_key": ""}),
            ("Consumer Secret", {"consumer_secret": ""}),
        ],
    )
    async def test_required_fields(self, connection_service, owner, field, kwargs):
        values = {
            "name": "Shop",
            "store_url": "shop.test",
            "consumer_key": "ck",
            "consumer_secret": "cs",
            **kwargs,
        }
        with pytest.raises(ValidationError, match=f"{field} is required"):
            await connection_service.create_connection(OWNER_ID, **values)


class TestOwnership:

    async def test_other_owner_cannot_read(self, connection_service, connection, other_owner):
        with pytest.raises(NotFoundError):
            await connection_service.get_connection(OTHER_OWNER_ID, connection.id)

    async def test_other_owner_cannot_delete(self, connection_service, connection, other_owner):
        with pytest.raises(NotFoundError):
            await connection_service.delete_connection(OTHER_OWNER_ID, connection.id)
        assert await connection_service.get_connection(OWNER_ID, connection.id)

    async def test_list_is_owner_scoped(self, connection_service, connection, other_owner):
        assert [c.id for c in await connection_service.list_connections(OWNER_ID)] == [
            connection.id
        ]
        assert await connection_service.list_connections(OTHER_OWNER_ID) == []


class TestUpdate:

    async def test_rename_and_deactivate(self, connection_service, connection):
        updated = await connection_service.update_connection(
            OWNER_ID, connection.id, name="Renamed", is_active=False
        )
        assert updated.name == "Renamed"
        assert updated.is_active is False

    async def test_new_secret_keeps_existing_key(self, connection_service, connection):
        updated = await connection_service.update_connection(
            OWNER_ID, connection.id, consumer_secret="cs_rotated"
        )
        source = connection_service.to_source_connection(updated)
        assert source.consumer_key == "ck_demo"
        assert source.consumer_secret == "cs_rotated"

    async def test_rejected_update_keeps_old_credentials(
        self, connection_service, catalog_source, connection
    ):
        catalog_source.reject_credentials = True
        with pytest.raises(ValidationError):
            await connection_service.update_connection(
                OWNER_ID, connection.id, consumer_secret="cs_bad"
            )
        row = await connection_service.get_connection(OWNER_ID, connection.id)
        assert connection_service.to_source_connection(row).consumer_secret == "cs_demo"


class TestDelete:

    async def test_delete_removes_connection(self, connection_service, connection):
        await connection_service.delete_connection(OWNER_ID, connection.id)
        with pytest.raises(NotFoundError):
            await connection_service.get_connection(OWNER_ID, connection.id)


class TestTestConnection:

    async def test_saved_connection(self, connection_service, connection):
        assert await connection_service.test_connection(OWNER_ID, connection.id) == {
            "success": True,
            "error": None,
        }

    async def test_unsaved_rejected(self, connection_service, catalog_source):
        catalog_source.reject_credentials = True
        result = await connection_service.test_credentials("shop.test", "ck", "cs")
        assert result == {"success": False, "error": "Authentication failed"}

    async def test_undecryptable_credentials(self, connection_service, connection, session_factory):
        async with session_factory() as session:
            row = await session.get(StoreConnection, connection.id)
            row.encrypted_credentials = "v1:garbage"
            await session.commit()

        with pytest.raises(ValidationError, match="cannot be decrypted"):
            await connection_service.test_connection(OWNER_ID, connection.id)
