"""Pytest fixtures for API tests.

The app is built around a per-test SQLite engine and in-memory fakes of
the store, the generation model and media storage. The TestClient runs
the lifespan, so the schema is created on the client's own event loop.
"""

import os
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sse_starlette.sse import AppStatus

from src.api.main import create_app
from src.db.connection import create_engine_for_url
from src.services.credential_encryption import CredentialCipher
from tests.helpers import (
    OWNER_ID,
    FakeCatalogSource,
    FakeGenerationAdapter,
    FakeMediaStorage,
)


@pytest.fixture(autouse=True)
def _reset_sse_exit_event(monkeypatch):
    """sse-starlette caches its exit event on the first loop that streams."""
    if hasattr(AppStatus, "should_exit_event"):
        monkeypatch.setattr(AppStatus, "should_exit_event", None)


@pytest.fixture
def fake_source() -> FakeCatalogSource:
    return FakeCatalogSource()


@pytest.fixture
def fake_adapter() -> FakeGenerationAdapter:
    return FakeGenerationAdapter()


@pytest.fixture
def fake_storage() -> FakeMediaStorage:
    return FakeMediaStorage()


@pytest.fixture
def app(tmp_path, fake_source, fake_adapter, fake_storage):
    engine = create_engine_for_url(f"sqlite:///{tmp_path / 'api-test.db'}")
    return create_app(
        engine=engine,
        catalog_source=fake_source,
        adapter=fake_adapter,
        media_storage=fake_storage,
        cipher=CredentialCipher(key=os.urandom(32)),
        default_api_key="default-key",
    )


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """TestClient with the lifespan running and the owner header preset."""
    with TestClient(app, headers={"X-User-Id": OWNER_ID}) as test_client:
        yield test_client


@pytest.fixture
def connection_id(client) -> str:
    response = client.post(
        "/api/v1/connections",
        json={
            "name": "Demo Store",
            "store_url": "shop.example.com",
            "consumer_key": "ck_demo",
            "consumer_secret": "cs_demo",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


@pytest.fixture
def session_id(client) -> str:
    response = client.post("/api/v1/chat/sessions", json={"title": "Launch copy"})
    assert response.status_code == 201, response.text
    return response.json()["id"]
