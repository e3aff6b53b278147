"""Root-level pytest fixtures for all tests.

Provides shared fixtures for the job engine:
- Environment isolation (data dir, keys, API gate)
- A file-backed SQLite database per test through aiosqlite
- Services wired to in-memory fakes of the external collaborators
"""

import base64
import os

import pytest

from src.db.connection import async_init_db, build_session_factory, create_engine_for_url
from src.db.models import JobType
from src.services.catalog_sync import SyncOrchestrator
from src.services.chat_service import ChatService
from src.services.connection_service import ConnectionService
from src.services.credential_encryption import CredentialCipher
from src.services.credentials import CredentialResolver
from src.services.generation import GenerationOrchestrator
from src.services.job_store import JobStore
from src.services.job_supervisor import JobSupervisor
from src.services.progress_notifier import ProgressNotifier
from src.services.settings_service import SettingsService
from tests.helpers import (
    OTHER_OWNER_ID,
    OWNER_ID,
    FakeCatalogSource,
    FakeGenerationAdapter,
    FakeMediaStorage,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests that take a long time to run"
    )


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    """Keep every test away from the real data dir and real keys."""
    monkeypatch.setenv("STORELOOM_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("MEDIA_UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv(
        "STORELOOM_CREDENTIAL_KEY", base64.b64encode(os.urandom(32)).decode()
    )
    for name in (
        "GOOGLE_AI_API_KEY",
        "CATALOG_SYNC_PAGE_SIZE",
        "GENERATION_MODEL",
        "MEDIA_STORAGE_BACKEND",
        "DATABASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
async def engine(tmp_path):
    """Async engine on a fresh file-backed SQLite database."""
    eng = create_engine_for_url(f"sqlite:///{tmp_path / 'storeloom-test.db'}")
    await async_init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def cipher():
    return CredentialCipher(key=os.urandom(32))


@pytest.fixture
def notifier():
    return ProgressNotifier()


@pytest.fixture
def job_store(session_factory, notifier):
    return JobStore(session_factory, notifier)


@pytest.fixture
def catalog_source():
    return FakeCatalogSource()


@pytest.fixture
def generation_adapter():
    return FakeGenerationAdapter()


@pytest.fixture
def media_storage():
    return FakeMediaStorage()


@pytest.fixture
def settings_service(session_factory, cipher):
    return SettingsService(session_factory, cipher)


@pytest.fixture
def connection_service(session_factory, cipher, catalog_source):
    return ConnectionService(session_factory, cipher, catalog_source)


@pytest.fixture
def chat_service(session_factory):
    return ChatService(session_factory)


@pytest.fixture
def credential_resolver(session_factory, cipher):
    return CredentialResolver(session_factory, cipher, default_api_key="default-key")


@pytest.fixture
def sync_orchestrator(session_factory, job_store, notifier, catalog_source, connection_service):
    return SyncOrchestrator(
        session_factory,
        job_store,
        notifier,
        catalog_source,
        connection_service,
        page_size=100,
    )


@pytest.fixture
def generation_orchestrator(
    job_store, notifier, chat_service, generation_adapter, credential_resolver, media_storage
):
    return GenerationOrchestrator(
        job_store,
        notifier,
        chat_service,
        generation_adapter,
        credential_resolver,
        media_storage,
    )


@pytest.fixture
def supervisor(sync_orchestrator, generation_orchestrator):
    return JobSupervisor(
        {JobType.sync: sync_orchestrator, JobType.generation: generation_orchestrator}
    )


@pytest.fixture
async def owner(settings_service):
    """The default owner row."""
    return await settings_service.ensure_owner(OWNER_ID)


@pytest.fixture
async def other_owner(settings_service):
    return await settings_service.ensure_owner(OTHER_OWNER_ID)


@pytest.fixture
async def connection(owner, connection_service):
    """An active store connection owned by OWNER_ID."""
    return await connection_service.create_connection(
        OWNER_ID,
        name="Demo Store",
        store_url="shop.example.com",
        consumer_key="ck_demo",
        consumer_secret="cs_demo",
    )


@pytest.fixture
async def chat_session(owner, chat_service):
    return await chat_service.create_session(OWNER_ID, title="Launch copy")
