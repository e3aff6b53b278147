"""Service wiring and FastAPI dependencies.

``build_services`` assembles the job engine once per process; the app
lifespan stores the result on ``app.state.services`` and routes reach it
through the ``get_*`` dependencies below.
"""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.clients.base import CatalogSource, GenerationAdapter
from src.clients.gemini import GeminiGenerationAdapter
from src.clients.woocommerce import WooCommerceCatalogSource
from src.db.models import JobType
from src.services.catalog_sync import SyncOrchestrator
from src.services.chat_service import ChatService
from src.services.connection_service import ConnectionService
from src.services.credential_encryption import CredentialCipher
from src.services.credentials import CredentialResolver
from src.services.generation import GenerationOrchestrator
from src.services.job_store import JobStore
from src.services.job_supervisor import JobSupervisor
from src.services.media_storage import MediaStorage, build_media_storage
from src.services.product_service import ProductService
from src.services.progress_notifier import ProgressNotifier
from src.services.settings_service import SettingsService


@dataclass
class AppServices:
    """Everything the routes need, built once per process."""

    notifier: ProgressNotifier
    job_store: JobStore
    connections: ConnectionService
    settings: SettingsService
    chat: ChatService
    products: ProductService
    sync: SyncOrchestrator
    generation: GenerationOrchestrator
    supervisor: JobSupervisor


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    catalog_source: CatalogSource | None = None,
    adapter: GenerationAdapter | None = None,
    media_storage: MediaStorage | None = None,
    cipher: CredentialCipher | None = None,
    default_api_key: str | None = None,
) -> AppServices:
    """Assemble the job engine around one session factory.

    Collaborators left as None get their production implementation.
    """
    cipher = cipher or CredentialCipher()
    catalog_source = catalog_source or WooCommerceCatalogSource()
    adapter = adapter or GeminiGenerationAdapter()
    media_storage = media_storage or build_media_storage()

    notifier = ProgressNotifier()
    job_store = JobStore(session_factory, notifier)
    connections = ConnectionService(session_factory, cipher, catalog_source)
    chat = ChatService(session_factory)
    sync = SyncOrchestrator(
        session_factory, job_store, notifier, catalog_source, connections
    )
    generation = GenerationOrchestrator(
        job_store,
        notifier,
        chat,
        adapter,
        CredentialResolver(session_factory, cipher, default_api_key=default_api_key),
        media_storage,
    )
    supervisor = JobSupervisor({JobType.sync: sync, JobType.generation: generation})
    return AppServices(
        notifier=notifier,
        job_store=job_store,
        connections=connections,
        settings=SettingsService(session_factory, cipher),
        chat=chat,
        products=ProductService(session_factory),
        sync=sync,
        generation=generation,
        supervisor=supervisor,
    )


def get_services(request: Request) -> AppServices:
    return request.app.state.services


async def get_owner_id(
    x_user_id: str | None = Header(None),
    services: AppServices = Depends(get_services),
) -> str:
    """Owner of the request, from the X-User-Id header.

    Unknown owners are created on first sight.
    """
    owner_id = (x_user_id or "").strip()
    if not owner_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    if len(owner_id) > 36:
        raise HTTPException(status_code=400, detail="X-User-Id is too long")
    await services.settings.ensure_owner(owner_id)
    return owner_id
