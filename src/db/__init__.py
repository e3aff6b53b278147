"""Database module for Storeloom catalog, chat and job persistence."""

from src.db.connection import (
    AsyncSessionLocal,
    async_engine,
    async_init_db,
    build_session_factory,
    create_engine_for_url,
)
from src.db.models import (
    ChatMessage,
    ChatSession,
    GenerationJob,
    GenerationJobStatus,
    JobType,
    Product,
    StoreConnection,
    SyncJob,
    SyncJobStatus,
    User,
)

__all__ = [
    # Models
    "User",
    "StoreConnection",
    "Product",
    "ChatSession",
    "ChatMessage",
    "SyncJob",
    "GenerationJob",
    # Enums
    "JobType",
    "SyncJobStatus",
    "GenerationJobStatus",
    # Connection
    "async_engine",
    "AsyncSessionLocal",
    "build_session_factory",
    "create_engine_for_url",
    "async_init_db",
]
