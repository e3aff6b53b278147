"""SQLAlchemy ORM models for the Storeloom record store.

Defines owners, store connections, the mirrored product catalog, chat
sessions and messages, and the two job families (catalog sync and AI
generation). Uses SQLAlchemy 2.0 style with Mapped and mapped_column.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    declared_attr,
    mapped_column,
    relationship,
)


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format.

    Microseconds are always rendered so timestamps sort lexicographically.
    """
    return datetime.now(UTC).isoformat(timespec="microseconds")


# Enums matching the database schema constraints


class JobType(str, Enum):
    """Job families handled by the engine."""

    sync = "sync"
    generation = "generation"


class SyncJobStatus(str, Enum):
    """Status values for catalog sync jobs.

    Lifecycle: pending -> fetching -> processing -> completed/failed
    """

    pending = "pending"
    fetching = "fetching"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class GenerationJobStatus(str, Enum):
    """Status values for AI generation jobs.

    Lifecycle: pending -> processing -> completed/failed
    """

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class ChatRole(str, Enum):
    """Author of a chat message."""

    user = "user"
    assistant = "assistant"


class ChatSessionStatus(str, Enum):
    """Chat session lifecycle values."""

    active = "active"
    archived = "archived"


TERMINAL_STATUSES = frozenset({"completed", "failed"})


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class User(Base):
    """Owner of connections, catalog rows, chat sessions and jobs.

    Attributes:
        id: UUID primary key
        email: Unique login email
        name: Optional display name
        generation_key_encrypted: Encrypted per-owner generation API key override
        credential_version: Incremented on every change of the override
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    generation_key_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    credential_version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id!r}, email={self.email!r})>"


class StoreConnection(Base):
    """Connection to an external catalog (WooCommerce store).

    Consumer key/secret are stored as an encrypted JSON envelope.
    Deleting a connection cascades to its sync jobs.
    """

    __tablename__ = "store_connections"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    store_url: Mapped[str] = mapped_column(String(500), nullable=False)
    encrypted_credentials: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_sync_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    sync_jobs: Mapped[list["SyncJob"]] = relationship(
        back_populates="connection",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("idx_store_connections_owner", "owner_id"),)

    def __repr__(self) -> str:
        return f"<StoreConnection(id={self.id!r}, store_url={self.store_url!r})>"


class Product(Base):
    """Product mirrored from an external catalog.

    The natural key (external_id, connection_id) is unique and never
    changes once the row exists; every sync overwrites the business
    fields wholesale. Variations point at their local parent via parent_id.
    """

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    connection_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("store_connections.id", ondelete="SET NULL"),
        nullable=True,
    )
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="simple"
    )
    parent_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=True
    )
    external_parent_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    name: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[str | None] = mapped_column(String(500), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    short_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[str | None] = mapped_column(String(50), nullable=True)
    regular_price: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sale_price: Mapped[str | None] = mapped_column(String(50), nullable=True)
    stock_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    stock_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    categories: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    images: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    attributes: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    variant_attributes: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    permalink: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    synced_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    __table_args__ = (
        UniqueConstraint(
            "external_id", "connection_id", name="uq_products_external_connection"
        ),
        Index("idx_products_owner", "owner_id"),
        Index("idx_products_parent", "parent_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Product(id={self.id!r}, external_id={self.external_id!r}, "
            f"name={self.name!r})>"
        )


class ChatSession(Base):
    """Multi-turn AI generation conversation.

    Deleting a session cascades to its messages and generation jobs.
    """

    __tablename__ = "chat_sessions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ChatSessionStatus.active.value
    )
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    messages: Mapped[list["ChatMessage"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChatMessage.created_at",
    )
    generation_jobs: Mapped[list["GenerationJob"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("idx_chat_sessions_owner", "owner_id"),)


class ChatMessage(Base):
    """Single message in a chat session.

    Media travels either as a storage reference (media_url) or, when the
    upload failed, inline as base64 (media_data); never both.
    """

    __tablename__ = "chat_messages"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    media_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    message_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )
    generation_job_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    session: Mapped["ChatSession"] = relationship(back_populates="messages")

    __table_args__ = (
        CheckConstraint(
            "media_url IS NULL OR media_data IS NULL",
            name="ck_chat_messages_single_media",
        ),
        Index("idx_chat_messages_session", "session_id"),
    )


class JobColumnsMixin:
    """Columns shared by both job families."""

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    started_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    completed_at: Mapped[str | None] = mapped_column(String(50), nullable=True)

    @declared_attr
    def owner_id(cls) -> Mapped[str]:
        return mapped_column(
            String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        )

    @property
    def is_terminal(self) -> bool:
        """True once the job has completed or failed."""
        return self.status in TERMINAL_STATUSES


class SyncJob(JobColumnsMixin, Base):
    """Catalog reconciliation job for one store connection.

    Attributes:
        connection_id: Connection being mirrored
        only_in_stock: Restrict the fetch to in-stock products
        total_products: Authoritative item count reported by page 1
        processed_products: Top-level items reconciled so far
        created_count: Rows inserted (products and variations)
        updated_count: Rows overwritten (products and variations)
        skipped_count: Items whose variations could not be reconciled
    """

    __tablename__ = "sync_jobs"

    job_type = JobType.sync

    connection_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("store_connections.id", ondelete="CASCADE"),
        nullable=False,
    )
    only_in_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total_products: Mapped[int] = mapped_column(default=0, nullable=False)
    processed_products: Mapped[int] = mapped_column(default=0, nullable=False)
    created_count: Mapped[int] = mapped_column(default=0, nullable=False)
    updated_count: Mapped[int] = mapped_column(default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(default=0, nullable=False)

    connection: Mapped["StoreConnection"] = relationship(back_populates="sync_jobs")

    __table_args__ = (
        Index("idx_sync_jobs_owner", "owner_id"),
        Index("idx_sync_jobs_connection_status", "connection_id", "status"),
    )


class GenerationJob(JobColumnsMixin, Base):
    """AI generation job threaded into a chat session.

    Attributes:
        session_id: Chat session the result is posted to
        message_id: User message that triggered the job
        product_id: Product the session is bound to, if any
        progress: 0-100
        input: Generation request captured at creation time
        output: Summary of the produced result
    """

    __tablename__ = "generation_jobs"

    job_type = JobType.generation

    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    message_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("chat_messages.id", ondelete="SET NULL"),
        nullable=True,
    )
    product_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    progress: Mapped[int] = mapped_column(default=0, nullable=False)
    input: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    output: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    session: Mapped["ChatSession"] = relationship(back_populates="generation_jobs")

    __table_args__ = (
        Index("idx_generation_jobs_owner", "owner_id"),
        Index("idx_generation_jobs_session", "session_id"),
        Index("idx_generation_jobs_status", "status"),
    )


JOB_MODELS: dict[JobType, type[SyncJob] | type[GenerationJob]] = {
    JobType.sync: SyncJob,
    JobType.generation: GenerationJob,
}
