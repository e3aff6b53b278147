"""Pydantic schemas for API request/response validation.

Defines the data contracts for the Storeloom REST API: store
connections, sync and generation jobs, chat sessions and settings.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.clients.models import GenerationOptions


class SyncJobStatusEnum(str, Enum):
    """Sync job status values accepted as filters."""

    pending = "pending"
    fetching = "fetching"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class GenerationJobStatusEnum(str, Enum):
    """Generation job status values accepted as filters."""

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


# Connection schemas


class ConnectionCreate(BaseModel):
    """Request schema for creating a store connection."""

    name: str = Field(..., min_length=1, max_length=255)
    store_url: str = Field(..., min_length=1, max_length=500)
    consumer_key: str = Field(..., min_length=1)
    consumer_secret: str = Field(..., min_length=1)


class ConnectionUpdate(BaseModel):
    """Request schema for updating a store connection."""

    name: str | None = Field(None, min_length=1, max_length=255)
    store_url: str | None = Field(None, min_length=1, max_length=500)
    consumer_key: str | None = None
    consumer_secret: str | None = None
    is_active: bool | None = None


class ConnectionTestRequest(BaseModel):
    """Request schema for testing unsaved credentials."""

    store_url: str
    consumer_key: str
    consumer_secret: str


class ConnectionResponse(BaseModel):
    """Store connection without its credentials."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    store_url: str
    is_active: bool
    last_sync_at: str | None
    created_at: str


class ConnectionTestResponse(BaseModel):
    success: bool
    error: str | None = None


# Job schemas


class SyncStartRequest(BaseModel):
    """Request schema for starting a catalog sync."""

    only_in_stock: bool = False


class SyncJobResponse(BaseModel):
    """Snapshot of a sync job."""

    id: str
    type: str
    status: str
    connection_id: str
    only_in_stock: bool
    total_products: int
    processed_products: int
    created_count: int
    updated_count: int
    skipped_count: int
    error_message: str | None = None
    created_at: str
    started_at: str | None = None
    completed_at: str | None = None


class GenerationJobResponse(BaseModel):
    """Snapshot of a generation job."""

    id: str
    type: str
    status: str
    session_id: str
    message_id: str | None = None
    product_id: str | None = None
    progress: int
    output: dict[str, Any] | None = None
    error_message: str | None = None
    created_at: str
    started_at: str | None = None
    completed_at: str | None = None


class JobAcceptedResponse(BaseModel):
    """Returned with 202 when a job has been queued."""

    job_id: str
    status: str = "pending"


# Chat schemas


class ChatSessionCreate(BaseModel):
    product_id: str | None = None
    title: str | None = Field(None, max_length=200)


class ChatSessionUpdate(BaseModel):
    title: str | None = None
    archived: bool | None = None


class ChatMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    role: str
    content: str | None
    media_url: str | None
    media_data: str | None
    metadata: dict[str, Any] | None = Field(None, validation_alias="message_metadata")
    generation_job_id: str | None
    created_at: str


class ChatSessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str | None
    title: str | None
    status: str
    created_at: str
    updated_at: str


class ChatSessionDetailResponse(ChatSessionResponse):
    """Session with its message thread."""

    messages: list[ChatMessageResponse] = []


class ChatMessageCreate(BaseModel):
    """A prompt that triggers a generation job."""

    prompt: str = Field(..., min_length=1)
    options: GenerationOptions = Field(default_factory=GenerationOptions)
    reference_payloads: list[str] = Field(default_factory=list)


# Product schemas


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    connection_id: str | None
    external_id: str
    product_type: str
    parent_id: str | None
    name: str
    sku: str | None
    price: str | None
    stock_status: str | None
    stock_quantity: int | None
    images: list[dict[str, Any]]
    permalink: str | None
    synced_at: str | None


# Settings schemas


class SettingsResponse(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None
    has_generation_key: bool
    credential_version: int


class GenerationKeyUpdate(BaseModel):
    """Set the owner's generation key; null or empty clears it."""

    api_key: str | None = None
