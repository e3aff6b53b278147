"""Media storage backends for generated images.

Provides a pluggable storage interface so generated media is not tied to
an ephemeral local filesystem in containerized deployments. Keys are
scoped per owner, and per product when the chat session is bound to one:

    users/<owner>/products/<product>/images/<ts>-<name>
    users/<owner>/chat/<ts>-<name>
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_DATA_URL_PREFIX = re.compile(r"^data:image/\w+;base64,")

LOCAL_URL_PREFIX = "/uploads"


@dataclass(frozen=True)
class MediaContext:
    """Who the media belongs to."""

    owner_id: str
    product_id: str | None = None


@dataclass(frozen=True)
class StoredMedia:
    """Reference returned by a storage backend."""

    url: str
    key: str


class MediaStorage(Protocol):
    """Storage contract used by the generation orchestrator."""

    async def store(self, payload: bytes, context: MediaContext, filename: str) -> StoredMedia:
        """Persist a binary payload and return its public reference."""

    async def delete(self, key: str) -> None:
        """Remove a stored object. Missing keys are ignored."""


def sanitize_filename(filename: str) -> str:
    """Replace every character outside [a-zA-Z0-9.-] with an underscore."""
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


def build_media_key(context: MediaContext, filename: str, timestamp_ms: int | None = None) -> str:
    """Build the storage key for a payload owned by ``context``."""
    ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    name = f"{ts}-{sanitize_filename(filename)}"
    if context.product_id:
        return f"users/{context.owner_id}/products/{context.product_id}/images/{name}"
    return f"users/{context.owner_id}/chat/{name}"


def decode_base64_media(data: str) -> bytes:
    """Decode base64 media, accepting an optional data-URL prefix.

    Raises:
        ValueError: If the payload is not valid base64.
    """
    content = _DATA_URL_PREFIX.sub("", data)
    try:
        return base64.b64decode(content, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Media payload is not valid base64: {e}") from e


def guess_content_type(filename: str) -> str:
    lowered = filename.lower()
    if lowered.endswith((".jpg", ".jpeg")):
        return "image/jpeg"
    if lowered.endswith(".webp"):
        return "image/webp"
    return "image/png"


class LocalMediaStorage:
    """Filesystem-backed media storage served under /uploads."""

    def __init__(self, base_dir: str | Path, url_prefix: str = LOCAL_URL_PREFIX) -> None:
        self.base_dir = Path(base_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def _path_for(self, key: str) -> Path:
        path = (self.base_dir / key).resolve()
        if not path.is_relative_to(self.base_dir.resolve()):
            raise ValueError(f"Media key escapes storage root: {key!r}")
        return path

    async def store(self, payload: bytes, context: MediaContext, filename: str) -> StoredMedia:
        key = build_media_key(context, filename)
        path = self._path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(payload)

        await asyncio.to_thread(_write)
        return StoredMedia(url=f"{self.url_prefix}/{key}", key=key)

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink, True)


class S3MediaStorage:
    """S3-compatible media storage (AWS, Scaleway, MinIO)."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region_name: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self._client = None

    def _get_client(self):
        if self._client is not None:
            return self._client
        try:
            import boto3
        except ImportError as exc:
            raise RuntimeError(
                "MEDIA_STORAGE_BACKEND=s3 requires boto3. "
                "Install boto3 or switch MEDIA_STORAGE_BACKEND=local."
            ) from exc
        self._client = boto3.client(
            "s3",
            region_name=self.region_name,
            endpoint_url=self.endpoint_url,
        )
        return self._client

    def _full_key(self, key: str) -> str:
        if self.prefix:
            return f"{self.prefix}/{key}"
        return key

    def public_url(self, full_key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{full_key}"
        region = self.region_name or "us-east-1"
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{full_key}"

    async def store(self, payload: bytes, context: MediaContext, filename: str) -> StoredMedia:
        full_key = self._full_key(build_media_key(context, filename))
        await asyncio.to_thread(
            self._get_client().put_object,
            Bucket=self.bucket,
            Key=full_key,
            Body=payload,
            ContentType=guess_content_type(filename),
        )
        return StoredMedia(url=self.public_url(full_key), key=full_key)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(
            self._get_client().delete_object, Bucket=self.bucket, Key=key
        )


def build_media_storage(local_upload_dir: str | Path | None = None) -> MediaStorage:
    """Build media storage backend from environment configuration."""
    backend = os.environ.get("MEDIA_STORAGE_BACKEND", "local").strip().lower()
    if backend in {"", "local"}:
        if local_upload_dir is None:
            from src.utils.paths import get_uploads_dir

            local_upload_dir = get_uploads_dir()
        return LocalMediaStorage(local_upload_dir)
    if backend == "s3":
        bucket = os.environ.get("MEDIA_STORAGE_S3_BUCKET", "").strip()
        if not bucket:
            raise RuntimeError(
                "MEDIA_STORAGE_BACKEND=s3 requires MEDIA_STORAGE_S3_BUCKET."
            )
        prefix = os.environ.get("MEDIA_STORAGE_S3_PREFIX", "")
        region = os.environ.get("MEDIA_STORAGE_S3_REGION", "").strip() or None
        endpoint = os.environ.get("MEDIA_STORAGE_S3_ENDPOINT", "").strip() or None
        return S3MediaStorage(
            bucket=bucket,
            prefix=prefix,
            region_name=region,
            endpoint_url=endpoint,
        )
    raise RuntimeError(
        f"Unsupported MEDIA_STORAGE_BACKEND={backend!r}. Use 'local' or 's3'."
    )
