"""
Object storage for submission artifacts (profile pictures, source archives).

Objects are written once at submission time and served through public URLs.
"""

from __future__ import annotations

import re
import time
import uuid
from functools import lru_cache
from typing import Protocol

import aioboto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from devreview.core.config import Settings, get_settings
from devreview.core.errors import ArtifactUploadFailed

log = structlog.get_logger()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ObjectStorage(Protocol):
    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> None: ...

    def public_url(self, bucket: str, path: str) -> str: ...

    async def delete(self, bucket: str, path: str) -> None: ...


def artifact_path(user_id: uuid.UUID, filename: str, *, now_ms: int | None = None) -> str:
    """``{user_id}/{epoch_millis}-{filename}``, namespaced per owner."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    safe_name = _UNSAFE_CHARS.sub("-", filename).strip("-") or "artifact"
    return f"{user_id}/{stamp}-{safe_name}"


class S3ObjectStorage:
    """S3-compatible storage (AWS, MinIO, Supabase storage S3 endpoint)."""

    def __init__(self, settings: Settings):
        self._settings = settings
        self._session = aioboto3.Session(
            aws_access_key_id=settings.storage_access_key_id or None,
            aws_secret_access_key=settings.storage_secret_access_key or None,
            region_name=settings.storage_region,
        )

    def _client(self):
        return self._session.client("s3", endpoint_url=self._settings.storage_endpoint_url)

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        try:
            async with self._client() as s3:
                await s3.put_object(Bucket=bucket, Key=path, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:
            log.error("storage.upload_failed", bucket=bucket, path=path, error=str(exc))
            raise ArtifactUploadFailed(f"Failed to upload {path}", bucket=bucket) from exc
        log.info("storage.uploaded", bucket=bucket, path=path, size=len(data))

    def public_url(self, bucket: str, path: str) -> str:
        base = self._settings.storage_public_base_url.rstrip("/")
        if base:
            return f"{base}/{bucket}/{path}"
        if self._settings.storage_endpoint_url:
            return f"{self._settings.storage_endpoint_url.rstrip('/')}/{bucket}/{path}"
        return f"https://{bucket}.s3.{self._settings.storage_region}.amazonaws.com/{path}"

    async def delete(self, bucket: str, path: str) -> None:
        try:
            async with self._client() as s3:
                await s3.delete_object(Bucket=bucket, Key=path)
        except (BotoCoreError, ClientError) as exc:
            raise ArtifactUploadFailed(f"Failed to delete {path}", bucket=bucket) from exc


@lru_cache
def get_storage() -> ObjectStorage:
    return S3ObjectStorage(get_settings())
