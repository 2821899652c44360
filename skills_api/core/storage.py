"""Supabase Storage helpers used as the remote object store."""

from __future__ import annotations

import asyncio
import logging
from threading import Lock
from typing import Any, Protocol

from supabase import Client, create_client

LOGGER = logging.getLogger(__name__)

_client: Client | None = None
_client_lock = Lock()


class ObjectStore(Protocol):
    """Minimal async text-object interface the snapshot store depends on."""

    description: str

    async def get_text(self, object_key: str) -> str | None: ...

    async def put_text(self, object_key: str, text: str, content_type: str = ...) -> None: ...


def get_supabase_client(url: str | None, key: str | None) -> Client:
    """Return a singleton Supabase client."""
    global _client
    if _client is not None:
        return _client

    with _client_lock:
        if _client is None:
            if not url or not key:
                raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set")
            _client = create_client(url, key)
    return _client


def upload_bytes(
    client: Client,
    bucket: str,
    object_key: str,
    content_bytes: bytes,
    content_type: str,
) -> dict[str, Any]:
    """Upload bytes to a Storage object path, replacing any existing object."""
    response = client.storage.from_(bucket).upload(
        path=object_key,
        file=content_bytes,
        file_options={"content-type": content_type, "upsert": "true"},
    )
    return response or {}


def download_text(client: Client, bucket: str, object_key: str) -> str | None:
    """Download object bytes and decode as UTF-8 text; return None for binary."""
    blob = client.storage.from_(bucket).download(object_key)
    if blob is None:
        return None
    if isinstance(blob, str):
        return blob
    if not isinstance(blob, (bytes, bytearray)):
        return None
    raw = bytes(blob)
    if b"\x00" in raw:
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return None


def is_not_found_error(exc: Exception) -> bool:
    """Storage raises a generic exception for missing keys; match on its payload."""
    text = str(exc).lower()
    return "not found" in text or "404" in text or "nosuchkey" in text


class SupabaseObjectStore:
    """Async wrapper around one Supabase Storage bucket."""

    def __init__(self, client: Client, bucket: str) -> None:
        self.client = client
        self.bucket = bucket
        self.description = f"supabase://{bucket}"

    async def get_text(self, object_key: str) -> str | None:
        """Return the object's text, or None when the key does not exist."""
        try:
            return await asyncio.to_thread(download_text, self.client, self.bucket, object_key)
        except Exception as exc:  # noqa: BLE001
            if is_not_found_error(exc):
                LOGGER.info("No object at %s/%s", self.description, object_key)
                return None
            raise

    async def put_text(
        self,
        object_key: str,
        text: str,
        content_type: str = "application/json",
    ) -> None:
        await asyncio.to_thread(
            upload_bytes,
            self.client,
            self.bucket,
            object_key,
            text.encode("utf-8"),
            content_type,
        )
