"""Object storage for uploaded documents."""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import Optional
from urllib.parse import quote

import httpx

from ledgerly.auth.config import AuthSettings, get_auth_settings
from ledgerly.settings import settings


logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Storage backend rejected or failed a request."""


class StorageProvider(ABC):
    """Abstract object storage contract."""

    @abstractmethod
    def upload(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Store ``data`` under ``key`` and return the key."""

    @abstractmethod
    def create_signed_url(self, key: str, expires_seconds: int = 3600) -> str:
        """Return a temporary download URL."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the object; missing objects are not an error."""

    @abstractmethod
    def download(self, key: str) -> bytes:
        """Return the object's bytes."""


class SupabaseStorageProvider(StorageProvider):
    """Supabase Storage bucket accessed with the service-role key."""

    def __init__(
        self,
        *,
        bucket: Optional[str] = None,
        auth_settings: Optional[AuthSettings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._settings = auth_settings or get_auth_settings()
        self._bucket = bucket or settings.supabase_storage_bucket
        self._transport = transport
        if not self._settings.supabase_service_role_key:
            logger.warning("SUPABASE_SERVICE_ROLE_KEY not configured - storage requests will be rejected")

    def _object_path(self, key: str) -> str:
        return f"{quote(self._bucket)}/{quote(key.lstrip('/'))}"

    def _request(self, method: str, path: str, *, timeout: int = 60, **kwargs) -> httpx.Response:
        headers = {
            "apikey": self._settings.supabase_service_role_key,
            "Authorization": f"Bearer {self._settings.supabase_service_role_key}",
        }
        headers.update(kwargs.pop("headers", {}) or {})
        try:
            with httpx.Client(timeout=timeout, transport=self._transport) as client:
                response = client.request(method, f"{self._settings.storage_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise StorageError(f"Storage request {method} {path} failed: {exc}") from exc
        return response

    def upload(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        response = self._request(
            "POST",
            f"/object/{self._object_path(key)}",
            content=data,
            headers={
                "Content-Type": content_type or "application/octet-stream",
                "x-upsert": "false",
            },
        )
        if response.status_code >= 400:
            raise StorageError(f"Storage upload error {response.status_code} for {key}: {response.text}")
        logger.info("Uploaded %s bytes to %s/%s", len(data), self._bucket, key)
        return key

    def create_signed_url(self, key: str, expires_seconds: int = 3600) -> str:
        response = self._request(
            "POST",
            f"/object/sign/{self._object_path(key)}",
            json={"expiresIn": expires_seconds},
        )
        if response.status_code >= 400:
            raise StorageError(f"Storage sign error {response.status_code} for {key}: {response.text}")
        signed = response.json().get("signedURL") or response.json().get("signedUrl")
        if not signed:
            raise StorageError(f"Storage sign response missing URL for {key}")
        return f"{self._settings.storage_url}{signed}" if signed.startswith("/") else signed

    def delete(self, key: str) -> None:
        response = self._request(
            "DELETE",
            f"/object/{quote(self._bucket)}",
            json={"prefixes": [key]},
        )
        if response.status_code >= 400 and response.status_code != 404:
            raise StorageError(f"Storage delete error {response.status_code} for {key}: {response.text}")

    def download(self, key: str) -> bytes:
        response = self._request("GET", f"/object/{self._object_path(key)}")
        if response.status_code >= 400:
            raise StorageError(f"Storage download error {response.status_code} for {key}: {response.text}")
        return response.content


def get_storage_provider() -> StorageProvider:
    """FastAPI dependency returning the configured storage backend."""
    return SupabaseStorageProvider()
