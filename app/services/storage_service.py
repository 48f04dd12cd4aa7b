"""Storage service for source documents in Supabase storage."""

from typing import Optional, Protocol

import httpx

from app.core.base_api_client import BaseAPIClient
from app.core.config import StorageSettings, settings
from app.core.exceptions import StorageError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BlobStore(Protocol):
    async def upload(self, key: str, content: bytes, content_type: str) -> str: ...

    async def download(self, key: str) -> bytes: ...


class StorageService(BaseAPIClient):
    """Uploads and downloads objects in one Supabase storage bucket."""

    error_class = StorageError

    def __init__(
        self,
        config: Optional[StorageSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or settings.storage
        super().__init__(
            base_url=f"{self.config.url.rstrip('/')}/storage/v1",
            timeout=settings.http_timeout,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            transport=transport,
        )
        self.bucket = self.config.bucket

    async def auth_headers(self):
        return {
            "Authorization": f"Bearer {self.config.service_role_key}",
            "apikey": self.config.service_role_key,
        }

    async def upload(self, key: str, content: bytes, content_type: str = "application/pdf") -> str:
        """Upload an object, overwriting any object under the same key.

        Args:
            key: Object path within the bucket
            content: Object bytes
            content_type: MIME type stored with the object

        Returns:
            The storage key

        Raises:
            StorageError: If the upload fails
        """
        await self.request(
            "POST",
            f"/object/{self.bucket}/{key}",
            content=content,
            headers={"Content-Type": content_type, "x-upsert": "true"},
        )
        LOGGER.info(
            "Uploaded document to storage",
            extra={"bucket": self.bucket, "key": key, "size": len(content)},
        )
        return key

    async def download(self, key: str) -> bytes:
        response = await self.request("GET", f"/object/{self.bucket}/{key}")
        return response.content

