"""Tests for the Supabase storage client."""

import httpx
import pytest

from app.core.config import StorageSettings
from app.core.exceptions import StorageError
from app.services.storage_service import StorageService


@pytest.fixture
def storage_config() -> StorageSettings:
    config = StorageSettings()
    config.url = "https://project.supabase.co"
    config.service_role_key = "service-key"
    config.bucket = "docs"
    return config


class TestStorageService:
    @pytest.mark.asyncio
    async def test_upload(self, storage_config, sample_pdf_content) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Key": "docs/solicitations/email/1-rfq.pdf"})

        service = StorageService(config=storage_config, transport=httpx.MockTransport(handler))

        key = await service.upload("solicitations/email/1-rfq.pdf", sample_pdf_content, "application/pdf")

        assert key == "solicitations/email/1-rfq.pdf"
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/storage/v1/object/docs/solicitations/email/1-rfq.pdf"
        assert request.headers["Authorization"] == "Bearer service-key"
        assert request.headers["x-upsert"] == "true"
        assert request.content == sample_pdf_content

    @pytest.mark.asyncio
    async def test_download(self, storage_config) -> None:
        service = StorageService(
            config=storage_config,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"%PDF")),
        )

        assert await service.download("orders/email/1-po.pdf") == b"%PDF"

    @pytest.mark.asyncio
    async def test_rejected_upload_raises_storage_error(self, storage_config) -> None:
        service = StorageService(
            config=storage_config,
            transport=httpx.MockTransport(lambda request: httpx.Response(403, json={"error": "denied"})),
        )

        with pytest.raises(StorageError):
            await service.upload("k.pdf", b"x", "application/pdf")
