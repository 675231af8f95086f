from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import httpx

from ..config import get_settings
from ..errors import ExternalServiceError


class BlobStorageClient:
    """HTTP client for a Supabase-compatible object storage API."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {service_key}", "apikey": service_key},
            timeout=httpx.Timeout(timeout=30.0, connect=10.0),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def upload(self, path: str, data: bytes, content_type: str = "image/jpeg") -> str:
        """Store ``data`` under ``path`` and return its public URL."""
        try:
            response = await self.client.post(
                f"/storage/v1/object/{self.bucket}/{path}",
                content=data,
                headers={"Content-Type": content_type, "x-upsert": "false"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceError(
                f"Storage rejected upload ({exc.response.status_code}): {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"Storage upload failed: {exc}") from exc
        return self.public_url(path)


def receipt_path(account_id: UUID, *, now: Optional[datetime] = None) -> str:
    """Per-account object path for a receipt image."""
    moment = now or datetime.now(timezone.utc)
    return f"{account_id}/{int(moment.timestamp() * 1000)}_telegram.jpg"


def build_storage_client() -> Optional[BlobStorageClient]:
    settings = get_settings()
    if not settings.storage_url or not settings.storage_service_key:
        return None
    return BlobStorageClient(
        str(settings.storage_url),
        settings.storage_service_key,
        settings.storage_bucket,
    )
