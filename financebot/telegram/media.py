from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from ..errors import ExternalServiceError
from ..services.storage import BlobStorageClient, receipt_path
from .gateway import TelegramGateway

logger = logging.getLogger(__name__)


class MediaIntake:
    """Copies a receipt photo from Telegram into blob storage.

    Every failure degrades to "no image": the caller gets ``None`` and carries
    on recording the entry.
    """

    def __init__(self, gateway: TelegramGateway, storage: Optional[BlobStorageClient]) -> None:
        self.gateway = gateway
        self.storage = storage

    async def capture(
        self,
        account_id: UUID,
        file_id: str,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        if self.storage is None:
            logger.warning("Blob storage is not configured; dropping receipt image for %s.", account_id)
            return None
        try:
            telegram_file = await self.gateway.resolve_file(file_id)
            data = await self.gateway.download(telegram_file)
            return await self.storage.upload(receipt_path(account_id, now=now), data, "image/jpeg")
        except ExternalServiceError as exc:
            logger.warning("Receipt image for %s not stored: %s", account_id, exc)
        except Exception:
            logger.exception("Unexpected error while storing receipt image for %s.", account_id)
        return None
