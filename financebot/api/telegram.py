import logging

from fastapi import APIRouter, HTTPException, Request, status

from ..config import get_settings
from ..telegram.bot import handle_update

logger = logging.getLogger(__name__)

router = APIRouter()


def verify_secret(secret: str) -> None:
    settings = get_settings()
    if not settings.telegram_webhook_secret or secret != settings.telegram_webhook_secret:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)


@router.post("/webhook/{secret}")
async def telegram_webhook(secret: str, request: Request) -> dict[str, bool]:
    """Acknowledge every delivery so Telegram does not redeliver a failed update."""
    verify_secret(secret)
    try:
        payload = await request.json()
        await handle_update(payload)
    except Exception:
        logger.exception("Telegram update could not be processed.")
    return {"ok": True}
