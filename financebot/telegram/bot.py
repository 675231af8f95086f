from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Any, Optional

from telegram import Bot, Update

from ..config import get_settings
from ..db import SessionLocal
from ..errors import ExternalServiceError
from ..services.storage import BlobStorageClient, build_storage_client
from . import auth
from .conversation import ConversationEngine
from .gateway import TelegramGateway
from .helpers import InboundMessage, Reply
from .media import MediaIntake
from .store import FinanceStore

logger = logging.getLogger(__name__)

ALLOWED_UPDATES = ["message"]
GENERIC_FAILURE = "❌ Something went wrong. Please try again."

_bot: Bot | None = None
_gateway: TelegramGateway | None = None
_storage: BlobStorageClient | None = None
_lock = asyncio.Lock()


async def route_message(
    store: FinanceStore,
    message: InboundMessage,
    *,
    media: Optional[MediaIntake] = None,
    now: Optional[datetime] = None,
) -> Reply:
    """Pick the handler for one message and return its reply.

    State is persisted by the handler before this returns.
    """
    if message.is_start_command:
        return await auth.handle_start(store, message, now=now)

    session = await store.get_session(message.chat_id, now=now)
    if session is None or not session.verified or session.account_id is None:
        return await auth.handle_credentials(store, session, message, now=now)
    return await ConversationEngine(store, media).handle(session, message)


async def process_message(
    store: FinanceStore,
    gateway: TelegramGateway,
    message: InboundMessage,
    *,
    media: Optional[MediaIntake] = None,
    now: Optional[datetime] = None,
) -> None:
    """Handle one message end to end; never raises."""
    try:
        reply = await route_message(store, message, media=media, now=now)
    except Exception:
        logger.exception("Failed to handle message from chat %s.", message.chat_id)
        reply = Reply(GENERIC_FAILURE)

    try:
        await gateway.send_message(message.chat_id, reply.text, reply.keyboard)
    except ExternalServiceError as exc:
        logger.warning("Reply to chat %s was not delivered: %s", message.chat_id, exc)
    except Exception:
        logger.exception("Unexpected error while replying to chat %s.", message.chat_id)


async def init_bot() -> None:
    """Initialise the Telegram bot and optionally register the webhook."""
    settings = get_settings()
    if not settings.telegram_bot_token or not settings.telegram_webhook_secret:
        logger.info("Telegram bot or webhook secret not configured; skipping bot initialisation.")
        return

    async with _lock:
        global _bot, _gateway, _storage
        if _bot is not None:
            return

        bot = Bot(settings.telegram_bot_token)
        try:
            await bot.initialize()
            if settings.telegram_register_webhook_on_start:
                if settings.backend_base_url:
                    base_url = str(settings.backend_base_url)
                    webhook_url = base_url.rstrip("/") + f"/api/telegram/webhook/{settings.telegram_webhook_secret}"
                    await bot.set_webhook(url=webhook_url, drop_pending_updates=False, allowed_updates=ALLOWED_UPDATES)
                    logger.info("Telegram webhook configured at %s", webhook_url)
                else:
                    logger.warning("BACKEND_BASE_URL is missing; skipping Telegram webhook registration.")
        except Exception:
            logger.exception("Failed to initialise Telegram bot; bot disabled for this run.")
            with contextlib.suppress(Exception):
                await bot.shutdown()
            return

        storage = build_storage_client()
        if storage is None:
            logger.info("Blob storage not configured; receipt images will be skipped.")

        _bot = bot
        _gateway = TelegramGateway(bot)
        _storage = storage


async def handle_update(payload: dict[str, Any]) -> None:
    """Process a Telegram update forwarded by FastAPI."""
    async with _lock:
        if _bot is None or _gateway is None:
            raise RuntimeError("Telegram bot is not initialised.")
        bot, gateway, storage = _bot, _gateway, _storage

    message = InboundMessage.from_update(Update.de_json(payload, bot))
    if message is None:
        return

    settings = get_settings()
    async with SessionLocal() as db:
        store = FinanceStore(db, settings)
        await process_message(store, gateway, message, media=MediaIntake(gateway, storage))


async def shutdown_bot() -> None:
    """Release the Telegram bot and the storage client."""
    async with _lock:
        global _bot, _gateway, _storage
        if _bot is None:
            return
        await _bot.shutdown()
        if _storage:
            await _storage.aclose()
        _bot = None
        _gateway = None
        _storage = None
