from __future__ import annotations

import logging
from io import BytesIO
from typing import Optional

from telegram import Bot, File
from telegram.constants import ParseMode
from telegram.error import TelegramError

from ..errors import ExternalServiceError
from .helpers import Keyboard

logger = logging.getLogger(__name__)


class TelegramGateway:
    """Thin wrapper over ``telegram.Bot`` for the calls the chat flow makes."""

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def send_message(self, chat_id: int, text: str, keyboard: Optional[Keyboard] = None) -> None:
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                reply_markup=keyboard,
            )
        except TelegramError as exc:
            raise ExternalServiceError(f"Could not send message to chat {chat_id}: {exc}") from exc

    async def resolve_file(self, file_id: str) -> File:
        try:
            return await self.bot.get_file(file_id)
        except TelegramError as exc:
            raise ExternalServiceError(f"Could not resolve Telegram file {file_id}: {exc}") from exc

    async def download(self, file: File) -> bytes:
        buffer = BytesIO()
        try:
            await file.download_to_memory(out=buffer)
        except TelegramError as exc:
            raise ExternalServiceError(f"Could not download Telegram file {file.file_id}: {exc}") from exc
        return buffer.getvalue()
