from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv
from telethon import TelegramClient, events
from telethon.errors import SessionPasswordNeededError
from telethon.tl.custom.message import Message

logger = logging.getLogger(__name__)

load_dotenv()


@dataclass
class TestConfig:
    api_id: int
    api_hash: str
    phone_number: str
    bot_username: str
    account_email: str
    account_password: str
    session_path: Path

    @classmethod
    def from_env(cls) -> "TestConfig":
        try:
            api_id = int(os.environ["TELEGRAM_TEST_API_ID"])
            api_hash = os.environ["TELEGRAM_TEST_API_HASH"]
            phone = os.environ["TELEGRAM_TEST_PHONE"]
            account_email = os.environ["FINANCEBOT_TEST_EMAIL"]
            account_password = os.environ["FINANCEBOT_TEST_PASSWORD"]
        except KeyError as exc:
            raise SystemExit(f"Missing required env var: {exc.args[0]}") from exc

        bot_username = os.environ.get("TELEGRAM_MAIN_BOT_USERNAME")
        if not bot_username:
            raise SystemExit(
                "Set TELEGRAM_MAIN_BOT_USERNAME to the bot username (e.g. @FinanceManagerBot)."
            )

        session_file = Path(
            os.environ.get(
                "TELEGRAM_TEST_SESSION",
                "integration_tests/telegram_bot/test_user.session",
            )
        )
        session_file.parent.mkdir(parents=True, exist_ok=True)
        return cls(
            api_id=api_id,
            api_hash=api_hash,
            phone_number=phone,
            bot_username=bot_username,
            account_email=account_email,
            account_password=account_password,
            session_path=session_file,
        )


class TelegramBotInteractor:
    def __init__(self, client: TelegramClient, bot_username: str) -> None:
        self.client = client
        self.bot_username = bot_username
        self._bot_entity = None

    async def initialise(self) -> None:
        self._bot_entity = await self.client.get_entity(self.bot_username)

    async def send_and_expect(
        self,
        text: str,
        expectations: list[str] | str,
        *,
        timeout: float = 60.0,
    ) -> Message:
        expectations_list = [expectations] if isinstance(expectations, str) else expectations
        expectations_lower = [exp.lower() for exp in expectations_list]

        def predicate(msg: Message) -> bool:
            text_lower = (msg.text or "").lower()
            if not text_lower:
                return False
            return any(exp in text_lower for exp in expectations_lower)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[Message] = loop.create_future()

        async def handler(event: events.NewMessage.Event) -> None:
            if predicate(event.message) and not future.done():
                future.set_result(event.message)

        self.client.add_event_handler(handler, events.NewMessage(from_users=self._bot_entity))
        try:
            await self.client.send_message(self._bot_entity, text)
            return await asyncio.wait_for(future, timeout)
        finally:
            self.client.remove_event_handler(handler)

    async def wait_for(self, predicate: Callable[[Message], bool], *, timeout: float = 60.0) -> Message:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Message] = loop.create_future()

        async def handler(event: events.NewMessage.Event) -> None:
            if predicate(event.message) and not future.done():
                future.set_result(event.message)

        self.client.add_event_handler(handler, events.NewMessage(from_users=self._bot_entity))
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            self.client.remove_event_handler(handler)


def keyboard_labels(message: Message) -> list[str]:
    """Button texts of the reply keyboard attached to a bot message."""
    markup = message.reply_markup
    rows = getattr(markup, "rows", None) or []
    return [button.text for row in rows for button in row.buttons]


async def connect_account(interactor: TelegramBotInteractor, config: TestConfig) -> Message:
    """Run the /start, email, password handshake and return the menu message."""
    start = await interactor.send_and_expect("/start", ["welcome back", "step 1"])
    if "welcome back" in (start.text or "").lower():
        return start
    await interactor.send_and_expect(config.account_email, "step 2")
    return await interactor.send_and_expect(config.account_password, "connected successfully")


async def ensure_authorized(client: TelegramClient, config: TestConfig) -> None:
    if await client.is_user_authorized():
        return
    logger.info("Authorising Telegram client for %s", config.phone_number)
    await client.send_code_request(config.phone_number)
    code = input("Enter the login code Telegram sent to your user: ")
    try:
        await client.sign_in(config.phone_number, code)
    except SessionPasswordNeededError:
        password = os.environ.get("TELEGRAM_TEST_PASSWORD")
        if not password:
            password = input("Enter your Telegram 2FA password: ")
        await client.sign_in(password=password)
