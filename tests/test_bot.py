from __future__ import annotations

from datetime import datetime, timezone
from io import BytesIO
from unittest import IsolatedAsyncioTestCase, TestCase
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from telegram import Update
from telegram.constants import ParseMode
from telegram.error import TelegramError

from financebot.errors import ExternalServiceError
from financebot.telegram import bot, keyboards
from financebot.telegram.gateway import TelegramGateway
from financebot.telegram.helpers import InboundMessage
from financebot.telegram.media import MediaIntake
from tests.fake_store import FakeStore


def _payload(message: dict | None) -> dict:
    payload: dict = {"update_id": 77}
    if message is not None:
        payload["message"] = {
            "message_id": 5,
            "date": 1792368000,
            "chat": {"id": 4242, "type": "private"},
            "from": {"id": 4242, "is_bot": False, "first_name": "Asha", "username": "asha"},
            **message,
        }
    return payload


class DummyFile:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self.file_id = "file-1"

    async def download_to_memory(self, *, out: BytesIO):
        out.write(self._data)


class InboundMessageTests(TestCase):
    def test_text_message(self) -> None:
        message = InboundMessage.from_update(Update.de_json(_payload({"text": "  500 "}), None))

        self.assertEqual(message, InboundMessage(chat_id=4242, text="500", username="asha"))

    def test_photo_uses_largest_size_and_caption(self) -> None:
        photo = [
            {"file_id": "small", "file_unique_id": "s", "width": 90, "height": 90},
            {"file_id": "large", "file_unique_id": "l", "width": 1280, "height": 1280},
        ]
        message = InboundMessage.from_update(
            Update.de_json(_payload({"photo": photo, "caption": "receipt"}), None)
        )

        self.assertEqual(message.photo_file_id, "large")
        self.assertEqual(message.text, "receipt")

    def test_update_without_message_is_ignored(self) -> None:
        self.assertIsNone(InboundMessage.from_update(Update.de_json(_payload(None), None)))

    def test_start_command_detection(self) -> None:
        self.assertTrue(InboundMessage(chat_id=1, text="/START").is_start_command)
        self.assertTrue(InboundMessage(chat_id=1, text="/start abc").is_start_command)
        self.assertFalse(InboundMessage(chat_id=1, text="/starter").is_start_command)


class ProcessMessageTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.gateway = MagicMock()
        self.gateway.send_message = AsyncMock()
        self.store = FakeStore()

    async def test_reply_is_sent_with_keyboard(self) -> None:
        message = InboundMessage(chat_id=9, text="/start")

        await bot.process_message(self.store, self.gateway, message)

        chat_id, text, keyboard = self.gateway.send_message.await_args.args
        self.assertEqual(chat_id, 9)
        self.assertIn("Step 1", text)
        self.assertIsNotNone(keyboard)

    async def test_routing_failure_sends_generic_reply(self) -> None:
        message = InboundMessage(chat_id=9, text="hello")
        with patch.object(bot, "route_message", AsyncMock(side_effect=RuntimeError("db gone"))):
            with self.assertLogs("financebot.telegram.bot", level="ERROR"):
                await bot.process_message(self.store, self.gateway, message)

        self.gateway.send_message.assert_awaited_once_with(9, bot.GENERIC_FAILURE, None)

    async def test_undeliverable_reply_is_logged_not_raised(self) -> None:
        self.gateway.send_message.side_effect = ExternalServiceError("blocked by user")
        message = InboundMessage(chat_id=9, text="/start")

        with self.assertLogs("financebot.telegram.bot", level="WARNING"):
            await bot.process_message(self.store, self.gateway, message)

    async def test_handle_update_requires_initialised_bot(self) -> None:
        with patch.object(bot, "_bot", None):
            with self.assertRaises(RuntimeError):
                await bot.handle_update(_payload({"text": "hi"}))


class TelegramGatewayTests(IsolatedAsyncioTestCase):
    async def test_send_message_uses_html(self) -> None:
        telegram_bot = MagicMock()
        telegram_bot.send_message = AsyncMock()
        keyboard = keyboards.main_menu()

        await TelegramGateway(telegram_bot).send_message(1, "<b>hi</b>", keyboard)

        telegram_bot.send_message.assert_awaited_once_with(
            chat_id=1, text="<b>hi</b>", parse_mode=ParseMode.HTML, reply_markup=keyboard
        )

    async def test_telegram_errors_are_wrapped(self) -> None:
        telegram_bot = MagicMock()
        telegram_bot.send_message = AsyncMock(side_effect=TelegramError("Forbidden"))
        telegram_bot.get_file = AsyncMock(side_effect=TelegramError("file is too big"))
        gateway = TelegramGateway(telegram_bot)

        with self.assertRaises(ExternalServiceError):
            await gateway.send_message(1, "hi")
        with self.assertRaises(ExternalServiceError):
            await gateway.resolve_file("file-1")

    async def test_download_reads_into_memory(self) -> None:
        data = await TelegramGateway(MagicMock()).download(DummyFile(b"\xff\xd8jpeg"))
        self.assertEqual(data, b"\xff\xd8jpeg")


class MediaIntakeTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.account_id = uuid4()
        self.gateway = MagicMock()
        self.gateway.resolve_file = AsyncMock(return_value=DummyFile(b"img"))
        self.gateway.download = AsyncMock(return_value=b"img")
        self.storage = MagicMock()
        self.storage.upload = AsyncMock(return_value="https://cdn.example/r.jpg")

    async def test_upload_path_and_url(self) -> None:
        now = datetime(2026, 10, 19, tzinfo=timezone.utc)

        url = await MediaIntake(self.gateway, self.storage).capture(self.account_id, "large", now=now)

        self.assertEqual(url, "https://cdn.example/r.jpg")
        self.gateway.resolve_file.assert_awaited_once_with("large")
        self.storage.upload.assert_awaited_once_with(
            f"{self.account_id}/1792368000000_telegram.jpg", b"img", "image/jpeg"
        )

    async def test_missing_storage_yields_no_image(self) -> None:
        with self.assertLogs("financebot.telegram.media", level="WARNING"):
            url = await MediaIntake(self.gateway, None).capture(self.account_id, "large")

        self.assertIsNone(url)
        self.gateway.resolve_file.assert_not_awaited()

    async def test_upload_failure_yields_no_image(self) -> None:
        self.storage.upload.side_effect = ExternalServiceError("403 denied")

        with self.assertLogs("financebot.telegram.media", level="WARNING"):
            url = await MediaIntake(self.gateway, self.storage).capture(self.account_id, "large")

        self.assertIsNone(url)

    async def test_unexpected_failure_yields_no_image(self) -> None:
        self.gateway.download.side_effect = ValueError("truncated")

        with self.assertLogs("financebot.telegram.media", level="ERROR"):
            url = await MediaIntake(self.gateway, self.storage).capture(self.account_id, "large")

        self.assertIsNone(url)

