from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import sys
from pathlib import Path

CURRENT_DIR = Path(__file__).resolve().parents[2]
if str(CURRENT_DIR) not in sys.path:
    sys.path.insert(0, str(CURRENT_DIR))

from telethon import TelegramClient

from integration_tests.telegram_bot.common import (
    TestConfig,
    TelegramBotInteractor,
    connect_account,
    ensure_authorized,
    keyboard_labels,
)

logger = logging.getLogger(__name__)


class BasicFlowsTester:
    def __init__(self, interactor: TelegramBotInteractor, config: TestConfig) -> None:
        self.interactor = interactor
        self.config = config

    async def run(self) -> None:
        menu = await connect_account(self.interactor, self.config)
        labels = keyboard_labels(menu)
        if "📥 Income" not in labels:
            raise RuntimeError(f"Main menu keyboard missing, got {labels!r}")

        await self.interactor.send_and_expect("/start", "welcome back")

        await self.interactor.send_and_expect("📥 Income", "record income")
        await self.interactor.send_and_expect("abc", "invalid entry")
        await self.interactor.send_and_expect("125.50", "select payment method")
        await self.interactor.send_and_expect("💵 Cash", "description")
        description = f"integration test {datetime.utcnow().isoformat()}"
        await self.interactor.send_and_expect(description, "upload proof")
        await self.interactor.send_and_expect("⏭️ Skip Image", "income recorded")

        await self.interactor.send_and_expect("📤 Expense", "record expense")
        await self.interactor.send_and_expect("40", "select payment method")
        await self.interactor.send_and_expect("🔙 Back to Menu", "main menu")

        await self.interactor.send_and_expect("💳 Loan", "select loan type")
        await self.interactor.send_and_expect("💰 Take Loan (Borrowed)", "borrowed")
        await self.interactor.send_and_expect("200", "select payment method")
        await self.interactor.send_and_expect("💵 Cash", "description")
        await self.interactor.send_and_expect("skip", "upload proof")
        await self.interactor.send_and_expect("⏭️ Skip Image", "loan (borrowed) recorded")

        await self.interactor.send_and_expect("ℹ️ Status", "financial summary")
        await self.interactor.send_and_expect("📊 Report", "financial statement")

        logger.info("Basic bot flow test completed successfully")


class DisconnectFlowTester:
    def __init__(self, interactor: TelegramBotInteractor, config: TestConfig) -> None:
        self.interactor = interactor
        self.config = config

    async def run(self) -> None:
        await connect_account(self.interactor, self.config)
        await self.interactor.send_and_expect("🔓 Disconnect Account", "disconnect account?")
        await self.interactor.send_and_expect("❌ Cancel", "still connected")
        await self.interactor.send_and_expect("🔓 Disconnect Account", "disconnect account?")
        await self.interactor.send_and_expect("✅ Yes, Disconnect", "disconnected successfully")
        await self.interactor.send_and_expect("📥 Income", "authentication required")
        logger.info("Disconnect flow test completed successfully")


def load_client(config: TestConfig) -> TelegramClient:
    return TelegramClient(str(config.session_path), config.api_id, config.api_hash)


async def main_async() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    config = TestConfig.from_env()
    client = load_client(config)
    await client.connect()
    try:
        await ensure_authorized(client, config)
        interactor = TelegramBotInteractor(client, config.bot_username)
        await interactor.initialise()
        await BasicFlowsTester(interactor, config).run()
        await DisconnectFlowTester(interactor, config).run()
    finally:
        await client.disconnect()


def main() -> None:
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
