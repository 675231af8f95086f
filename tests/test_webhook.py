from __future__ import annotations

from types import SimpleNamespace
from unittest import TestCase
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from financebot import main

SECRET = "hook-secret"


class WebhookTests(TestCase):
    def setUp(self) -> None:
        patches = [
            patch("financebot.main.init_db", new=AsyncMock()),
            patch("financebot.main.dispose_db", new=AsyncMock()),
            patch("financebot.main.init_bot", new=AsyncMock()),
            patch("financebot.main.shutdown_bot", new=AsyncMock()),
            patch(
                "financebot.api.telegram.get_settings",
                return_value=SimpleNamespace(telegram_webhook_secret=SECRET),
            ),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)
        self.handle_update = AsyncMock()
        update_patch = patch("financebot.api.telegram.handle_update", new=self.handle_update)
        update_patch.start()
        self.addCleanup(update_patch.stop)

        self.client = TestClient(main.app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def test_wrong_secret_is_not_found(self) -> None:
        response = self.client.post("/api/telegram/webhook/guess", json={"update_id": 1})

        self.assertEqual(response.status_code, 404)
        self.handle_update.assert_not_awaited()

    def test_update_is_forwarded(self) -> None:
        payload = {"update_id": 1, "message": {"message_id": 1}}

        response = self.client.post(f"/api/telegram/webhook/{SECRET}", json=payload)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True})
        self.handle_update.assert_awaited_once_with(payload)

    def test_handler_failure_is_still_acknowledged(self) -> None:
        self.handle_update.side_effect = RuntimeError("Telegram bot is not initialised.")

        with self.assertLogs("financebot.api.telegram", level="ERROR"):
            response = self.client.post(f"/api/telegram/webhook/{SECRET}", json={"update_id": 2})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True})

    def test_healthcheck(self) -> None:
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})
