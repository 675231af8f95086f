from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest import IsolatedAsyncioTestCase

from telegram import ReplyKeyboardMarkup, ReplyKeyboardRemove

from financebot.schemas.session_state import AuthStep, MenuState, MenuStep, PendingAuthState
from financebot.telegram import keyboards
from financebot.telegram.bot import route_message
from financebot.telegram.helpers import InboundMessage
from tests.fake_store import FakeStore

NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)
CHAT = 1001
OTHER_CHAT = 2002


def msg(text: str, chat_id: int = CHAT) -> InboundMessage:
    return InboundMessage(chat_id=chat_id, text=text, username="asha")


class AuthNegotiatorTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = FakeStore()
        self.account = self.store.add_account("asha@example.com", "s3cret-pass", first_name="Asha")

    async def send(self, text: str, *, chat_id: int = CHAT, now: datetime = NOW):
        return await route_message(self.store, msg(text, chat_id), now=now)

    async def test_scenario_a_start_email_password_connects(self) -> None:
        reply = await self.send("/start")
        self.assertIn("Step 1", reply.text)
        self.assertIsInstance(reply.keyboard, ReplyKeyboardRemove)
        self.assertEqual(self.store.state_of(CHAT).step, AuthStep.AWAIT_EMAIL)

        reply = await self.send("Asha@Example.com")
        self.assertIn("Step 2", reply.text)
        state = self.store.state_of(CHAT)
        self.assertEqual(state.step, AuthStep.AWAIT_PASSWORD)
        self.assertEqual(state.email, "asha@example.com")

        reply = await self.send("s3cret-pass")
        self.assertIn("Account Connected Successfully", reply.text)
        self.assertIsInstance(reply.keyboard, ReplyKeyboardMarkup)
        self.assertIn(keyboards.INCOME, keyboards.button_texts(reply.keyboard))
        row = self.store.rows[CHAT]
        self.assertTrue(row["verified"])
        self.assertEqual(row["account_id"], self.account.id)
        self.assertEqual(self.store.state_of(CHAT), MenuState.idle())

    async def test_scenario_e_restart_when_verified_goes_to_idle(self) -> None:
        self.store.put_row(
            CHAT,
            MenuState.idle().advance(MenuStep.PAYMENT, amount=Decimal("40")),
            account_id=self.account.id,
            verified=True,
        )

        reply = await self.send("/start")

        self.assertIn("Welcome back, Asha", reply.text)
        self.assertNotIn("Step 1", reply.text)
        self.assertEqual(keyboards.button_texts(reply.keyboard), keyboards.button_texts(keyboards.main_menu()))
        self.assertTrue(self.store.rows[CHAT]["verified"])
        self.assertEqual(self.store.state_of(CHAT), MenuState.idle())

    async def test_start_with_payload_counts_as_start(self) -> None:
        reply = await self.send("/start connect")
        self.assertIn("Step 1", reply.text)

    async def test_message_without_session_asks_for_start(self) -> None:
        reply = await self.send("hello")

        self.assertIn("Authentication Required", reply.text)
        self.assertNotIn(CHAT, self.store.rows)

    async def test_invalid_email_keeps_state(self) -> None:
        await self.send("/start")
        before = self.store.rows[CHAT]["state"]

        reply = await self.send("asha-at-example")

        self.assertIn("Invalid email format", reply.text)
        self.assertEqual(self.store.rows[CHAT]["state"], before)

    async def test_unknown_or_unapproved_email_keeps_state(self) -> None:
        self.store.add_account("pending@example.com", "pw", approved=False)
        await self.send("/start")

        for email in ("ghost@example.com", "pending@example.com"):
            with self.subTest(email=email):
                reply = await self.send(email)
                self.assertIn("Account not found", reply.text)
                self.assertEqual(self.store.state_of(CHAT).step, AuthStep.AWAIT_EMAIL)
                self.assertEqual(self.store.state_of(CHAT).attempts, 0)

    async def test_account_connected_elsewhere_is_refused(self) -> None:
        self.store.put_row(OTHER_CHAT, MenuState.idle(), account_id=self.account.id, verified=True)
        await self.send("/start")

        reply = await self.send("asha@example.com")

        self.assertIn("Already Connected", reply.text)
        self.assertEqual(self.store.state_of(CHAT).step, AuthStep.AWAIT_EMAIL)
        self.assertTrue(self.store.rows[OTHER_CHAT]["verified"])

    async def test_fourth_failed_password_clears_session(self) -> None:
        await self.send("/start")
        await self.send("asha@example.com")

        for attempt, remaining in ((1, 3), (2, 2), (3, 1)):
            reply = await self.send("wrong")
            self.assertIn(f"<b>{remaining}</b> attempt(s) remaining", reply.text)
            self.assertEqual(self.store.state_of(CHAT).attempts, attempt)

        reply = await self.send("wrong")

        self.assertIn("Too many failed attempts", reply.text)
        self.assertNotIn(CHAT, self.store.rows)
        reply = await self.send("s3cret-pass")
        self.assertIn("Authentication Required", reply.text)

    async def test_correct_password_on_last_retry_connects(self) -> None:
        await self.send("/start")
        await self.send("asha@example.com")
        for _ in range(3):
            await self.send("wrong")

        reply = await self.send("s3cret-pass")

        self.assertIn("Account Connected Successfully", reply.text)
        self.assertTrue(self.store.rows[CHAT]["verified"])

    async def test_expired_challenge_is_treated_as_absent(self) -> None:
        self.store.put_row(
            CHAT,
            PendingAuthState(
                step=AuthStep.AWAIT_PASSWORD,
                email="asha@example.com",
                attempts=2,
                issued_at=NOW - timedelta(minutes=11),
            ),
        )

        reply = await self.send("s3cret-pass")

        self.assertIn("Authentication Required", reply.text)
        self.assertNotIn(CHAT, self.store.rows)

    async def test_binding_evicts_previous_device(self) -> None:
        self.store.put_row(OTHER_CHAT, MenuState.idle(), account_id=self.account.id, verified=True)
        self.store.put_row(
            CHAT,
            PendingAuthState(step=AuthStep.AWAIT_PASSWORD, email="asha@example.com", issued_at=NOW),
        )

        reply = await self.send("s3cret-pass")

        self.assertIn("Account Connected Successfully", reply.text)
        verified = [chat for chat, row in self.store.rows.items() if row["verified"] and row["account_id"] == self.account.id]
        self.assertEqual(verified, [CHAT])
