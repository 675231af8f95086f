"""Email and password challenge that binds a chat to an account.

``/start`` opens a pending challenge (or greets an already connected chat),
then the chat supplies an email and a password. Password failures are
counted on the stored challenge; once the retry limit is exceeded the
challenge is dropped and the chat has to ``/start`` again.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from html import escape
from typing import Optional

from ..errors import AuthError
from ..schemas.session_state import AuthStep, ChatSessionRead, MenuState, PendingAuthState
from ..services.accounts import is_valid_email, normalise_email
from . import keyboards
from .helpers import InboundMessage, Reply
from .store import FinanceStore

logger = logging.getLogger(__name__)

RULE = "━━━━━━━━━━━━━━━━━━━━━━"

AUTH_REQUIRED = (
    "🔐 <b>Authentication Required</b>\n\n"
    "Please send /start to connect this chat to your Finance Manager account."
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def handle_start(
    store: FinanceStore,
    message: InboundMessage,
    *,
    now: Optional[datetime] = None,
) -> Reply:
    """Restart the conversation for a chat.

    A connected chat goes straight back to the idle menu; any other chat gets
    a fresh email challenge.
    """
    await store.clear_pending(message.chat_id)

    existing = await store.get_session(message.chat_id, now=now)
    if existing is not None and existing.verified and existing.account_id is not None:
        await store.set_state(message.chat_id, MenuState.idle())
        account = await store.get_account(existing.account_id)
        name = account.display_name() if account else "User"
        return Reply(
            f"👋 <b>Welcome back, {escape(name)}!</b>\n\n"
            "Your account is already connected.\n\n"
            "<b>Choose an option below:</b>",
            keyboards.main_menu(),
        )

    challenge = PendingAuthState(step=AuthStep.AWAIT_EMAIL, attempts=0, issued_at=now or _utcnow())
    await store.set_state(message.chat_id, challenge, username=message.username)
    return Reply(
        "🎉 <b>Welcome to Finance Manager Bot!</b>\n\n"
        "I help you record financial transactions directly from Telegram.\n\n"
        "🔐 <b>Secure Account Connection</b>\n\n"
        "📧 <b>Step 1:</b> Enter the email address of your Finance Manager account:",
        keyboards.remove(),
    )


async def handle_credentials(
    store: FinanceStore,
    session: Optional[ChatSessionRead],
    message: InboundMessage,
    *,
    now: Optional[datetime] = None,
) -> Reply:
    """Advance the pending challenge of an unverified chat."""
    if session is None or not isinstance(session.state, PendingAuthState):
        return Reply(AUTH_REQUIRED, keyboards.remove())

    state = session.state
    if state.step == AuthStep.AWAIT_EMAIL:
        return await _accept_email(store, message, now=now or _utcnow())
    return await _accept_password(store, state, message)


async def _accept_email(store: FinanceStore, message: InboundMessage, *, now: datetime) -> Reply:
    email = message.text
    if not is_valid_email(email):
        return Reply("❌ <b>Invalid email format!</b>\n\nPlease enter a valid email address.")

    account = await store.find_account_by_email(email)
    if account is None:
        return Reply(
            "❌ <b>Account not found!</b>\n\n"
            "No approved Finance Manager account uses this email. Please check it and try again."
        )

    holder = await store.find_verified_for_account(account.id)
    if holder is not None and holder.chat_id != message.chat_id:
        logger.info("Account %s is already bound to chat %s.", account.id, holder.chat_id)
        return Reply(
            "⚠️ <b>Account Already Connected!</b>\n\n"
            "This account is already connected to another Telegram device.\n\n"
            "Only <b>one device</b> can be connected at a time. "
            "Disconnect the other device first, then send /start again."
        )

    challenge = PendingAuthState(
        step=AuthStep.AWAIT_PASSWORD,
        email=normalise_email(email),
        attempts=0,
        issued_at=now,
    )
    await store.set_state(message.chat_id, challenge, username=message.username)
    return Reply(
        "✅ <b>Email verified!</b>\n\n"
        f"📧 Email: <code>{escape(challenge.email or '')}</code>\n\n"
        "🔑 <b>Step 2:</b> Enter your password to complete verification:"
    )


async def _accept_password(
    store: FinanceStore,
    state: PendingAuthState,
    message: InboundMessage,
) -> Reply:
    limit = store.settings.auth_password_retry_limit
    attempted = state.model_copy(update={"attempts": state.attempts + 1})
    # Persist the attempt before checking the password.
    await store.set_state(message.chat_id, attempted, username=message.username)

    try:
        account = await store.authenticate(state.email or "", message.text)
    except AuthError as exc:
        logger.info("Password attempt %s failed for chat %s: %s", attempted.attempts, message.chat_id, exc)
        if attempted.attempts > limit:
            await store.clear_pending(message.chat_id)
            return Reply(
                "🚫 <b>Too many failed attempts!</b>\n\n"
                "For security, this connection attempt has been cancelled.\n\n"
                "Send /start to restart.",
                keyboards.remove(),
            )
        remaining = limit + 1 - attempted.attempts
        return Reply(
            "❌ <b>Invalid password!</b>\n\n"
            f"You have <b>{remaining}</b> attempt(s) remaining.\n\n"
            "Please enter your correct password:"
        )

    await store.bind_verified(message.chat_id, account.id, username=message.username)
    logger.info("Chat %s connected to account %s.", message.chat_id, account.id)
    return Reply(
        "✅ <b>Account Connected Successfully!</b>\n\n"
        f"Welcome, <b>{escape(account.display_name())}</b>! 🎉\n\n"
        f"{RULE}\n"
        "🔐 <b>Securely Authenticated</b>\n"
        f"📧 {escape(account.email)}\n"
        f"{RULE}\n\n"
        "<b>Available Options:</b>\n"
        "📥 <b>Income</b> - Record money received\n"
        "📤 <b>Expense</b> - Record money spent\n"
        "💳 <b>Loan</b> - Track borrowed/lent money\n"
        "🏦 <b>Bank Balance</b> - View account summary\n"
        "📊 <b>Report</b> - Full statement\n\n"
        "<b>Choose an option below:</b>",
        keyboards.main_menu(),
    )
