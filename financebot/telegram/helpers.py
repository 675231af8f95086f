from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from telegram import ReplyKeyboardMarkup, ReplyKeyboardRemove, Update

from ..errors import InputValidationError

AMOUNT_PATTERN = re.compile(r"^\d+(\.\d+)?$")
SKIP_TOKEN = "skip"
# Amounts are stored as Numeric(14, 2).
MAX_AMOUNT = Decimal("999999999999.99")

Keyboard = Union[ReplyKeyboardMarkup, ReplyKeyboardRemove]


@dataclass(frozen=True)
class Reply:
    """Outbound message produced by a handler; sent once state is persisted."""

    text: str
    keyboard: Optional[Keyboard] = None


@dataclass(frozen=True)
class InboundMessage:
    """The parts of a Telegram message the chat flow reads."""

    chat_id: int
    text: str = ""
    username: Optional[str] = None
    photo_file_id: Optional[str] = None

    @classmethod
    def from_update(cls, update: Update) -> Optional["InboundMessage"]:
        message = update.message
        if message is None:
            return None
        # Telegram lists photo sizes smallest first.
        photo_file_id = message.photo[-1].file_id if message.photo else None
        text = message.text or message.caption or ""
        username = message.from_user.username if message.from_user else None
        return cls(
            chat_id=message.chat.id,
            text=text.strip(),
            username=username,
            photo_file_id=photo_file_id,
        )

    @property
    def is_start_command(self) -> bool:
        lowered = self.text.lower()
        return lowered == "/start" or lowered.startswith("/start ")


def parse_amount(raw: str) -> Decimal:
    """Digits with an optional fractional part, strictly positive."""
    text = raw.strip()
    if not AMOUNT_PATTERN.match(text):
        raise InputValidationError("❌ Invalid entry. Please enter a valid amount (numbers only).")
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise InputValidationError("❌ Invalid entry. Please enter a valid amount (numbers only).") from exc
    if value <= 0:
        raise InputValidationError("❌ Please enter a valid amount greater than 0")
    if value > MAX_AMOUNT:
        raise InputValidationError("❌ Amount is too large. Please enter a smaller amount.")
    if value != value.quantize(Decimal("0.01")):
        raise InputValidationError("❌ Please enter an amount with at most 2 decimal places.")
    return value


def is_skip_token(text: Optional[str]) -> bool:
    return (text or "").strip().lower() == SKIP_TOKEN


def format_amount(amount: Decimal) -> str:
    """Plain amount as typed back to the user: ``500`` rather than ``500.00``."""
    normalised = amount.normalize()
    if normalised == normalised.to_integral():
        return f"{normalised.quantize(Decimal(1)):f}"
    return f"{normalised:f}"
