"""Reply keyboards; each one lists exactly the valid inputs for a step."""

from __future__ import annotations

from collections.abc import Iterable

from telegram import ReplyKeyboardMarkup, ReplyKeyboardRemove

from ..models.bank_account import BankAccount

INCOME = "📥 Income"
EXPENSE = "📤 Expense"
LOAN = "💳 Loan"
BANK_BALANCE = "🏦 Bank Balance"
REPORT = "📊 Report"
STATUS = "ℹ️ Status"
DISCONNECT = "🔓 Disconnect Account"
TAKE_LOAN = "💰 Take Loan (Borrowed)"
GIVE_LOAN = "🤝 Give Loan (Lent)"
BACK = "🔙 Back to Menu"
CASH = "💵 Cash"
BANK_PREFIX = "🏦 "
SKIP_IMAGE = "⏭️ Skip Image"
SKIP_DESCRIPTION = "Skip"
CONFIRM_DISCONNECT = "✅ Yes, Disconnect"
CANCEL = "❌ Cancel"


def bank_label(name: str) -> str:
    return f"{BANK_PREFIX}{name}"


def main_menu() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        [
            [INCOME, EXPENSE],
            [LOAN, BANK_BALANCE],
            [REPORT, STATUS],
            [DISCONNECT],
        ],
        resize_keyboard=True,
    )


def loan_kinds() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup([[TAKE_LOAN], [GIVE_LOAN], [BACK]], resize_keyboard=True)


def payment_methods(bank_accounts: Iterable[BankAccount]) -> ReplyKeyboardMarkup:
    rows = [[CASH]]
    rows.extend([bank_label(bank.name)] for bank in bank_accounts)
    rows.append([BACK])
    return ReplyKeyboardMarkup(rows, resize_keyboard=True)


def back_only() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup([[BACK]], resize_keyboard=True)


def description_options() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup([[SKIP_DESCRIPTION], [BACK]], resize_keyboard=True)


def skip_image() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup([[SKIP_IMAGE], [BACK]], resize_keyboard=True)


def confirm_disconnect() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup([[CONFIRM_DISCONNECT], [CANCEL]], resize_keyboard=True)


def remove() -> ReplyKeyboardRemove:
    return ReplyKeyboardRemove()


def button_texts(keyboard: ReplyKeyboardMarkup) -> list[str]:
    return [button.text for row in keyboard.keyboard for button in row]
