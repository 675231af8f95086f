from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from html import escape
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.account import Account
from ..models.bank_account import BankAccount
from ..models.loan import Loan, LoanKind, LoanStatus
from ..models.transaction import Transaction, TransactionKind

RULE = "━━━━━━━━━━━━━━━━━━━━━━"


class LedgerSummary(BaseModel):
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    loans_taken: Decimal = Decimal("0")
    loans_given: Decimal = Decimal("0")
    bank_total: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.total_income - self.total_expense

    @property
    def usable(self) -> Decimal:
        return self.bank_total - self.loans_taken


class StatusReport(BaseModel):
    name: str
    currency: str
    summary: LedgerSummary
    bank_accounts: list[Any]


class StatementReport(BaseModel):
    name: str
    currency: str
    transactions: list[Any]
    loans: list[Any]


def _amount(value: Any) -> Decimal:
    return Decimal(str(value or 0))


def _value(enum_or_str: Any) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


def summarize_ledger(
    transactions: Iterable[Any],
    loans: Iterable[Any],
    bank_accounts: Iterable[Any],
) -> LedgerSummary:
    """Totals per kind; only active loans count towards outstanding loans."""
    summary = LedgerSummary()
    for tx in transactions:
        if _value(tx.kind) == TransactionKind.INCOME.value:
            summary.total_income += _amount(tx.amount)
        elif _value(tx.kind) == TransactionKind.EXPENSE.value:
            summary.total_expense += _amount(tx.amount)
    for loan in loans:
        if _value(loan.status) != LoanStatus.ACTIVE.value:
            continue
        if _value(loan.kind) == LoanKind.TAKE.value:
            summary.loans_taken += _amount(loan.amount)
        else:
            summary.loans_given += _amount(loan.amount)
    for bank in bank_accounts:
        summary.bank_total += _amount(bank.current_balance)
    return summary


def running_balance(transactions: Iterable[Any]) -> list[tuple[Any, Decimal]]:
    """Walk newest-first transactions oldest first, pairing each with the balance after it."""
    ordered = sorted(reversed(list(transactions)), key=lambda tx: tx.occurred_at)
    balance = Decimal("0")
    walked: list[tuple[Any, Decimal]] = []
    for tx in ordered:
        amount = _amount(tx.amount)
        balance += amount if _value(tx.kind) == TransactionKind.INCOME.value else -amount
        walked.append((tx, balance))
    return walked


def _money(currency: str, value: Decimal) -> str:
    return f"{currency} {value:,.2f}"


def render_status(report: StatusReport) -> str:
    s = report.summary
    cur = report.currency
    if report.bank_accounts:
        bank_lines = "\n".join(
            f"  • {escape(bank.name)}: {_money(cur, _amount(bank.current_balance))}"
            for bank in report.bank_accounts
        )
    else:
        bank_lines = "  No bank accounts added"
    return "\n".join(
        [
            f"📊 <b>Financial Summary for {escape(report.name)}</b>",
            "",
            RULE,
            f"💵 <b>Total Income:</b> {_money(cur, s.total_income)}",
            f"💸 <b>Total Expenses:</b> {_money(cur, s.total_expense)}",
            f"📈 <b>Net Balance:</b> {_money(cur, s.net)}",
            "",
            f"💳 <b>Loans Taken:</b> {_money(cur, s.loans_taken)}",
            f"🤝 <b>Loans Given:</b> {_money(cur, s.loans_given)}",
            "",
            f"🏦 <b>Bank Balance:</b> {_money(cur, s.bank_total)}",
            bank_lines,
            "",
            f"✅ <b>Usable Balance:</b> {_money(cur, s.usable)}",
            RULE,
        ]
    )


def render_statement(report: StatementReport, *, today: Optional[date] = None) -> str:
    cur = report.currency
    lines = [
        "📋 <b>FINANCIAL STATEMENT</b>",
        RULE,
        f"Account Holder: <b>{escape(report.name)}</b>",
        f"Statement Date: {(today or date.today()).strftime('%d/%m/%Y')}",
        RULE,
        "",
        "<b>📝 TRANSACTION HISTORY</b>",
    ]
    walked = running_balance(report.transactions)
    if walked:
        lines.append("<code>Date  | Type | Amount       | Balance</code>")
        for tx, balance in walked:
            direction = "IN " if _value(tx.kind) == TransactionKind.INCOME.value else "OUT"
            lines.append(
                f"<code>{tx.occurred_at.strftime('%d/%m')} | {direction}  | "
                f"{_amount(tx.amount):>12,.2f} | {balance:,.2f}</code>"
            )
        lines.append("")
        lines.append(f"<b>Final Balance:</b> {_money(cur, walked[-1][1])}")
    else:
        lines.append("No transactions recorded.")

    active_loans = [loan for loan in report.loans if _value(loan.status) == LoanStatus.ACTIVE.value]
    if active_loans:
        lines.append("")
        lines.append("<b>💳 ACTIVE LOANS</b>")
        for loan in active_loans:
            label = "Borrowed" if _value(loan.kind) == LoanKind.TAKE.value else "Lent"
            note = f" ({escape(loan.description)})" if loan.description else ""
            lines.append(
                f"• {loan.occurred_at.strftime('%d/%m/%Y')} - {label}: "
                f"{_money(cur, _amount(loan.amount))}{note}"
            )
    return "\n".join(lines)


async def _account_header(session: AsyncSession, account_id: UUID, default_currency: str) -> tuple[str, str]:
    account = await session.get(Account, account_id)
    if account is None:
        return "User", default_currency
    return account.display_name(), account.currency or default_currency


async def load_status(
    session: AsyncSession,
    account_id: UUID,
    *,
    default_currency: str = "NPR",
) -> StatusReport:
    name, currency = await _account_header(session, account_id, default_currency)
    transactions = await session.execute(select(Transaction).where(Transaction.account_id == account_id))
    loans = await session.execute(select(Loan).where(Loan.account_id == account_id))
    banks = await session.execute(
        select(BankAccount)
        .where(BankAccount.account_id == account_id)
        .order_by(BankAccount.created_at.asc())
    )
    bank_accounts: Sequence[BankAccount] = banks.scalars().all()
    summary = summarize_ledger(transactions.scalars().all(), loans.scalars().all(), bank_accounts)
    return StatusReport(name=name, currency=currency, summary=summary, bank_accounts=list(bank_accounts))


async def load_statement(
    session: AsyncSession,
    account_id: UUID,
    *,
    transaction_limit: int = 50,
    loan_limit: int = 20,
    default_currency: str = "NPR",
) -> StatementReport:
    name, currency = await _account_header(session, account_id, default_currency)
    transactions = await session.execute(
        select(Transaction)
        .where(Transaction.account_id == account_id)
        .order_by(Transaction.occurred_at.desc(), Transaction.created_at.desc())
        .limit(transaction_limit)
    )
    loans = await session.execute(
        select(Loan)
        .where(Loan.account_id == account_id)
        .order_by(Loan.occurred_at.desc(), Loan.created_at.desc())
        .limit(loan_limit)
    )
    return StatementReport(
        name=name,
        currency=currency,
        transactions=list(transactions.scalars().all()),
        loans=list(loans.scalars().all()),
    )
