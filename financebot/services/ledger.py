"""Ledger writer: persists a finalized entry and moves the bank balance.

The record insert is committed on its own before the balance is touched. A
failed balance update therefore never loses the financial record; it leaves a
balance that needs reconciling instead.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.bank_account import BankAccount
from ..models.base import utcnow
from ..models.loan import Loan, LoanKind, LoanStatus
from ..models.transaction import Transaction, TransactionKind
from ..schemas.ledger import LedgerEntry, LedgerKind, LedgerResult

logger = logging.getLogger(__name__)


class BalanceUpdateError(Exception):
    """Raised when a bank balance could not be moved after the record was stored."""


def build_record(entry: LedgerEntry) -> Transaction | Loan:
    common = {
        "id": uuid4(),
        "amount": entry.amount,
        "description": entry.description,
        "image_url": entry.image_url,
        "occurred_at": entry.occurred_at,
        "account_id": entry.account_id,
        "bank_account_id": entry.bank_account_id,
    }
    if entry.kind == LedgerKind.INCOME:
        return Transaction(kind=TransactionKind.INCOME, source="telegram", **common)
    if entry.kind == LedgerKind.EXPENSE:
        return Transaction(kind=TransactionKind.EXPENSE, source="telegram", **common)
    loan_kind = LoanKind.TAKE if entry.kind == LedgerKind.LOAN_TAKE else LoanKind.GIVE
    return Loan(kind=loan_kind, status=LoanStatus.ACTIVE, **common)


async def apply_balance_delta(
    session: AsyncSession,
    bank_account_id: UUID,
    delta: Decimal,
    *,
    max_attempts: int = 5,
) -> Decimal:
    """Add ``delta`` to a bank balance with an optimistic compare-and-swap.

    The update only lands if the balance still holds the value that was read;
    otherwise the balance is re-read and the swap retried.
    """
    for attempt in range(1, max_attempts + 1):
        result = await session.execute(
            select(BankAccount.current_balance).where(BankAccount.id == bank_account_id)
        )
        current = result.scalar_one_or_none()
        if current is None:
            raise BalanceUpdateError(f"Bank account {bank_account_id} not found.")

        current = Decimal(str(current))
        new_balance = (current + delta).quantize(Decimal("0.01"))
        swap = await session.execute(
            update(BankAccount)
            .where(
                BankAccount.id == bank_account_id,
                BankAccount.current_balance == current,
            )
            .values(current_balance=new_balance, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if swap.rowcount == 1:
            await session.commit()
            return new_balance

        await session.rollback()
        logger.info(
            "Balance of bank account %s changed concurrently; retrying (%s/%s).",
            bank_account_id,
            attempt,
            max_attempts,
        )
    raise BalanceUpdateError(
        f"Bank account {bank_account_id} kept changing; gave up after {max_attempts} attempts."
    )


async def commit_entry(
    session: AsyncSession,
    entry: LedgerEntry,
    *,
    max_balance_attempts: int = 5,
) -> LedgerResult:
    """Insert the transaction or loan row, then apply the signed bank delta."""
    record = build_record(entry)
    session.add(record)
    try:
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to record %s for account %s.", entry.kind.value, entry.account_id)
        await session.rollback()
        return LedgerResult(success=False)

    if entry.bank_account_id is None:
        return LedgerResult(success=True, record_id=record.id)

    new_balance: Optional[Decimal] = None
    try:
        new_balance = await apply_balance_delta(
            session,
            entry.bank_account_id,
            entry.kind.signed(entry.amount),
            max_attempts=max_balance_attempts,
        )
    except (SQLAlchemyError, BalanceUpdateError):
        logger.exception(
            "Recorded %s %s but bank account %s balance was not updated.",
            entry.kind.value,
            record.id,
            entry.bank_account_id,
        )
        await session.rollback()
        return LedgerResult(success=True, record_id=record.id, balance_updated=False)

    return LedgerResult(
        success=True,
        record_id=record.id,
        balance_updated=True,
        new_balance=new_balance,
    )
