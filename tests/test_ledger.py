from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest import IsolatedAsyncioTestCase, TestCase
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from sqlalchemy.exc import OperationalError

from financebot.models.loan import Loan, LoanKind, LoanStatus
from financebot.models.transaction import Transaction, TransactionKind
from financebot.schemas.ledger import LedgerEntry, LedgerKind
from financebot.services import ledger


def balance_row(value: str | None) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = None if value is None else Decimal(value)
    return result


def swap_result(rowcount: int) -> SimpleNamespace:
    return SimpleNamespace(rowcount=rowcount)


class DummySession:
    def __init__(self) -> None:
        self.add = MagicMock()
        self.execute: AsyncMock = AsyncMock()
        self.commit: AsyncMock = AsyncMock()
        self.rollback: AsyncMock = AsyncMock()


class LedgerKindTests(TestCase):
    def test_signed_delta_per_kind(self) -> None:
        amount = Decimal("200.00")
        self.assertEqual(LedgerKind.INCOME.signed(amount), Decimal("200.00"))
        self.assertEqual(LedgerKind.LOAN_TAKE.signed(amount), Decimal("200.00"))
        self.assertEqual(LedgerKind.EXPENSE.signed(amount), Decimal("-200.00"))
        self.assertEqual(LedgerKind.LOAN_GIVE.signed(amount), Decimal("-200.00"))

    def test_entry_rejects_non_positive_amount(self) -> None:
        with self.assertRaises(ValueError):
            LedgerEntry(account_id=uuid4(), kind=LedgerKind.INCOME, amount=Decimal("0"))

    def test_blank_description_becomes_none(self) -> None:
        entry = LedgerEntry(account_id=uuid4(), kind=LedgerKind.INCOME, amount=Decimal("5"), description="   ")
        self.assertIsNone(entry.description)

    def test_build_record_maps_kinds(self) -> None:
        account_id = uuid4()
        income = ledger.build_record(LedgerEntry(account_id=account_id, kind=LedgerKind.INCOME, amount=Decimal("1")))
        give = ledger.build_record(LedgerEntry(account_id=account_id, kind=LedgerKind.LOAN_GIVE, amount=Decimal("1")))

        self.assertIsInstance(income, Transaction)
        self.assertEqual(income.kind, TransactionKind.INCOME)
        self.assertEqual(income.source, "telegram")
        self.assertIsInstance(give, Loan)
        self.assertEqual(give.kind, LoanKind.GIVE)
        self.assertEqual(give.status, LoanStatus.ACTIVE)


class ApplyBalanceDeltaTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.session = DummySession()
        self.bank_id = uuid4()

    async def test_swap_lands_on_first_attempt(self) -> None:
        self.session.execute.side_effect = [balance_row("1000.00"), swap_result(1)]

        new_balance = await ledger.apply_balance_delta(self.session, self.bank_id, Decimal("500"))

        self.assertEqual(new_balance, Decimal("1500.00"))
        self.session.commit.assert_awaited_once()
        self.session.rollback.assert_not_awaited()

    async def test_concurrent_writer_forces_reread(self) -> None:
        # Another commit moves the balance from 1000 to 1200 between our read and our swap.
        self.session.execute.side_effect = [
            balance_row("1000.00"),
            swap_result(0),
            balance_row("1200.00"),
            swap_result(1),
        ]

        new_balance = await ledger.apply_balance_delta(self.session, self.bank_id, Decimal("-300"))

        self.assertEqual(new_balance, Decimal("900.00"))
        self.assertEqual(self.session.execute.await_count, 4)
        self.session.rollback.assert_awaited_once()
        self.session.commit.assert_awaited_once()

    async def test_gives_up_after_max_attempts(self) -> None:
        self.session.execute.side_effect = [balance_row("10"), swap_result(0)] * 3

        with self.assertRaises(ledger.BalanceUpdateError):
            await ledger.apply_balance_delta(self.session, self.bank_id, Decimal("1"), max_attempts=3)

        self.session.commit.assert_not_awaited()

    async def test_missing_bank_account(self) -> None:
        self.session.execute.side_effect = [balance_row(None)]

        with self.assertRaises(ledger.BalanceUpdateError):
            await ledger.apply_balance_delta(self.session, self.bank_id, Decimal("1"))


class CommitEntryTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.session = DummySession()
        self.account_id = uuid4()
        self.bank_id = uuid4()

    async def test_income_against_bank_moves_balance(self) -> None:
        self.session.execute.side_effect = [balance_row("1000.00"), swap_result(1)]
        entry = LedgerEntry(
            account_id=self.account_id,
            kind=LedgerKind.INCOME,
            amount=Decimal("500"),
            bank_account_id=self.bank_id,
        )

        result = await ledger.commit_entry(self.session, entry)

        self.assertTrue(result.success)
        self.assertTrue(result.balance_updated)
        self.assertEqual(result.new_balance, Decimal("1500.00"))
        record = self.session.add.call_args.args[0]
        self.assertIsInstance(record, Transaction)
        self.assertEqual(record.kind, TransactionKind.INCOME)
        self.assertEqual(record.amount, Decimal("500.00"))
        self.assertEqual(result.record_id, record.id)
        self.assertEqual(self.session.commit.await_count, 2)

    async def test_cash_loan_take_leaves_balances_alone(self) -> None:
        entry = LedgerEntry(account_id=self.account_id, kind=LedgerKind.LOAN_TAKE, amount=Decimal("200"))

        result = await ledger.commit_entry(self.session, entry)

        self.assertTrue(result.success)
        self.assertFalse(result.balance_updated)
        self.session.execute.assert_not_awaited()
        record = self.session.add.call_args.args[0]
        self.assertIsInstance(record, Loan)
        self.assertEqual(record.kind, LoanKind.TAKE)
        self.assertEqual(record.amount, Decimal("200.00"))

    async def test_insert_failure_stops_before_balance(self) -> None:
        self.session.commit.side_effect = OperationalError("INSERT", {}, Exception("db down"))
        entry = LedgerEntry(
            account_id=self.account_id,
            kind=LedgerKind.EXPENSE,
            amount=Decimal("10"),
            bank_account_id=self.bank_id,
        )

        with self.assertLogs("financebot.services.ledger", level="ERROR"):
            result = await ledger.commit_entry(self.session, entry)

        self.assertFalse(result.success)
        self.assertIsNone(result.record_id)
        self.session.rollback.assert_awaited_once()
        self.session.execute.assert_not_awaited()

    async def test_balance_failure_keeps_record(self) -> None:
        self.session.execute.side_effect = [balance_row(None)]
        entry = LedgerEntry(
            account_id=self.account_id,
            kind=LedgerKind.EXPENSE,
            amount=Decimal("10"),
            bank_account_id=self.bank_id,
        )

        with self.assertLogs("financebot.services.ledger", level="ERROR"):
            result = await ledger.commit_entry(self.session, entry)

        self.assertTrue(result.success)
        self.assertFalse(result.balance_updated)
        self.assertIsNotNone(result.record_id)
        self.session.commit.assert_awaited_once()
