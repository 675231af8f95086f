"""Database access for one webhook delivery.

The chat flow only talks to this facade. Each delivery opens one
``AsyncSession`` and wraps it here, so every read and write of a turn goes
through the same connection and SQLAlchemy failures surface as
``PersistenceError``.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..errors import PersistenceError
from ..models.account import Account
from ..models.bank_account import BankAccount
from ..schemas.ledger import LedgerEntry, LedgerResult
from ..schemas.session_state import ChatSessionRead, MenuState, PendingAuthState
from ..services import accounts, bank_accounts, ledger, reports, sessions


@contextmanager
def _persistence(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise PersistenceError(f"Failed to {action}.") from exc


class FinanceStore:
    def __init__(self, db: AsyncSession, settings: Settings) -> None:
        self.db = db
        self.settings = settings

    async def get_session(self, chat_id: int, *, now: Optional[datetime] = None) -> Optional[ChatSessionRead]:
        with _persistence("load chat session"):
            return await sessions.get_session(
                self.db,
                chat_id,
                ttl_seconds=self.settings.auth_session_ttl_seconds,
                now=now,
            )

    async def set_state(
        self,
        chat_id: int,
        state: PendingAuthState | MenuState,
        *,
        username: Optional[str] = None,
    ) -> None:
        with _persistence("save chat session"):
            await sessions.set_state(self.db, chat_id, state, username=username)

    async def clear_pending(self, chat_id: int) -> None:
        with _persistence("clear pending session"):
            await sessions.clear_pending(self.db, chat_id)

    async def delete_session(self, chat_id: int) -> bool:
        with _persistence("delete chat session"):
            return await sessions.delete_session(self.db, chat_id)

    async def find_verified_for_account(self, account_id: UUID) -> Optional[ChatSessionRead]:
        with _persistence("look up connected chat"):
            return await sessions.find_verified_for_account(self.db, account_id)

    async def bind_verified(
        self,
        chat_id: int,
        account_id: UUID,
        *,
        username: Optional[str] = None,
    ) -> ChatSessionRead:
        with _persistence("bind chat session"):
            return await sessions.bind_verified(self.db, chat_id, account_id, username=username)

    async def find_account_by_email(self, email: str) -> Optional[Account]:
        with _persistence("look up account"):
            return await accounts.find_by_email(self.db, email)

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        with _persistence("load account"):
            return await accounts.get_account(self.db, account_id)

    async def authenticate(self, email: str, password: str) -> Account:
        with _persistence("check credentials"):
            return await accounts.authenticate(self.db, email, password)

    async def list_bank_accounts(self, account_id: UUID) -> list[BankAccount]:
        with _persistence("list bank accounts"):
            return await bank_accounts.list_for_account(self.db, account_id)

    async def commit_entry(self, entry: LedgerEntry) -> LedgerResult:
        with _persistence("record ledger entry"):
            return await ledger.commit_entry(
                self.db,
                entry,
                max_balance_attempts=self.settings.ledger_balance_retry_limit,
            )

    async def load_status(self, account_id: UUID) -> reports.StatusReport:
        with _persistence("load status report"):
            return await reports.load_status(
                self.db,
                account_id,
                default_currency=self.settings.default_currency,
            )

    async def load_statement(self, account_id: UUID) -> reports.StatementReport:
        with _persistence("load statement"):
            return await reports.load_statement(
                self.db,
                account_id,
                transaction_limit=self.settings.statement_transaction_limit,
                loan_limit=self.settings.statement_loan_limit,
                default_currency=self.settings.default_currency,
            )
