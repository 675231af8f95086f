from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.bank_account import BankAccount


async def list_for_account(session: AsyncSession, account_id: UUID) -> list[BankAccount]:
    result = await session.execute(
        select(BankAccount)
        .where(BankAccount.account_id == account_id)
        .order_by(BankAccount.created_at.asc())
    )
    return list(result.scalars().all())


def match_by_name(bank_accounts: list[BankAccount], name: str) -> Optional[BankAccount]:
    """Exact name match, as shown on the payment keyboard."""
    return next((bank for bank in bank_accounts if bank.name == name), None)
