from __future__ import annotations

import logging
import re
from typing import Optional
from uuid import UUID

import anyio
from passlib.context import CryptContext
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import AuthError
from ..models.account import Account

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

pwd_context = CryptContext(schemes=["bcrypt", "pbkdf2_sha256"], deprecated="auto")


def normalise_email(value: str) -> str:
    return value.strip().lower()


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value.strip()))


def verify_password(account: Account, password: str) -> bool:
    """Check a plain password against the account's stored hash."""
    if not password or not account.password_hash:
        return False
    try:
        return pwd_context.verify(password, account.password_hash)
    except (ValueError, TypeError):
        logger.warning("Stored password hash for account %s could not be verified.", account.id)
        return False


async def find_by_email(
    session: AsyncSession,
    email: str,
    *,
    approved_only: bool = True,
) -> Optional[Account]:
    """Case-insensitive exact match on the account email."""
    stmt = select(Account).where(func.lower(Account.email) == normalise_email(email))
    if approved_only:
        stmt = stmt.where(Account.approved.is_(True))
    result = await session.execute(stmt)
    return result.scalars().first()


async def get_account(session: AsyncSession, account_id: UUID) -> Optional[Account]:
    return await session.get(Account, account_id)


async def authenticate(session: AsyncSession, email: str, password: str) -> Account:
    """Return the approved account for the credentials or raise ``AuthError``."""
    account = await find_by_email(session, email)
    if account is None:
        raise AuthError("Account not found or not approved.")
    # bcrypt is CPU-bound; keep it off the event loop.
    if not await anyio.to_thread.run_sync(verify_password, account, password):
        raise AuthError("Invalid credentials.")
    return account
