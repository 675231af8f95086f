from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from sqlalchemy import BigInteger, Boolean, ForeignKey, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ChatSession(Base):
    """Conversation state for one Telegram chat.

    Unverified rows carry a pending email/password challenge and no account.
    Verified rows are bound to exactly one account; the unique constraint on
    ``account_id`` keeps a single connected device per account.
    """

    __tablename__ = "chat_sessions"

    chat_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False, index=True)
    account_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), unique=True, nullable=True
    )
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    state: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
