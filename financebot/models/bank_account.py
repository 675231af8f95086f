from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class BankAccount(Base):
    """A bank account with a running balance maintained by the ledger writer."""

    __tablename__ = "bank_accounts"

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )

    account: Mapped["Account"] = relationship(back_populates="bank_accounts")


from .account import Account  # noqa: E402
