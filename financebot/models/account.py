from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class Account(Base):
    """Credential-holding identity shared with the web dashboard."""

    __tablename__ = "accounts"

    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="NPR", nullable=False)
    approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    bank_accounts: Mapped[list["BankAccount"]] = relationship(
        back_populates="account", cascade="all, delete-orphan"
    )
    transactions: Mapped[list["Transaction"]] = relationship(
        back_populates="account", cascade="all, delete-orphan"
    )
    loans: Mapped[list["Loan"]] = relationship(back_populates="account", cascade="all, delete-orphan")

    def display_name(self) -> str:
        return self.first_name or self.email.split("@")[0]


from .bank_account import BankAccount  # noqa: E402
from .loan import Loan  # noqa: E402
from .transaction import Transaction  # noqa: E402
