from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, Enum as SqlEnum, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class LoanKind(str, Enum):
    TAKE = "take"
    GIVE = "give"


class LoanStatus(str, Enum):
    ACTIVE = "active"
    REFUNDED = "refunded"


class Loan(Base):
    """Money borrowed (take) or lent (give)."""

    __tablename__ = "loans"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_loans_amount_positive"),)

    kind: Mapped[LoanKind] = mapped_column(
        SqlEnum(LoanKind, name="loankind", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[LoanStatus] = mapped_column(
        SqlEnum(LoanStatus, name="loanstatus", values_callable=lambda e: [m.value for m in e]),
        default=LoanStatus.ACTIVE,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    occurred_at: Mapped[date] = mapped_column(Date, nullable=False)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bank_account_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("bank_accounts.id", ondelete="SET NULL"), nullable=True
    )

    account: Mapped["Account"] = relationship(back_populates="loans")


from .account import Account  # noqa: E402
