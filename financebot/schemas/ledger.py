from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

DESCRIPTION_MAX_LENGTH = 512


class LedgerKind(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    LOAN_TAKE = "loan_take"
    LOAN_GIVE = "loan_give"

    @property
    def is_loan(self) -> bool:
        return self in (LedgerKind.LOAN_TAKE, LedgerKind.LOAN_GIVE)

    def signed(self, amount: Decimal) -> Decimal:
        """Balance delta for a bank account: money in is positive, money out negative."""
        if self in (LedgerKind.INCOME, LedgerKind.LOAN_TAKE):
            return amount
        return -amount


class LedgerEntry(BaseModel):
    """A finalized chat entry ready to be written to the ledger."""

    account_id: UUID
    kind: LedgerKind
    amount: Decimal = Field(gt=0)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    bank_account_id: Optional[UUID] = None
    image_url: Optional[str] = Field(default=None, max_length=1024)
    occurred_at: date = Field(default_factory=date.today)

    @field_validator("amount")
    @classmethod
    def _quantize_amount(cls, value: Decimal) -> Decimal:
        return value.quantize(Decimal("0.01"))

    @field_validator("description")
    @classmethod
    def _blank_description_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class LedgerResult(BaseModel):
    success: bool
    record_id: Optional[UUID] = None
    balance_updated: bool = False
    new_balance: Optional[Decimal] = None
