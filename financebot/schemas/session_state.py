from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..models.loan import LoanKind
from .ledger import LedgerKind


class AuthStep(str, Enum):
    AWAIT_EMAIL = "await_email"
    AWAIT_PASSWORD = "await_password"


class MenuStep(str, Enum):
    IDLE = "idle"
    AMOUNT = "amount"
    PAYMENT = "payment"
    DESCRIPTION = "description"
    IMAGE = "image"
    CONFIRM_DISCONNECT = "confirm_disconnect"


class EntryAction(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    LOAN = "loan"


class PendingAuthState(BaseModel):
    """Email/password challenge for a chat that is not connected yet."""

    kind: Literal["pending_auth"] = "pending_auth"
    step: AuthStep = AuthStep.AWAIT_EMAIL
    email: Optional[str] = None
    attempts: int = Field(default=0, ge=0)
    issued_at: datetime

    def is_expired(self, now: datetime, ttl_seconds: int) -> bool:
        issued_at = self.issued_at
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)
        return now - issued_at > timedelta(seconds=ttl_seconds)


class MenuState(BaseModel):
    """Position of a connected chat inside the capture menu."""

    kind: Literal["menu"] = "menu"
    step: MenuStep = MenuStep.IDLE
    action: Optional[EntryAction] = None
    loan_kind: Optional[LoanKind] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    bank_account_id: Optional[UUID] = None
    bank_name: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def idle(cls) -> "MenuState":
        return cls()

    def advance(self, step: MenuStep, **changes: Any) -> "MenuState":
        return self.model_copy(update={"step": step, **changes})

    def ledger_kind(self) -> LedgerKind:
        if self.action == EntryAction.INCOME:
            return LedgerKind.INCOME
        if self.action == EntryAction.EXPENSE:
            return LedgerKind.EXPENSE
        if self.action == EntryAction.LOAN and self.loan_kind == LoanKind.TAKE:
            return LedgerKind.LOAN_TAKE
        if self.action == EntryAction.LOAN and self.loan_kind == LoanKind.GIVE:
            return LedgerKind.LOAN_GIVE
        raise ValueError("Menu state does not describe a ledger entry.")


SessionState = Annotated[Union[PendingAuthState, MenuState], Field(discriminator="kind")]

_state_adapter: TypeAdapter[SessionState] = TypeAdapter(SessionState)


def parse_state(raw: Any) -> PendingAuthState | MenuState:
    """Validate a stored JSON payload into one of the state shapes."""
    return _state_adapter.validate_python(raw)


def dump_state(state: PendingAuthState | MenuState) -> dict[str, Any]:
    return state.model_dump(mode="json")


class ChatSessionRead(BaseModel):
    """Snapshot of a stored chat session with its state already validated."""

    model_config = ConfigDict(from_attributes=True)

    chat_id: int
    account_id: Optional[UUID] = None
    verified: bool = False
    username: Optional[str] = None
    state: SessionState
