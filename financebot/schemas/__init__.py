from .ledger import LedgerEntry, LedgerKind, LedgerResult
from .session_state import (
    AuthStep,
    ChatSessionRead,
    EntryAction,
    MenuState,
    MenuStep,
    PendingAuthState,
    SessionState,
    dump_state,
    parse_state,
)

__all__ = [
    "AuthStep",
    "ChatSessionRead",
    "EntryAction",
    "LedgerEntry",
    "LedgerKind",
    "LedgerResult",
    "MenuState",
    "MenuStep",
    "PendingAuthState",
    "SessionState",
    "dump_state",
    "parse_state",
]
