from .account import Account
from .bank_account import BankAccount
from .base import Base
from .chat_session import ChatSession
from .loan import Loan, LoanKind, LoanStatus
from .transaction import Transaction, TransactionKind

__all__ = [
    "Base",
    "Account",
    "BankAccount",
    "ChatSession",
    "Loan",
    "LoanKind",
    "LoanStatus",
    "Transaction",
    "TransactionKind",
]
