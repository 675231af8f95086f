from .accounts import authenticate, find_by_email, get_account, is_valid_email, verify_password
from .bank_accounts import list_for_account, match_by_name
from .ledger import apply_balance_delta, commit_entry
from .reports import load_statement, load_status, render_statement, render_status
from .sessions import (
    bind_verified,
    clear_pending,
    delete_session,
    find_verified_for_account,
    get_session,
    set_state,
)
from .storage import BlobStorageClient, build_storage_client

__all__ = [
    "authenticate",
    "find_by_email",
    "get_account",
    "is_valid_email",
    "verify_password",
    "list_for_account",
    "match_by_name",
    "apply_balance_delta",
    "commit_entry",
    "load_statement",
    "load_status",
    "render_statement",
    "render_status",
    "bind_verified",
    "clear_pending",
    "delete_session",
    "find_verified_for_account",
    "get_session",
    "set_state",
    "BlobStorageClient",
    "build_storage_client",
]
