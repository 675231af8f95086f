"""Initial schema: accounts, bank accounts, ledger records and chat sessions.

Revision ID: 20261019_000001
Revises: 
Create Date: 2026-10-19 00:00:01.000000
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_000001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


transaction_kind_enum = postgresql.ENUM("income", "expense", name="transactionkind", create_type=False)
loan_kind_enum = postgresql.ENUM("take", "give", name="loankind", create_type=False)
loan_status_enum = postgresql.ENUM("active", "refunded", name="loanstatus", create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("timezone('utc', now())"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("timezone('utc', now())"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    transaction_kind_enum.create(bind, checkfirst=True)
    loan_kind_enum.create(bind, checkfirst=True)
    loan_status_enum.create(bind, checkfirst=True)

    op.create_table(
        "accounts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=128), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default=sa.text("'NPR'")),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)

    op.create_table(
        "bank_accounts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("current_balance", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "account_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_index("ix_bank_accounts_account_id", "bank_accounts", ["account_id"])

    op.create_table(
        "transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("kind", transaction_kind_enum, nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("description", sa.String(length=512), nullable=True),
        sa.Column("image_url", sa.String(length=1024), nullable=True),
        sa.Column("occurred_at", sa.Date(), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False, server_default=sa.text("'telegram'")),
        sa.Column(
            "account_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "bank_account_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("bank_accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_account_id", "transactions", ["account_id"])
    op.create_index("ix_transactions_occurred_at", "transactions", ["occurred_at"])

    op.create_table(
        "loans",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("kind", loan_kind_enum, nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", loan_status_enum, nullable=False, server_default=sa.text("'active'")),
        sa.Column("description", sa.String(length=512), nullable=True),
        sa.Column("image_url", sa.String(length=1024), nullable=True),
        sa.Column("occurred_at", sa.Date(), nullable=False),
        sa.Column(
            "account_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "bank_account_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("bank_accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.CheckConstraint("amount > 0", name="ck_loans_amount_positive"),
    )
    op.create_index("ix_loans_account_id", "loans", ["account_id"])

    op.create_table(
        "chat_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "account_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("username", sa.String(length=64), nullable=True),
        sa.Column("state", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.UniqueConstraint("account_id", name="uq_chat_sessions_account_id"),
    )
    op.create_index("ix_chat_sessions_chat_id", "chat_sessions", ["chat_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_chat_sessions_chat_id", table_name="chat_sessions")
    op.drop_table("chat_sessions")
    op.drop_index("ix_loans_account_id", table_name="loans")
    op.drop_table("loans")
    op.drop_index("ix_transactions_occurred_at", table_name="transactions")
    op.drop_index("ix_transactions_account_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_bank_accounts_account_id", table_name="bank_accounts")
    op.drop_table("bank_accounts")
    op.drop_index("ix_accounts_email", table_name="accounts")
    op.drop_table("accounts")

    bind = op.get_bind()
    loan_status_enum.drop(bind, checkfirst=True)
    loan_kind_enum.drop(bind, checkfirst=True)
    transaction_kind_enum.drop(bind, checkfirst=True)
