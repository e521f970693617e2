# ruff: noqa: I001
"""Ledger core tables: categories (read-only for ingest) and transactions.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-10-17
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    # ledger_categories
    op.create_table(
        "ledger_categories",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("type", sa.String(16), nullable=True),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "type IS NULL OR type in ('Income','Expense')",
            name="ck_ledger_category_type",
        ),
    )
    op.create_index("ix_ledger_categories_user_id", "ledger_categories", ["user_id"])

    # ledger_transactions
    op.create_table(
        "ledger_transactions",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("fingerprint_sha256", sa.CHAR(64), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("billing_date", sa.Date(), nullable=False),
        sa.Column("assigned_month_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column(
            "currency",
            sa.CHAR(3),
            nullable=False,
            server_default=sa.text("'ILS'"),
        ),
        sa.Column("merchant_name", sa.Text(), nullable=False),
        sa.Column("reference_number", sa.Text(), nullable=True),
        sa.Column("card_number", sa.String(4), nullable=True),
        sa.Column("installments", sa.Integer(), nullable=True),
        sa.Column("installment_index", sa.Integer(), nullable=True),
        sa.Column(
            "is_halves",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column("halves_part", sa.Integer(), nullable=True),
        sa.Column("category_id", _ID, nullable=True),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("branch", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("raw_record", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.ForeignKeyConstraint(
            ["category_id"],
            ["ledger_categories.id"],
            name="fk_ledger_tx_category",
            deferrable=True,
            initially="DEFERRED",
        ),
        sa.UniqueConstraint(
            "user_id", "fingerprint_sha256", name="uq_ledger_tx_user_fingerprint"
        ),
        sa.CheckConstraint("type in ('Income','Expense')", name="ck_ledger_tx_type"),
        sa.CheckConstraint(
            "card_number IS NULL OR length(card_number) = 4",
            name="ck_ledger_tx_card_number",
        ),
        sa.CheckConstraint(
            "NOT (is_halves AND COALESCE(installments, 1) > 1)",
            name="ck_ledger_tx_single_split_rule",
        ),
    )

    op.create_index(
        "ix_ledger_tx_user_date", "ledger_transactions", ["user_id", "transaction_date"]
    )
    op.create_index(
        "ix_ledger_tx_user_month", "ledger_transactions", ["user_id", "assigned_month_date"]
    )


def downgrade() -> None:
    op.drop_index("ix_ledger_tx_user_month", table_name="ledger_transactions")
    op.drop_index("ix_ledger_tx_user_date", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_index("ix_ledger_categories_user_id", table_name="ledger_categories")
    op.drop_table("ledger_categories")
