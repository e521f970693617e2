from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CHAR,
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only auto-increments INTEGER PRIMARY KEY columns.
_ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: ledger_categories
# ---------------------------


class LedgerCategory(Base):
    """Category lookup rows.

    Owned by the category management service; the ingest pipeline only reads
    them. ``user_id`` is NULL for categories shared by every user.
    """

    __tablename__ = "ledger_categories"

    id: Mapped[int] = mapped_column(_ID_TYPE, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    # Income/Expense, or NULL when the category applies to both.
    type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "type IS NULL OR type in ('Income','Expense')",
            name="ck_ledger_category_type",
        ),
        Index("ix_ledger_categories_user_id", "user_id"),
    )


# ---------------------------
# Core: ledger_transactions
# ---------------------------


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"

    id: Mapped[int] = mapped_column(_ID_TYPE, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Deduplication key, unique per user (see UniqueConstraint below).
    fingerprint_sha256: Mapped[str] = mapped_column(CHAR(64), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    billing_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Always the first day of the month the row is reported under.
    assigned_month_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    currency: Mapped[str] = mapped_column(CHAR(3), nullable=False, server_default=text("'ILS'"))
    merchant_name: Mapped[str] = mapped_column(Text, nullable=False)
    reference_number: Mapped[str | None] = mapped_column(String, nullable=True)
    card_number: Mapped[str | None] = mapped_column(String(4), nullable=True)
    installments: Mapped[int | None] = mapped_column(Integer, nullable=True)
    installment_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_halves: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    halves_part: Mapped[int | None] = mapped_column(Integer, nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        _ID_TYPE,
        ForeignKey("ledger_categories.id", deferrable=True, initially="DEFERRED"),
        nullable=True,
    )
    source: Mapped[str] = mapped_column(String, nullable=False)
    branch: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Cells of the statement row this transaction was derived from.
    raw_record: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "fingerprint_sha256", name="uq_ledger_tx_user_fingerprint"),
        CheckConstraint("type in ('Income','Expense')", name="ck_ledger_tx_type"),
        CheckConstraint(
            "card_number IS NULL OR length(card_number) = 4",
            name="ck_ledger_tx_card_number",
        ),
        CheckConstraint(
            "NOT (is_halves AND COALESCE(installments, 1) > 1)",
            name="ck_ledger_tx_single_split_rule",
        ),
        Index("ix_ledger_tx_user_date", "user_id", "transaction_date"),
        Index("ix_ledger_tx_user_month", "user_id", "assigned_month_date"),
    )


__all__ = [
    "Base",
    "LedgerCategory",
    "LedgerTransaction",
]
