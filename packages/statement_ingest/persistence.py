# ruff: noqa: I001
"""Persistence store for ingested transactions.

The pipeline talks to storage through :class:`PersistenceStore`: ``begin``
opens one transactional scope in which the duplicate check and the insert
both run, so a batch becomes visible all at once or not at all.

:class:`SqlAlchemyStore` implements the protocol on top of ``db.client``'s
``session_scope`` and the ``ledger_transactions`` table. Any SQLAlchemy error
(including a ``(user_id, fingerprint_sha256)`` unique violation raced in by a
concurrent upload) rolls the scope back and surfaces as :class:`StoreError`.
On PostgreSQL a transaction-scoped advisory lock keyed by the user serializes
concurrent uploads for the same user.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager
from typing import Protocol

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.client import session_scope
from db.models.ledger import LedgerTransaction

from .duplicates import FingerprintedCandidate
from .errors import StoreError
from .logging_setup import get_logger
from .models import DateRange

logger = get_logger(__name__)


class StoreScope(Protocol):
    def existing_fingerprints(self, user_id: int, date_range: DateRange) -> set[str]: ...

    def commit_batch(self, user_id: int, transactions: Sequence[FingerprintedCandidate]) -> int:
        """Stage ``transactions``; return how many rows the store accepted."""
        ...


class PersistenceStore(Protocol):
    def begin(self, user_id: int) -> AbstractContextManager[StoreScope]: ...


def _to_row(user_id: int, item: FingerprintedCandidate) -> LedgerTransaction:
    c = item.candidate
    if c.assigned_month_date is None:
        raise ValueError(f"row {c.row_index} has no assigned month")
    return LedgerTransaction(
        user_id=user_id,
        fingerprint_sha256=item.fingerprint,
        transaction_date=c.transaction_date,
        billing_date=c.billing_date,
        assigned_month_date=c.assigned_month_date,
        amount=c.amount,
        type=str(c.type),
        currency=c.currency,
        merchant_name=c.merchant_name,
        reference_number=c.reference_number,
        card_number=c.card_number,
        installments=c.installments,
        installment_index=c.installment_index,
        is_halves=c.is_halves,
        halves_part=c.halves_part,
        category_id=c.category_id,
        source=c.source,
        branch=c.branch,
        notes=c.notes,
        raw_record=dict(c.raw_record),
    )


class SqlAlchemySession:
    """Store scope bound to one SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def existing_fingerprints(self, user_id: int, date_range: DateRange) -> set[str]:
        stmt = select(LedgerTransaction.fingerprint_sha256).where(
            LedgerTransaction.user_id == user_id,
            LedgerTransaction.transaction_date >= date_range.start,
            LedgerTransaction.transaction_date <= date_range.end,
        )
        return set(self.session.scalars(stmt))

    def commit_batch(self, user_id: int, transactions: Sequence[FingerprintedCandidate]) -> int:
        rows = [_to_row(user_id, item) for item in transactions]
        self.session.add_all(rows)
        # Flush inside the scope so constraint violations surface before commit.
        self.session.flush()
        return len(rows)


class SqlAlchemyStore:
    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url

    @contextmanager
    def begin(self, user_id: int) -> Iterator[SqlAlchemySession]:
        try:
            with session_scope(database_url=self.database_url) as session:
                if session.get_bind().dialect.name == "postgresql":
                    session.execute(
                        text("SELECT pg_advisory_xact_lock(:key)"), {"key": int(user_id)}
                    )
                yield SqlAlchemySession(session)
        except SQLAlchemyError as exc:
            logger.error("store failure for user %s: %s", user_id, exc)
            raise StoreError(
                f"failed to store transactions: {exc.__class__.__name__}",
                {"error": str(exc)},
            ) from exc


__all__ = [
    "PersistenceStore",
    "SqlAlchemySession",
    "SqlAlchemyStore",
    "StoreScope",
]
