"""Category resolution for ingested transactions.

Categories are owned elsewhere; ingestion only looks them up. A resolver maps
a piece of merchant text (the statement's branch/sector column when present,
else the merchant name) and a transaction type to a category id or ``None``.

:class:`CategoryCache` wraps any resolver with a read-through cache scoped to
a single batch, so a statement with many rows from the same merchant costs
one lookup. :class:`DbCategoryResolver` is the default resolver over the
``ledger_categories`` table.
"""

from __future__ import annotations

import re
from typing import Protocol

from sqlalchemy import func, or_, select

from db.client import session_scope
from db.models.ledger import LedgerCategory

from .models import TransactionCandidate, TransactionType


class CategoryResolver(Protocol):
    def resolve(self, merchant_text: str, tx_type: TransactionType) -> int | None: ...


def _key(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip().casefold()


class CategoryCache:
    """Per-batch read-through cache in front of a :class:`CategoryResolver`."""

    def __init__(self, resolver: CategoryResolver | None) -> None:
        self._resolver = resolver
        self._cache: dict[tuple[str, TransactionType], int | None] = {}
        self.lookups = 0

    def resolve(self, merchant_text: str | None, tx_type: TransactionType) -> int | None:
        if self._resolver is None or not merchant_text or not _key(merchant_text):
            return None
        key = (_key(merchant_text), tx_type)
        if key not in self._cache:
            self.lookups += 1
            self._cache[key] = self._resolver.resolve(merchant_text, tx_type)
        return self._cache[key]

    def resolve_candidate(self, candidate: TransactionCandidate) -> int | None:
        """Try the branch/sector text first, then the merchant name."""

        for text in (candidate.branch, candidate.merchant_name):
            category_id = self.resolve(text, candidate.type)
            if category_id is not None:
                return category_id
        return None


class DbCategoryResolver:
    """Match active categories visible to a user by case-insensitive name."""

    def __init__(self, user_id: int, *, database_url: str | None = None) -> None:
        self.user_id = user_id
        self.database_url = database_url

    def resolve(self, merchant_text: str, tx_type: TransactionType) -> int | None:
        name = _key(merchant_text)
        if not name:
            return None
        stmt = (
            select(LedgerCategory.id)
            .where(
                func.lower(LedgerCategory.name) == name,
                LedgerCategory.is_active.is_(True),
                or_(LedgerCategory.user_id == self.user_id, LedgerCategory.user_id.is_(None)),
                or_(LedgerCategory.type == str(tx_type), LedgerCategory.type.is_(None)),
            )
            # User-owned categories win over shared ones.
            .order_by(LedgerCategory.user_id.is_(None), LedgerCategory.id)
            .limit(1)
        )
        with session_scope(database_url=self.database_url) as session:
            return session.scalars(stmt).first()


__all__ = ["CategoryCache", "CategoryResolver", "DbCategoryResolver"]
