"""Data models for ``statement_ingest``.

The pipeline moves a statement row through three shapes:

- :class:`RawEntry`: what a format-specific parser extracted from one row.
  Values are neutral text (ISO dates, ``-1234.56`` style amounts); the row's
  original cells ride along for audit.
- :class:`TransactionCandidate`: the canonical transaction. Installment and
  halves expansion produce several candidates from one entry.
- :class:`ImportBatch` / :class:`UploadResult`: the per-upload report returned
  to the caller. Neither is persisted.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, NamedTuple

CENT = Decimal("0.01")


class TransactionType(StrEnum):
    INCOME = "Income"
    EXPENSE = "Expense"


class RowStatus(StrEnum):
    SUCCESS = "success"
    SKIP = "skip"
    ERROR = "error"


class DateRange(NamedTuple):
    """Inclusive transaction-date window used to bound fingerprint lookups."""

    start: date
    end: date


# ---------------------------------------------------------------------------
# Row-level shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawEntry:
    """One statement row after format-specific extraction.

    ``fields`` maps canonical field names (``transaction_date``, ``amount``,
    ``merchant``, ...) to neutral text. Missing or blank cells are absent.
    """

    row_index: int
    source_format: str
    cells: tuple[tuple[str, str], ...]
    fields: Mapping[str, str]

    def get(self, name: str) -> str | None:
        value = self.fields.get(name)
        return value if value else None

    def raw_record(self) -> dict[str, str]:
        """Return the original cells keyed by header (positional for blanks)."""

        out: dict[str, str] = {}
        for pos, (header, value) in enumerate(self.cells):
            key = header or f"column_{pos}"
            if key in out:
                key = f"{key}#{pos}"
            out[key] = value
        return out


@dataclass(frozen=True, slots=True)
class TransactionCandidate:
    """A canonical transaction, before or after commit.

    ``amount`` is signed: positive for income, negative for expenses.
    ``installment_index`` is set on installment children and on rows the
    issuer already split; such rows are never expanded again.
    """

    row_index: int
    transaction_date: date
    billing_date: date
    amount: Decimal
    type: TransactionType
    merchant_name: str
    source: str
    currency: str = "ILS"
    assigned_month_date: date | None = None
    reference_number: str | None = None
    card_number: str | None = None
    # True when card_number came from the file name rather than the row.
    card_from_file_name: bool = False
    installments: int | None = None
    installment_index: int | None = None
    is_halves: bool = False
    halves_part: int | None = None
    category_id: int | None = None
    branch: str | None = None
    notes: str | None = None
    raw_record: Mapping[str, Any] = field(default_factory=dict, compare=False)
    id: int | None = None

    def __post_init__(self) -> None:
        if self.amount != self.amount.quantize(CENT):
            raise ValueError(f"amount must have at most two decimal places: {self.amount}")
        if self.card_number is not None and not (
            len(self.card_number) == 4 and self.card_number.isdigit()
        ):
            raise ValueError(f"card_number must be exactly 4 digits: {self.card_number!r}")
        if self.assigned_month_date is not None and self.assigned_month_date.day != 1:
            raise ValueError("assigned_month_date must be the first day of a month")

    @property
    def is_expanded(self) -> bool:
        return self.installment_index is not None or self.halves_part is not None


# ---------------------------------------------------------------------------
# Batch report
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RowOutcome:
    row_index: int
    status: RowStatus
    reason: str | None = None
    fingerprint: str | None = None


@dataclass(slots=True)
class ImportBatch:
    """Ordered record of what happened to each row of one upload."""

    file_name: str
    user_id: int
    format_name: str | None = None
    outcomes: list[RowOutcome] = field(default_factory=list)
    total_parsed: int = 0
    total_created: int = 0
    failed: bool = False
    message: str = ""

    def record(
        self,
        row_index: int,
        status: RowStatus,
        reason: str | None = None,
        *,
        fingerprint: str | None = None,
    ) -> None:
        self.outcomes.append(RowOutcome(row_index, status, reason, fingerprint))

    @property
    def errors(self) -> list[RowOutcome]:
        return [o for o in self.outcomes if o.status is RowStatus.ERROR]

    @property
    def skipped(self) -> list[RowOutcome]:
        return [o for o in self.outcomes if o.status is RowStatus.SKIP]


@dataclass(frozen=True, slots=True)
class UploadResult:
    """Caller-facing summary of an upload.

    ``to_dict()`` renders the wire shape consumed by clients:
    ``{"success", "message", "totalCreated", "totalParsed"}``.
    """

    success: bool
    message: str
    total_created: int
    total_parsed: int
    batch: ImportBatch | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_batch(cls, batch: ImportBatch) -> UploadResult:
        return cls(
            success=not batch.failed,
            message=batch.message,
            total_created=batch.total_created,
            total_parsed=batch.total_parsed,
            batch=batch,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "totalCreated": self.total_created,
            "totalParsed": self.total_parsed,
        }


__all__ = [
    "CENT",
    "DateRange",
    "ImportBatch",
    "RawEntry",
    "RowOutcome",
    "RowStatus",
    "TransactionCandidate",
    "TransactionType",
    "UploadResult",
]
