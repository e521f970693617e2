"""Exception hierarchy for statement ingestion.

Two classes of failure exist:

- Fatal, batch-level: :class:`UnrecognizedFormatError` and :class:`StoreError`.
  The upload is reported as failed and nothing is written.
- Row-level: :class:`RowError` and its subclasses. The offending row is
  recorded as an error outcome and the rest of the batch continues.

Duplicates are not errors; they are recorded as skipped rows.
"""

from __future__ import annotations

from typing import Any


class IngestError(Exception):
    """Base exception for all ingestion errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(IngestError):
    """Raised when settings or the format registry are invalid."""


class UnrecognizedFormatError(IngestError):
    """Raised when no configured format matches an uploaded file."""


class StoreError(IngestError):
    """Raised when the persistence store fails; the batch is rolled back."""


class RowError(IngestError):
    """A single row could not be parsed (malformed date, non-numeric amount)."""

    def __init__(
        self, row_index: int, reason: str, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(f"row {row_index}: {reason}", details)
        self.row_index = row_index
        self.reason = reason


class NormalizationError(RowError):
    """A parsed row lacks a field required to build a transaction."""


class ConflictingSplitRuleError(RowError):
    """A row is flagged both as an installment plan and as a halves charge."""


__all__ = [
    "ConfigurationError",
    "ConflictingSplitRuleError",
    "IngestError",
    "NormalizationError",
    "RowError",
    "StoreError",
    "UnrecognizedFormatError",
]
