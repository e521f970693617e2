"""Billing-period assignment and split expansion.

Month assignment
----------------
A card's billing cycle closes on a cutoff day. Charges billed on or after the
cutoff are reported under the following month::

    assign_month(date(2024, 3, 9), cutoff_day=10)  -> 2024-03-01
    assign_month(date(2024, 3, 10), cutoff_day=10) -> 2024-04-01

Without a cutoff the billing month is used as is.

Splits
------
Money is split in integer cents. For an amount of ``A`` cents over ``N``
parts each part gets ``A // N`` and the first part also takes the remainder,
so the parts always add back to the original exactly. Parts are assigned to
consecutive months starting at the parent's month.

An installment plan (``installments > 1``) expands into ``N`` children
tagged with ``installment_index`` 1..N. A halves charge expands into two
children tagged with ``halves_part`` 1 and 2. Children are never expanded
again, and rows the issuer already split (``installment_index`` set by the
parser) pass through untouched. A row flagged with both rules is rejected.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

from .errors import ConflictingSplitRuleError
from .models import CENT, TransactionCandidate


def first_of_month(d: date) -> date:
    return d.replace(day=1)


def add_months(d: date, months: int) -> date:
    """Shift a first-of-month date by ``months`` (negative values allowed)."""

    total = d.year * 12 + (d.month - 1) + months
    return date(total // 12, total % 12 + 1, 1)


def assign_month(billing_date: date, cutoff_day: int | None) -> date:
    month = first_of_month(billing_date)
    if cutoff_day is not None and billing_date.day >= cutoff_day:
        return add_months(month, 1)
    return month


def split_amount(amount: Decimal, parts: int) -> list[Decimal]:
    """Split ``amount`` into ``parts`` cent-exact pieces, remainder first."""

    if parts < 1:
        raise ValueError("parts must be >= 1")
    cents = int((abs(amount) / CENT).to_integral_value())
    base, remainder = divmod(cents, parts)
    sign = -1 if amount < 0 else 1
    pieces = [base + remainder] + [base] * (parts - 1)
    return [(sign * p * CENT).quantize(CENT) for p in pieces]


class MonthAssigner:
    """Assign report months by cutoff, or pin every row to ``fixed_month``
    when the uploader states which statement month the file belongs to."""

    def __init__(self, cutoff_day: int | None, *, fixed_month: date | None = None) -> None:
        if cutoff_day is not None and not 1 <= cutoff_day <= 31:
            raise ValueError(f"cutoff_day must be within 1..31, got {cutoff_day}")
        self.cutoff_day = cutoff_day
        self.fixed_month = first_of_month(fixed_month) if fixed_month else None

    def assign(self, candidate: TransactionCandidate) -> TransactionCandidate:
        month = self.fixed_month or assign_month(candidate.billing_date, self.cutoff_day)
        return replace(candidate, assigned_month_date=month)


def _require_month(candidate: TransactionCandidate) -> date:
    if candidate.assigned_month_date is None:
        raise ValueError("candidate has no assigned month; run MonthAssigner first")
    return candidate.assigned_month_date


def expand_installments(candidate: TransactionCandidate) -> list[TransactionCandidate]:
    n = candidate.installments or 1
    if n <= 1 or candidate.is_expanded:
        return [candidate]
    month = _require_month(candidate)
    return [
        replace(
            candidate,
            amount=part,
            assigned_month_date=add_months(month, i),
            installments=n,
            installment_index=i + 1,
        )
        for i, part in enumerate(split_amount(candidate.amount, n))
    ]


def split_halves(candidate: TransactionCandidate) -> list[TransactionCandidate]:
    if not candidate.is_halves or candidate.is_expanded:
        return [candidate]
    month = _require_month(candidate)
    return [
        replace(
            candidate,
            amount=part,
            assigned_month_date=add_months(month, i),
            halves_part=i + 1,
        )
        for i, part in enumerate(split_amount(candidate.amount, 2))
    ]


def apply_split_rules(candidate: TransactionCandidate) -> list[TransactionCandidate]:
    """Expand one month-assigned candidate into its reported parts."""

    if candidate.is_halves and (candidate.installments or 1) > 1:
        raise ConflictingSplitRuleError(
            candidate.row_index,
            f"row is both an installment plan ({candidate.installments} payments) "
            "and a halves charge",
        )
    if candidate.is_halves:
        return split_halves(candidate)
    return expand_installments(candidate)


__all__ = [
    "MonthAssigner",
    "add_months",
    "apply_split_rules",
    "assign_month",
    "expand_installments",
    "first_of_month",
    "split_amount",
    "split_halves",
]
