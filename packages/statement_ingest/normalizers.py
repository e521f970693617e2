"""Normalize parsed statement rows into canonical transactions.

Rules
-----
- Amounts are ``Decimal`` in cents; an amount with a non-zero digit past
  the cents is rejected rather than rounded. Income is positive and
  expenses negative regardless of the source's sign convention. A zero
  amount is recorded as an expense.
- Merchant names have internal whitespace collapsed, the format's noise
  patterns removed, and are title-cased.
- A missing billing date defaults to the transaction date.
- Card numbers are reduced to their last four digits. For formats that
  allow it, rows without one fall back to a card number found in the
  uploaded file's name; such candidates are flagged so the fallback never
  changes their fingerprint.
- Currency comes from the row when it names a known code or symbol, else the
  format's default currency.
- The bank action type ("transfer", "standing order") is kept in the notes
  ahead of the beneficiary.
- The source is the format name, suffixed with the account number when the
  statement preamble carries one.
"""

from __future__ import annotations

import re
import string
from collections.abc import Iterable
from datetime import date
from decimal import Decimal, InvalidOperation

from .errors import NormalizationError
from .ingest.formats import FormatSpec
from .ingest.utils import card_number_from_file_name, last_four_digits
from .models import CENT, RawEntry, TransactionCandidate, TransactionType


def clean_merchant(value: str | None, noise: Iterable[re.Pattern[str]] = ()) -> str:
    if not value:
        return ""
    s = re.sub(r"\s+", " ", value).strip()
    for pattern in noise:
        s = pattern.sub(" ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return string.capwords(s.lower())


def _to_amount(raw: RawEntry) -> Decimal:
    text = raw.get("amount")
    if text is None:
        raise NormalizationError(raw.row_index, "missing amount")
    try:
        amount = Decimal(text)
        cents = amount.quantize(CENT)
    except InvalidOperation as exc:
        raise NormalizationError(raw.row_index, f"invalid amount {text!r}") from exc
    if cents != amount:
        raise NormalizationError(raw.row_index, f"amount {text!r} has sub-cent digits")
    return cents


def _to_date(raw: RawEntry, field: str) -> date | None:
    text = raw.get(field)
    if text is None:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise NormalizationError(raw.row_index, f"invalid {field} {text!r}") from exc


def _to_int(raw: RawEntry, field: str) -> int | None:
    text = raw.get(field)
    if text is None:
        return None
    try:
        value = int(text)
    except ValueError as exc:
        raise NormalizationError(raw.row_index, f"invalid {field} {text!r}") from exc
    return value if value > 0 else None


class Normalizer:
    """Turn :class:`RawEntry` rows of one file into transaction candidates."""

    def __init__(
        self,
        spec: FormatSpec,
        *,
        file_name: str = "",
        source: str | None = None,
        account: str | None = None,
    ):
        self.spec = spec
        self.source = source or (f"{spec.name}:{account}" if account else spec.name)
        self._noise = [re.compile(p) for p in spec.merchant_noise]
        self._file_card = (
            card_number_from_file_name(file_name) if spec.card_from_file_name else None
        )
        self._currency_aliases = {
            k.strip().casefold(): v.strip().upper() for k, v in spec.currency_aliases.items()
        }

    def _currency(self, raw: RawEntry) -> str:
        text = raw.get("currency")
        if text is None:
            return self.spec.currency
        alias = self._currency_aliases.get(text.strip().casefold())
        if alias:
            return alias
        code = text.strip().upper()
        if len(code) == 3 and code.isascii() and code.isalpha():
            return code
        return self.spec.currency

    def normalize(self, raw: RawEntry) -> TransactionCandidate:
        transaction_date = _to_date(raw, "transaction_date")
        if transaction_date is None:
            raise NormalizationError(raw.row_index, "missing transaction date")

        amount = _to_amount(raw)
        if self.spec.expense_sign == "positive":
            amount = -amount
        if amount == 0:
            amount = Decimal("0.00")
        tx_type = TransactionType.INCOME if amount > 0 else TransactionType.EXPENSE

        merchant = clean_merchant(raw.get("merchant"), self._noise)
        if not merchant:
            raise NormalizationError(raw.row_index, "missing merchant name")

        installments = _to_int(raw, "installments")
        installment_index = _to_int(raw, "installment_index") if installments else None

        card_number = last_four_digits(raw.get("card_number"))
        notes = " | ".join(p for p in (raw.get("action_type"), raw.get("notes")) if p)

        return TransactionCandidate(
            row_index=raw.row_index,
            transaction_date=transaction_date,
            billing_date=_to_date(raw, "billing_date") or transaction_date,
            amount=amount,
            type=tx_type,
            merchant_name=merchant,
            source=self.source,
            currency=self._currency(raw),
            reference_number=raw.get("reference"),
            card_number=card_number or self._file_card,
            card_from_file_name=card_number is None and self._file_card is not None,
            installments=installments,
            installment_index=installment_index,
            is_halves=raw.get("halves") == "true",
            branch=raw.get("branch"),
            notes=notes or None,
            raw_record=raw.raw_record(),
        )


__all__ = ["Normalizer", "clean_merchant"]
