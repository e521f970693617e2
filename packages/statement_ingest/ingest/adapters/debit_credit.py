"""Parser for current-account layouts with separate debit and credit columns.

The amount is reported as ``credit - debit``, so money leaving the account is
negative; formats of this kind declare ``expense_sign: "negative"``.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from ...errors import RowError
from .base import RowParser


class DebitCreditParser(RowParser):
    kind = "debit_credit"

    def _amount(self, row_index: int, cells: Sequence[Any]) -> Decimal | None:
        debit = self._decimal(row_index, cells, "debit")
        credit = self._decimal(row_index, cells, "credit")
        if debit is None and credit is None:
            return None
        if debit and credit:
            raise RowError(row_index, "both debit and credit are set")
        return abs(credit or Decimal(0)) - abs(debit or Decimal(0))


__all__ = ["DebitCreditParser"]
