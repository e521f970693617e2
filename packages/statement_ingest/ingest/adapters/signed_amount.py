"""Parser for layouts with a single signed amount column.

Typical of credit card exports, where charges are listed as positive numbers
and refunds as negative ones (the format's ``expense_sign`` tells the
normalizer which way round it is).
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from .base import RowParser


class SignedAmountParser(RowParser):
    kind = "signed_amount"

    def _amount(self, row_index: int, cells: Sequence[Any]) -> Decimal | None:
        return self._decimal(row_index, cells, "amount")


__all__ = ["SignedAmountParser"]
