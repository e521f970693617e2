"""Base class for format-specific row parsers.

A parser is bound to one detected file (its header positions and format
declaration) and turns each data row into a :class:`RawEntry` whose fields
are neutral text: ISO dates, plain decimal amounts, ``true``/``false`` flags.
Everything format-specific (date formats, decimal separator, currency
symbols, installment notes) is resolved here so that later stages never look
at the source layout again.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Any, ClassVar

from ...errors import RowError
from ...models import RawEntry
from ..detect import DetectedFormat
from ..utils import cell_text, is_blank_row, parse_statement_amount, parse_statement_date

_TEXT_FIELDS: tuple[str, ...] = (
    "merchant",
    "reference",
    "card_number",
    "branch",
    "currency",
    "notes",
    "action_type",
)


class RowParser(ABC):
    kind: ClassVar[str]

    def __init__(self, detected: DetectedFormat) -> None:
        self.spec = detected.spec
        self._columns = detected.columns
        self._header = detected.header
        self._installment_re = (
            re.compile(self.spec.installment_pattern) if self.spec.installment_pattern else None
        )
        self._halves_true = {v.strip().casefold() for v in self.spec.halves_true_values}

    # ---- public -----------------------------------------------------------

    def parse(self, row_index: int, cells: Sequence[Any]) -> RawEntry | None:
        """Parse one data row; ``None`` for rows that carry no transaction
        (blank lines, section separators)."""

        if is_blank_row(cells):
            return None

        fields: dict[str, str] = {}
        for name in ("transaction_date", "billing_date"):
            parsed = self._date(row_index, cells, name)
            if parsed is not None:
                fields[name] = parsed.isoformat()

        amount = self._amount(row_index, cells)
        if amount is not None:
            fields["amount"] = format(amount, "f")

        if "transaction_date" not in fields and "amount" not in fields:
            return None

        for name in _TEXT_FIELDS:
            text = cell_text(self._cell(cells, name))
            if text:
                fields[name] = text

        halves = cell_text(self._cell(cells, "halves"))
        if halves:
            fields["halves"] = "true" if halves.casefold() in self._halves_true else "false"

        self._installments(row_index, cells, fields)

        return RawEntry(
            row_index=row_index,
            source_format=self.spec.name,
            cells=self._cells_with_headers(cells),
            fields=fields,
        )

    # ---- variant hook -----------------------------------------------------

    @abstractmethod
    def _amount(self, row_index: int, cells: Sequence[Any]) -> Decimal | None:
        """Signed amount in the format's own sign convention."""

    # ---- helpers ----------------------------------------------------------

    def _cell(self, cells: Sequence[Any], field: str) -> Any:
        pos = self._columns.get(field)
        if pos is None or pos >= len(cells):
            return None
        return cells[pos]

    def _date(self, row_index: int, cells: Sequence[Any], field: str) -> date | None:
        value = self._cell(cells, field)
        try:
            return parse_statement_date(
                value,
                formats=self.spec.date_formats,
                excel_serial=self.spec.excel_serial_dates,
            )
        except ValueError as exc:
            raise RowError(row_index, f"{field}: {exc}", {"value": cell_text(value)}) from exc

    def _decimal(self, row_index: int, cells: Sequence[Any], field: str) -> Decimal | None:
        value = self._cell(cells, field)
        try:
            return parse_statement_amount(
                value,
                decimal_separator=self.spec.decimal_separator,
                currency_symbols=self.spec.currency_symbols,
            )
        except ValueError as exc:
            raise RowError(row_index, f"{field}: {exc}", {"value": cell_text(value)}) from exc

    def _installments(self, row_index: int, cells: Sequence[Any], fields: dict[str, str]) -> None:
        raw = cell_text(self._cell(cells, "installments"))

        # Issuer-split rows ("payment 2 of 3") are already one installment each.
        if self._installment_re is not None:
            for text in (raw, fields.get("notes", "")):
                match = self._installment_re.search(text) if text else None
                if match is None:
                    continue
                index, total = int(match["index"]), int(match["total"])
                if not 1 <= index <= total:
                    raise RowError(row_index, f"installments: invalid payment {index} of {total}")
                fields["installments"] = str(total)
                fields["installment_index"] = str(index)
                return

        if not raw:
            return
        if not raw.isdigit():
            raise RowError(row_index, f"installments: invalid count {raw!r}")
        fields["installments"] = str(int(raw))

    def _cells_with_headers(self, cells: Sequence[Any]) -> tuple[tuple[str, str], ...]:
        width = max(len(cells), len(self._header))
        out: list[tuple[str, str]] = []
        for pos in range(width):
            header = self._header[pos] if pos < len(self._header) else ""
            value = cell_text(cells[pos]) if pos < len(cells) else ""
            if header or value:
                out.append((header, value))
        return tuple(out)


__all__ = ["RowParser"]
