"""Cell-level helpers shared by the statement parsers.

Spreadsheet cells arrive typed (``datetime``, ``float``) while CSV cells are
text; these helpers accept both and produce Python values without ever
routing money through binary floating point arithmetic.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import PurePath
from typing import Any

# Excel's day zero (serial 1 is 1900-01-01 with the 1900 leap-year bug folded in).
_EXCEL_EPOCH = datetime(1899, 12, 30)
_EXCEL_MAX_SERIAL = 2958465  # 9999-12-31

_CENT = Decimal("0.01")
_FLOAT_NOISE = Decimal("1e-9")

# Card statements name files after the card, e.g. "מ-1234.xlsx",
# "1234_2024-05.csv" or "ויזה 1234 מאי.xls". Checked in order.
_FILE_NAME_CARD_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"[מב]\s*-?\s*(\d{4})(?!\d)"),
    re.compile(r"^(\d{4})[_-]"),
    re.compile(r"(?:כרטיס|מאסטרקארד|ויזה|אמריקן)\s+(\d{4})(?!\d)"),
    re.compile(r"(?<!\d)(\d{4})(?!\d)"),
)


def cell_text(value: Any) -> str:
    """Render a cell as trimmed text (integral floats lose their ``.0``)."""

    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return format(Decimal(repr(value)), "f")
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def is_blank_row(cells: Sequence[Any]) -> bool:
    return all(cell_text(c) == "" for c in cells)


def _from_excel_serial(serial: float) -> date:
    if not 0 < serial <= _EXCEL_MAX_SERIAL:
        raise ValueError(f"excel serial date out of range: {serial!r}")
    return (_EXCEL_EPOCH + timedelta(days=int(serial))).date()


def parse_statement_date(
    value: Any,
    *,
    formats: Sequence[str],
    excel_serial: bool = True,
) -> date | None:
    """Parse a date cell; ``None`` for blank cells, ``ValueError`` when
    malformed."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid date: {value!r}")
    if isinstance(value, (int, float)):
        if not excel_serial:
            raise ValueError(f"numeric date not accepted for this format: {value!r}")
        return _from_excel_serial(float(value))

    s = str(value).strip()
    if not s:
        return None
    # Exports sometimes carry a time component ("15/01/2024 00:00").
    head = s.split()[0] if " " in s else s
    for fmt in formats:
        for candidate in (s, head):
            try:
                return datetime.strptime(candidate, fmt).date()
            except ValueError:
                continue
    if excel_serial and re.fullmatch(r"\d{1,7}(?:\.\d+)?", s):
        return _from_excel_serial(float(s))
    raise ValueError(f"invalid date: {s!r}")


def _to_cents(d: Decimal, raw: Any) -> Decimal:
    if not d.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    try:
        cents = d.quantize(_CENT)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    if cents != d:
        raise ValueError(f"amount has more than two decimal places: {raw!r}")
    return cents


def _well_grouped(whole: str, thousands: str) -> bool:
    return re.fullmatch(rf"\d{{1,3}}(?:{re.escape(thousands)}\d{{3}})+", whole) is not None


def parse_statement_amount(
    value: Any,
    *,
    decimal_separator: str = ".",
    currency_symbols: Sequence[str] = (),
) -> Decimal | None:
    """Parse a money cell to ``Decimal`` cents; ``None`` for blank cells.

    Accepts leading or trailing minus signs, surrounding parentheses, currency
    symbols in any position and thousands separators in groups of three.
    Digits past the cents raise ``ValueError``: they usually mean the cell
    uses the other decimal separator ("1.234,56" read with ".").
    """

    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid amount: {value!r}")
    if isinstance(value, Decimal):
        return _to_cents(value, value)
    if isinstance(value, int):
        return Decimal(value).quantize(_CENT)
    if isinstance(value, float):
        # repr() is the shortest round-tripping text, e.g. 10.1 -> "10.1".
        d = Decimal(repr(value))
        if not d.is_finite():
            raise ValueError(f"invalid amount: {value!r}")
        try:
            cents = d.quantize(_CENT)
        except InvalidOperation as exc:
            raise ValueError(f"invalid amount: {value!r}") from exc
        # Spreadsheet formulas leave binary noise such as 0.30000000000000004.
        if abs(d - cents) >= _FLOAT_NOISE:
            raise ValueError(f"amount has more than two decimal places: {value!r}")
        return cents

    raw = str(value)
    s = raw.strip()
    for symbol in currency_symbols:
        s = s.replace(symbol, "")
    s = s.replace("\u200f", "").replace("\u200e", "").replace("\xa0", "").strip()
    if not s:
        return None

    negative = False
    # Strip sign markers and parentheses in any order until stable.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s.endswith("-"):
            negative = True
            s = s[:-1].rstrip()
            changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
            changed = True
        if not changed:
            break

    thousands = "," if decimal_separator == "." else "."
    whole, sep, fraction = s.replace(" ", "").partition(decimal_separator)
    if thousands in fraction or (thousands in whole and not _well_grouped(whole, thousands)):
        raise ValueError(f"invalid amount: {raw!r}")
    s = whole.replace(thousands, "") + ("." + fraction if sep else "")

    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    cents = _to_cents(d, raw)
    return -abs(cents) if negative else cents


def last_four_digits(value: str | None) -> str | None:
    """Last four digits of a card identifier, or ``None`` with fewer than four."""

    if not value:
        return None
    digits = re.sub(r"\D", "", value)
    if len(digits) < 4:
        return None
    return digits[-4:]


def card_number_from_file_name(file_name: str | None) -> str | None:
    """Find a 4-digit card number in an uploaded file's name."""

    if not file_name:
        return None
    stem = PurePath(file_name).stem
    for pattern in _FILE_NAME_CARD_PATTERNS:
        match = pattern.search(stem)
        if match:
            return match.group(1)
    return None


__all__ = [
    "card_number_from_file_name",
    "cell_text",
    "is_blank_row",
    "last_four_digits",
    "parse_statement_amount",
    "parse_statement_date",
]
