"""Row parser variants, selected once per file by the format's ``kind``."""

from __future__ import annotations

from ..detect import DetectedFormat
from .base import RowParser
from .debit_credit import DebitCreditParser
from .signed_amount import SignedAmountParser

PARSERS: dict[str, type[RowParser]] = {
    SignedAmountParser.kind: SignedAmountParser,
    DebitCreditParser.kind: DebitCreditParser,
}


def parser_for(detected: DetectedFormat) -> RowParser:
    return PARSERS[detected.spec.kind](detected)


__all__ = [
    "DebitCreditParser",
    "PARSERS",
    "RowParser",
    "SignedAmountParser",
    "parser_for",
]
