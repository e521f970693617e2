"""Format detection for uploaded statements.

Every configured format is tried against the first ``header_scan_rows`` rows
of the file (exports often carry a preamble with the account holder, card
number or period before the header). A format matches when one of those rows
satisfies its required column signature. When several formats match, the
one that resolves more columns wins, and registry order breaks ties, so the
same file always yields the same format.

The preamble rows above the header are also searched for the statement's
billing month and account number when the format declares patterns for them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import date

from ..errors import UnrecognizedFormatError
from ..logging_setup import get_logger
from ..periods import add_months
from .formats import FormatRegistry, FormatSpec
from .readers import Row, StatementTable
from .utils import cell_text

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class DetectedFormat:
    spec: FormatSpec
    header_row: int
    header: list[str]
    columns: dict[str, int]
    rows: list[Row]
    statement_month: date | None = None
    account: str | None = None

    def data_rows(self) -> list[tuple[int, Row]]:
        """Rows below the header paired with their 1-based position in the file."""

        start = self.header_row + 1
        return [(start + offset + 1, row) for offset, row in enumerate(self.rows[start:])]


def _locate_header(spec: FormatSpec, rows: list[Row]) -> tuple[int, dict[str, int]] | None:
    for idx, row in enumerate(rows[: spec.header_scan_rows]):
        mapping = spec.match_header(row)
        if mapping is not None:
            return idx, mapping
    return None


def _preamble_lines(rows: list[Row]) -> list[str]:
    lines = []
    for row in rows:
        text = " ".join(t for t in (cell_text(c) for c in row) if t)
        if text:
            lines.append(text)
    return lines


def _statement_month(spec: FormatSpec, lines: list[str]) -> date | None:
    for pattern in spec.statement_month_patterns:
        compiled = re.compile(pattern)
        for line in lines:
            match = compiled.search(line)
            if match is None:
                continue
            year, month = int(match["year"]), int(match["month"])
            if 1 <= month <= 12 and 2000 <= year <= 2100:
                return add_months(date(year, month, 1), spec.statement_month_offset)
    return None


def _account(spec: FormatSpec, lines: list[str]) -> str | None:
    for pattern in spec.account_patterns:
        compiled = re.compile(pattern)
        for line in lines:
            match = compiled.search(line)
            if match is not None:
                return match["account"]
    return None


class FormatDetector:
    def __init__(self, registry: FormatRegistry) -> None:
        self._registry = registry

    def detect(
        self,
        table: StatementTable,
        *,
        file_name: str = "",
        format_hint: str | None = None,
    ) -> DetectedFormat:
        if format_hint is not None:
            hinted = self._registry.get(format_hint)
            if hinted is None:
                raise UnrecognizedFormatError(
                    f"unknown statement format {format_hint!r}",
                    {"known_formats": self._registry.names()},
                )
            candidates = [hinted]
        else:
            candidates = list(self._registry)

        best: tuple[int, int, DetectedFormat] | None = None
        for order, spec in enumerate(candidates):
            rows = table.rows(encoding=spec.encoding, delimiter=spec.delimiter)
            if not rows:
                continue
            located = _locate_header(spec, rows)
            if located is None:
                continue
            header_row, columns = located
            detected = DetectedFormat(
                spec=spec,
                header_row=header_row,
                header=["" if c is None else str(c).strip() for c in rows[header_row]],
                columns=columns,
                rows=rows,
            )
            # Higher column coverage first, then earlier registry position.
            rank = (len(columns), -order)
            if best is None or rank > (best[0], best[1]):
                best = (rank[0], rank[1], detected)

        if best is None:
            logger.info("no configured format matches %r", file_name)
            raise UnrecognizedFormatError(
                f"unrecognized statement format in {file_name or 'upload'}",
                {"file_name": file_name, "tried": [s.name for s in candidates]},
            )

        detected = best[2]
        lines = _preamble_lines(detected.rows[: detected.header_row])
        detected = replace(
            detected,
            statement_month=_statement_month(detected.spec, lines),
            account=_account(detected.spec, lines),
        )
        logger.info(
            "detected format %s for %r (header at row %d, %d columns mapped)",
            detected.spec.name,
            file_name,
            detected.header_row + 1,
            len(detected.columns),
        )
        if detected.statement_month or detected.account:
            logger.info(
                "preamble of %r: statement month %s, account %s",
                file_name,
                detected.statement_month,
                detected.account,
            )
        return detected


__all__ = ["DetectedFormat", "FormatDetector"]
