"""Read uploaded statement files into rows of cells.

Spreadsheets are recognized by their container signature rather than by the
file name: XLSX is a ZIP archive (``openpyxl``), legacy XLS is an OLE2
compound document (``xlrd``). Anything else is treated as delimited text.

Text decoding and the CSV delimiter belong to a format declaration, so a text
table is decoded lazily per ``(encoding, delimiter)`` pair and cached; a
format whose encoding cannot decode the payload simply does not match.
"""

from __future__ import annotations

import csv
import io
import zipfile
from typing import Any, TypeAlias

import openpyxl
import xlrd

from ..errors import UnrecognizedFormatError
from ..logging_setup import get_logger

logger = get_logger(__name__)

_ZIP_MAGIC = b"PK\x03\x04"
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

Row: TypeAlias = list[Any]


def _read_xlsx(payload: bytes) -> list[Row]:
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(payload), data_only=True, read_only=True)
    except (zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise UnrecognizedFormatError(f"cannot open XLSX workbook: {exc}") from exc
    try:
        if not workbook.worksheets:
            return []
        sheet = workbook.worksheets[0]
        return [list(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def _read_xls(payload: bytes) -> list[Row]:
    try:
        book = xlrd.open_workbook(file_contents=payload)
    except xlrd.XLRDError as exc:
        raise UnrecognizedFormatError(f"cannot open XLS workbook: {exc}") from exc
    if book.nsheets == 0:
        return []
    sheet = book.sheet_by_index(0)
    # Date cells come back as Excel serial numbers; format parsers handle them.
    return [sheet.row_values(i) for i in range(sheet.nrows)]


class StatementTable:
    """Tabular view of an uploaded file."""

    def __init__(self, kind: str, *, payload: bytes = b"", sheet_rows: list[Row] | None = None):
        self.kind = kind
        self._payload = payload
        self._sheet_rows = sheet_rows
        self._text_rows: dict[tuple[str, str], list[Row] | None] = {}

    @classmethod
    def from_bytes(cls, payload: bytes, file_name: str = "") -> StatementTable:
        if not payload:
            raise UnrecognizedFormatError(f"file {file_name!r} is empty")
        if payload.startswith(_ZIP_MAGIC):
            return cls("xlsx", sheet_rows=_read_xlsx(payload))
        if payload.startswith(_OLE2_MAGIC):
            return cls("xls", sheet_rows=_read_xls(payload))
        return cls("csv", payload=payload)

    @property
    def is_spreadsheet(self) -> bool:
        return self._sheet_rows is not None

    def rows(self, *, encoding: str, delimiter: str) -> list[Row] | None:
        """Return all rows, or ``None`` when the text cannot be decoded with
        ``encoding``. Spreadsheets ignore both arguments."""

        if self._sheet_rows is not None:
            return self._sheet_rows

        key = (encoding, delimiter)
        if key not in self._text_rows:
            try:
                text = self._payload.decode(encoding)
            except UnicodeDecodeError:
                logger.debug("payload is not valid %s", encoding)
                self._text_rows[key] = None
            else:
                reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
                try:
                    self._text_rows[key] = [list(r) for r in reader]
                except csv.Error as exc:
                    logger.debug("payload is not %r-delimited text: %s", delimiter, exc)
                    self._text_rows[key] = None
        return self._text_rows[key]


__all__ = ["Row", "StatementTable"]
