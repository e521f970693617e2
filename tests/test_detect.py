from __future__ import annotations

import json
from datetime import date

import pytest
import xlrd

from statement_ingest.errors import UnrecognizedFormatError
from statement_ingest.ingest.detect import FormatDetector
from statement_ingest.ingest.formats import FormatRegistry, load_format_registry
from statement_ingest.ingest.readers import StatementTable

from tests.helpers.statements import (
    BANK_HEADER,
    CARD_HEADER,
    XLS_PAYLOAD,
    FakeXlsBook,
    bank_csv,
    bank_row,
    card_csv,
    card_row,
    to_csv_bytes,
    to_xlsx_bytes,
    xls_rows,
)


def _detect(payload: bytes, *, file_name: str = "statement.csv", hint: str | None = None):
    detector = FormatDetector(load_format_registry())
    table = StatementTable.from_bytes(payload, file_name)
    return detector.detect(table, file_name=file_name, format_hint=hint)


def _two_format_registry(**second) -> FormatRegistry:
    first = {
        "name": "first",
        "kind": "signed_amount",
        "columns": {"transaction_date": ["Date"], "amount": ["Amount"], "merchant": ["Payee"]},
        "required": ["transaction_date", "amount", "merchant"],
    }
    other = dict(first, name="second", **second)
    return FormatRegistry.from_json(json.dumps({"schema_version": 1, "formats": [first, other]}))


# ---------------------------------------------------------------------------
# Packaged layouts
# ---------------------------------------------------------------------------


def test_card_statement_with_preamble_is_detected():
    detected = _detect(card_csv([card_row("15/01/2024", "Cafe", "12.00")]))

    assert detected.spec.name == "il_card_transactions"
    assert detected.header_row == 2
    assert detected.header == CARD_HEADER
    assert detected.columns["merchant"] == CARD_HEADER.index("בית עסק")
    # Preamble line, blank line, header; the first transaction is file row 4.
    assert [idx for idx, _ in detected.data_rows()] == [4]


def test_bank_statement_is_detected():
    detected = _detect(bank_csv([bank_row("01/02/2024", "Salary", credit="9,000.00")]))

    assert detected.spec.name == "il_bank_account"
    assert detected.header_row == 1
    assert detected.columns["credit"] == BANK_HEADER.index("זכות")


def test_xlsx_card_statement_is_detected():
    payload = to_xlsx_bytes(
        CARD_HEADER,
        [card_row(date(2024, 1, 15), "Cafe", 12.5)],
        preamble=[["פירוט עסקאות"]],
    )

    table = StatementTable.from_bytes(payload, "statement.xlsx")
    detected = FormatDetector(load_format_registry()).detect(table, file_name="statement.xlsx")

    assert table.kind == "xlsx"
    assert detected.spec.name == "il_card_transactions"
    assert detected.header_row == 1


def test_matching_hint_is_accepted():
    detected = _detect(card_csv([]), hint="il_card_transactions")

    assert detected.spec.name == "il_card_transactions"


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------


def test_unknown_header_is_unrecognized():
    payload = to_csv_bytes(["when", "what", "how much"], [["2024-01-01", "x", "1"]])

    with pytest.raises(UnrecognizedFormatError) as excinfo:
        _detect(payload, file_name="mystery.csv")

    assert excinfo.value.details["tried"] == ["il_card_transactions", "il_bank_account"]
    assert excinfo.value.details["file_name"] == "mystery.csv"


def test_unknown_hint_is_rejected():
    with pytest.raises(UnrecognizedFormatError) as excinfo:
        _detect(card_csv([]), hint="no_such_format")

    assert "il_bank_account" in excinfo.value.details["known_formats"]


def test_hint_still_requires_its_header():
    with pytest.raises(UnrecognizedFormatError):
        _detect(card_csv([]), hint="il_bank_account")


def test_empty_upload_is_unrecognized():
    with pytest.raises(UnrecognizedFormatError):
        StatementTable.from_bytes(b"", "empty.csv")


def test_header_below_scan_window_is_not_found():
    registry = FormatRegistry.from_json(
        json.dumps(
            {
                "schema_version": 1,
                "formats": [
                    {
                        "name": "shallow",
                        "kind": "signed_amount",
                        "columns": {
                            "transaction_date": ["Date"],
                            "amount": ["Amount"],
                            "merchant": ["Payee"],
                        },
                        "required": ["transaction_date", "amount", "merchant"],
                        "header_scan_rows": 1,
                    }
                ],
            }
        )
    )
    payload = to_csv_bytes(["Date", "Payee", "Amount"], [], preamble=[["Account 1234"]])

    with pytest.raises(UnrecognizedFormatError):
        FormatDetector(registry).detect(StatementTable.from_bytes(payload))


# ---------------------------------------------------------------------------
# Ranking and decoding
# ---------------------------------------------------------------------------


def test_ties_go_to_the_earlier_registry_entry():
    registry = _two_format_registry()
    payload = to_csv_bytes(["Date", "Payee", "Amount"], [["2024-01-01", "x", "1"]])

    detected = FormatDetector(registry).detect(StatementTable.from_bytes(payload))

    assert detected.spec.name == "first"


def test_more_resolved_columns_win():
    registry = _two_format_registry(
        columns={
            "transaction_date": ["Date"],
            "amount": ["Amount"],
            "merchant": ["Payee"],
            "reference": ["Ref"],
        }
    )
    payload = to_csv_bytes(["Date", "Payee", "Amount", "Ref"], [])

    detected = FormatDetector(registry).detect(StatementTable.from_bytes(payload))

    assert detected.spec.name == "second"
    assert detected.columns["reference"] == 3


def test_format_encoding_decodes_legacy_text():
    payload = to_csv_bytes(BANK_HEADER, [], encoding="cp1255")
    registry = FormatRegistry.from_json(
        json.dumps(
            {
                "schema_version": 1,
                "formats": [
                    {
                        "name": "legacy_bank",
                        "kind": "debit_credit",
                        "columns": {
                            "transaction_date": ["תאריך"],
                            "debit": ["חובה"],
                            "credit": ["זכות"],
                            "merchant": ["תיאור"],
                        },
                        "required": ["transaction_date", "debit", "credit", "merchant"],
                        "encoding": "cp1255",
                    }
                ],
            }
        )
    )

    detected = FormatDetector(registry).detect(StatementTable.from_bytes(payload))

    assert detected.spec.name == "legacy_bank"
    # The utf-8 packaged layouts cannot decode the same bytes.
    with pytest.raises(UnrecognizedFormatError):
        _detect(payload)


# ---------------------------------------------------------------------------
# Preamble
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "line, expected",
    [
        ("עסקאות לחיוב ב-10/11/2025: 10,382.64 ₪", date(2025, 10, 1)),
        ("עסקאות לחיוב ב-02/01/2026: 99.00 ₪", date(2025, 12, 1)),
        ("11/2025", date(2025, 10, 1)),
    ],
)
def test_card_statement_month_is_read_from_the_preamble(line, expected):
    payload = to_csv_bytes(
        CARD_HEADER, [card_row("15/10/2025", "Cafe", "12.00")], preamble=[[line], []]
    )

    detected = _detect(payload)

    assert detected.statement_month == expected
    assert detected.account is None


def test_statement_without_a_dated_preamble_has_no_month():
    detected = _detect(card_csv([card_row("15/10/2025", "Cafe", "12.00", notes="10/2025")]))

    assert detected.statement_month is None


@pytest.mark.parametrize(
    "line, account",
    [
        ("מספר חשבון  12-640-361645  תאריך הפקה  16.12.2025", "361645"),
        ("חשבון: 036-606197 תאריך:11/12/2025 17:02", "036-606197"),
    ],
)
def test_bank_account_is_read_from_the_preamble(line, account):
    payload = to_csv_bytes(
        BANK_HEADER, [bank_row("01/12/2025", "Salary", credit="100")], preamble=[[line]]
    )

    detected = _detect(payload)

    assert detected.spec.name == "il_bank_account"
    assert detected.account == account
    assert detected.statement_month is None


# ---------------------------------------------------------------------------
# Legacy XLS
# ---------------------------------------------------------------------------


def test_xls_card_statement_is_read_with_xlrd(monkeypatch: pytest.MonkeyPatch):
    rows = xls_rows(
        CARD_HEADER, [card_row(45306.0, "Cafe", 12.5)], preamble=[["פירוט עסקאות"]]
    )
    opened: list[bytes] = []

    def open_workbook(*, file_contents: bytes) -> FakeXlsBook:
        opened.append(file_contents)
        return FakeXlsBook(rows)

    monkeypatch.setattr(xlrd, "open_workbook", open_workbook)

    table = StatementTable.from_bytes(XLS_PAYLOAD, "visa.xls")
    detected = FormatDetector(load_format_registry()).detect(table, file_name="visa.xls")

    assert table.kind == "xls"
    assert opened == [XLS_PAYLOAD]
    assert detected.spec.name == "il_card_transactions"
    assert detected.header_row == 1
    assert [idx for idx, _ in detected.data_rows()] == [3]


def test_unreadable_xls_is_unrecognized(monkeypatch: pytest.MonkeyPatch):
    def open_workbook(*, file_contents: bytes) -> FakeXlsBook:
        raise xlrd.XLRDError("Unsupported format, or corrupt file")

    monkeypatch.setattr(xlrd, "open_workbook", open_workbook)

    with pytest.raises(UnrecognizedFormatError, match="cannot open XLS"):
        StatementTable.from_bytes(XLS_PAYLOAD, "broken.xls")
