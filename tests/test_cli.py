from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from typer.testing import CliRunner

from statement_ingest.cli import app

from tests.helpers.db import count_transactions, fetch_transactions
from tests.helpers.statements import card_csv, card_row

runner = CliRunner()


def _result_json(output: str) -> dict[str, Any]:
    line = next(line for line in output.splitlines() if line.startswith("{"))
    return json.loads(line)


def _statement(tmp_path: Path, rows: list[list[Any]], name: str = "card.csv") -> Path:
    path = tmp_path / name
    path.write_bytes(card_csv(rows))
    return path


def test_upload_prints_result_json(tmp_path: Path, database_url: str):
    path = _statement(
        tmp_path,
        [card_row("03/01/2024", "Cafe", "12.00"), card_row("99/01/2024", "Bad", "1.00")],
    )

    result = runner.invoke(
        app,
        ["upload", str(path), "--user-id", "7", "--database-url", database_url, "--no-categorize"],
    )

    assert result.exit_code == 0, result.output
    assert _result_json(result.output) == {
        "success": True,
        "message": "File uploaded successfully: 1 created, 0 duplicates skipped, 1 rows failed",
        "totalCreated": 1,
        "totalParsed": 1,
    }
    assert "row 5: transaction_date" in result.output
    assert count_transactions(database_url, user_id=7) == 1


def test_upload_reads_database_url_from_env(tmp_path: Path, database_url: str, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", database_url)
    monkeypatch.setenv("SI_BILLING_CUTOFF_DAY", "1")
    path = _statement(tmp_path, [card_row("03/01/2024", "Cafe", "12.00")])

    result = runner.invoke(app, ["upload", str(path), "--user-id", "7"])

    assert result.exit_code == 0, result.output
    assert fetch_transactions(database_url)[0]["assigned_month_date"].month == 2


def test_upload_month_option_pins_statement_month(tmp_path: Path, database_url: str):
    path = _statement(tmp_path, [card_row("03/01/2024", "Cafe", "12.00")])

    result = runner.invoke(
        app,
        [
            "upload",
            str(path),
            "--user-id",
            "7",
            "--database-url",
            database_url,
            "--month",
            "2024-06",
        ],
    )

    assert result.exit_code == 0, result.output
    assert fetch_transactions(database_url)[0]["assigned_month_date"].isoformat() == "2024-06-01"


def test_upload_of_unrecognized_file_exits_with_failure(tmp_path: Path, database_url: str):
    path = tmp_path / "notes.csv"
    path.write_text("hello,world\n1,2\n", encoding="utf-8")

    result = runner.invoke(
        app, ["upload", str(path), "--user-id", "7", "--database-url", database_url]
    )

    assert result.exit_code == 1
    assert _result_json(result.output)["success"] is False


def test_upload_without_database_url_is_a_usage_error(tmp_path: Path):
    path = _statement(tmp_path, [card_row("03/01/2024", "Cafe", "12.00")])

    result = runner.invoke(app, ["upload", str(path), "--user-id", "7"])

    assert result.exit_code == 2
    assert "DATABASE_URL is not set" in result.output


def test_upload_of_missing_file_exits_with_usage_error(tmp_path: Path, database_url: str):
    result = runner.invoke(
        app,
        ["upload", str(tmp_path / "nope.csv"), "--user-id", "7", "--database-url", database_url],
    )

    assert result.exit_code == 2
    assert "cannot read" in result.output


def test_bad_month_option_is_rejected(tmp_path: Path, database_url: str):
    path = _statement(tmp_path, [card_row("03/01/2024", "Cafe", "12.00")])

    result = runner.invoke(
        app,
        ["upload", str(path), "--user-id", "7", "--database-url", database_url, "--month", "June"],
    )

    assert result.exit_code == 2
    assert count_transactions(database_url) == 0


def test_formats_lists_configured_layouts():
    result = runner.invoke(app, ["formats"])

    assert result.exit_code == 0, result.output
    names = [line.split("\t")[0] for line in result.output.splitlines() if "\t" in line]
    assert names == ["il_card_transactions", "il_bank_account"]


def test_init_db_creates_tables(tmp_path: Path):
    url = f"sqlite+pysqlite:///{tmp_path / 'fresh.db'}"

    result = runner.invoke(app, ["init-db", "--database-url", url])

    assert result.exit_code == 0, result.output
    assert count_transactions(url) == 0
