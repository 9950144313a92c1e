from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from statement_ingest import cli

from tests.helpers.db import bootstrap_sqlite_db, count_transactions

CSV = (
    "Date,Description,Amount,Balance\n"
    "01.03.2024,Büromiete,-1200,00,8800,00\n"
    "06.03.2024,Kunde AG Zahlung,1000,00,9800,00\n"
)

runner = CliRunner()


@pytest.fixture(autouse=True)
def _cli_env(monkeypatch, tmp_path):
    # Keep logging on pytest's handlers and away from any developer .env file.
    monkeypatch.setattr(cli, "configure_logging", lambda *a, **k: None)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("STATEMENT_INGEST_BATCH_INTERVAL_SECONDS", "0")


@pytest.fixture()
def statement(tmp_path):
    path = tmp_path / "maerz.csv"
    path.write_text(CSV, encoding="utf-8")
    return path


def test_process_prints_statement_and_fallback_analysis(statement):
    result = runner.invoke(cli.app, ["process", str(statement), "--no-ai"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["filename"] == "maerz.csv"
    txs = payload["statement"]["transactions"]
    assert [t["amount"] for t in txs] == [1200.0, 1000.0]
    assert txs[0]["rawDescription"] == "Büromiete"
    assert payload["statement"]["openingBalance"] == 10000.0
    assert payload["analysis"]["summary"]["transactionCount"] == 2
    assert payload["analysis"]["suggestedCategories"] == []
    assert "persisted" not in payload


def test_process_persists_idempotently(statement, tmp_path):
    url = bootstrap_sqlite_db(tmp_path / "cli.sqlite3")
    args = [
        "process",
        str(statement),
        "--no-ai",
        "--persist",
        "--bank-account",
        "acc-1",
        "--database-url",
        url,
    ]

    first = runner.invoke(cli.app, args)
    assert first.exit_code == 0, first.output
    assert json.loads(first.stdout)["persisted"] == 2

    second = runner.invoke(cli.app, args)
    assert second.exit_code == 0, second.output
    body = json.loads(second.stdout)
    assert (body["persisted"], body["skippedDuplicates"]) == (0, 2)
    assert count_transactions(url) == 2


def test_persist_without_bank_account_is_a_usage_error(statement):
    result = runner.invoke(
        cli.app, ["process", str(statement), "--no-ai", "--persist", "--database-url", "sqlite://"]
    )
    assert result.exit_code == 2


def test_process_reports_statement_errors_as_json(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hello", encoding="utf-8")

    result = runner.invoke(cli.app, ["process", str(path), "--no-ai"])

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["filename"] == "notes.txt"
    assert "Unsupported file type" in payload["error"]


def test_declared_type_overrides_suffix(tmp_path):
    path = tmp_path / "upload.bin"
    path.write_text(CSV, encoding="utf-8")

    result = runner.invoke(cli.app, ["process", str(path), "--no-ai", "--type", "text/csv"])

    assert result.exit_code == 0, result.output
    assert len(json.loads(result.stdout)["statement"]["transactions"]) == 2


def test_batch_reports_each_file_and_fails_if_any_failed(statement, tmp_path):
    empty = tmp_path / "empty.csv"
    empty.write_bytes(b"")

    result = runner.invoke(cli.app, ["batch", str(statement), str(empty), "--no-ai"])

    assert result.exit_code == 1
    items = json.loads(result.stdout)
    assert [i["filename"] for i in items] == ["maerz.csv", "empty.csv"]
    assert "statement" in items[0]
    assert "empty" in items[1]["error"]


def test_batch_succeeds_when_all_items_do(statement):
    result = runner.invoke(cli.app, ["batch", str(statement), "--no-ai"])
    assert result.exit_code == 0, result.output
    assert len(json.loads(result.stdout)) == 1
