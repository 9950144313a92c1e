from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from statement_ingest.errors import EmptyResultError, FormatError, ProcessingCancelled
from statement_ingest.models import ProcessingMethod, StatementDocument, TransactionType
from statement_ingest.parsers import CsvStatementParser
from statement_ingest.parsers.csv_parser import detect_delimiter, rejoin_decimal_fragments
from statement_ingest.scheduling import CancellationToken


def _doc(text: str, name: str = "export.csv", encoding: str = "utf-8") -> StatementDocument:
    return StatementDocument(content=text.encode(encoding), filename=name)


def test_comma_decimal_amount_in_comma_delimited_file(settings):
    # German amounts written into a comma-delimited export
    text = "Date,Description,Amount,Balance\n01.03.2024,Büromiete,-1200,00,8800,00\n"
    env = CsvStatementParser(settings).parse(_doc(text))

    assert len(env.transactions) == 1
    tx = env.transactions[0]
    assert tx.amount == Decimal("1200.00")
    assert tx.type is TransactionType.EXPENSE
    assert tx.date == dt.date(2024, 3, 1)
    assert tx.balance == Decimal("8800.00")
    assert env.opening_balance == Decimal("10000.00")
    assert env.closing_balance == Decimal("8800.00")
    assert env.metadata.detected_format == "generic-csv"
    assert env.metadata.processing_method is ProcessingMethod.CSV


def test_rejoin_decimal_fragments_only_while_row_is_too_wide():
    cells = ["01.03.2024", "Büromiete", "-1200", "00", "8800", "00"]
    assert rejoin_decimal_fragments(cells, 4) == ["01.03.2024", "Büromiete", "-1200,00", "8800,00"]
    assert rejoin_decimal_fragments(["a", "12", "50"], 3) == ["a", "12", "50"]


def test_rejoin_leaves_integer_amount_before_comma_decimal_balance():
    cells = ["01.03.2024", "Kaffee", "-12", "50", "00"]
    assert rejoin_decimal_fragments(cells, 4, {2, 3}) == ["01.03.2024", "Kaffee", "-12", "50,00"]
    # both columns split
    cells = ["01.03.2024", "Kaffee", "-12", "50", "10", "00"]
    assert rejoin_decimal_fragments(cells, 4, {2, 3}) == ["01.03.2024", "Kaffee", "-12,50", "10,00"]


def test_rejoin_only_merges_two_digit_fractions_into_money_columns():
    assert rejoin_decimal_fragments(["12", "50", "Miete", "-3", "5"], 4, {2, 3}) == [
        "12", "50", "Miete", "-3", "5"
    ]
    assert rejoin_decimal_fragments(["d", "Miete", "-3", "5"], 3, {2}) == ["d", "Miete", "-3", "5"]


def test_integer_amount_with_split_balance(settings):
    text = "Date,Description,Amount,Balance\n01.03.2024,Kaffee,-12,50,00\n"
    tx = CsvStatementParser(settings).parse(_doc(text)).transactions[0]
    assert (tx.amount, tx.balance) == (Decimal("12.00"), Decimal("50.00"))


def test_detect_delimiter():
    assert detect_delimiter("Buchungstag;Text;Betrag\n01.03.24;Miete;-1,00") == ";"
    assert detect_delimiter("Date\tText\tAmount") == "\t"
    assert detect_delimiter("Date,Text,Amount") == ","


def test_semicolon_export_with_bank_detection(settings):
    text = (
        "Auftragskonto;Buchungstag;Valutadatum;Buchungstext;Verwendungszweck;Betrag;Waehrung\n"
        "DE89370400440532013000;02.03.24;02.03.24;Gutschrift;Kunde AG Zahlung;1.250,00;EUR\n"
        "DE89370400440532013000;01.03.24;01.03.24;SEPA-Lastschrift;Telekom Rechnung;-49,99;EUR\n"
    )
    env = CsvStatementParser(settings).parse(_doc(text))

    assert env.metadata.detected_format == "Sparkasse"
    assert env.bank_name == "Sparkasse"
    assert [t.date for t in env.transactions] == [dt.date(2024, 3, 1), dt.date(2024, 3, 2)]
    expense, income = env.transactions
    assert (expense.type, expense.amount) == (TransactionType.EXPENSE, Decimal("49.99"))
    assert (income.type, income.amount) == (TransactionType.INCOME, Decimal("1250.00"))
    assert expense.description == "Telekom Rechnung"
    assert env.statement_period.start_date == dt.date(2024, 3, 1)
    assert env.statement_period.end_date == dt.date(2024, 3, 2)


def test_quoted_fields_and_cp1252_fallback(settings):
    text = 'Date,Description,Amount\n2024-03-05,"Miete, März",-800.00\n'
    env = CsvStatementParser(settings).parse(_doc(text, encoding="cp1252"))
    assert env.transactions[0].description == "Miete, März"
    assert env.transactions[0].amount == Decimal("800.00")


def test_malformed_rows_are_skipped_and_lower_confidence(settings):
    text = (
        "Date,Description,Amount\n"
        "01.03.2024,Coffee,-3.50\n"
        "not-a-date,Broken,-1.00\n"
        "02.03.2024,Refund,3.50\n"
    )
    env = CsvStatementParser(settings).parse(_doc(text))
    assert len(env.transactions) == 2
    assert env.confidence == pytest.approx(0.6)


def test_positional_columns_when_headers_are_unknown(settings):
    text = "Col1,Col2,Col3\n01.03.2024,Coffee,-3,50\n"
    env = CsvStatementParser(settings).parse(_doc(text))
    tx = env.transactions[0]
    assert (tx.description, tx.amount, tx.type) == ("Coffee", Decimal("3.50"), TransactionType.EXPENSE)


def test_too_few_columns_is_a_format_error(settings):
    with pytest.raises(FormatError):
        CsvStatementParser(settings).parse(_doc("Date,Amount\n01.03.2024,5\n"))


def test_empty_file_is_a_format_error(settings):
    with pytest.raises(FormatError):
        CsvStatementParser(settings).parse(_doc("\n\n"))


def test_no_valid_rows_is_an_empty_result(settings):
    text = "Date,Description,Amount\nfoo,bar,baz\n01.03.2024,Zero,0,00\n"
    with pytest.raises(EmptyResultError):
        CsvStatementParser(settings).parse(_doc(text))


def test_cancellation_stops_parsing(settings):
    token = CancellationToken()
    token.cancel("user abort")
    text = "Date,Description,Amount\n01.03.2024,Coffee,-3.50\n"
    with pytest.raises(ProcessingCancelled, match="user abort"):
        CsvStatementParser(settings).parse(_doc(text), cancel=token)
