from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from statement_ingest.bank_formats import BANK_FORMATS, AmountFormat
from statement_ingest.errors import RowValidationError
from statement_ingest.models import RawRow, TransactionType
from statement_ingest.normalizers import (
    detect_currency,
    normalize_row,
    normalize_rows,
    parse_amount,
    parse_date,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("1234.56", Decimal("1234.56")),
        ("-1200,00", Decimal("-1200.00")),
        ("€ 1.234,56", Decimal("1234.56")),
        ("1 234,56 EUR", Decimal("1234.56")),
        ("(249,00)", Decimal("-249.00")),
        ("249,00-", Decimal("-249.00")),
        ("+12,5", Decimal("12.50")),
        (-42.5, Decimal("-42.50")),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


def test_parse_amount_uses_profile_for_ambiguous_thousands():
    assert parse_amount("-1.200", amount_format=AmountFormat.COMMA_DECIMAL) == Decimal("-1200.00")
    assert parse_amount("1,234", amount_format=AmountFormat.DOT_DECIMAL) == Decimal("1234.00")


@pytest.mark.parametrize("raw", ["abc", "", None, float("nan"), "12-34-56", True])
def test_parse_amount_rejects_non_numbers(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("31.12.2024", dt.date(2024, 12, 31)),
        ("2024-03-05", dt.date(2024, 3, 5)),
        (45000, dt.date(2023, 3, 15)),
        ("45000", dt.date(2023, 3, 15)),
        (dt.datetime(2024, 3, 1, 12, 30), dt.date(2024, 3, 1)),
        ("05/03/2024", dt.date(2024, 3, 5)),
    ],
)
def test_parse_date(raw, expected):
    assert parse_date(raw) == expected


def test_parse_date_profile_format_first():
    assert parse_date("01.03.24", date_format="%d.%m.%y") == dt.date(2024, 3, 1)


@pytest.mark.parametrize("raw", ["not a date", "", None, 123])
def test_parse_date_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_date(raw)


def test_detect_currency_order_and_default():
    assert detect_currency(None, "-12,50 €", default="USD") == "EUR"
    assert detect_currency("GBP", default="EUR") == "GBP"
    assert detect_currency("plain text", default="CHF") == "CHF"


def _row(n, date, desc, amount, **kw):
    return RawRow(row_number=n, date=date, description=desc, amount=amount, **kw)


def test_normalize_row_sign_becomes_type():
    tx = normalize_row(
        _row(1, "01.03.2024", "  Büromiete   März ", "-1200,00", balance="8800,00"),
        profile=None,
        currency="EUR",
        confidence=0.9,
    )
    assert tx is not None
    assert tx.amount == Decimal("1200.00")
    assert tx.type is TransactionType.EXPENSE
    assert tx.description == "Büromiete März"
    assert tx.raw_description == "Büromiete   März"
    assert tx.balance == Decimal("8800.00")
    assert tx.id.startswith("tx_")


def test_normalize_row_zero_amount_is_not_a_transaction():
    assert normalize_row(_row(1, "01.03.2024", "Info", "0,00"), profile=None, currency="EUR", confidence=0.9) is None


def test_normalize_row_debit_credit_columns():
    tx = normalize_row(
        _row(1, "01.03.2024", "Telekom", None, debit="49,99"),
        profile=None,
        currency="EUR",
        confidence=0.9,
    )
    assert tx.type is TransactionType.EXPENSE and tx.amount == Decimal("49.99")


def test_normalize_row_validation_errors_carry_row_number():
    with pytest.raises(RowValidationError) as exc:
        normalize_row(_row(7, "someday", "X", "1,00"), profile=None, currency="EUR", confidence=0.9)
    assert exc.value.row_number == 7
    with pytest.raises(RowValidationError):
        normalize_row(_row(8, "01.03.2024", "  ", "1,00"), profile=None, currency="EUR", confidence=0.9)


def test_normalize_rows_skips_sorts_and_keeps_ids_stable():
    rows = [
        _row(1, "05.03.2024", "Adobe", "-249,00"),
        _row(2, "bad", "Broken", "1,00"),
        _row(3, "01.03.2024", "Kunde AG", "1.000,00"),
        _row(4, "05.03.2024", "Adobe", "-249,00"),
        _row(5, None, None, None),
    ]
    sparkasse = next(p for p in BANK_FORMATS if p.name == "Sparkasse")
    out = normalize_rows(rows, profile=sparkasse, currency="EUR", confidence=0.9)
    assert out.invalid == 1
    assert out.ignored == 1
    assert [t.date for t in out.transactions] == sorted(t.date for t in out.transactions)
    assert all(t.amount >= 0 for t in out.transactions)
    # identical rows get distinct ids; a re-run reproduces them
    ids = [t.id for t in out.transactions]
    assert len(set(ids)) == 3
    again = normalize_rows(rows, profile=sparkasse, currency="EUR", confidence=0.9)
    assert [t.id for t in again.transactions] == ids
    assert out.valid_fraction == pytest.approx(0.75)


@pytest.mark.parametrize("raw", [20240301, 20240301.0, 3_000_000])
def test_parse_date_rejects_numbers_beyond_the_excel_range(raw):
    with pytest.raises(ValueError):
        parse_date(raw)


@pytest.mark.parametrize("raw", ["123456789012345678901234567890", 1e30, Decimal("1e40")])
def test_parse_amount_rejects_out_of_range_numbers(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


def test_normalize_rows_skips_out_of_range_cells():
    rows = [
        _row(1, 20240301, "Bad date", -10.0),
        _row(2, "01.03.2024", "Bad amount", "123456789012345678901234567890"),
        _row(3, "02.03.2024", "Bad float", 1e30),
        _row(4, "01.03.2024", "Miete", "-1200,00"),
    ]
    out = normalize_rows(rows, profile=None, currency="EUR", confidence=0.9)
    assert out.invalid == 3
    assert [t.description for t in out.transactions] == ["Miete"]
    assert out.transactions[0].amount == Decimal("1200.00")
