from __future__ import annotations

from statement_ingest.bank_formats import (
    BANK_FORMATS,
    AmountFormat,
    column_hints_for,
    detect_bank_format,
    missing_required,
    resolve_columns,
)


def _profile(name: str):
    return next(p for p in BANK_FORMATS if p.name == name)


def test_detect_bank_format_first_identifier_wins():
    header = "Auftragskonto;Buchungstag;Valutadatum;Buchungstext;Verwendungszweck;Betrag"
    assert detect_bank_format(header).name == "Sparkasse"

    # Both Sparkasse and N26 identifiers present: registry order decides.
    assert detect_bank_format("Sparkasse export via N26").name == "Sparkasse"


def test_detect_bank_format_is_case_sensitive_and_returns_none():
    assert detect_bank_format("sparkasse lowercase only") is None
    assert detect_bank_format("") is None
    assert detect_bank_format("Date,Description,Amount,Balance") is None


def test_profiles_carry_locale_conventions():
    assert _profile("Deutsche Bank").amount_format is AmountFormat.COMMA_DECIMAL
    assert _profile("Revolut").amount_format is AmountFormat.DOT_DECIMAL
    assert _profile("Sparkasse").date_format == "%d.%m.%y"


def test_hints_prefer_bank_specific_variants_then_generic():
    hints = _profile("Sparkasse").hints_for("date")
    assert hints[:2] == ("buchungstag", "valutadatum")
    assert "date" in hints and "datum" in hints
    assert len(hints) == len(set(hints))
    assert column_hints_for(None, "amount") == ("amount", "betrag", "value", "summe")


def test_resolve_columns_generic_german_headers():
    cols = resolve_columns(["Buchungstag", "Verwendungszweck", "Betrag", "Saldo"], None)
    assert cols == {"date": 0, "description": 1, "amount": 2, "balance": 3}
    assert missing_required(cols) == []


def test_resolve_columns_never_claims_a_column_twice():
    cols = resolve_columns(["Date", "Value date", "Description", "Amount"], None)
    assert cols["date"] == 0
    assert cols["description"] == 2
    assert cols["amount"] == 3


def test_missing_required_accepts_debit_credit_pair():
    cols = resolve_columns(["Datum", "Text", "Soll", "Haben"], None)
    assert cols["debit"] == 2 and cols["credit"] == 3
    assert "amount" not in cols
    assert missing_required(cols) == []


def test_missing_required_reports_absent_fields():
    cols = resolve_columns(["Datum", "Beschreibung", "Kommentar"], None)
    assert missing_required(cols) == ["amount"]
