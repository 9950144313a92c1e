"""Ordered regex rule tables used on free text.

Every heuristic is a plain record ``(name, pattern, priority)`` evaluated by a
small pure function, so each rule can be exercised on its own:

- :data:`COUNTERPARTY_STRIP_RULES` remove noise from booking texts before the
  counterparty segment is taken.
- :data:`REFERENCE_RULES` capture a payment reference.
- :data:`TRANSACTION_LINE_RULES` recognise transaction lines in OCR text.
- :data:`METADATA_RULES` pull account metadata (IBAN, BIC, holder, period,
  balances) out of OCR text.

Lower ``priority`` values run first.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

_DATE = r"(?:\d{1,2}[./-]\d{1,2}[./-]\d{2,4}|\d{4}-\d{2}-\d{2})"
_NUM = r"[+-]?\(?[+-]?\d[\d.,']*\d\)?-?|[+-]?\d"
_AMOUNT = rf"(?:{_NUM})(?:\s?(?:€|EUR|\$|USD|£|GBP|CHF))?"
_SEPA_COUNTRIES: tuple[str, ...] = (
    "AT", "BE", "BG", "CH", "CY", "CZ", "DE", "DK", "EE", "ES", "FI", "FR", "GB",
    "GR", "HR", "HU", "IE", "IS", "IT", "LI", "LT", "LU", "LV", "MC", "MT", "NL",
    "NO", "PL", "PT", "RO", "SE", "SI", "SK", "SM",
)


@dataclass(frozen=True, slots=True)
class TextRule:
    """One pattern with a name (the field it feeds) and a priority."""

    name: str
    pattern: re.Pattern[str]
    priority: int = 100


def _rule(name: str, pattern: str, priority: int = 100, flags: int = 0) -> TextRule:
    return TextRule(name=name, pattern=re.compile(pattern, flags), priority=priority)


def ordered(rules: Iterable[TextRule]) -> list[TextRule]:
    """Rules sorted by priority; ties keep declaration order."""

    return sorted(rules, key=lambda r: r.priority)


# ---------------------------------------------------------------------------
# Counterparty cleanup
# ---------------------------------------------------------------------------

COUNTERPARTY_STRIP_RULES: tuple[TextRule, ...] = (
    _rule("sepa_tag", r"\b(?:EREF|MREF|KREF|CRED|SVWZ|ABWA|ABWE)\+\S*", 10),
    _rule(
        "type_prefix",
        r"^\s*(?:(?:SEPA[- ](?:Überweisung|Ueberweisung|Lastschrift|Gutschrift|Dauerauftrag"
        r"|Basislastschrift|Firmenlastschrift|Echtzeitüberweisung)"
        r"|Überweisung|Ueberweisung|Lastschrift|Gutschrift|Dauerauftrag|Kartenzahlung"
        r"|Kartenumsatz|Girocard|EC[- ]Karte|VISA|MASTERCARD|MAESTRO|AMEX"
        r"|DIRECT DEBIT|STANDING ORDER|CARD PAYMENT|BANK TRANSFER|TRANSFER)\b"
        r"|PAYPAL\s?\*)[\s:/-]*",
        20,
        re.IGNORECASE,
    ),
    _rule("iban", r"\b[A-Z]{2}\d{2}(?:\s?[A-Z0-9]{4}){2,7}(?:\s?[A-Z0-9]{1,4})?\b", 30),
    _rule("bic_labelled", r"\bBIC[:\s]*[A-Z]{6}[A-Z0-9]{2}(?:[A-Z0-9]{3})?\b", 40),
    # BIC-shaped tokens are only stripped when they cannot be a plain word.
    _rule("bic_digit", r"\b(?=[A-Z0-9]*\d)[A-Z]{6}[A-Z0-9]{2}(?:[A-Z0-9]{3})?\b", 41),
    _rule("bic_xxx", r"\b[A-Z]{6}[A-Z0-9]{2}XXX\b", 42),
    # All-letter BICs (COBADEFF) need a SEPA country code in positions 5-6.
    _rule(
        "bic_country",
        rf"\b[A-Z]{{4}}(?:{'|'.join(_SEPA_COUNTRIES)})[A-Z0-9]{{2}}(?:[A-Z0-9]{{3}})?\b",
        43,
    ),
    _rule("long_number", r"\b\d{10,}\b", 50),
)


def apply_strip_rules(text: str, rules: Sequence[TextRule] = COUNTERPARTY_STRIP_RULES) -> str:
    """Replace every match of every rule with a single space."""

    out = text
    for rule in ordered(rules):
        out = rule.pattern.sub(" ", out)
    return out


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------

REFERENCE_RULES: tuple[TextRule, ...] = (
    _rule("end_to_end", r"\bEREF\+\s?(?P<value>[^\s/]+)", 10),
    _rule("mandate", r"\bMREF\+\s?(?P<value>[^\s/]+)", 20),
    _rule("customer", r"\bKREF\+\s?(?P<value>[^\s/]+)", 30),
    _rule(
        "labelled",
        r"\b(?:Ref(?:erence)?|Referenz|Rechnungsnr|Invoice)\.?[:\s#]+(?P<value>[A-Z0-9][\w-]{3,})",
        40,
        re.IGNORECASE,
    ),
    _rule("long_number", r"\b(?P<value>\d{10,})\b", 50),
)


def first_match(text: str, rules: Sequence[TextRule]) -> tuple[str, str] | None:
    """Return ``(rule_name, value)`` for the first rule that matches, by priority.

    The captured ``value`` group is used when the pattern defines one,
    otherwise the whole match.
    """

    for rule in ordered(rules):
        m = rule.pattern.search(text)
        if m is None:
            continue
        value = m.groupdict().get("value") or m.group(0)
        value = value.strip()
        if value:
            return rule.name, value
    return None


# ---------------------------------------------------------------------------
# OCR transaction lines
# ---------------------------------------------------------------------------

TRANSACTION_LINE_RULES: tuple[TextRule, ...] = (
    _rule(
        "booking_value_description_amount",
        rf"^\s*(?P<date>{_DATE})\s+{_DATE}\s+(?P<description>.+?)\s+(?P<amount>{_AMOUNT})"
        rf"(?:\s+(?P<balance>{_AMOUNT}))?\s*$",
        10,
    ),
    _rule(
        "date_description_amount_balance",
        rf"^\s*(?P<date>{_DATE})\s+(?P<description>.+?)\s+(?P<amount>{_AMOUNT})"
        rf"\s+(?P<balance>{_AMOUNT})\s*$",
        20,
    ),
    _rule(
        "date_description_amount",
        rf"^\s*(?P<date>{_DATE})\s+(?P<description>.+?)\s+(?P<amount>{_AMOUNT})\s*$",
        30,
    ),
    _rule(
        "date_amount_description",
        rf"^\s*(?P<date>{_DATE})\s+(?P<amount>{_AMOUNT})\s+(?P<description>\D.*?)\s*$",
        40,
    ),
)


@dataclass(frozen=True, slots=True)
class LineMatch:
    rule: str
    line_number: int
    date: str
    description: str
    amount: str
    balance: str | None


def match_transaction_lines(
    lines: Iterable[str], rules: Sequence[TextRule] = TRANSACTION_LINE_RULES
) -> Iterator[LineMatch]:
    """Yield one :class:`LineMatch` per line accepted by the highest-priority rule."""

    active = ordered(rules)
    for n, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        for rule in active:
            m = rule.pattern.match(line)
            if m is None:
                continue
            desc = m.group("description").strip()
            if not desc:
                continue
            yield LineMatch(
                rule=rule.name,
                line_number=n,
                date=m.group("date"),
                description=desc,
                amount=m.group("amount").strip(),
                balance=(m.groupdict().get("balance") or None),
            )
            break


# ---------------------------------------------------------------------------
# Statement metadata
# ---------------------------------------------------------------------------

METADATA_RULES: tuple[TextRule, ...] = (
    _rule(
        "iban",
        r"\bIBAN[:\s]*(?P<value>[A-Z]{2}\d{2}(?:\s?[A-Z0-9]{4}){2,7}(?:\s?[A-Z0-9]{1,4})?)",
        10,
    ),
    _rule("iban", r"\b(?P<value>DE\d{2}(?:\s?\d{4}){4}\s?\d{2})\b", 11),
    _rule("bic", r"\b(?:BIC|SWIFT)[:\s]*(?P<value>[A-Z]{6}[A-Z0-9]{2}(?:[A-Z0-9]{3})?)\b", 20),
    _rule(
        "account_number",
        r"\b(?:Kontonummer|Konto-Nr\.?|Account (?:number|no\.?))[:\s]*(?P<value>\d[\d ]{4,})",
        30,
        re.IGNORECASE,
    ),
    _rule(
        "account_holder",
        r"\b(?:Kontoinhaber|Account holder|Inhaber)[:\s]+(?P<value>[^\n]+)",
        40,
        re.IGNORECASE,
    ),
    _rule(
        "period",
        rf"(?P<start>{_DATE})\s*(?:-|–|bis|to)\s*(?P<end>{_DATE})",
        50,
        re.IGNORECASE,
    ),
    _rule(
        "opening_balance",
        r"\b(?:Alter Kontostand|Anfangssaldo|Opening balance|Previous balance)[:\s]*"
        rf"(?P<value>{_NUM})",
        60,
        re.IGNORECASE,
    ),
    _rule(
        "closing_balance",
        r"\b(?:Neuer Kontostand|Endsaldo|Closing balance|New balance)[:\s]*"
        rf"(?P<value>{_NUM})",
        70,
        re.IGNORECASE,
    ),
)


def extract_metadata(text: str, rules: Sequence[TextRule] = METADATA_RULES) -> dict[str, str]:
    """Apply metadata rules; the first (highest-priority) hit per field wins.

    ``period`` yields two entries, ``period_start`` and ``period_end``.
    """

    found: dict[str, str] = {}
    for rule in ordered(rules):
        if rule.name in found or (rule.name == "period" and "period_start" in found):
            continue
        m = rule.pattern.search(text)
        if m is None:
            continue
        if rule.name == "period":
            found["period_start"] = m.group("start")
            found["period_end"] = m.group("end")
            continue
        value = " ".join(m.group("value").split())
        if rule.name in ("iban", "account_number"):
            value = value.replace(" ", "")
        if value:
            found[rule.name] = value
    return found


__all__ = [
    "TextRule",
    "LineMatch",
    "ordered",
    "COUNTERPARTY_STRIP_RULES",
    "REFERENCE_RULES",
    "TRANSACTION_LINE_RULES",
    "METADATA_RULES",
    "apply_strip_rules",
    "first_match",
    "match_transaction_lines",
    "extract_metadata",
]
