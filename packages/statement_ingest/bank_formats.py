"""Bank format registry: known export conventions of individual banks.

``detect_bank_format(text)`` walks :data:`BANK_FORMATS` in order and returns the
first profile with an identifier that occurs in ``text`` (case-sensitive
substring). Order is priority. When nothing matches, callers fall back to
:data:`GENERIC_COLUMN_HINTS`, a German/English header vocabulary.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType

from .logging_setup import get_logger

_logger = get_logger("statement_ingest.bank_formats")


class AmountFormat(StrEnum):
    COMMA_DECIMAL = "comma-decimal"  # 1.234,56
    DOT_DECIMAL = "dot-decimal"  # 1,234.56


# Logical fields a tabular statement can map onto.
REQUIRED_FIELDS: tuple[str, ...] = ("date", "description", "amount")
OPTIONAL_FIELDS: tuple[str, ...] = ("balance", "debit", "credit", "currency")


def _hints(**fields: Sequence[str]) -> Mapping[str, tuple[str, ...]]:
    return MappingProxyType({k: tuple(v) for k, v in fields.items()})


GENERIC_COLUMN_HINTS: Mapping[str, tuple[str, ...]] = _hints(
    date=("date", "datum", "transaction date", "valuta", "buchungstag"),
    description=("description", "beschreibung", "text", "reference", "verwendungszweck"),
    amount=("amount", "betrag", "value", "summe"),
    balance=("balance", "saldo", "account balance", "kontostand"),
    debit=("debit", "soll", "withdrawal"),
    credit=("credit", "haben", "deposit"),
    currency=("currency", "währung", "waehrung"),
)


@dataclass(frozen=True, slots=True)
class BankFormatProfile:
    """Immutable description of one bank's export conventions."""

    name: str
    identifiers: tuple[str, ...]
    date_format: str
    amount_format: AmountFormat
    column_hints: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    currency: str = "EUR"

    def matches(self, text: str) -> bool:
        return any(ident in text for ident in self.identifiers)

    def hints_for(self, field_name: str) -> tuple[str, ...]:
        """Bank-specific header variants first, then the generic ones."""

        own = tuple(self.column_hints.get(field_name, ()))
        generic = GENERIC_COLUMN_HINTS.get(field_name, ())
        return own + tuple(h for h in generic if h not in own)


BANK_FORMATS: tuple[BankFormatProfile, ...] = (
    BankFormatProfile(
        name="Deutsche Bank",
        identifiers=("Deutsche Bank", "DEUTDE"),
        date_format="%d.%m.%Y",
        amount_format=AmountFormat.COMMA_DECIMAL,
        column_hints=_hints(
            date=("buchungstag", "wert"),
            description=("verwendungszweck", "umsatzart", "begünstigter / auftraggeber"),
            debit=("soll",),
            credit=("haben",),
        ),
    ),
    BankFormatProfile(
        name="Sparkasse",
        identifiers=("Sparkasse", "Auftragskonto"),
        date_format="%d.%m.%y",
        amount_format=AmountFormat.COMMA_DECIMAL,
        column_hints=_hints(
            date=("buchungstag", "valutadatum"),
            description=("verwendungszweck", "buchungstext", "beguenstigter/zahlungspflichtiger"),
            amount=("betrag",),
        ),
    ),
    BankFormatProfile(
        name="N26",
        identifiers=("N26", "Payee", "Transaction type"),
        date_format="%Y-%m-%d",
        amount_format=AmountFormat.DOT_DECIMAL,
        column_hints=_hints(
            date=("date", "booking date"),
            description=("payee", "payment reference"),
            amount=("amount (eur)", "amount"),
        ),
    ),
    BankFormatProfile(
        name="Commerzbank",
        identifiers=("Commerzbank", "Umsatzart"),
        date_format="%d.%m.%Y",
        amount_format=AmountFormat.COMMA_DECIMAL,
        column_hints=_hints(
            date=("buchungstag", "wertstellung"),
            description=("buchungstext",),
            amount=("betrag",),
            currency=("währung",),
        ),
    ),
    BankFormatProfile(
        name="ING",
        identifiers=("ING-DiBa", "ING Bank", "INGDDEFF"),
        date_format="%d.%m.%Y",
        amount_format=AmountFormat.COMMA_DECIMAL,
        column_hints=_hints(
            date=("buchung", "valuta"),
            description=("auftraggeber/empfänger", "verwendungszweck"),
            amount=("betrag",),
            balance=("saldo",),
        ),
    ),
    BankFormatProfile(
        name="Postbank",
        identifiers=("Postbank", "PBNKDEFF"),
        date_format="%d.%m.%Y",
        amount_format=AmountFormat.COMMA_DECIMAL,
        column_hints=_hints(
            date=("buchungsdatum", "wertstellung"),
            description=("umsatzart", "buchungsdetails"),
            amount=("betrag (€)", "betrag"),
        ),
    ),
    BankFormatProfile(
        name="Revolut",
        identifiers=("Revolut", "Completed Date"),
        date_format="%Y-%m-%d %H:%M:%S",
        amount_format=AmountFormat.DOT_DECIMAL,
        column_hints=_hints(
            date=("completed date", "started date"),
            description=("description",),
            amount=("amount",),
            balance=("balance",),
        ),
    ),
)


def detect_bank_format(
    text: str, profiles: Iterable[BankFormatProfile] = BANK_FORMATS
) -> BankFormatProfile | None:
    """Return the first profile whose identifiers occur in ``text``, else ``None``."""

    if not text:
        return None
    for profile in profiles:
        if profile.matches(text):
            _logger.debug("detect_bank_format:match bank=%s", profile.name)
            return profile
    return None


def column_hints_for(profile: BankFormatProfile | None, field_name: str) -> tuple[str, ...]:
    if profile is None:
        return GENERIC_COLUMN_HINTS.get(field_name, ())
    return profile.hints_for(field_name)


def resolve_columns(
    headers: Sequence[object], profile: BankFormatProfile | None
) -> dict[str, int]:
    """Map logical field names to header indices.

    A header matches a field when it contains one of the field's hint variants
    (case-insensitive substring). Hints are tried in priority order; a column
    is never claimed by two fields. Missing fields are absent from the result.
    """

    lowered = [str(h).strip().lower() if h is not None else "" for h in headers]
    claimed: set[int] = set()
    resolved: dict[str, int] = {}
    for field_name in REQUIRED_FIELDS + OPTIONAL_FIELDS:
        for hint in column_hints_for(profile, field_name):
            needle = hint.lower()
            idx = next(
                (i for i, h in enumerate(lowered) if h and i not in claimed and needle in h),
                None,
            )
            if idx is not None:
                resolved[field_name] = idx
                claimed.add(idx)
                break
    return resolved


def missing_required(resolved: Mapping[str, int]) -> list[str]:
    """Required fields absent from ``resolved``; a debit/credit pair stands in for amount."""

    missing = [f for f in REQUIRED_FIELDS if f not in resolved]
    if "amount" in missing and ("debit" in resolved or "credit" in resolved):
        missing.remove("amount")
    return missing


__all__ = [
    "AmountFormat",
    "BankFormatProfile",
    "BANK_FORMATS",
    "GENERIC_COLUMN_HINTS",
    "REQUIRED_FIELDS",
    "OPTIONAL_FIELDS",
    "detect_bank_format",
    "column_hints_for",
    "resolve_columns",
    "missing_required",
]
