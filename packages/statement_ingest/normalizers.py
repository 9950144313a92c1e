"""Raw row -> canonical transaction normalization.

Handles the locale ambiguity of bank exports:

- Dates: ``datetime``/``date`` objects, Excel serial numbers (> 40000, days
  since 1899-12-30), ISO strings, ``DD.MM.YYYY`` and a handful of other
  day-first layouts. The detected bank profile's format is tried first.
- Amounts: currency symbols and whitespace are stripped. When both ``,`` and
  ``.`` appear, the later one is the decimal point (``1.234,56`` and
  ``1,234.56`` both give ``1234.56``); a lone ``,`` is a decimal comma unless
  the profile says otherwise. Parentheses and trailing minus mean negative.
- Counterparty and reference extraction from the booking text.

Row-level problems raise :class:`~statement_ingest.errors.RowValidationError`;
:func:`normalize_rows` logs and skips such rows.
"""

from __future__ import annotations

import datetime as dt
import hashlib
import math
import re
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .bank_formats import AmountFormat, BankFormatProfile
from .errors import RowValidationError
from .logging_setup import get_logger
from .models import CanonicalTransaction, RawRow, TransactionType
from .text_rules import REFERENCE_RULES, apply_strip_rules, first_match

_logger = get_logger("statement_ingest.normalizers")

_EXCEL_EPOCH = dt.date(1899, 12, 30)
_EXCEL_SERIAL_MIN = 40000
# 9999-12-31, the last day `datetime.date` can represent.
_EXCEL_SERIAL_MAX = 2_958_465
_CENT = Decimal("0.01")
_COUNTERPARTY_MAX = 100

_GENERIC_DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%d.%m.%Y",
    "%d.%m.%y",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d/%m/%y",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
)

# Order matters: "€" before "$", ISO codes after symbols.
_CURRENCY_MARKERS: tuple[tuple[str, str], ...] = (
    ("€", "EUR"),
    ("£", "GBP"),
    ("$", "USD"),
    ("EUR", "EUR"),
    ("GBP", "GBP"),
    ("USD", "USD"),
    ("CHF", "CHF"),
)
_CURRENCY_STRIP_RE = re.compile(r"€|£|\$|\b(?:EUR|GBP|USD|CHF)\b", re.IGNORECASE)
_THOUSANDS_DOT_RE = re.compile(r"\d{1,3}(?:\.\d{3})+")
_THOUSANDS_COMMA_RE = re.compile(r"\d{1,3}(?:,\d{3})+")
_SERIAL_STR_RE = re.compile(r"\d{5}(?:\.\d+)?")
_SEGMENT_SPLIT_RE = re.compile(r"\s{2,}|/")


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def _is_blank(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, float) and math.isnan(v):
        return True
    return isinstance(v, str) and not v.strip()


def _from_excel_serial(serial: float) -> dt.date:
    if not _EXCEL_SERIAL_MIN < serial <= _EXCEL_SERIAL_MAX:
        raise ValueError(f"numeric date {serial!r} is not an Excel serial")
    try:
        return _EXCEL_EPOCH + dt.timedelta(days=int(serial))
    except OverflowError as e:
        raise ValueError(f"numeric date {serial!r} is out of range") from e


def parse_date(raw: Any, *, date_format: str | None = None) -> dt.date:
    """Parse one date cell; raise ``ValueError`` when no layout fits."""

    if isinstance(raw, dt.datetime):  # includes pandas.Timestamp
        return raw.date()
    if isinstance(raw, dt.date):
        return raw
    if isinstance(raw, int | float) and not isinstance(raw, bool):
        if isinstance(raw, float) and not math.isfinite(raw):
            raise ValueError("date is NaN")
        return _from_excel_serial(raw)
    if _is_blank(raw):
        raise ValueError("date is empty")

    s = str(raw).strip()
    if _SERIAL_STR_RE.fullmatch(s) and float(s) > _EXCEL_SERIAL_MIN:
        return _from_excel_serial(float(s))

    formats = ((date_format,) if date_format else ()) + _GENERIC_DATE_FORMATS
    for fmt in formats:
        try:
            return dt.datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    try:
        return dt.datetime.fromisoformat(s).date()
    except ValueError as e:
        raise ValueError(f"unrecognized date: {raw!r}") from e


def _canonical_number(s: str, amount_format: AmountFormat | None) -> str:
    has_comma, has_dot = "," in s, "." in s
    if has_comma and has_dot:
        if s.rfind(",") > s.rfind("."):
            return s.replace(".", "").replace(",", ".")
        return s.replace(",", "")
    if has_comma:
        if s.count(",") > 1 or (
            amount_format is AmountFormat.DOT_DECIMAL and _THOUSANDS_COMMA_RE.fullmatch(s)
        ):
            return s.replace(",", "")
        return s.replace(",", ".")
    if has_dot:
        if s.count(".") > 1 or (
            amount_format is AmountFormat.COMMA_DECIMAL and _THOUSANDS_DOT_RE.fullmatch(s)
        ):
            return s.replace(".", "")
    return s


def _to_cents(d: Decimal, raw: Any) -> Decimal:
    try:
        return d.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValueError(f"amount out of range: {raw!r}") from e


def parse_amount(raw: Any, *, amount_format: AmountFormat | None = None) -> Decimal:
    """Parse a signed amount; raise ``ValueError`` when it is not a number."""

    if isinstance(raw, bool):
        raise ValueError("boolean is not an amount")
    if isinstance(raw, Decimal | int | float):
        if isinstance(raw, float) and not math.isfinite(raw):
            raise ValueError("amount is NaN")
        return _to_cents(Decimal(str(raw)), raw)
    if _is_blank(raw):
        raise ValueError("amount is empty")

    s = _CURRENCY_STRIP_RE.sub("", str(raw))
    s = s.replace("\u00a0", "").replace(" ", "").replace("'", "")
    negative = False
    # Strip sign markers in any order: "-(1.234,56)", "(1.234,56)", "249,00-".
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:]
            changed = True
        elif s.startswith("-") or s.startswith("−"):
            negative = True
            s = s[1:]
            changed = True
        if s.endswith("-") and len(s) > 1:
            negative = True
            s = s[:-1]
            changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1]
            changed = True
        if not changed:
            break

    if not s or not re.fullmatch(r"[\d.,]+", s):
        raise ValueError(f"invalid amount: {raw!r}")
    canonical = _canonical_number(s, amount_format)
    try:
        d = Decimal(canonical)
    except InvalidOperation as e:
        raise ValueError(f"invalid amount: {raw!r}") from e
    d = _to_cents(d, raw)
    return -d if negative else d


def detect_currency(*values: Any, default: str) -> str:
    """Return the ISO code of the first currency marker found in ``values``."""

    for v in values:
        if _is_blank(v) or not isinstance(v, str):
            continue
        text = v.strip()
        if len(text) == 3 and text.isalpha() and text.isupper():
            return text
        for marker, code in _CURRENCY_MARKERS:
            if marker in text:
                return code
    return default


# ---------------------------------------------------------------------------
# Booking text
# ---------------------------------------------------------------------------


def clean_description(raw: str) -> str:
    return " ".join(raw.split())


def extract_counterparty(description: str | None) -> str | None:
    """Best-effort counterparty name from a booking text.

    Transaction-type prefixes, IBAN/BIC-shaped tokens, long reference numbers
    and SEPA tags are removed; the first segment before a double space or a
    slash is kept, whitespace-collapsed and capped at 100 characters.
    """

    if not description:
        return None
    stripped = apply_strip_rules(description)
    for segment in _SEGMENT_SPLIT_RE.split(stripped):
        name = " ".join(segment.split()).strip(" ,.;:-")
        if name:
            return name[:_COUNTERPARTY_MAX]
    return None


def extract_reference(description: str | None) -> str | None:
    if not description:
        return None
    hit = first_match(description, REFERENCE_RULES)
    return hit[1] if hit else None


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


def transaction_id(
    date: dt.date, signed_amount: Decimal, raw_description: str, occurrence: int
) -> str:
    """Stable id: identical statements yield identical ids on re-import."""

    payload = f"{date.isoformat()}|{signed_amount:.2f}|{raw_description}|{occurrence}"
    return "tx_" + hashlib.sha1(payload.encode("utf-8")).hexdigest()[:16]


def _signed_amount(row: RawRow, amount_format: AmountFormat | None) -> Decimal:
    if not _is_blank(row.amount):
        return parse_amount(row.amount, amount_format=amount_format)
    if _is_blank(row.debit) and _is_blank(row.credit):
        raise ValueError("amount is empty")
    credit = Decimal("0") if _is_blank(row.credit) else abs(
        parse_amount(row.credit, amount_format=amount_format)
    )
    debit = Decimal("0") if _is_blank(row.debit) else abs(
        parse_amount(row.debit, amount_format=amount_format)
    )
    return credit - debit


def normalize_row(
    row: RawRow,
    *,
    profile: BankFormatProfile | None,
    currency: str,
    confidence: float,
    occurrences: Counter[tuple[dt.date, Decimal, str]] | None = None,
) -> CanonicalTransaction | None:
    """Convert one raw row.

    Returns ``None`` for rows that are not transactions (zero amount). Raises
    :class:`RowValidationError` for unparseable dates or amounts.
    """

    date_format = profile.date_format if profile else None
    amount_format = profile.amount_format if profile else None

    try:
        date = parse_date(row.date, date_format=date_format)
    except ValueError as e:
        raise RowValidationError(str(e), row_number=row.row_number, value=row.date) from e
    try:
        signed = _signed_amount(row, amount_format)
    except ValueError as e:
        raise RowValidationError(str(e), row_number=row.row_number, value=row.amount) from e

    if signed == 0:
        _logger.debug("normalize_row:zero_amount row=%d", row.row_number)
        return None

    raw_description = "" if _is_blank(row.description) else str(row.description).strip()
    if not raw_description:
        raise RowValidationError("description is empty", row_number=row.row_number)

    occ = 0
    if occurrences is not None:
        key = (date, signed, raw_description)
        occ = occurrences[key]
        occurrences[key] += 1

    balance: Decimal | None = None
    if not _is_blank(row.balance):
        try:
            balance = parse_amount(row.balance, amount_format=amount_format)
        except ValueError:
            _logger.debug("normalize_row:balance_unparsed row=%d", row.row_number)

    return CanonicalTransaction(
        id=transaction_id(date, signed, raw_description, occ),
        date=date,
        description=clean_description(raw_description),
        raw_description=raw_description,
        amount=abs(signed),
        currency=detect_currency(row.currency, row.amount, default=currency),
        type=TransactionType.INCOME if signed >= 0 else TransactionType.EXPENSE,
        counterparty=extract_counterparty(raw_description),
        reference=(
            str(row.reference).strip()
            if not _is_blank(row.reference)
            else extract_reference(raw_description)
        ),
        balance=balance,
        confidence=confidence,
    )


@dataclass(frozen=True, slots=True)
class NormalizedRows:
    """Output of :func:`normalize_rows`.

    ``transactions`` are sorted ascending by date (stable for equal dates).
    ``invalid`` counts rows skipped because of a :class:`RowValidationError`.
    """

    transactions: list[CanonicalTransaction]
    invalid: int
    ignored: int

    @property
    def valid_fraction(self) -> float:
        total = len(self.transactions) + self.invalid
        return 1.0 if total == 0 else len(self.transactions) / total


def normalize_rows(
    rows: Iterable[RawRow],
    *,
    profile: BankFormatProfile | None,
    currency: str,
    confidence: float,
) -> NormalizedRows:
    """Normalize every row, skipping (and logging) malformed ones."""

    out: list[CanonicalTransaction] = []
    invalid = 0
    ignored = 0
    occurrences: Counter[tuple[dt.date, Decimal, str]] = Counter()
    for row in rows:
        if _is_blank(row.date) and _is_blank(row.description) and _is_blank(row.amount) and (
            _is_blank(row.debit) and _is_blank(row.credit)
        ):
            ignored += 1
            continue
        try:
            tx = normalize_row(
                row,
                profile=profile,
                currency=currency,
                confidence=confidence,
                occurrences=occurrences,
            )
        except RowValidationError as e:
            invalid += 1
            _logger.warning("normalize_rows:row_skipped row=%d reason=%s", row.row_number, e)
            continue
        if tx is None:
            ignored += 1
            continue
        out.append(tx)
    out.sort(key=lambda t: t.date)
    return NormalizedRows(transactions=out, invalid=invalid, ignored=ignored)


__all__ = [
    "parse_date",
    "parse_amount",
    "detect_currency",
    "clean_description",
    "extract_counterparty",
    "extract_reference",
    "transaction_id",
    "normalize_row",
    "normalize_rows",
    "NormalizedRows",
]
