"""CSV statement adapter.

Accepts ``,``, ``;`` and tab delimited exports. Quoting follows RFC 4180 via
the stdlib :mod:`csv` module. German exports written with a comma delimiter
and decimal commas (``-1200,00``) split an amount into two cells; such
fragments are re-joined when a row is wider than its header.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Collection, Sequence
from io import StringIO

from ..bank_formats import (
    BANK_FORMATS,
    BankFormatProfile,
    detect_bank_format,
    missing_required,
    resolve_columns,
)
from ..config import DocumentType, IngestSettings
from ..errors import FormatError
from ..logging_setup import get_logger
from ..models import ProcessingMethod, RawRow, StatementDocument, StatementEnvelope
from ..normalizers import detect_currency
from ..scheduling import CancellationToken
from .base import TABULAR_CONFIDENCE, StatementParser, envelope_from_rows

_logger = get_logger("statement_ingest.parsers.csv")

_MIN_COLUMNS = 3
_HEADER_SCAN_LINES = 15
_POSITIONAL: dict[str, int] = {"date": 0, "description": 1, "amount": 2, "balance": 3}
_INT_PART_RE = re.compile(r"[+-]?\d{1,3}(?:\.\d{3})+|[+-]?\d+")
_FRACTION_RE = re.compile(r"\d{2}(?:\s?(?:€|EUR))?-?")
_BARE_FRACTION_RE = re.compile(r"0\d(?:\s?(?:€|EUR))?-?")


def decode_text(content: bytes) -> str:
    """Decode as UTF-8 (BOM tolerated), falling back to Windows-1252."""

    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        _logger.debug("decode_text:fallback encoding=cp1252")
        return content.decode("cp1252", errors="replace")


def detect_delimiter(sample: str) -> str:
    """Prefer ';' or tab when they are at least as frequent as commas."""

    counts = {d: sample.count(d) for d in (";", "\t", ",")}
    for d in (";", "\t"):
        if counts[d] >= _MIN_COLUMNS - 1 and counts[d] >= counts[","]:
            return d
    return ","


def rejoin_decimal_fragments(
    cells: Sequence[str], width: int, money_columns: Collection[int] | None = None
) -> list[str]:
    """Merge ``["-1200", "00"]`` back into ``"-1200,00"`` while the row is too wide.

    Only a two-digit fraction is merged, and only into a position listed in
    ``money_columns`` (any position when ``None``). Merges are chosen so the
    row ends up exactly ``width`` cells wide without leaving a bare fraction
    such as ``"00"`` in a money column, so ``-12,50,00`` becomes
    ``["-12", "50,00"]``. A row with no such layout is returned unchanged.
    """

    stripped = [c.strip() for c in cells]

    def is_money(pos: int) -> bool:
        return money_columns is None or pos in money_columns

    def search(i: int, pos: int, excess: int) -> list[str] | None:
        if i == len(stripped):
            return [] if excess == 0 else None
        cur = stripped[i]
        if (
            excess > 0
            and i + 1 < len(stripped)
            and is_money(pos)
            and _INT_PART_RE.fullmatch(cur)
            and _FRACTION_RE.fullmatch(stripped[i + 1])
        ):
            rest = search(i + 2, pos + 1, excess - 1)
            if rest is not None:
                return [f"{cur},{stripped[i + 1]}", *rest]
        if is_money(pos) and _BARE_FRACTION_RE.fullmatch(cur):
            return None
        rest = search(i + 1, pos + 1, excess)
        return None if rest is None else [cells[i], *rest]

    if len(cells) <= width:
        return list(cells)
    found = search(0, 0, len(cells) - width)
    return list(cells) if found is None else found


def _split(line: str, delimiter: str) -> list[str]:
    row = next(csv.reader(StringIO(line), delimiter=delimiter), [])
    return [c.strip().strip('"').strip() for c in row]


def _locate_header(
    lines: Sequence[str], delimiter: str, profile: BankFormatProfile | None
) -> int:
    for idx, line in enumerate(lines[:_HEADER_SCAN_LINES]):
        cells = _split(line, delimiter)
        if len(cells) >= _MIN_COLUMNS and not missing_required(resolve_columns(cells, profile)):
            return idx
    return 0


class CsvStatementParser(StatementParser):
    document_types = (DocumentType.CSV,)

    def __init__(
        self,
        settings: IngestSettings,
        profiles: Sequence[BankFormatProfile] = BANK_FORMATS,
    ) -> None:
        super().__init__(settings)
        self.profiles = tuple(profiles)

    def parse(
        self, document: StatementDocument, *, cancel: CancellationToken | None = None
    ) -> StatementEnvelope:
        text = decode_text(document.content)
        lines = [ln for ln in text.splitlines() if ln.strip()]
        if not lines:
            raise FormatError(f"{document.filename}: CSV file is empty")

        sample = lines[:_HEADER_SCAN_LINES]
        # Detect on the preamble plus the first lines so header-less exports still match.
        profile = detect_bank_format("\n".join(sample), self.profiles)
        delimiter = detect_delimiter("\n".join(sample))
        header_idx = _locate_header(lines, delimiter, profile)

        reader = csv.reader(StringIO("\n".join(lines[header_idx:])), delimiter=delimiter)
        header = [c.strip() for c in next(reader, [])]
        if len(header) < _MIN_COLUMNS:
            raise FormatError(
                f"{document.filename}: CSV statement needs at least {_MIN_COLUMNS} columns, "
                f"found {len(header)}"
            )

        columns = resolve_columns(header, profile)
        if missing_required(columns):
            _logger.info(
                "parse_csv:positional_columns file=%s headers=%s", document.filename, header
            )
            columns = {k: v for k, v in _POSITIONAL.items() if v < len(header)}

        money_columns = {
            idx for name, idx in columns.items() if name in ("amount", "balance", "debit", "credit")
        }
        currency = detect_currency(
            "\n".join(lines[: header_idx + 1]),
            default=profile.currency if profile else self.settings.default_currency,
        )
        detected_format = profile.name if profile else "generic-csv"
        _logger.info(
            "parse_csv:start file=%s format=%s delimiter=%r",
            document.filename,
            detected_format,
            delimiter,
        )

        raw_rows: list[RawRow] = []
        short_rows = 0
        for n, row in enumerate(reader, start=1):
            if cancel is not None:
                cancel.raise_if_cancelled("csv parsing")
            cells = [c.strip() for c in row]
            if delimiter == "," and len(cells) > len(header):
                cells = rejoin_decimal_fragments(cells, len(header), money_columns)
            if len(cells) < _MIN_COLUMNS:
                short_rows += 1
                _logger.warning(
                    "parse_csv:row_skipped row=%d reason=too_few_columns cells=%d", n, len(cells)
                )
                continue
            raw_rows.append(_raw_row(n, cells, columns))

        return envelope_from_rows(
            raw_rows,
            profile=profile,
            currency=currency,
            base_confidence=TABULAR_CONFIDENCE,
            processing_method=ProcessingMethod.CSV,
            detected_format=detected_format,
            extra_invalid=short_rows,
        )


def _raw_row(row_number: int, cells: Sequence[str], columns: dict[str, int]) -> RawRow:
    def cell(name: str) -> str | None:
        idx = columns.get(name)
        if idx is None or idx >= len(cells):
            return None
        return cells[idx]

    return RawRow(
        row_number=row_number,
        date=cell("date"),
        description=cell("description"),
        amount=cell("amount"),
        balance=cell("balance"),
        currency=cell("currency"),
        debit=cell("debit"),
        credit=cell("credit"),
    )


__all__ = ["CsvStatementParser", "decode_text", "detect_delimiter", "rejoin_decimal_fragments"]
