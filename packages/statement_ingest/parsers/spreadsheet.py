"""XLS/XLSX statement adapter.

Reads the first sheet with pandas (``openpyxl`` for OOXML workbooks, ``xlrd``
for legacy OLE2 ``.xls`` files), locates the header row among the first rows,
and resolves the date/description/amount columns by header vocabulary.
"""

from __future__ import annotations

import io
import math
from collections.abc import Sequence
from typing import Any

import pandas as pd

from ..bank_formats import (
    BANK_FORMATS,
    BankFormatProfile,
    detect_bank_format,
    missing_required,
    resolve_columns,
)
from ..config import DocumentType, IngestSettings
from ..errors import ColumnResolutionError, FormatError
from ..logging_setup import get_logger
from ..models import ProcessingMethod, RawRow, StatementDocument, StatementEnvelope
from ..normalizers import detect_currency
from ..scheduling import CancellationToken
from .base import TABULAR_CONFIDENCE, StatementParser, envelope_from_rows

_logger = get_logger("statement_ingest.parsers.spreadsheet")

# OLE2 compound document magic bytes: legacy .xls container
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
_HEADER_SCAN_ROWS = 30


def _engine_for(content: bytes) -> str:
    return "xlrd" if content[:8] == _OLE2_MAGIC else "openpyxl"


def _clean(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, str):
        s = value.strip()
        return s or None
    return value


def read_first_sheet(content: bytes) -> list[list[Any]]:
    """Return the first worksheet as a list of rows with blanks mapped to ``None``."""

    engine = _engine_for(content)
    try:
        frame = pd.read_excel(
            io.BytesIO(content), sheet_name=0, header=None, dtype=object, engine=engine
        )
    except Exception as e:  # noqa: BLE001 - engines raise heterogeneous errors
        raise FormatError(f"Failed to read spreadsheet ({engine}): {e}") from e
    return [[_clean(v) for v in row] for row in frame.itertuples(index=False, name=None)]


def _header_text(row: Sequence[Any]) -> list[str]:
    return ["" if v is None else str(v).strip() for v in row]


class SpreadsheetStatementParser(StatementParser):
    document_types = (DocumentType.XLS, DocumentType.XLSX)

    def __init__(
        self,
        settings: IngestSettings,
        profiles: Sequence[BankFormatProfile] = BANK_FORMATS,
    ) -> None:
        super().__init__(settings)
        self.profiles = tuple(profiles)

    def _locate_header(
        self, rows: Sequence[Sequence[Any]], profile: BankFormatProfile | None
    ) -> tuple[int, dict[str, int]]:
        first_non_empty: int | None = None
        for idx, row in enumerate(rows[:_HEADER_SCAN_ROWS]):
            headers = _header_text(row)
            if not any(headers):
                continue
            if first_non_empty is None:
                first_non_empty = idx
            columns = resolve_columns(headers, profile)
            if not missing_required(columns):
                return idx, columns

        if first_non_empty is None:
            raise ColumnResolutionError(["date", "description", "amount"])
        headers = _header_text(rows[first_non_empty])
        missing = missing_required(resolve_columns(headers, profile))
        raise ColumnResolutionError(missing, [h for h in headers if h])

    def parse(
        self, document: StatementDocument, *, cancel: CancellationToken | None = None
    ) -> StatementEnvelope:
        rows = read_first_sheet(document.content)
        if len(rows) < 2:
            raise FormatError(
                f"{document.filename}: spreadsheet must contain a header row and one data row"
            )

        sample = "\n".join(
            " ".join(str(v) for v in row if isinstance(v, str)) for row in rows[:_HEADER_SCAN_ROWS]
        )
        profile = detect_bank_format(sample, self.profiles)
        try:
            header_idx, columns = self._locate_header(rows, profile)
        except ColumnResolutionError as e:
            _logger.error(
                "parse_spreadsheet:columns_unresolved file=%s missing=%s",
                document.filename,
                ",".join(e.missing),
            )
            raise

        preamble = "\n".join(" ".join(_header_text(r)) for r in rows[: header_idx + 1])
        currency = detect_currency(
            preamble, default=profile.currency if profile else self.settings.default_currency
        )
        detected_format = profile.name if profile else "generic-spreadsheet"
        _logger.info(
            "parse_spreadsheet:start file=%s format=%s header_row=%d rows=%d",
            document.filename,
            detected_format,
            header_idx,
            len(rows) - header_idx - 1,
        )

        raw_rows: list[RawRow] = []
        for n, row in enumerate(rows[header_idx + 1 :], start=1):
            if cancel is not None:
                cancel.raise_if_cancelled("spreadsheet parsing")

            def cell(name: str, row: Sequence[Any] = row) -> Any:
                idx = columns.get(name)
                return row[idx] if idx is not None and idx < len(row) else None

            raw_rows.append(
                RawRow(
                    row_number=n,
                    date=cell("date"),
                    description=cell("description"),
                    amount=cell("amount"),
                    balance=cell("balance"),
                    currency=cell("currency"),
                    debit=cell("debit"),
                    credit=cell("credit"),
                )
            )

        return envelope_from_rows(
            raw_rows,
            profile=profile,
            currency=currency,
            base_confidence=TABULAR_CONFIDENCE,
            processing_method=ProcessingMethod.SPREADSHEET,
            detected_format=detected_format,
        )


__all__ = ["SpreadsheetStatementParser", "read_first_sheet"]
