"""Document parser strategies, one per :class:`~statement_ingest.config.DocumentType`."""

from __future__ import annotations

from .base import StatementParser, envelope_from_rows
from .csv_parser import CsvStatementParser
from .ocr import OcrStatementParser, StatementTextExtractor
from .spreadsheet import SpreadsheetStatementParser

__all__ = [
    "StatementParser",
    "envelope_from_rows",
    "CsvStatementParser",
    "SpreadsheetStatementParser",
    "OcrStatementParser",
    "StatementTextExtractor",
]
