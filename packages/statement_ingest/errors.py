"""Error taxonomy for statement ingestion.

Document-level errors (``FormatError``, ``ColumnResolutionError``,
``EmptyResultError`` and OCR failures) abort the statement and surface to the
caller. ``RowValidationError`` is row-level: parsers catch it, log a warning and
continue with the next row. Language-model failures are absorbed by the
analysis orchestrator, which degrades to a deterministic fallback.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class StatementError(Exception):
    """Base class for every error raised by the ingestion pipeline."""


class FormatError(StatementError):
    """The declared or detected file type is not supported."""


class ColumnResolutionError(StatementError):
    """A required tabular column (date, description or amount) could not be found."""

    def __init__(self, missing: Sequence[str], headers: Sequence[str] = ()) -> None:
        self.missing = tuple(missing)
        self.headers = tuple(headers)
        super().__init__(
            "Statement must contain columns for "
            + ", ".join(self.missing)
            + (f" (found headers: {', '.join(self.headers)})" if self.headers else "")
        )


class EmptyResultError(StatementError):
    """Parsing finished without a single valid transaction."""


class RowValidationError(StatementError):
    """One row carried an unparseable date or amount; the row is skipped."""

    def __init__(self, message: str, *, row_number: int | None = None, value: Any = None) -> None:
        self.row_number = row_number
        self.value = value
        prefix = f"row {row_number}: " if row_number is not None else ""
        super().__init__(f"{prefix}{message}")


class ExternalServiceError(StatementError):
    """An external collaborator (OCR, language model, storage) failed."""

    service: str = "external"

    def __init__(self, message: str) -> None:
        super().__init__(f"{self.service}: {message}")


class OcrError(ExternalServiceError):
    service = "ocr"


class OcrTimeoutError(OcrError):
    """The OCR job did not finish within the polling budget."""


class LanguageModelError(ExternalServiceError):
    service = "language_model"


class StorageError(ExternalServiceError):
    service = "object_storage"


class ProcessingCancelled(StatementError):
    """A cancellation signal stopped an in-flight statement."""


__all__ = [
    "StatementError",
    "FormatError",
    "ColumnResolutionError",
    "EmptyResultError",
    "RowValidationError",
    "ExternalServiceError",
    "OcrError",
    "OcrTimeoutError",
    "LanguageModelError",
    "StorageError",
    "ProcessingCancelled",
]
