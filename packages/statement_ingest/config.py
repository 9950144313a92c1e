"""Explicit configuration for the ingestion pipeline.

``IngestSettings`` is constructed by the caller (usually the CLI, via
:meth:`IngestSettings.from_env`) and injected into every component that needs
credentials or tunables. Nothing in this package reads the environment at
import time.
"""

from __future__ import annotations

import os
from enum import StrEnum
from pathlib import PurePath

from pydantic import BaseModel, ConfigDict, Field

from .errors import FormatError

_TEN_MIB = 10 * 1024 * 1024


class DocumentType(StrEnum):
    """Declared upload type; selects the parser strategy."""

    CSV = "csv"
    XLS = "xls"
    XLSX = "xlsx"
    PDF = "pdf"

    @classmethod
    def from_filename(cls, filename: str) -> DocumentType:
        suffix = PurePath(filename).suffix.lower().lstrip(".")
        try:
            return cls(suffix)
        except ValueError as e:
            raise FormatError(
                f"Unsupported file type {suffix or '<none>'!r} for {filename!r}; "
                "expected one of csv, xls, xlsx, pdf"
            ) from e

    @classmethod
    def from_content_type(cls, content_type: str) -> DocumentType:
        ct = content_type.split(";", 1)[0].strip().lower()
        found = _CONTENT_TYPES.get(ct)
        if found is None:
            raise FormatError(f"Unsupported content type {content_type!r}")
        return found

    @classmethod
    def parse(cls, value: str | DocumentType) -> DocumentType:
        """Accept an enum member, a bare type name (``"csv"``) or a MIME type."""

        if isinstance(value, DocumentType):
            return value
        v = value.strip().lower().lstrip(".")
        if "/" in v:
            return cls.from_content_type(v)
        try:
            return cls(v)
        except ValueError as e:
            raise FormatError(f"Unsupported document type {value!r}") from e

    @property
    def is_tabular(self) -> bool:
        return self is not DocumentType.PDF


_CONTENT_TYPES: dict[str, DocumentType] = {
    "text/csv": DocumentType.CSV,
    "application/csv": DocumentType.CSV,
    "application/vnd.ms-excel": DocumentType.XLS,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": DocumentType.XLSX,
    "application/pdf": DocumentType.PDF,
}


class IngestSettings(BaseModel):
    """Tunables and credentials for one pipeline instance."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Language model
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_completion_tokens: int = Field(default=4000, gt=0)
    ai_max_attempts: int = Field(default=3, ge=1)
    ai_backoff_base_seconds: float = Field(default=1.0, ge=0.0)
    existing_context_limit: int = Field(default=50, ge=0)

    # OCR
    ocr_max_polls: int = Field(default=60, ge=1)
    ocr_poll_interval_seconds: float = Field(default=1.0, ge=0.0)

    # Batch
    batch_interval_seconds: float = Field(default=1.0, ge=0.0)

    # Defaults and storage
    default_currency: str = Field(default="EUR", min_length=3, max_length=3)
    aws_region: str | None = None
    s3_bucket: str | None = None
    s3_prefix: str = "bank-statements/temp"
    database_url: str | None = None
    max_upload_bytes: int = Field(default=_TEN_MIB, gt=0)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> IngestSettings:
        """Build settings from environment variables.

        Recognized variables: ``OPENAI_API_KEY``, ``AWS_REGION``,
        ``S3_BUCKET_NAME``, ``DATABASE_URL`` and ``STATEMENT_INGEST_<FIELD>``
        for any other field (e.g. ``STATEMENT_INGEST_OPENAI_MODEL``).
        """

        env = os.environ if environ is None else environ
        values: dict[str, str] = {}
        direct = {
            "openai_api_key": "OPENAI_API_KEY",
            "aws_region": "AWS_REGION",
            "s3_bucket": "S3_BUCKET_NAME",
            "database_url": "DATABASE_URL",
        }
        for field, var in direct.items():
            if env.get(var):
                values[field] = env[var]
        for field in cls.model_fields:
            raw = env.get(f"STATEMENT_INGEST_{field.upper()}")
            if raw is not None and raw.strip() != "":
                values[field] = raw.strip()
        # Lax mode coerces the string values to the declared field types.
        return cls.model_validate(values)


__all__ = ["DocumentType", "IngestSettings"]
