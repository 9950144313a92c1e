from __future__ import annotations

import pytest
from pydantic import ValidationError

from statement_ingest.config import DocumentType, IngestSettings
from statement_ingest.errors import FormatError


def test_defaults():
    s = IngestSettings()
    assert s.openai_model == "gpt-4o"
    assert s.ai_max_attempts == 3
    assert s.ocr_max_polls == 60
    assert s.default_currency == "EUR"
    assert s.max_upload_bytes == 10 * 1024 * 1024
    assert s.s3_prefix == "bank-statements/temp"


def test_from_env_reads_direct_and_prefixed_variables():
    env = {
        "OPENAI_API_KEY": "sk-test",
        "S3_BUCKET_NAME": "statements",
        "DATABASE_URL": "sqlite:///x.db",
        "STATEMENT_INGEST_OPENAI_MODEL": "gpt-4o-mini",
        "STATEMENT_INGEST_AI_MAX_ATTEMPTS": "5",
        "STATEMENT_INGEST_TEMPERATURE": " ",
    }
    s = IngestSettings.from_env(env)
    assert s.openai_api_key == "sk-test"
    assert s.s3_bucket == "statements"
    assert s.database_url == "sqlite:///x.db"
    assert s.openai_model == "gpt-4o-mini"
    assert s.ai_max_attempts == 5
    assert s.temperature == 0.1


def test_from_env_rejects_invalid_values():
    with pytest.raises(ValidationError):
        IngestSettings.from_env({"STATEMENT_INGEST_AI_MAX_ATTEMPTS": "0"})


def test_settings_are_frozen():
    s = IngestSettings()
    with pytest.raises(ValidationError):
        s.openai_model = "other"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("csv", DocumentType.CSV),
        (".XLSX", DocumentType.XLSX),
        ("application/pdf", DocumentType.PDF),
        ("text/csv; charset=utf-8", DocumentType.CSV),
        ("application/vnd.ms-excel", DocumentType.XLS),
        (DocumentType.PDF, DocumentType.PDF),
    ],
)
def test_document_type_parse(value, expected):
    assert DocumentType.parse(value) is expected


@pytest.mark.parametrize("value", ["docx", "image/png"])
def test_document_type_parse_rejects_unknown(value):
    with pytest.raises(FormatError):
        DocumentType.parse(value)


def test_document_type_from_filename():
    assert DocumentType.from_filename("Auszug.CSV") is DocumentType.CSV
    assert not DocumentType.PDF.is_tabular
    with pytest.raises(FormatError):
        DocumentType.from_filename("README")
