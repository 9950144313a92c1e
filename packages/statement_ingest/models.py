"""Data models for ``statement_ingest``.

Two families live here:

- Pydantic models for everything that crosses a boundary (the canonical
  transaction, the statement envelope, the analysis result). They serialize
  with camelCase aliases (``rawDescription``, ``statementPeriod`` ...) so the
  JSON produced by the CLI matches what a review surface consumes, while
  Python code uses snake_case attribute names.
- Frozen dataclasses for internal hand-offs (raw rows, invoices, uploaded
  documents) that never leave the process.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .logging_setup import get_logger

_logger = get_logger("statement_ingest.models")

# Decimal internally, plain JSON number on the wire.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class TransactionType(StrEnum):
    INCOME = "income"
    EXPENSE = "expense"


class ProcessingMethod(StrEnum):
    """How the transactions of an envelope were obtained."""

    CSV = "csv"
    SPREADSHEET = "spreadsheet"
    OCR_AI = "ocr-ai"
    OCR_REGEX = "ocr-regex"


class MatchType(StrEnum):
    EXACT = "exact"
    # Declared by the reconciliation contract; the matcher never produces it.
    FUZZY = "fuzzy"
    NONE = "none"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Canonical transaction and statement envelope
# ---------------------------------------------------------------------------


class CanonicalTransaction(_CamelModel):
    """One normalized bank-statement line.

    ``amount`` is always non-negative; the direction is carried by ``type``.
    """

    id: str
    date: dt.date
    description: str
    raw_description: str
    amount: Money = Field(ge=0)
    currency: str = "EUR"
    type: TransactionType
    category: str | None = None
    subcategory: str | None = None
    counterparty: str | None = None
    reference: str | None = None
    balance: Money | None = None
    confidence: float = Field(default=0.9, ge=0.0, le=1.0)

    def signed_amount(self) -> Decimal:
        return self.amount if self.type is TransactionType.INCOME else -self.amount


class StatementPeriod(_CamelModel):
    start_date: dt.date
    end_date: dt.date

    @model_validator(mode="after")
    def _start_not_after_end(self) -> StatementPeriod:
        if self.start_date > self.end_date:
            raise ValueError(
                f"statement period start {self.start_date} is after end {self.end_date}"
            )
        return self


class StatementMetadata(_CamelModel):
    detected_format: str
    processing_method: ProcessingMethod


class StatementEnvelope(_CamelModel):
    """An imported statement: account metadata plus its ordered transactions."""

    account_number: str | None = None
    account_holder: str | None = None
    bank_name: str | None = None
    iban: str | None = None
    bic: str | None = None
    statement_period: StatementPeriod
    opening_balance: Money = Decimal("0")
    closing_balance: Money = Decimal("0")
    transactions: list[CanonicalTransaction]
    currency: str = "EUR"
    confidence: float = Field(default=0.9, ge=0.0, le=1.0)
    metadata: StatementMetadata

    @field_validator("transactions")
    @classmethod
    def _sorted_by_date(cls, v: list[CanonicalTransaction]) -> list[CanonicalTransaction]:
        for prev, cur in zip(v, v[1:]):
            if cur.date < prev.date:
                raise ValueError("transactions must be sorted ascending by date")
        return v


# ---------------------------------------------------------------------------
# Analysis result
# ---------------------------------------------------------------------------


class CategorySuggestion(_CamelModel):
    transaction_id: str
    category: str
    subcategory: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = ""


class DuplicateFinding(_CamelModel):
    transaction_id: str
    is_duplicate: bool = False
    duplicate_of: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class AnomalyFinding(_CamelModel):
    transaction_id: str
    anomaly_type: str
    severity: str = "low"
    description: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class CounterpartyMapping(_CamelModel):
    original_description: str
    suggested_counterparty: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ReconciliationMatch(_CamelModel):
    transaction_id: str
    invoice_id: str | None = None
    match_type: MatchType = MatchType.NONE
    confidence: float = 0.0


class AnalysisSummary(_CamelModel):
    total_income: Money = Decimal("0")
    total_expenses: Money = Decimal("0")
    net_cash_flow: Money = Decimal("0")
    transaction_count: int = 0
    categorized_count: int = 0
    categorization_percentage: float = 0.0


class AnalysisResult(_CamelModel):
    suggested_categories: list[CategorySuggestion] = Field(default_factory=list)
    duplicate_detection: list[DuplicateFinding] = Field(default_factory=list)
    anomaly_detection: list[AnomalyFinding] = Field(default_factory=list)
    counterparty_mapping: list[CounterpartyMapping] = Field(default_factory=list)
    reconciliation: list[ReconciliationMatch] = Field(default_factory=list)
    summary: AnalysisSummary = Field(default_factory=AnalysisSummary)

    @classmethod
    def from_model_output(cls, payload: Mapping[str, Any]) -> AnalysisResult:
        """Leniently validate a decoded model response.

        Missing sections default to empty lists or a zeroed summary. Items that
        fail validation are dropped one by one (with a warning) rather than
        rejecting the whole response.
        """

        sections: dict[str, type[_CamelModel]] = {
            "suggestedCategories": CategorySuggestion,
            "duplicateDetection": DuplicateFinding,
            "anomalyDetection": AnomalyFinding,
            "counterpartyMapping": CounterpartyMapping,
            "reconciliation": ReconciliationMatch,
        }
        out: dict[str, Any] = {}
        for key, item_model in sections.items():
            raw = payload.get(key)
            if not isinstance(raw, Sequence) or isinstance(raw, str | bytes):
                out[key] = []
                continue
            items: list[Any] = []
            for idx, item in enumerate(raw):
                try:
                    items.append(item_model.model_validate(item))
                except ValidationError as e:
                    _logger.warning(
                        "analysis_result:item_dropped section=%s idx=%d errors=%d",
                        key,
                        idx,
                        e.error_count(),
                    )
            out[key] = items

        raw_summary = payload.get("summary")
        try:
            out["summary"] = (
                AnalysisSummary.model_validate(raw_summary)
                if isinstance(raw_summary, Mapping)
                else AnalysisSummary()
            )
        except ValidationError:
            _logger.warning("analysis_result:summary_invalid")
            out["summary"] = AnalysisSummary()
        return cls.model_validate(out)


# ---------------------------------------------------------------------------
# Text-to-statement extraction (OCR text -> structured statement)
# ---------------------------------------------------------------------------


class ExtractedTransaction(_CamelModel):
    """A transaction as declared by the language model; values stay raw and
    go through the normalizer like any tabular cell."""

    date: str | None = None
    description: str | None = None
    amount: float | str | None = None
    type: str | None = None
    balance: float | str | None = None
    reference: str | None = None
    currency: str | None = None


class ExtractedPeriod(_CamelModel):
    start_date: str | None = None
    end_date: str | None = None


class ExtractedStatement(_CamelModel):
    account_number: str | None = None
    account_holder: str | None = None
    bank_name: str | None = None
    iban: str | None = None
    bic: str | None = None
    statement_period: ExtractedPeriod | None = None
    opening_balance: float | str | None = None
    closing_balance: float | str | None = None
    currency: str | None = None
    confidence: float | None = None
    transactions: list[ExtractedTransaction] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Internal hand-off types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawRow:
    """Uninterpreted field values of one tabular or OCR row.

    ``row_number`` is 1-based within the source document (header excluded) and
    is used for log messages and for stable transaction ids. ``debit`` and
    ``credit`` are only set for exports that split the amount in two columns.
    """

    row_number: int
    date: Any
    description: Any
    amount: Any
    balance: Any = None
    currency: Any = None
    debit: Any = None
    credit: Any = None
    reference: Any = None


@dataclass(frozen=True, slots=True)
class Invoice:
    id: str
    total_amount: Decimal
    due_date: dt.date | None = None
    vendor: str | None = None
    status: str = "PENDING"
    currency: str = "EUR"


@dataclass(frozen=True, slots=True)
class StatementDocument:
    """Raw upload: bytes plus the declared type and original filename."""

    content: bytes
    filename: str
    declared_type: str | None = None


__all__ = [
    "Money",
    "TransactionType",
    "ProcessingMethod",
    "MatchType",
    "CanonicalTransaction",
    "StatementPeriod",
    "StatementMetadata",
    "StatementEnvelope",
    "CategorySuggestion",
    "DuplicateFinding",
    "AnomalyFinding",
    "CounterpartyMapping",
    "ReconciliationMatch",
    "AnalysisSummary",
    "AnalysisResult",
    "ExtractedTransaction",
    "ExtractedPeriod",
    "ExtractedStatement",
    "RawRow",
    "Invoice",
    "StatementDocument",
]
