"""Public interface for the ``statement_ingest`` package.

This module exposes the pipeline, its configuration, and the public models and
errors as the stable import surface. There is no runtime logic here, only
symbol re-exports; importing it performs no I/O and reads no environment.
"""

from .analysis import StatementAnalyzer, compute_summary, fallback_analysis
from .assembler import AccountDetails, apply_analysis, assemble_statement
from .config import DocumentType, IngestSettings
from .errors import (
    ColumnResolutionError,
    EmptyResultError,
    ExternalServiceError,
    FormatError,
    LanguageModelError,
    OcrError,
    OcrTimeoutError,
    ProcessingCancelled,
    RowValidationError,
    StatementError,
    StorageError,
)
from .models import (
    AnalysisResult,
    AnalysisSummary,
    CanonicalTransaction,
    Invoice,
    MatchType,
    ProcessingMethod,
    ReconciliationMatch,
    StatementDocument,
    StatementEnvelope,
    TransactionType,
)
from .persistence import PersistReport, PersistStatus, persist_statement
from .pipeline import PipelineResult, StatementPipeline
from .reconcile import reconcile
from .scheduling import CancellationToken, FixedIntervalScheduler

__all__ = [
    # Pipeline
    "StatementPipeline",
    "PipelineResult",
    "IngestSettings",
    "DocumentType",
    "CancellationToken",
    "FixedIntervalScheduler",
    # Steps
    "assemble_statement",
    "apply_analysis",
    "AccountDetails",
    "StatementAnalyzer",
    "compute_summary",
    "fallback_analysis",
    "reconcile",
    "persist_statement",
    "PersistReport",
    "PersistStatus",
    # Models
    "CanonicalTransaction",
    "StatementEnvelope",
    "StatementDocument",
    "AnalysisResult",
    "AnalysisSummary",
    "ReconciliationMatch",
    "Invoice",
    "TransactionType",
    "ProcessingMethod",
    "MatchType",
    # Errors
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
