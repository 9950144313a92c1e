"""End-to-end statement pipeline.

bytes -> parser (by :class:`DocumentType`) -> envelope -> analysis ->
reconciliation -> analysis applied -> optional persistence.

One :class:`StatementPipeline` holds only injected collaborators and settings;
every :meth:`StatementPipeline.process` call builds its own envelope, so
independent statements share no mutable state. Batches run strictly
sequentially, paced by a :class:`FixedIntervalScheduler`.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from .analysis import StatementAnalyzer, fallback_analysis
from .assembler import apply_analysis
from .collaborators import InvoiceSource, ObjectStorage, OcrClient, TransactionStore
from .config import DocumentType, IngestSettings
from .errors import FormatError, OcrError, ProcessingCancelled, StatementError
from .logging_setup import get_logger
from .models import (
    AnalysisResult,
    CanonicalTransaction,
    ReconciliationMatch,
    StatementDocument,
    StatementEnvelope,
)
from .parsers import (
    CsvStatementParser,
    OcrStatementParser,
    SpreadsheetStatementParser,
    StatementParser,
)
from .persistence import PersistReport, persist_statement
from .reconcile import reconcile
from .scheduling import CancellationToken, FixedIntervalScheduler

_logger = get_logger("statement_ingest.pipeline")


@dataclass(slots=True)
class PipelineResult:
    """Outputs for one document, or the single error that stopped it."""

    filename: str
    envelope: StatementEnvelope | None = None
    analysis: AnalysisResult | None = None
    reconciliation: list[ReconciliationMatch] | None = None
    persist_report: PersistReport | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class StatementPipeline:
    def __init__(
        self,
        settings: IngestSettings | None = None,
        *,
        analyzer: StatementAnalyzer | None = None,
        ocr: OcrClient | None = None,
        storage: ObjectStorage | None = None,
        invoices: InvoiceSource | None = None,
        store: TransactionStore | None = None,
        scheduler: FixedIntervalScheduler | None = None,
        parsers: Mapping[DocumentType, StatementParser] | None = None,
    ) -> None:
        self.settings = settings or IngestSettings()
        self.analyzer = analyzer
        self.invoices = invoices
        self.store = store
        self.scheduler = scheduler or FixedIntervalScheduler(self.settings.batch_interval_seconds)
        self.parsers: dict[DocumentType, StatementParser] = (
            dict(parsers) if parsers is not None else self._default_parsers(ocr, storage)
        )

    def _default_parsers(
        self, ocr: OcrClient | None, storage: ObjectStorage | None
    ) -> dict[DocumentType, StatementParser]:
        spreadsheet = SpreadsheetStatementParser(self.settings)
        out: dict[DocumentType, StatementParser] = {
            DocumentType.CSV: CsvStatementParser(self.settings),
            DocumentType.XLS: spreadsheet,
            DocumentType.XLSX: spreadsheet,
        }
        if ocr is not None:
            out[DocumentType.PDF] = OcrStatementParser(
                self.settings, ocr=ocr, storage=storage, extractor=self.analyzer
            )
        return out

    # ---- Single document -------------------------------------------------------

    def validate_upload(self, document: StatementDocument) -> DocumentType:
        """Check size and declared type; return the resolved :class:`DocumentType`."""

        size = len(document.content)
        if size == 0:
            raise FormatError(f"{document.filename}: file is empty")
        if size > self.settings.max_upload_bytes:
            raise FormatError(
                f"{document.filename}: file is {size} bytes, the limit is "
                f"{self.settings.max_upload_bytes} bytes"
            )
        if document.declared_type:
            return DocumentType.parse(document.declared_type)
        return DocumentType.from_filename(document.filename)

    def parse(
        self, document: StatementDocument, *, cancel: CancellationToken | None = None
    ) -> StatementEnvelope:
        doc_type = self.validate_upload(document)
        parser = self.parsers.get(doc_type)
        if parser is None:
            if not doc_type.is_tabular:
                raise OcrError(f"no OCR client configured for {doc_type.value} statements")
            raise FormatError(f"No parser registered for {doc_type.value}")
        return parser.parse(document, cancel=cancel)

    def process(
        self,
        document: StatementDocument,
        *,
        company_id: str | None = None,
        bank_account_id: str | None = None,
        existing_transactions: Sequence[CanonicalTransaction] | None = None,
        persist: bool = False,
        cancel: CancellationToken | None = None,
    ) -> PipelineResult:
        """Run one document through the pipeline.

        Document-level failures propagate as :class:`StatementError`
        subclasses; language-model failures degrade to the fallback analysis.
        """

        if persist and (self.store is None or not bank_account_id):
            raise ValueError("persist=True requires a transaction store and a bank_account_id")

        envelope = self.parse(document, cancel=cancel)

        if existing_transactions is None:
            existing_transactions = (
                self.store.recent(bank_account_id, self.settings.existing_context_limit)
                if self.store is not None and bank_account_id
                else []
            )
        if self.analyzer is not None:
            analysis = self.analyzer.analyze(envelope, existing_transactions, cancel=cancel)
        else:
            _logger.info("process:analysis_skipped file=%s", document.filename)
            analysis = fallback_analysis(envelope)

        open_invoices = (
            self.invoices.list_open_invoices(company_id)
            if self.invoices is not None and company_id
            else []
        )
        matches = reconcile(envelope.transactions, open_invoices)
        analysis = analysis.model_copy(update={"reconciliation": matches})
        envelope = apply_analysis(envelope, analysis)

        if cancel is not None:
            cancel.raise_if_cancelled("persistence")
        report = None
        if persist and self.store is not None and bank_account_id:
            report = persist_statement(
                envelope, self.store, bank_account_id=bank_account_id, company_id=company_id
            )

        _logger.info(
            "process:done file=%s format=%s transactions=%d matched=%d",
            document.filename,
            envelope.metadata.detected_format,
            len(envelope.transactions),
            sum(1 for m in matches if m.invoice_id is not None),
        )
        return PipelineResult(
            filename=document.filename,
            envelope=envelope,
            analysis=analysis,
            reconciliation=matches,
            persist_report=report,
        )

    # ---- Batch -------------------------------------------------------------------

    def process_batch(
        self,
        documents: Iterable[StatementDocument],
        *,
        company_id: str | None = None,
        bank_account_id: str | None = None,
        persist: bool = False,
        cancel: CancellationToken | None = None,
    ) -> list[PipelineResult]:
        """Process documents one after another, at most one start per interval.

        A failing document yields a result carrying its error and never stops
        the batch; cancellation does, returning the results gathered so far.
        """

        results: list[PipelineResult] = []
        for document in documents:
            try:
                self.scheduler.acquire(cancel)
                results.append(
                    self.process(
                        document,
                        company_id=company_id,
                        bank_account_id=bank_account_id,
                        persist=persist,
                        cancel=cancel,
                    )
                )
            except ProcessingCancelled as e:
                _logger.warning("process_batch:cancelled file=%s reason=%s", document.filename, e)
                break
            except StatementError as e:
                _logger.error(
                    "process_batch:item_failed file=%s error=%s", document.filename, e
                )
                results.append(PipelineResult(filename=document.filename, error=str(e)))
        _logger.info(
            "process_batch:done items=%d failed=%d",
            len(results),
            sum(1 for r in results if not r.ok),
        )
        return results


__all__ = ["PipelineResult", "StatementPipeline"]
