"""Scanned/PDF statement adapter.

Flow:

1. Upload the document to object storage (when configured) and submit it to
   the OCR collaborator.
2. Poll until the job finishes (bounded by ``ocr_max_polls``), following
   continuation tokens across result pages.
3. Turn the text into transactions: language-model extraction first, ordered
   regex line rules as the fallback.

The temporary upload is always deleted afterwards; a failed delete is logged
and never masks the parse result.
"""

from __future__ import annotations

import datetime as dt
import time
from collections.abc import Callable, Sequence
from decimal import Decimal
from pathlib import PurePath
from typing import Any, Protocol

from ..assembler import AccountDetails
from ..bank_formats import BANK_FORMATS, BankFormatProfile, detect_bank_format
from ..collaborators import ObjectStorage, OcrClient, OcrStatus
from ..config import DocumentType, IngestSettings
from ..errors import EmptyResultError, LanguageModelError, OcrError, OcrTimeoutError
from ..logging_setup import get_logger
from ..models import (
    ExtractedStatement,
    ExtractedTransaction,
    ProcessingMethod,
    RawRow,
    StatementDocument,
    StatementEnvelope,
)
from ..normalizers import detect_currency, parse_amount, parse_date
from ..scheduling import CancellationToken, sleep_or_cancel
from ..text_rules import extract_metadata, match_transaction_lines
from .base import StatementParser, envelope_from_rows

_logger = get_logger("statement_ingest.parsers.ocr")

AI_EXTRACTION_CONFIDENCE = 0.85
REGEX_CONFIDENCE = 0.6


class StatementTextExtractor(Protocol):
    def extract_statement(
        self, text: str, *, cancel: CancellationToken | None = None
    ) -> ExtractedStatement: ...


def _optional_date(raw: Any, profile: BankFormatProfile | None) -> dt.date | None:
    if not raw:
        return None
    try:
        return parse_date(raw, date_format=profile.date_format if profile else None)
    except ValueError:
        return None


def _optional_amount(raw: Any, profile: BankFormatProfile | None) -> Decimal | None:
    if raw is None or raw == "":
        return None
    try:
        return parse_amount(raw, amount_format=profile.amount_format if profile else None)
    except ValueError:
        return None


def _signed_amount_cell(tx: ExtractedTransaction) -> Any:
    """Apply a declared ``type`` to an unsigned amount."""

    kind = (tx.type or "").strip().lower()
    if kind not in ("expense", "debit") or tx.amount is None:
        return tx.amount
    if isinstance(tx.amount, int | float):
        return -abs(tx.amount)
    s = str(tx.amount).strip()
    return s if s.startswith("-") or s.endswith("-") else f"-{s}"


class OcrStatementParser(StatementParser):
    document_types = (DocumentType.PDF,)

    def __init__(
        self,
        settings: IngestSettings,
        *,
        ocr: OcrClient,
        storage: ObjectStorage | None = None,
        extractor: StatementTextExtractor | None = None,
        profiles: Sequence[BankFormatProfile] = BANK_FORMATS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(settings)
        self.ocr = ocr
        self.storage = storage
        self.extractor = extractor
        self.profiles = tuple(profiles)
        self._sleep = sleep
        self._clock = clock

    # ---- OCR ---------------------------------------------------------------

    def _storage_key(self, filename: str) -> str:
        name = PurePath(filename).name or "statement.pdf"
        return f"{self.settings.s3_prefix.rstrip('/')}/{int(self._clock() * 1000)}-{name}"

    def _cleanup(self, storage: ObjectStorage, key: str) -> None:
        try:
            storage.delete(key)
            _logger.debug("extract_text:cleanup key=%s", key)
        except Exception as e:  # noqa: BLE001 - cleanup is best-effort
            _logger.warning(
                "extract_text:cleanup_failed key=%s error=%s", key, e.__class__.__name__
            )

    def _collect_lines(self, job_id: str, cancel: CancellationToken | None) -> list[str]:
        lines: list[str] = []
        token: str | None = None
        waiting = True
        waits = 0
        pages = 0
        while True:
            if waiting:
                if waits >= self.settings.ocr_max_polls:
                    _logger.error("extract_text:timeout job=%s polls=%d", job_id, waits)
                    raise OcrTimeoutError(
                        f"job {job_id} did not finish after {waits} polls"
                    )
                sleep_or_cancel(
                    self.settings.ocr_poll_interval_seconds,
                    cancel,
                    sleep=self._sleep,
                    where="ocr polling",
                )
                waits += 1
            elif cancel is not None:
                cancel.raise_if_cancelled("ocr polling")

            page = self.ocr.poll(job_id, token)
            if page.status is OcrStatus.IN_PROGRESS:
                waiting = True
                continue
            if page.status is OcrStatus.FAILED:
                _logger.error("extract_text:job_failed job=%s message=%s", job_id, page.message)
                raise OcrError(f"job {job_id} failed: {page.message or 'no detail'}")

            waiting = False
            pages += 1
            lines.extend(page.lines)
            if not page.continuation_token:
                _logger.info(
                    "extract_text:done job=%s polls=%d pages=%d lines=%d",
                    job_id,
                    waits,
                    pages,
                    len(lines),
                )
                return lines
            token = page.continuation_token

    def extract_text(
        self, document: StatementDocument, *, cancel: CancellationToken | None = None
    ) -> str:
        """Run OCR on ``document`` and return its text, one line per OCR line."""

        storage = self.storage
        key: str | None = None
        location: str | None = None
        if storage is not None:
            key = self._storage_key(document.filename)
            location = storage.put(key, document.content, content_type="application/pdf")
            _logger.info("extract_text:uploaded key=%s", key)
        try:
            if cancel is not None:
                cancel.raise_if_cancelled("ocr submit")
            job_id = self.ocr.submit(document.content, document.filename, location=location)
            _logger.info("extract_text:submitted job=%s file=%s", job_id, document.filename)
            return "\n".join(self._collect_lines(job_id, cancel)).strip()
        finally:
            if storage is not None and key is not None:
                self._cleanup(storage, key)

    # ---- Text -> envelope --------------------------------------------------

    def _account_details(
        self,
        metadata: dict[str, str],
        profile: BankFormatProfile | None,
        extracted: ExtractedStatement | None = None,
    ) -> AccountDetails:
        ex = extracted or ExtractedStatement()
        period = ex.statement_period
        return AccountDetails(
            account_number=ex.account_number or metadata.get("account_number"),
            account_holder=ex.account_holder or metadata.get("account_holder"),
            bank_name=ex.bank_name or (profile.name if profile else None),
            iban=(ex.iban or metadata.get("iban") or "").replace(" ", "") or None,
            bic=ex.bic or metadata.get("bic"),
            period_start=_optional_date(period.start_date if period else None, profile)
            or _optional_date(metadata.get("period_start"), profile),
            period_end=_optional_date(period.end_date if period else None, profile)
            or _optional_date(metadata.get("period_end"), profile),
            opening_balance=_optional_amount(ex.opening_balance, profile)
            if ex.opening_balance is not None
            else _optional_amount(metadata.get("opening_balance"), profile),
            closing_balance=_optional_amount(ex.closing_balance, profile)
            if ex.closing_balance is not None
            else _optional_amount(metadata.get("closing_balance"), profile),
        )

    def _from_extraction(
        self,
        extracted: ExtractedStatement,
        *,
        profile: BankFormatProfile | None,
        metadata: dict[str, str],
        currency: str,
    ) -> StatementEnvelope:
        rows = [
            RawRow(
                row_number=i,
                date=tx.date,
                description=tx.description,
                amount=_signed_amount_cell(tx),
                balance=tx.balance,
                currency=tx.currency,
                reference=tx.reference,
            )
            for i, tx in enumerate(extracted.transactions, start=1)
        ]
        declared = extracted.confidence
        confidence = (
            min(1.0, max(0.0, declared)) if declared is not None else AI_EXTRACTION_CONFIDENCE
        )
        return envelope_from_rows(
            rows,
            profile=profile,
            currency=(extracted.currency or currency).upper()[:3],
            base_confidence=confidence,
            processing_method=ProcessingMethod.OCR_AI,
            detected_format=profile.name if profile else "ocr-text",
            account=self._account_details(metadata, profile, extracted),
        )

    def _from_regex(
        self,
        text: str,
        *,
        profile: BankFormatProfile | None,
        metadata: dict[str, str],
        currency: str,
    ) -> StatementEnvelope:
        rows = [
            RawRow(
                row_number=m.line_number,
                date=m.date,
                description=m.description,
                amount=m.amount,
                balance=m.balance,
            )
            for m in match_transaction_lines(text.splitlines())
        ]
        _logger.info("parse_pdf:regex_lines matched=%d", len(rows))
        return envelope_from_rows(
            rows,
            profile=profile,
            currency=currency,
            base_confidence=REGEX_CONFIDENCE,
            processing_method=ProcessingMethod.OCR_REGEX,
            detected_format=profile.name if profile else "ocr-text",
            account=self._account_details(metadata, profile),
        )

    def parse_text(
        self, text: str, *, cancel: CancellationToken | None = None
    ) -> StatementEnvelope:
        """Build an envelope from already extracted statement text."""

        if not text.strip():
            raise OcrError("no text could be extracted from the document")
        profile = detect_bank_format(text, self.profiles)
        metadata = extract_metadata(text)
        currency = detect_currency(
            text, default=profile.currency if profile else self.settings.default_currency
        )

        if self.extractor is not None:
            try:
                extracted = self.extractor.extract_statement(text, cancel=cancel)
                return self._from_extraction(
                    extracted, profile=profile, metadata=metadata, currency=currency
                )
            except (LanguageModelError, EmptyResultError) as e:
                _logger.warning(
                    "parse_pdf:ai_extraction_failed error=%s fallback=regex", e.__class__.__name__
                )
        return self._from_regex(text, profile=profile, metadata=metadata, currency=currency)

    def parse(
        self, document: StatementDocument, *, cancel: CancellationToken | None = None
    ) -> StatementEnvelope:
        text = self.extract_text(document, cancel=cancel)
        _logger.info("parse_pdf:text_extracted file=%s chars=%d", document.filename, len(text))
        return self.parse_text(text, cancel=cancel)


__all__ = [
    "OcrStatementParser",
    "StatementTextExtractor",
    "AI_EXTRACTION_CONFIDENCE",
    "REGEX_CONFIDENCE",
]
