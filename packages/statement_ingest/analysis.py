"""AI analysis orchestrator.

Public API:
    - :class:`StatementAnalyzer` (``analyze`` and ``extract_statement``)
    - :func:`fallback_analysis`
    - :func:`compute_summary`
    - :func:`extract_json_object`

The language model is an injected collaborator (``complete(prompt) -> str``).
Every response goes through a validating parse that defaults missing sections
instead of failing. Transport and parse failures are retried with a linear
backoff (``ai_backoff_base_seconds * attempt``); once the attempts are spent
``analyze`` degrades to a deterministic summary-only result while
``extract_statement`` raises :class:`LanguageModelError` so the OCR adapter can
fall back to its regex rules.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Mapping, Sequence
from decimal import Decimal
from typing import Any, TypeVar

from pydantic import ValidationError

from . import prompting
from .collaborators import LanguageModel
from .config import IngestSettings
from .errors import LanguageModelError
from .logging_setup import get_logger
from .models import (
    AnalysisResult,
    AnalysisSummary,
    CanonicalTransaction,
    ExtractedStatement,
    ExtractedTransaction,
    StatementEnvelope,
    TransactionType,
)
from .scheduling import CancellationToken, sleep_or_cancel

_logger = get_logger("statement_ingest.analysis")

T = TypeVar("T")


def extract_json_object(text: str) -> Mapping[str, Any]:
    """Decode the span from the first ``{`` to the last ``}`` of ``text``.

    Models sometimes wrap the object in prose or code fences; everything
    outside the outermost braces is ignored. Raises ``ValueError`` when no
    object can be decoded.
    """

    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise ValueError("No JSON object found in model output")
    try:
        decoded = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise ValueError(f"Model output was not valid JSON: {e.msg}") from e
    if not isinstance(decoded, Mapping):
        raise ValueError("Model output JSON is not an object")
    return decoded


def compute_summary(
    envelope: StatementEnvelope, categorized_ids: Sequence[str] = ()
) -> AnalysisSummary:
    """Summarize ``envelope`` from its own transactions.

    Totals stay decimal, so ``net_cash_flow`` is always
    exactly ``total_income - total_expenses``.
    """

    income = sum(
        (t.amount for t in envelope.transactions if t.type is TransactionType.INCOME),
        Decimal("0"),
    )
    expenses = sum(
        (t.amount for t in envelope.transactions if t.type is TransactionType.EXPENSE),
        Decimal("0"),
    )
    count = len(envelope.transactions)
    known = {t.id for t in envelope.transactions}
    categorized = len(known.intersection(categorized_ids))
    return AnalysisSummary(
        total_income=income,
        total_expenses=expenses,
        net_cash_flow=income - expenses,
        transaction_count=count,
        categorized_count=categorized,
        categorization_percentage=round(categorized / count * 100, 1) if count else 0.0,
    )


def fallback_analysis(envelope: StatementEnvelope) -> AnalysisResult:
    """Deterministic result used when the language model is unavailable.

    No categorization, duplicate or anomaly detection is attempted; only the
    summary is computed.
    """

    return AnalysisResult(summary=compute_summary(envelope))


class StatementAnalyzer:
    """Drive the language model for statement analysis and text extraction."""

    def __init__(
        self,
        model: LanguageModel,
        settings: IngestSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.model = model
        self.settings = settings or IngestSettings()
        self._sleep = sleep

    # ---- Retry loop ----------------------------------------------------------

    def _complete_with_retries(
        self,
        op: str,
        prompt: str,
        decode: Callable[[Mapping[str, Any]], T],
        cancel: CancellationToken | None,
    ) -> T:
        max_attempts = max(1, self.settings.ai_max_attempts)
        last_exc: Exception | None = None
        for attempt in range(1, max_attempts + 1):
            if cancel is not None:
                cancel.raise_if_cancelled(op)
            try:
                raw = self.model.complete(prompt)
                result = decode(extract_json_object(raw))
                if attempt > 1:
                    _logger.info("%s:recovered attempt=%d", op, attempt)
                return result
            except (LanguageModelError, ValueError) as e:
                last_exc = e
                _logger.warning(
                    "%s:retry attempt=%d/%d error=%s",
                    op,
                    attempt,
                    max_attempts,
                    e.__class__.__name__,
                )
                if attempt < max_attempts:
                    sleep_or_cancel(
                        self.settings.ai_backoff_base_seconds * attempt,
                        cancel,
                        sleep=self._sleep,
                        where=op,
                    )
        raise LanguageModelError(
            f"{op} failed after {max_attempts} attempts: {last_exc}"
        ) from last_exc

    # ---- Analysis ------------------------------------------------------------

    def analyze(
        self,
        envelope: StatementEnvelope,
        existing: Sequence[CanonicalTransaction] = (),
        *,
        cancel: CancellationToken | None = None,
    ) -> AnalysisResult:
        """Categorize, flag duplicates/anomalies and map counterparties.

        Never fails on model problems: after the retry budget is spent the
        deterministic :func:`fallback_analysis` is returned. The summary is
        always recomputed from ``envelope`` so it cannot drift from the
        transactions.
        """

        prompt = prompting.build_analysis_prompt(
            envelope, existing, existing_limit=self.settings.existing_context_limit
        )
        _logger.info(
            "analyze_statement:start transactions=%d existing=%d",
            len(envelope.transactions),
            min(len(existing), self.settings.existing_context_limit),
        )
        try:
            result = self._complete_with_retries(
                "analyze_statement", prompt, AnalysisResult.from_model_output, cancel
            )
        except LanguageModelError as e:
            _logger.warning("analyze_statement:fallback reason=%s", e)
            return fallback_analysis(envelope)

        known = {t.id for t in envelope.transactions}
        suggestions = [s for s in result.suggested_categories if s.transaction_id in known]
        dropped = len(result.suggested_categories) - len(suggestions)
        if dropped:
            _logger.warning("analyze_statement:unknown_ids dropped=%d", dropped)
        summary = compute_summary(envelope, [s.transaction_id for s in suggestions])
        _logger.info(
            "analyze_statement:done categorized=%d/%d anomalies=%d duplicates=%d",
            summary.categorized_count,
            summary.transaction_count,
            len(result.anomaly_detection),
            sum(1 for d in result.duplicate_detection if d.is_duplicate),
        )
        return result.model_copy(
            update={"suggested_categories": suggestions, "summary": summary}
        )

    # ---- Text-to-structured-statement ----------------------------------------

    def extract_statement(
        self, text: str, *, cancel: CancellationToken | None = None
    ) -> ExtractedStatement:
        """Turn OCR text into an :class:`ExtractedStatement`.

        Raises :class:`LanguageModelError` when the model keeps failing or
        reports no transactions at all.
        """

        prompt = prompting.build_extraction_prompt(text)
        extracted = self._complete_with_retries(
            "extract_statement", prompt, _decode_extraction, cancel
        )
        if not extracted.transactions:
            raise LanguageModelError("extraction returned no transactions")
        _logger.info("extract_statement:done transactions=%d", len(extracted.transactions))
        return extracted


def _decode_extraction(payload: Mapping[str, Any]) -> ExtractedStatement:
    """Validate the statement header strictly and each transaction leniently."""

    header = {k: v for k, v in payload.items() if k != "transactions"}
    statement = ExtractedStatement.model_validate(header)
    raw = payload.get("transactions")
    items: list[ExtractedTransaction] = []
    if isinstance(raw, list):
        for idx, item in enumerate(raw):
            try:
                items.append(ExtractedTransaction.model_validate(item))
            except ValidationError as e:
                _logger.warning(
                    "extract_statement:item_dropped idx=%d errors=%d", idx, e.error_count()
                )
    return statement.model_copy(update={"transactions": items})


__all__ = [
    "StatementAnalyzer",
    "compute_summary",
    "extract_json_object",
    "fallback_analysis",
]
