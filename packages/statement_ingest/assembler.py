"""Statement envelope assembly and the post-analysis mutation step."""

from __future__ import annotations

import datetime as dt
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from .errors import EmptyResultError
from .logging_setup import get_logger
from .models import (
    AnalysisResult,
    CanonicalTransaction,
    ProcessingMethod,
    StatementEnvelope,
    StatementMetadata,
    StatementPeriod,
)

_logger = get_logger("statement_ingest.assembler")


@dataclass(frozen=True, slots=True)
class AccountDetails:
    """Account metadata declared by the document itself (OCR text or AI extraction)."""

    account_number: str | None = None
    account_holder: str | None = None
    bank_name: str | None = None
    iban: str | None = None
    bic: str | None = None
    period_start: dt.date | None = None
    period_end: dt.date | None = None
    opening_balance: Decimal | None = None
    closing_balance: Decimal | None = None


def _period(
    transactions: Sequence[CanonicalTransaction], account: AccountDetails
) -> StatementPeriod:
    start = transactions[0].date
    end = transactions[-1].date
    if account.period_start and account.period_end and account.period_start <= account.period_end:
        return StatementPeriod(start_date=account.period_start, end_date=account.period_end)
    if account.period_start and account.period_start <= end:
        start = account.period_start
    if account.period_end and account.period_end >= start:
        end = account.period_end
    return StatementPeriod(start_date=start, end_date=end)


def _balances(
    transactions: Sequence[CanonicalTransaction], account: AccountDetails
) -> tuple[Decimal, Decimal]:
    first, last = transactions[0], transactions[-1]
    opening = Decimal("0")
    closing = Decimal("0")
    if first.balance is not None:
        opening = first.balance - first.signed_amount()
    if last.balance is not None:
        closing = last.balance
    if account.opening_balance is not None:
        opening = account.opening_balance
    if account.closing_balance is not None:
        closing = account.closing_balance
    return opening, closing


def assemble_statement(
    transactions: Sequence[CanonicalTransaction],
    *,
    detected_format: str,
    processing_method: ProcessingMethod,
    currency: str,
    confidence: float,
    account: AccountDetails | None = None,
) -> StatementEnvelope:
    """Wrap normalized transactions into a :class:`StatementEnvelope`.

    Transactions are re-sorted ascending by date (stable). The period comes
    from declared account metadata when available, else from the first and
    last transaction. Raises :class:`EmptyResultError` for an empty list.
    """

    if not transactions:
        raise EmptyResultError("No valid transactions found in statement")

    acct = account or AccountDetails()
    ordered = sorted(transactions, key=lambda t: t.date)
    opening, closing = _balances(ordered, acct)
    envelope = StatementEnvelope(
        account_number=acct.account_number,
        account_holder=acct.account_holder,
        bank_name=acct.bank_name,
        iban=acct.iban,
        bic=acct.bic,
        statement_period=_period(ordered, acct),
        opening_balance=opening,
        closing_balance=closing,
        transactions=ordered,
        currency=currency,
        confidence=round(max(0.0, min(1.0, confidence)), 4),
        metadata=StatementMetadata(
            detected_format=detected_format, processing_method=processing_method
        ),
    )
    _logger.info(
        "assemble_statement:done format=%s method=%s transactions=%d period=%s..%s",
        detected_format,
        processing_method.value,
        len(ordered),
        envelope.statement_period.start_date.isoformat(),
        envelope.statement_period.end_date.isoformat(),
    )
    return envelope


def apply_analysis(envelope: StatementEnvelope, result: AnalysisResult) -> StatementEnvelope:
    """Return a copy of ``envelope`` with AI suggestions applied.

    - ``suggestedCategories`` set ``category``/``subcategory`` by transaction id.
    - ``counterpartyMapping`` replaces ``counterparty`` for transactions whose
      description (cleaned or raw) equals the mapping's original description.
    Unknown ids and descriptions are ignored.
    """

    by_id = {s.transaction_id: s for s in result.suggested_categories}
    by_desc = {m.original_description.strip(): m for m in result.counterparty_mapping}

    updated: list[CanonicalTransaction] = []
    applied = 0
    for tx in envelope.transactions:
        changes: dict[str, object] = {}
        suggestion = by_id.get(tx.id)
        if suggestion is not None:
            changes["category"] = suggestion.category
            changes["subcategory"] = suggestion.subcategory
        mapping = by_desc.get(tx.description) or by_desc.get(tx.raw_description.strip())
        if mapping is not None and mapping.suggested_counterparty.strip():
            changes["counterparty"] = mapping.suggested_counterparty.strip()[:100]
        if changes:
            applied += 1
            tx = tx.model_copy(update=changes)
        updated.append(tx)

    _logger.info(
        "apply_analysis:done transactions=%d updated=%d", len(updated), applied
    )
    return envelope.model_copy(update={"transactions": updated})


__all__ = ["AccountDetails", "assemble_statement", "apply_analysis"]
