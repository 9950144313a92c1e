"""Match bank transactions against open invoices.

The rule is greedy and single pass: transactions are visited in envelope
order, each takes the first unclaimed open invoice whose total equals its
amount (within one cent) and whose due date lies within a week of the
transaction date. An invoice claimed by an earlier transaction is not
reconsidered, even if a later transaction would fit better.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Sequence
from decimal import Decimal

from .logging_setup import get_logger
from .models import CanonicalTransaction, Invoice, MatchType, ReconciliationMatch

_logger = get_logger("statement_ingest.reconcile")

OPEN_INVOICE_STATUSES: frozenset[str] = frozenset({"PENDING", "APPROVED", "IN_REVIEW"})
EXACT_MATCH_CONFIDENCE = 0.95
AMOUNT_TOLERANCE = Decimal("0.01")
DATE_WINDOW = dt.timedelta(days=7)


def is_open(invoice: Invoice) -> bool:
    return invoice.status.upper() in OPEN_INVOICE_STATUSES


def matches(tx: CanonicalTransaction, invoice: Invoice) -> bool:
    """Amount within tolerance and date within the window around the anchor.

    The anchor is the invoice's due date, or the transaction's own date when
    the invoice has none.
    """

    if abs(tx.amount - Decimal(invoice.total_amount)) >= AMOUNT_TOLERANCE:
        return False
    anchor = invoice.due_date or tx.date
    return abs(tx.date - anchor) <= DATE_WINDOW


def reconcile(
    transactions: Sequence[CanonicalTransaction], invoices: Iterable[Invoice]
) -> list[ReconciliationMatch]:
    """Return one :class:`ReconciliationMatch` per transaction, in order.

    ``MatchType.FUZZY`` is part of the result contract but never produced.
    """

    candidates = [inv for inv in invoices if is_open(inv)]
    claimed: set[str] = set()
    out: list[ReconciliationMatch] = []
    for tx in transactions:
        hit = next(
            (inv for inv in candidates if inv.id not in claimed and matches(tx, inv)),
            None,
        )
        if hit is None:
            out.append(ReconciliationMatch(transaction_id=tx.id))
            continue
        claimed.add(hit.id)
        out.append(
            ReconciliationMatch(
                transaction_id=tx.id,
                invoice_id=hit.id,
                match_type=MatchType.EXACT,
                confidence=EXACT_MATCH_CONFIDENCE,
            )
        )
    _logger.info(
        "reconcile:done transactions=%d open_invoices=%d matched=%d",
        len(transactions),
        len(candidates),
        len(claimed),
    )
    return out


__all__ = [
    "OPEN_INVOICE_STATUSES",
    "EXACT_MATCH_CONFIDENCE",
    "is_open",
    "matches",
    "reconcile",
]
