"""Invoice lookup collaborators for the reconciliation matcher."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from sqlalchemy import select

from db.client import session_scope
from db.models.banking import InvoiceRecord

from .logging_setup import get_logger
from .models import Invoice
from .reconcile import OPEN_INVOICE_STATUSES, is_open

_logger = get_logger("statement_ingest.invoices")


class InMemoryInvoiceSource:
    """Invoices keyed by company id; used by tests and embedding callers."""

    def __init__(self, invoices: dict[str, Iterable[Invoice]] | None = None) -> None:
        self._by_company: dict[str, list[Invoice]] = {
            company: list(items) for company, items in (invoices or {}).items()
        }

    def add(self, company_id: str, invoice: Invoice) -> None:
        self._by_company.setdefault(company_id, []).append(invoice)

    def list_open_invoices(self, company_id: str) -> Sequence[Invoice]:
        return [inv for inv in self._by_company.get(company_id, []) if is_open(inv)]


class SqlInvoiceSource:
    """Read open invoices from the shared ``invoices`` table."""

    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url

    def list_open_invoices(self, company_id: str) -> Sequence[Invoice]:
        stmt = (
            select(InvoiceRecord)
            .where(
                InvoiceRecord.company_id == company_id,
                InvoiceRecord.status.in_(sorted(OPEN_INVOICE_STATUSES)),
            )
            .order_by(InvoiceRecord.due_date, InvoiceRecord.id)
        )
        with session_scope(database_url=self.database_url) as session:
            rows = session.scalars(stmt).all()
            invoices = [
                Invoice(
                    id=r.id,
                    total_amount=Decimal(r.total_amount),
                    due_date=r.due_date,
                    vendor=r.vendor,
                    status=r.status,
                    currency=r.currency_code,
                )
                for r in rows
            ]
        _logger.debug("list_open_invoices:done company=%s count=%d", company_id, len(invoices))
        return invoices


__all__ = ["InMemoryInvoiceSource", "SqlInvoiceSource"]
