"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the banking models used by ``statement_ingest``.
"""

from .banking import BankTransactionRecord, Base, InvoiceRecord

__all__ = [
    "Base",
    "BankTransactionRecord",
    "InvoiceRecord",
]
