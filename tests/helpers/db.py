"""DB helpers for tests: bootstrap a temporary SQLite DB and seed invoices."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from pathlib import Path

from db import Base
from db.client import get_engine, session_scope
from db.models.banking import BankTransactionRecord, InvoiceRecord
from sqlalchemy import func, select


def bootstrap_sqlite_db(db_file: Path) -> str:
    """Create a SQLite database file, initialize the schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=get_engine(database_url=url))
    return url


def seed_invoice(
    url: str,
    *,
    invoice_id: str,
    company_id: str,
    total: str,
    due: dt.date | None,
    status: str = "PENDING",
    vendor: str | None = None,
) -> None:
    with session_scope(database_url=url) as s:
        s.add(
            InvoiceRecord(
                id=invoice_id,
                company_id=company_id,
                vendor=vendor,
                total_amount=Decimal(total),
                currency_code="EUR",
                due_date=due,
                status=status,
            )
        )


def count_transactions(url: str) -> int:
    with session_scope(database_url=url) as s:
        return int(s.scalar(select(func.count()).select_from(BankTransactionRecord)) or 0)
