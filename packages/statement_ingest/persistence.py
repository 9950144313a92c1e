"""Dedup/persistence gate for canonical transactions.

Writes go to the ``bank_transactions`` table owned by ``libs/db``. Each
transaction is checked against its :class:`~statement_ingest.collaborators.DedupKey`
before insert; the table's unique constraint on the same key settles races
between concurrent writers, in which case the row is reported as skipped.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Any

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError

from db.client import session_scope
from db.models.banking import BankTransactionRecord

from .collaborators import DedupKey, TransactionStore
from .logging_setup import get_logger
from .models import CanonicalTransaction, StatementEnvelope, TransactionType

_logger = get_logger("statement_ingest.persistence")


class PersistStatus(StrEnum):
    PERSISTED = "persisted"
    SKIPPED_DUPLICATE = "skipped_duplicate"


@dataclass(slots=True)
class PersistReport:
    """Outcome of one :func:`persist_statement` call, keyed by transaction id."""

    persisted: int = 0
    skipped: int = 0
    statuses: dict[str, PersistStatus] = field(default_factory=dict)


def _record_from(
    tx: CanonicalTransaction, *, key: DedupKey, company_id: str | None
) -> BankTransactionRecord:
    return BankTransactionRecord(
        company_id=company_id,
        bank_account_id=key.bank_account_id,
        dedup_reference=key.reference,
        transaction_id=tx.id,
        date=tx.date,
        amount=tx.amount,
        currency_code=tx.currency,
        type=tx.type.value,
        description=tx.description,
        raw_description=tx.raw_description,
        counterparty=tx.counterparty,
        reference=tx.reference,
        balance=tx.balance,
        category=tx.category,
        subcategory=tx.subcategory,
        confidence=Decimal(str(round(tx.confidence, 2))),
    )


def _transaction_from(r: BankTransactionRecord) -> CanonicalTransaction:
    return CanonicalTransaction(
        id=r.transaction_id,
        date=r.date,
        description=r.description,
        raw_description=r.raw_description,
        amount=Decimal(r.amount),
        currency=r.currency_code,
        type=TransactionType(r.type),
        category=r.category,
        subcategory=r.subcategory,
        counterparty=r.counterparty,
        reference=r.reference,
        balance=Decimal(r.balance) if r.balance is not None else None,
        confidence=float(r.confidence) if r.confidence is not None else 0.9,
    )


def _key_clauses(key: DedupKey) -> tuple[Any, ...]:
    return (
        BankTransactionRecord.bank_account_id == key.bank_account_id,
        BankTransactionRecord.dedup_reference == key.reference,
        BankTransactionRecord.amount == Decimal(key.amount),
        BankTransactionRecord.date == dt.date.fromisoformat(key.date),
    )


class SqlTransactionStore:
    """SQLAlchemy-backed transaction store."""

    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url

    def find_existing(self, key: DedupKey) -> bool:
        stmt = select(exists().where(*_key_clauses(key)))
        with session_scope(database_url=self.database_url) as session:
            return bool(session.scalar(stmt))

    def create(
        self, tx: CanonicalTransaction, *, key: DedupKey, company_id: str | None
    ) -> bool:
        try:
            with session_scope(database_url=self.database_url) as session:
                session.add(_record_from(tx, key=key, company_id=company_id))
        except IntegrityError:
            # Another writer inserted the same key between check and insert.
            _logger.info(
                "persist:unique_violation account=%s reference=%s",
                key.bank_account_id,
                key.reference,
            )
            return False
        return True

    def recent(self, bank_account_id: str, limit: int) -> list[CanonicalTransaction]:
        """Most recent persisted transactions of one account, newest first."""

        stmt = (
            select(BankTransactionRecord)
            .where(BankTransactionRecord.bank_account_id == bank_account_id)
            .order_by(BankTransactionRecord.date.desc(), BankTransactionRecord.id.desc())
            .limit(limit)
        )
        with session_scope(database_url=self.database_url) as session:
            return [_transaction_from(r) for r in session.scalars(stmt).all()]


class InMemoryTransactionStore:
    """Process-local store with the same dedup semantics as the SQL table."""

    def __init__(self) -> None:
        self._rows: dict[DedupKey, tuple[CanonicalTransaction, str | None]] = {}

    def __len__(self) -> int:
        return len(self._rows)

    def find_existing(self, key: DedupKey) -> bool:
        return key in self._rows

    def create(
        self, tx: CanonicalTransaction, *, key: DedupKey, company_id: str | None
    ) -> bool:
        if key in self._rows:
            return False
        self._rows[key] = (tx, company_id)
        return True

    def recent(self, bank_account_id: str, limit: int) -> list[CanonicalTransaction]:
        txs = [tx for key, (tx, _) in self._rows.items() if key.bank_account_id == bank_account_id]
        txs.sort(key=lambda t: t.date, reverse=True)
        return txs[:limit]


def persist_statement(
    envelope: StatementEnvelope,
    store: TransactionStore,
    *,
    bank_account_id: str,
    company_id: str | None = None,
) -> PersistReport:
    """Persist every transaction of ``envelope`` that is not already stored.

    Re-importing the same statement is idempotent: already known keys are
    skipped silently and counted in ``PersistReport.skipped``.
    """

    report = PersistReport()
    for tx in envelope.transactions:
        key = DedupKey.for_transaction(bank_account_id, tx)
        if store.find_existing(key) or not store.create(tx, key=key, company_id=company_id):
            report.skipped += 1
            report.statuses[tx.id] = PersistStatus.SKIPPED_DUPLICATE
            continue
        report.persisted += 1
        report.statuses[tx.id] = PersistStatus.PERSISTED
    _logger.info(
        "persist_statement:done account=%s persisted=%d skipped=%d",
        bank_account_id,
        report.persisted,
        report.skipped,
    )
    return report


__all__ = [
    "PersistStatus",
    "PersistReport",
    "SqlTransactionStore",
    "InMemoryTransactionStore",
    "persist_statement",
]
