from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CHAR,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# BIGINT on Postgres, INTEGER (rowid alias) on SQLite so autoincrement works in tests.
_PK = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: bank_transactions
# ---------------------------


class BankTransactionRecord(Base):
    """A persisted canonical bank transaction.

    Only transactions are persisted; the statement envelope they arrived in is
    transient. The unique constraint on the dedup key is the authority for
    idempotent re-imports: concurrent writers racing on the same key are
    resolved here rather than by the check-then-insert in the service layer.
    """

    __tablename__ = "bank_transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    company_id: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_account_id: Mapped[str] = mapped_column(String, nullable=False)
    # ``reference`` when the bank supplied one, else the engine-generated id.
    dedup_reference: Mapped[str] = mapped_column(String, nullable=False)
    transaction_id: Mapped[str] = mapped_column(String, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency_code: Mapped[str] = mapped_column(CHAR(3), nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    raw_description: Mapped[str] = mapped_column(Text, nullable=False)
    counterparty: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(String, nullable=True)
    balance: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    subcategory: Mapped[str | None] = mapped_column(String, nullable=True)
    confidence: Mapped[Decimal | None] = mapped_column(Numeric(3, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "bank_account_id",
            "dedup_reference",
            "amount",
            "date",
            name="uq_bank_tx_dedup_key",
        ),
        Index("ix_bank_tx_account_date", "bank_account_id", "date"),
        CheckConstraint("amount >= 0", name="ck_bank_tx_amount_non_negative"),
        CheckConstraint("type in ('income','expense')", name="ck_bank_tx_type"),
        CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 1)",
            name="ck_bank_tx_confidence",
        ),
    )


# ---------------------------
# Reference: invoices
# ---------------------------


class InvoiceRecord(Base):
    """Invoice rows read by the reconciliation matcher (write side lives elsewhere)."""

    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    company_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    vendor: Mapped[str | None] = mapped_column(Text, nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String, nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency_code: Mapped[str] = mapped_column(CHAR(3), nullable=False, default="EUR")
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False)


__all__ = [
    "Base",
    "BankTransactionRecord",
    "InvoiceRecord",
]
