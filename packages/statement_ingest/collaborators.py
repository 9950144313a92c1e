"""Contracts of the external collaborators the pipeline talks to.

Concrete adapters live in :mod:`statement_ingest.openai_client` (language
model), :mod:`statement_ingest.aws` (OCR and object storage),
:mod:`statement_ingest.invoices` and :mod:`statement_ingest.persistence`
(database). Tests provide in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol, runtime_checkable

from .models import CanonicalTransaction, Invoice


class LanguageModel(Protocol):
    def complete(self, prompt: str) -> str:
        """Return the raw text completion for ``prompt``."""
        ...


class OcrStatus(StrEnum):
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"


@dataclass(frozen=True, slots=True)
class OcrPage:
    """One poll response: job status, the text lines of this page of results,
    and the token for the next page (``None`` on the last page)."""

    status: OcrStatus
    lines: tuple[str, ...] = ()
    continuation_token: str | None = None
    message: str | None = None


class OcrClient(Protocol):
    def submit(self, content: bytes, filename: str, *, location: str | None = None) -> str:
        """Start text detection and return a job handle.

        ``location`` is the object-storage URI of the uploaded document when
        the service reads from storage rather than from inline bytes.
        """
        ...

    def poll(self, job_id: str, continuation_token: str | None = None) -> OcrPage: ...


class ObjectStorage(Protocol):
    def put(self, key: str, content: bytes, *, content_type: str | None = None) -> str:
        """Store ``content`` under ``key`` and return its URI."""
        ...

    def delete(self, key: str) -> None: ...


@runtime_checkable
class InvoiceSource(Protocol):
    def list_open_invoices(self, company_id: str) -> Sequence[Invoice]: ...


@dataclass(frozen=True, slots=True)
class DedupKey:
    """Identity of a persisted bank transaction.

    ``reference`` is the transaction's payment reference when it has one,
    otherwise its engine-generated id.
    """

    bank_account_id: str
    reference: str
    amount: str
    date: str

    @classmethod
    def for_transaction(cls, bank_account_id: str, tx: CanonicalTransaction) -> DedupKey:
        return cls(
            bank_account_id=bank_account_id,
            reference=tx.reference or tx.id,
            amount=f"{tx.amount:.2f}",
            date=tx.date.isoformat(),
        )


class TransactionStore(Protocol):
    def find_existing(self, key: DedupKey) -> bool: ...

    def create(
        self, tx: CanonicalTransaction, *, key: DedupKey, company_id: str | None
    ) -> bool:
        """Insert the transaction; return ``False`` if the dedup key already exists."""
        ...

    def recent(self, bank_account_id: str, limit: int) -> list[CanonicalTransaction]: ...


__all__ = [
    "LanguageModel",
    "OcrStatus",
    "OcrPage",
    "OcrClient",
    "ObjectStorage",
    "InvoiceSource",
    "DedupKey",
    "TransactionStore",
]
