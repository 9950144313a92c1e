"""In-memory OCR and object-storage collaborators plus small builders."""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Sequence
from decimal import Decimal

from statement_ingest.assembler import assemble_statement
from statement_ingest.collaborators import OcrPage, OcrStatus
from statement_ingest.models import (
    CanonicalTransaction,
    ProcessingMethod,
    StatementEnvelope,
    TransactionType,
)


class FakeOcr:
    """Serves a fixed sequence of poll pages for every job."""

    def __init__(self, pages: Iterable[OcrPage]) -> None:
        self._pages = list(pages)
        self.submitted: list[tuple[str, str | None]] = []
        self.polls: list[tuple[str, str | None]] = []

    @classmethod
    def with_text(cls, text: str) -> FakeOcr:
        return cls([OcrPage(status=OcrStatus.SUCCEEDED, lines=tuple(text.splitlines()))])

    def submit(self, content: bytes, filename: str, *, location: str | None = None) -> str:
        self.submitted.append((filename, location))
        return f"job-{len(self.submitted)}"

    def poll(self, job_id: str, continuation_token: str | None = None) -> OcrPage:
        self.polls.append((job_id, continuation_token))
        if len(self._pages) > 1:
            return self._pages.pop(0)
        return self._pages[0]


class FakeStorage:
    def __init__(self, *, fail_delete: bool = False) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_delete = fail_delete

    def put(self, key: str, content: bytes, *, content_type: str | None = None) -> str:
        self.objects[key] = content
        return f"s3://test-bucket/{key}"

    def delete(self, key: str) -> None:
        if self.fail_delete:
            raise RuntimeError("delete refused")
        self.objects.pop(key, None)
        self.deleted.append(key)


def tx(
    tx_id: str,
    date: str,
    amount: str,
    kind: TransactionType = TransactionType.EXPENSE,
    *,
    description: str = "Booking",
    reference: str | None = None,
    balance: str | None = None,
) -> CanonicalTransaction:
    return CanonicalTransaction(
        id=tx_id,
        date=dt.date.fromisoformat(date),
        description=description,
        raw_description=description,
        amount=Decimal(amount),
        type=kind,
        reference=reference,
        balance=Decimal(balance) if balance is not None else None,
    )


def envelope_of(transactions: Sequence[CanonicalTransaction]) -> StatementEnvelope:
    return assemble_statement(
        transactions,
        detected_format="test",
        processing_method=ProcessingMethod.CSV,
        currency="EUR",
        confidence=0.9,
    )
