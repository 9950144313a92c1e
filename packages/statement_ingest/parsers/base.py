"""Shared parser contract and the rows -> envelope tail every adapter uses."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import replace

from ..assembler import AccountDetails, assemble_statement
from ..bank_formats import BankFormatProfile
from ..config import DocumentType, IngestSettings
from ..errors import EmptyResultError
from ..logging_setup import get_logger
from ..models import ProcessingMethod, RawRow, StatementDocument, StatementEnvelope
from ..normalizers import normalize_rows
from ..scheduling import CancellationToken

_logger = get_logger("statement_ingest.parsers")

TABULAR_CONFIDENCE = 0.9


class StatementParser(ABC):
    """Turn one uploaded document into a :class:`StatementEnvelope`.

    Implementations skip malformed rows (logging each) and raise
    :class:`EmptyResultError` when nothing usable remains.
    """

    document_types: tuple[DocumentType, ...] = ()

    def __init__(self, settings: IngestSettings) -> None:
        self.settings = settings

    @abstractmethod
    def parse(
        self, document: StatementDocument, *, cancel: CancellationToken | None = None
    ) -> StatementEnvelope: ...


def envelope_from_rows(
    rows: Iterable[RawRow],
    *,
    profile: BankFormatProfile | None,
    currency: str,
    base_confidence: float,
    processing_method: ProcessingMethod,
    detected_format: str,
    account: AccountDetails | None = None,
    extra_invalid: int = 0,
) -> StatementEnvelope:
    """Normalize ``rows`` and assemble the envelope.

    Envelope confidence is ``base_confidence`` scaled by the fraction of data
    rows that produced transactions; ``extra_invalid`` counts rows the adapter
    already rejected before normalization.
    """

    normalized = normalize_rows(
        rows, profile=profile, currency=currency, confidence=base_confidence
    )
    if not normalized.transactions:
        _logger.error(
            "parse_statement:empty format=%s invalid_rows=%d",
            detected_format,
            normalized.invalid + extra_invalid,
        )
        raise EmptyResultError(
            f"No valid transactions found in {detected_format} statement "
            f"({normalized.invalid + extra_invalid} malformed rows)"
        )

    valid = len(normalized.transactions)
    invalid = normalized.invalid + extra_invalid
    fraction = valid / (valid + invalid)
    if invalid:
        _logger.warning(
            "parse_statement:partial format=%s valid=%d invalid=%d", detected_format, valid, invalid
        )
    bank_account = account or AccountDetails()
    if profile is not None and bank_account.bank_name is None:
        bank_account = replace(bank_account, bank_name=profile.name)
    return assemble_statement(
        normalized.transactions,
        detected_format=detected_format,
        processing_method=processing_method,
        currency=currency,
        confidence=base_confidence * fraction,
        account=bank_account,
    )


__all__ = ["StatementParser", "envelope_from_rows", "TABULAR_CONFIDENCE"]
