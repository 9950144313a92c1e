"""Prompt construction for statement analysis and text extraction.

This module builds:
- A deterministic JSON serialization of transactions with a fixed field order.
- The shared system instructions.
- The user prompt for the analysis task (categorization, duplicate and
  anomaly detection, counterparty mapping, summary).
- The user prompt for turning OCR text into a structured statement.

Data is embedded between ``BEGIN_*`` / ``END_*`` markers so the model never
confuses instructions with statement content.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from .models import CanonicalTransaction, StatementEnvelope

TX_FIELD_ORDER: tuple[str, ...] = (
    "id",
    "date",
    "description",
    "amount",
    "currency",
    "type",
    "reference",
    "balance",
)

EXISTING_FIELD_ORDER: tuple[str, ...] = (
    "id",
    "date",
    "description",
    "amount",
    "currency",
    "type",
    "category",
)

INCOME_CATEGORIES: tuple[str, ...] = (
    "Sales",
    "Investments",
    "Grants",
    "Refunds",
    "Other Income",
)

EXPENSE_CATEGORIES: tuple[str, ...] = (
    "Office Supplies",
    "Software",
    "Hardware",
    "Personnel",
    "Consulting",
    "Travel",
    "Marketing",
    "Rent",
    "Utilities",
    "Insurance",
    "Communication",
    "Training",
    "Research",
    "Development",
    "Equipment",
    "Maintenance",
    "Legal",
    "Accounting",
    "Banking",
    "Taxes",
    "Other Expenses",
)

ANOMALY_TYPES: tuple[str, ...] = (
    "unusual_amount",
    "unusual_timing",
    "suspicious_pattern",
    "missing_counterparty",
)

# Upper bound on OCR text embedded in an extraction prompt.
MAX_STATEMENT_TEXT_CHARS = 60_000


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):  # StrEnum
        return value.value
    return value


def serialize_transactions_to_json(
    transactions: Sequence[CanonicalTransaction],
    field_order: Sequence[str] = TX_FIELD_ORDER,
) -> str:
    """Serialize transactions to a JSON array with a fixed field order.

    Decimals become JSON numbers and dates ISO strings. Only standard JSON
    escaping is applied; non-ASCII text (umlauts in German booking texts) is
    kept as is.
    """

    arr: list[dict[str, Any]] = []
    for tx in transactions:
        out: dict[str, Any] = {}
        for key in field_order:
            out[key] = _jsonable(getattr(tx, key, None))
        arr.append(out)
    return json.dumps(arr, ensure_ascii=False)


def build_system_instructions() -> str:
    """System message shared by the analysis and the extraction prompts."""

    return (
        "You are a financial analyst AI that processes bank statements and categorizes "
        "transactions. Always respond with valid JSON only."
    )


def build_analysis_prompt(
    envelope: StatementEnvelope,
    existing: Sequence[CanonicalTransaction] = (),
    *,
    existing_limit: int = 50,
) -> str:
    """Build the user prompt for analysing one statement.

    - Statement metadata (account, holder, bank, period, balances, currency).
    - All transactions of the statement as JSON with their ids, so category
      suggestions can be aligned back by ``transactionId``.
    - Up to ``existing_limit`` previously imported transactions for duplicate
      detection.
    - The response contract: ``suggestedCategories``, ``duplicateDetection``,
      ``anomalyDetection``, ``counterpartyMapping`` and ``summary``.
    """

    ccy = envelope.currency
    period = envelope.statement_period
    tx_json = serialize_transactions_to_json(envelope.transactions)
    existing_json = serialize_transactions_to_json(
        list(existing)[: max(0, existing_limit)], EXISTING_FIELD_ORDER
    )

    lines = [
        "Analyze the following bank statement and provide categorization, duplicate "
        "detection, anomaly detection and counterparty recommendations.",
        "",
        "BANK STATEMENT DATA:",
        f"- Account: {envelope.account_number or 'Not specified'}",
        f"- Account Holder: {envelope.account_holder or 'Not specified'}",
        f"- Bank: {envelope.bank_name or 'Not specified'}",
        f"- Period: {period.start_date.isoformat()} to {period.end_date.isoformat()}",
        f"- Opening Balance: {envelope.opening_balance:.2f} {ccy}",
        f"- Closing Balance: {envelope.closing_balance:.2f} {ccy}",
        f"- Currency: {ccy}",
        "",
        "Amounts are non-negative; the direction is given by type (income or expense).",
        "",
        "BEGIN_TRANSACTIONS_JSON",
        tx_json,
        "END_TRANSACTIONS_JSON",
        "",
        "Existing transactions (for duplicate detection only; do not categorize these):",
        "BEGIN_EXISTING_TRANSACTIONS_JSON",
        existing_json,
        "END_EXISTING_TRANSACTIONS_JSON",
        "",
        "REQUIREMENTS:",
        "1. CATEGORIZATION: for each transaction suggest a category and a more specific "
        "subcategory.",
        f"   Income categories: {', '.join(INCOME_CATEGORIES)}",
        f"   Expense categories: {', '.join(EXPENSE_CATEGORIES)}",
        "2. DUPLICATE DETECTION: compare amount, date proximity (+/- 1 day), description "
        "similarity and reference numbers against the other and the existing transactions.",
        "3. ANOMALY DETECTION: flag unusual amounts, unusual timing, suspicious patterns and "
        f"missing counterparties. anomalyType is one of: {', '.join(ANOMALY_TYPES)}; "
        "severity is one of: low, medium, high.",
        "4. COUNTERPARTY MAPPING: map each original description to a clean counterparty "
        "name without references or codes.",
        "5. SUMMARY: totals for the statement period.",
        "",
        "RESPONSE FORMAT (JSON):",
        json.dumps(_RESPONSE_EXAMPLE, indent=2),
        "",
        "Use the transaction ids exactly as given. Provide your analysis in valid JSON only.",
    ]
    return "\n".join(lines)


_RESPONSE_EXAMPLE: dict[str, Any] = {
    "suggestedCategories": [
        {
            "transactionId": "tx_...",
            "category": "Software",
            "subcategory": "SaaS Subscriptions",
            "confidence": 0.95,
            "reasoning": "Description mentions a software subscription",
        }
    ],
    "duplicateDetection": [
        {"transactionId": "tx_...", "isDuplicate": False, "duplicateOf": None, "confidence": 0.9}
    ],
    "anomalyDetection": [
        {
            "transactionId": "tx_...",
            "anomalyType": "unusual_amount",
            "severity": "medium",
            "description": "Amount is far above the typical monthly average",
            "confidence": 0.85,
        }
    ],
    "counterpartyMapping": [
        {
            "originalDescription": "PAYPAL *ADOBE SYSTEMS 1234567890",
            "suggestedCounterparty": "Adobe Systems",
            "confidence": 0.95,
        }
    ],
    "summary": {
        "totalIncome": 15000.0,
        "totalExpenses": 8500.0,
        "netCashFlow": 6500.0,
        "transactionCount": 45,
        "categorizedCount": 42,
        "categorizationPercentage": 93.3,
    },
}


def build_extraction_prompt(text: str, *, max_chars: int = MAX_STATEMENT_TEXT_CHARS) -> str:
    """Build the user prompt that turns OCR statement text into a structured statement."""

    body = text if len(text) <= max_chars else text[:max_chars]
    example = {
        "accountNumber": "string or null",
        "accountHolder": "string or null",
        "bankName": "string or null",
        "iban": "string or null",
        "bic": "string or null",
        "statementPeriod": {"startDate": "YYYY-MM-DD", "endDate": "YYYY-MM-DD"},
        "openingBalance": 0.0,
        "closingBalance": 0.0,
        "currency": "EUR",
        "confidence": 0.9,
        "transactions": [
            {
                "date": "YYYY-MM-DD",
                "description": "booking text as printed",
                "amount": -12.5,
                "type": "expense",
                "balance": 1234.56,
                "reference": "string or null",
            }
        ],
    }
    return "\n".join(
        [
            "Extract the account details and every transaction line from this bank "
            "statement text. Report only what the text contains; never invent transactions.",
            "Amounts are signed: negative for debits (expense), positive for credits "
            "(income). Dates use YYYY-MM-DD.",
            "",
            "BEGIN_STATEMENT_TEXT",
            body,
            "END_STATEMENT_TEXT",
            "",
            "RESPONSE FORMAT (JSON):",
            json.dumps(example, indent=2),
        ]
    )


__all__ = [
    "TX_FIELD_ORDER",
    "EXISTING_FIELD_ORDER",
    "INCOME_CATEGORIES",
    "EXPENSE_CATEGORIES",
    "serialize_transactions_to_json",
    "build_system_instructions",
    "build_analysis_prompt",
    "build_extraction_prompt",
]
