from __future__ import annotations

import json

from statement_ingest.models import TransactionType
from statement_ingest.prompting import (
    EXISTING_FIELD_ORDER,
    TX_FIELD_ORDER,
    build_analysis_prompt,
    build_extraction_prompt,
    serialize_transactions_to_json,
)

from tests.helpers.fakes import envelope_of, tx
from tests.helpers.llm_stub import transactions_in


def test_serialize_keeps_field_order_and_umlauts():
    t = tx("tx_1", "2024-03-01", "1200.00", description="Büromiete", balance="8800.00")
    out = serialize_transactions_to_json([t])

    assert "Büromiete" in out
    (item,) = json.loads(out)
    assert list(item) == list(TX_FIELD_ORDER)
    assert item["amount"] == 1200.0
    assert item["date"] == "2024-03-01"
    assert item["type"] == "expense"
    assert item["reference"] is None


def test_existing_transactions_carry_their_category():
    t = tx("old", "2024-02-01", "10.00").model_copy(update={"category": "Travel"})
    (item,) = json.loads(serialize_transactions_to_json([t], EXISTING_FIELD_ORDER))
    assert item["category"] == "Travel"


def test_analysis_prompt_contains_metadata_and_contract():
    env = envelope_of(
        [
            tx("tx_a", "2024-03-01", "1200.00"),
            tx("tx_b", "2024-03-02", "50.00", TransactionType.INCOME),
        ]
    )
    prompt = build_analysis_prompt(env)

    assert "- Period: 2024-03-01 to 2024-03-02" in prompt
    assert "- Account: Not specified" in prompt
    assert [t["id"] for t in transactions_in(prompt)] == ["tx_a", "tx_b"]
    for key in ("suggestedCategories", "duplicateDetection", "anomalyDetection", "counterpartyMapping"):
        assert key in prompt
    assert "BEGIN_EXISTING_TRANSACTIONS_JSON\n[]\nEND_EXISTING_TRANSACTIONS_JSON" in prompt


def test_extraction_prompt_truncates_long_text():
    prompt = build_extraction_prompt("A" * 50 + "TAIL", max_chars=50)
    assert "A" * 50 in prompt
    assert "TAIL" not in prompt
    assert "BEGIN_STATEMENT_TEXT" in prompt and "END_STATEMENT_TEXT" in prompt
