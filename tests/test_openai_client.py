from __future__ import annotations

from types import SimpleNamespace

import pytest
from openai import OpenAIError

from statement_ingest.config import IngestSettings
from statement_ingest.errors import LanguageModelError
from statement_ingest.openai_client import OpenAIChatModel, _response_text
from statement_ingest.prompting import build_system_instructions

from tests.helpers.openai_stub import OpenAIStub


def test_complete_sends_prompt_with_json_format():
    stub = OpenAIStub(['{"ok": true}'])
    settings = IngestSettings(openai_model="gpt-4o-mini", temperature=0.2, max_completion_tokens=512)
    model = OpenAIChatModel(settings, client=stub)

    assert model.complete("categorize these") == '{"ok": true}'

    (call,) = stub.calls
    assert call["model"] == "gpt-4o-mini"
    assert call["input"] == "categorize these"
    assert call["instructions"] == build_system_instructions()
    assert call["temperature"] == 0.2
    assert call["max_output_tokens"] == 512
    assert call["text"] == {"format": {"type": "json_object"}}


def test_sdk_errors_become_language_model_errors():
    stub = OpenAIStub([OpenAIError("upstream unavailable")])
    model = OpenAIChatModel(IngestSettings(), client=stub)
    with pytest.raises(LanguageModelError, match="upstream unavailable"):
        model.complete("x")


def test_missing_api_key_fails_on_first_use_only():
    model = OpenAIChatModel(IngestSettings())
    with pytest.raises(LanguageModelError, match="OPENAI_API_KEY"):
        model.complete("x")


def test_response_text_falls_back_to_output_blocks():
    resp = SimpleNamespace(
        output_text=None,
        output=[SimpleNamespace(content=[SimpleNamespace(text=SimpleNamespace(value="{}"))])],
    )
    assert _response_text(resp) == "{}"

    with pytest.raises(LanguageModelError):
        _response_text(SimpleNamespace(output_text="", output=[]))
