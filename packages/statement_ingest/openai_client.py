"""OpenAI-backed language-model collaborator (Responses API).

The client is created lazily on first use from the injected settings, never
at import time. SDK and transport errors surface as
:class:`~statement_ingest.errors.LanguageModelError` so the orchestrator can
retry them like any other failure.
"""

from __future__ import annotations

import time
from typing import Any

from openai import OpenAI, OpenAIError

from .config import IngestSettings
from .errors import LanguageModelError
from .logging_setup import get_logger
from .prompting import build_system_instructions

_logger = get_logger("statement_ingest.openai_client")


def _response_text(resp: Any) -> str:
    """Return the text output of a Responses SDK result.

    Prefers ``resp.output_text`` and falls back to
    ``resp.output[0].content[0].text``.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                txt_obj = getattr(content[0], "text", None)
                if isinstance(txt_obj, str):
                    text = txt_obj
                else:
                    maybe_val = getattr(txt_obj, "value", None)
                    if isinstance(maybe_val, str):
                        text = maybe_val
        except Exception:  # noqa: BLE001 - tolerate SDK shape differences
            text = None
    if not text or not isinstance(text, str):
        raise LanguageModelError("unexpected Responses API shape; no text output")
    return text


class OpenAIChatModel:
    """``LanguageModel`` implementation on top of the OpenAI SDK."""

    def __init__(self, settings: IngestSettings, client: OpenAI | None = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self.settings.openai_api_key:
                raise LanguageModelError("OPENAI_API_KEY is not configured")
            self._client = OpenAI(api_key=self.settings.openai_api_key)
        return self._client

    def complete(self, prompt: str) -> str:
        t0 = time.perf_counter()
        try:
            resp = self.client.responses.create(
                model=self.settings.openai_model,
                instructions=build_system_instructions(),
                input=prompt,
                temperature=self.settings.temperature,
                max_output_tokens=self.settings.max_completion_tokens,
                text={"format": {"type": "json_object"}},
            )
        except OpenAIError as e:
            status = getattr(e, "status_code", None)
            _logger.warning(
                "llm_complete:error model=%s status=%s error=%s",
                self.settings.openai_model,
                status,
                e.__class__.__name__,
            )
            raise LanguageModelError(f"{e.__class__.__name__}: {e}") from e
        text = _response_text(resp)
        _logger.debug(
            "llm_complete:done model=%s chars=%d latency_ms=%.2f",
            self.settings.openai_model,
            len(text),
            (time.perf_counter() - t0) * 1000.0,
        )
        return text


__all__ = ["OpenAIChatModel"]
