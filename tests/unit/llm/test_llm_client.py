from __future__ import annotations

from dataclasses import replace

import pytest
import requests

import cortex.llm.client as client_module
from cortex.core.config import get_config
from cortex.core.exceptions import LLMError
from cortex.llm.client import LLMClient, call_llm
from cortex.llm.summarizer import ConversationSummarizer

from conftest import ScriptedLLMClient


def _config(**overrides):
    values = {
        "LLM_BASE_URL": "https://llm.example.com",
        "LLM_API_KEY": "secret",
        "LLM_MODEL": "deepseek-chat",
        "LLM_MAX_RETRIES": 1,
        "LLM_MIN_INTERVAL_SECONDS": 0.0,
    }
    values.update(overrides)
    return replace(get_config(), **values)


class _Response:
    def __init__(self, body, status_code: int = 200) -> None:
        self.body = body
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        return self.body


def test_call_llm_posts_chat_completion(monkeypatch):
    captured = {}

    def fake_post(url, json, headers, timeout):
        captured.update(url=url, json=json, headers=headers)
        return _Response({"choices": [{"message": {"content": '{"message": "hola"}'}}]})

    monkeypatch.setattr(client_module.requests, "post", fake_post)

    text = call_llm("system", "user", json_mode=True, temperature=0.7, config=_config())

    assert text == '{"message": "hola"}'
    assert captured["url"] == "https://llm.example.com/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer secret"
    assert captured["json"]["temperature"] == 0.7
    assert captured["json"]["response_format"] == {"type": "json_object"}


def test_call_llm_returns_empty_after_retries(monkeypatch):
    attempts = []

    def failing_post(url, json, headers, timeout):
        attempts.append(url)
        return _Response({}, status_code=503)

    monkeypatch.setattr(client_module.requests, "post", failing_post)
    monkeypatch.setattr(client_module.time, "sleep", lambda seconds: None)

    assert call_llm("system", "user", config=_config(LLM_MAX_RETRIES=2)) == ""
    assert len(attempts) == 3


def test_client_raises_on_empty_model_output():
    client = LLMClient(config=_config(), transport=lambda *args, **kwargs: "  ")

    with pytest.raises(LLMError):
        client.generate("system", "user")


def test_client_wraps_text_with_metadata():
    client = LLMClient(config=_config(), transport=lambda *args, **kwargs: "respuesta")

    response = client.generate("system", "user", json_mode=False)

    assert response.text == "respuesta"
    assert response.model_name == "deepseek-chat"
    assert len(response.prompt_hash) == 64


def test_summarizer_caps_summary_and_rejects_empty():
    summarizer = ConversationSummarizer(ScriptedLLMClient(["  " + "r" * 2500 + "  ", "   "]))

    summary = summarizer.summarize(["Usuario: hola", "Asistente (Tú): hola"], previous_summary=None)

    assert len(summary) == 2000
    with pytest.raises(LLMError):
        summarizer.summarize(["Usuario: hola"])
