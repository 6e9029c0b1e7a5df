from __future__ import annotations

from types import SimpleNamespace

import pytest
import requests

from dubbing_agent.config import TranslationConfig
from dubbing_agent.errors import ServiceError
from dubbing_agent.translation import (
    DeepSeekBackend,
    OllamaBackend,
    OpenAICompletionBackend,
    build_backend,
    build_batch_prompt,
    clean_response_text,
    clean_single_response,
    parse_batch_response,
)
from dubbing_agent.types import Segment


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def json(self):
        return self._payload


def test_batch_prompt_tags_each_line_with_timing():
    segments = [Segment(0, 2000, "Hello"), Segment(2500, 4750, "World")]

    prompt = build_batch_prompt(segments, TranslationConfig())

    assert "[1|0.0s-2.0s] Hello" in prompt
    assert "[2|2.5s-4.8s] World" in prompt
    assert "Brazilian Portuguese" in prompt


def test_parse_batch_response_strips_commentary():
    response = (
        "Here are the translations:\n"
        "[1|0.0s-2.0s] Olá (greeting)\n"
        "[2] *Mundo* [note: informal]\n"
        "[3] \"Tchau\"\n"
        "[9] out of range\n"
        "[2] duplicate\n"
    )

    assert parse_batch_response(response, 3) == {1: "Olá", 2: "Mundo", 3: "Tchau"}


def test_parse_batch_response_skips_empty_lines():
    assert parse_batch_response("[1] (only a note)\n[2] Certo", 2) == {2: "Certo"}


def test_clean_response_text_removes_dash_comments_and_bold():
    assert clean_response_text("Vamos lá – literal translation. **agora**") == "Vamos lá agora"


def test_clean_single_response_removes_numbering_and_prefix():
    assert clean_single_response("1. Tradução: Olá mundo") == "Olá mundo"
    assert clean_single_response("[1] Translation: Olá") == "Olá"
    assert clean_single_response("3 maçãs") == "3 maçãs"


def test_build_backend_selects_provider(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "secret")

    assert isinstance(build_backend(TranslationConfig(provider="ollama")), OllamaBackend)
    assert isinstance(build_backend(TranslationConfig(provider="DeepSeek", api_key_env="DEEPSEEK_API_KEY")), DeepSeekBackend)
    with pytest.raises(ValueError):
        build_backend(TranslationConfig(provider="unknown"))


def test_openai_backend_uses_chat_completions():
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        message = SimpleNamespace(content="  [1] Olá  ")
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    backend = OpenAICompletionBackend(TranslationConfig(model="primary", timeout=12.0), client=client)

    assert backend.complete("prompt", model="alternate") == "[1] Olá"
    assert calls[0]["model"] == "alternate"
    assert calls[0]["timeout"] == 12.0
    assert calls[0]["messages"][-1] == {"role": "user", "content": "prompt"}


def test_deepseek_backend_posts_with_timeout(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "secret")
    captured = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        captured.update(url=url, headers=headers, json=json, timeout=timeout)
        return FakeResponse({"choices": [{"message": {"content": "[1] Olá"}}]})

    monkeypatch.setattr(requests, "post", fake_post)
    backend = DeepSeekBackend(TranslationConfig(provider="deepseek", model="deepseek-chat", api_key_env="DEEPSEEK_API_KEY"))

    assert backend.complete("prompt") == "[1] Olá"
    assert captured["url"] == "https://api.deepseek.com/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer secret"
    assert captured["timeout"] == 30.0


def test_deepseek_backend_requires_api_key(monkeypatch):
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)

    with pytest.raises(RuntimeError):
        DeepSeekBackend(TranslationConfig(provider="deepseek", api_key_env="DEEPSEEK_API_KEY"))


def test_deepseek_http_error_becomes_service_error(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "secret")
    monkeypatch.setattr(requests, "post", lambda *args, **kwargs: FakeResponse({"error": "busy"}, status_code=503))
    backend = DeepSeekBackend(TranslationConfig(provider="deepseek", api_key_env="DEEPSEEK_API_KEY"))

    with pytest.raises(ServiceError):
        backend.complete("prompt")


def test_ollama_timeout_becomes_service_error(monkeypatch):
    def fake_post(*args, **kwargs):
        raise requests.Timeout("timed out")

    monkeypatch.setattr(requests, "post", fake_post)

    with pytest.raises(ServiceError):
        OllamaBackend(TranslationConfig(provider="ollama", model="llama3")).complete("prompt")


def test_ollama_reset_unloads_models(monkeypatch):
    posted = []
    monkeypatch.setattr(requests, "post", lambda url, json=None, timeout=None: posted.append(json) or FakeResponse({}))
    backend = OllamaBackend(TranslationConfig(provider="ollama", model="llama3", alternate_model="llama3:8b"))

    backend.reset()

    assert sorted(item["model"] for item in posted) == ["llama3", "llama3:8b"]
    assert all(item["keep_alive"] == 0 for item in posted)


def test_ollama_complete_reads_response_field(monkeypatch):
    monkeypatch.setattr(
        requests, "post", lambda url, json=None, timeout=None: FakeResponse({"response": " [1] Oi "})
    )

    assert OllamaBackend(TranslationConfig(provider="ollama", model="llama3")).complete("prompt") == "[1] Oi"
