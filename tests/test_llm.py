# tests/test_llm.py

from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest

from daytrack.core.prompts import CHAT_SYSTEM_PROMPT, SUGGESTION_SYSTEM_PROMPT
from daytrack.llm.client import OllamaLLMClient, collect_text, friendly_llm_error_message
from daytrack.llm.offline import OfflineLLMClient


def _chunk(text: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class _FakeCompletions:
    """Stands in for client.chat.completions: per-model scripted behaviour."""

    def __init__(self, script: dict[str, object]) -> None:
        self.script = script
        self.models: list[str] = []

    def create(self, *, model: str, **kwargs):
        self.models.append(model)
        outcome = self.script[model]
        if isinstance(outcome, Exception):
            raise outcome
        return iter([_chunk(None), *(_chunk(t) for t in outcome)])


def _client(models: list[str], script: dict[str, object]) -> tuple[OllamaLLMClient, _FakeCompletions]:
    settings = SimpleNamespace(
        ollama_base_url="http://localhost:11434/v1",
        ollama_api_key=None,
        llm_models=models,
    )
    client = OllamaLLMClient(settings)
    completions = _FakeCompletions(script)
    client._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return client, completions


def test_falls_back_to_next_model_on_network_error() -> None:
    client, completions = _client(
        ["small", "backup"],
        {"small": httpx.ConnectError("refused"), "backup": ["Hello", " there"]},
    )

    text = collect_text(client.stream_chat([{"role": "user", "content": "hi"}], "sys"))

    assert text == "Hello there"
    assert completions.models == ["small", "backup"]


def test_all_models_failing_raises_friendly_error() -> None:
    client, _ = _client(["only"], {"only": httpx.ConnectError("refused")})

    with pytest.raises(RuntimeError) as exc_info:
        collect_text(client.stream_chat([{"role": "user", "content": "hi"}], "sys"))

    assert "Ollama" in friendly_llm_error_message(exc_info.value)


def test_empty_model_list_is_reported() -> None:
    client, _ = _client([], {})
    with pytest.raises(RuntimeError, match="model list is empty"):
        list(client.stream_chat([], "sys"))


def test_missing_base_url_fails_at_construction() -> None:
    with pytest.raises(RuntimeError):
        OllamaLLMClient(SimpleNamespace(ollama_base_url="", llm_models=["m"]))


def test_offline_client_modes() -> None:
    offline = OfflineLLMClient()

    hint = collect_text(offline.stream_chat([{"role": "user", "content": "task"}], SUGGESTION_SYSTEM_PROMPT))
    chat = collect_text(offline.stream_chat([{"role": "user", "content": "hello"}], CHAT_SYSTEM_PROMPT))

    assert hint.startswith("Offline mode") and "first concrete step" in hint
    assert chat.endswith("You said: hello")
