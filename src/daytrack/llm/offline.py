# src/daytrack/llm/offline.py

from __future__ import annotations

from collections.abc import Iterable

from ..core.ports import ChatMessage


class OfflineLLMClient:
    """
    Offline deterministic LLM client used when no local model server can be configured.

    Behavior:
    - Suggestion prompts -> a generic three-step breakdown
    - Normal chat -> a friendly offline notice echoing the user message
    """

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        user_text = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_text = m["content"]
                break

        if "breakdown assistant" in (system_prompt or "").lower():
            yield (
                "Offline mode: no language model is reachable.\n"
                "- Write down the very first concrete step.\n"
                "- Block a short time slot for it today.\n"
                "- Note what is needed to call the task finished."
            )
            return

        yield (
            "Offline mode: no language model is configured.\n"
            "Start Ollama (ollama serve) and set DAYTRACK_LLM_MODELS to enable real responses.\n\n"
            f"You said: {user_text}"
        )
