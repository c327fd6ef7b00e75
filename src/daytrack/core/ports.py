# src/daytrack/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage/LLM providers swappable and makes testing against
in-memory fakes easy.
"""

from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any, Protocol

ChatMessage = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.


class LLMClient(Protocol):
    """Streaming chat completion client (OpenAI-compatible, e.g. Ollama)."""
    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]: ...


class KeyValueCache(Protocol):
    """
    Device-local key -> serialized blob storage.

    compare_and_set writes `value` only if the current value equals `expected`
    (None meaning "absent") and reports whether it did.
    """

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...
    def compare_and_set(self, key: str, expected: str | None, value: str) -> bool: ...


class DurableTaskStore(Protocol):
    """
    Authoritative task history and app state.

    Every method may raise TaskStoreError; callers abort and leave local state alone.
    """

    def insert_tasks(self, rows: Sequence[Any]) -> list[Any]: ...

    def select_tasks(
            self,
            *,
            statuses: Iterable[Any] | None = None,
            created_date: date | None = None,
            due_after: date | None = None,
            task_ids: Iterable[str] | None = None,
            limit: int | None = None,
    ) -> list[Any]: ...

    def update_tasks(
            self,
            *,
            task_ids: Iterable[str] | None = None,
            statuses: Iterable[Any] | None = None,
            created_date: date | None = None,
            status: Any | None = None,
            new_created_date: date | None = None,
            title: str | None = None,
            description: str | None = None,
            due_date: date | None = None,
    ) -> int: ...

    def update_task(self, task_id: str, **fields: Any) -> Any | None: ...
    def delete_task(self, task_id: str) -> bool: ...

    def get_last_viewed_date(self) -> date | None: ...
    def set_last_viewed_date(self, day: date) -> None: ...
