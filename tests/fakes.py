# tests/fakes.py

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date

from daytrack.core.ports import ChatMessage
from daytrack.tasks.local_cache import MemoryKVCache
from daytrack.tasks.task_store import TaskStore, TaskStoreError


class FakeLLMClient:
    """
    Deterministic LLM client for unit tests.

    - Captures calls for assertions
    - Yields a predefined text in two chunks
    """

    def __init__(self, next_text: str = "ok") -> None:
        self.next_text = next_text
        self.calls: list[tuple[list[ChatMessage], str]] = []

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        self.calls.append((messages, system_prompt))
        half = len(self.next_text) // 2
        yield self.next_text[:half]
        yield self.next_text[half:]


class BrokenLLMClient:
    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        raise RuntimeError("LLM network/timeout error. Is Ollama running?")
        yield ""  # pragma: no cover


class Clock:
    """Settable "today" for rollover tests."""

    def __init__(self, today: date) -> None:
        self.today = today

    def __call__(self) -> date:
        return self.today


class FailingInsertStore(TaskStore):
    """Real SQLite store whose batch inserts fail while `fail` is set."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.fail = True
        self.insert_calls = 0

    def insert_tasks(self, rows: Sequence):
        self.insert_calls += 1
        if self.fail:
            raise TaskStoreError("network unreachable")
        return super().insert_tasks(rows)


class CountingStore(TaskStore):
    """Real SQLite store that counts durable writes."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.insert_calls = 0

    def insert_tasks(self, rows: Sequence):
        self.insert_calls += 1
        return super().insert_tasks(rows)


class ConflictingKVCache(MemoryKVCache):
    """Backend whose first `conflicts` compare_and_set calls lose the race."""

    def __init__(self, conflicts: int) -> None:
        super().__init__()
        self.conflicts = conflicts
        self.cas_calls = 0

    def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        self.cas_calls += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            return False
        return super().compare_and_set(key, expected, value)


class BrokenKVCache(MemoryKVCache):
    """Backend where writes blow up (quota exceeded, disk full, ...)."""

    def set(self, key: str, value: str) -> None:
        raise OSError("quota exceeded")

    def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        raise OSError("quota exceeded")


class CasFailingKVCache(MemoryKVCache):
    """Backend where plain sets work but every compare_and_set loses while `fail` is set."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__(initial)
        self.fail = True

    def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        if self.fail:
            return False
        return super().compare_and_set(key, expected, value)
