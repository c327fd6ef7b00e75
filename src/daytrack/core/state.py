# src/daytrack/core/state.py

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ..tasks.local_cache import LocalTaskCache
from .ports import DurableTaskStore, LLMClient


@dataclass
class TrackerState:
    """Everything a command or connector needs, wired once by the CLI bootstrap."""

    # Settings object (or a SimpleNamespace in tests).
    settings: Any

    llm: LLMClient
    cache: LocalTaskCache
    store: DurableTaskStore

    authority: str = "local"
    today_fn: Callable[[], date] = date.today

    # Serializes console commands against any background work.
    lock: threading.Lock = field(default_factory=threading.Lock)

    def today(self) -> date:
        return self.today_fn()
