# tests/conftest.py

from __future__ import annotations

from datetime import date
from pathlib import Path
from types import SimpleNamespace

import pytest

from daytrack.core.state import TrackerState
from daytrack.tasks.local_cache import LocalTaskCache, MemoryKVCache
from daytrack.tasks.task_store import TaskStore

from .fakes import Clock, FakeLLMClient


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with TrackerState and the commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="daytrack-test",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        cache_path=tmp_path / "local_cache.json",
        authority="local",
        llm_models=["test-model"],
    )


@pytest.fixture()
def clock() -> Clock:
    return Clock(date(2024, 1, 1))


@pytest.fixture()
def backend() -> MemoryKVCache:
    return MemoryKVCache()


@pytest.fixture()
def cache(backend: MemoryKVCache) -> LocalTaskCache:
    return LocalTaskCache(backend)


@pytest.fixture()
def store(settings: SimpleNamespace) -> TaskStore:
    """Real SQLite store: its behaviour is part of what we test."""
    return TaskStore(settings.tasks_db_path)


@pytest.fixture()
def llm() -> FakeLLMClient:
    return FakeLLMClient("- Step one\n- Step two")


@pytest.fixture()
def state(settings, llm, cache, store, clock) -> TrackerState:
    return TrackerState(
        settings=settings,
        llm=llm,
        cache=cache,
        store=store,
        authority="local",
        today_fn=clock,
    )
