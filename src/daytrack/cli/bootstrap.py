# src/daytrack/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into TrackerState (LLM/cache/store).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import LLMClient
from ..core.state import TrackerState
from ..llm.client import OllamaLLMClient
from ..llm.offline import OfflineLLMClient
from ..tasks.local_cache import JsonFileKVCache, LocalTaskCache
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.cache_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> TrackerState:
    """
    Create TrackerState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    llm_client: LLMClient
    try:
        llm_client = OllamaLLMClient(settings)
    except Exception:
        logger.warning("LLM client unavailable; using offline replies.", exc_info=True)
        llm_client = OfflineLLMClient()

    return TrackerState(
        settings=settings,
        llm=llm_client,
        cache=LocalTaskCache(JsonFileKVCache(settings.cache_path)),
        store=TaskStore(settings.tasks_db_path),
        authority=settings.authority,
    )
