# src/daytrack/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Bad values fall back to defaults instead of failing at startup.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

ENV_PREFIX = "DAYTRACK"

AUTHORITIES = ("local", "durable")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_choice(name: str, choices: tuple[str, ...], default: str) -> str:
    raw = (os.getenv(name) or "").strip().lower()
    return raw if raw in choices else default


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Storage ----
    data_dir: Path
    tasks_db_path: Path
    cache_path: Path
    # Which store holds the working set for the rollover check: "local" or "durable".
    authority: str
    check_on_start: bool

    # ---- LLM / Ollama (OpenAI-compatible endpoint) ----
    ollama_base_url: str
    ollama_api_key: Optional[str]
    llm_models: List[str]

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "daytrack") or "daytrack"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/daytrack"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        cache_path = _env_path(_k("CACHE_PATH"), data_dir / "local_cache.json")
        authority = _env_choice(_k("AUTHORITY"), AUTHORITIES, "local")
        check_on_start = _env_bool(_k("CHECK_ON_START"), True)

        ollama_base_url = _env(_k("OLLAMA_BASE_URL"), "http://localhost:11434/v1")
        # Ollama ignores the key, but the OpenAI SDK insists on one.
        ollama_api_key = _env(_k("OLLAMA_API_KEY"), "ollama") or None
        llm_models = _env_list(_k("LLM_MODELS"), ["qwen2.5:0.5b"])

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            cache_path=cache_path,
            authority=authority,
            check_on_start=check_on_start,
            ollama_base_url=ollama_base_url,
            ollama_api_key=ollama_api_key,
            llm_models=llm_models,
        )


SETTINGS = Settings.from_env()

# ---- Optional local overrides (never committed) ----
# Prefer .env; use config_local.py only for safe overrides.
try:
    import config_local as _config_local  # type: ignore

    if hasattr(_config_local, "AUTHORITY") and str(_config_local.AUTHORITY) in AUTHORITIES:
        object.__setattr__(SETTINGS, "authority", str(_config_local.AUTHORITY))  # type: ignore[misc]
    if hasattr(_config_local, "LLM_MODELS"):
        object.__setattr__(SETTINGS, "llm_models", list(_config_local.LLM_MODELS))  # type: ignore[misc]
except Exception:
    pass


def get_settings() -> Settings:
    return SETTINGS
