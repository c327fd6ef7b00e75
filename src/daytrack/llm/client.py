# src/daytrack/llm/client.py

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Iterable, List, Optional

import httpx
import openai
from openai import OpenAI

from ..core.ports import ChatMessage

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    s = raw.strip()
    if not s:
        return default
    try:
        return float(s)
    except ValueError:
        return default


def _timeouts_from_env() -> dict[str, float]:
    """
    Timeouts are configurable via env so a stalled local model cannot hang
    the console forever.

    Defaults suit a small local model:
    - connect timeout: 5s
    - read timeout: 120s (no data from server)
    - first token timeout: 60s (cold model load)
    """
    first_token = _env_float("DAYTRACK_LLM_FIRST_TOKEN_TIMEOUT_SECONDS", 60.0)
    read_timeout = _env_float("DAYTRACK_LLM_READ_TIMEOUT_SECONDS", 120.0)
    connect_timeout = _env_float("DAYTRACK_LLM_CONNECT_TIMEOUT_SECONDS", 5.0)

    read_timeout = max(read_timeout, first_token)

    return {
        "first_token": first_token,
        "read": read_timeout,
        "connect": connect_timeout,
    }


def _is_auth_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError))


def _is_not_found_error(exc: Exception) -> bool:
    # Ollama answers 404 for models that were never pulled.
    return isinstance(exc, openai.NotFoundError)


def _is_connection_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError, httpx.TransportError))


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip() or "LLM error."
    if "LLM model list is empty" in msg:
        return "LLM is not configured (no models). Set DAYTRACK_LLM_MODELS in .env (see .env.example)."
    if "LLM base URL is not set" in msg:
        return "LLM is not configured (missing base URL). Set DAYTRACK_OLLAMA_BASE_URL in .env."
    if "network/timeout" in msg:
        return "Failed to get AI response. Make sure Ollama is running on localhost:11434."
    return msg


def _close_stream(stream: Any) -> None:
    """Best-effort close for streaming responses."""
    try:
        close = getattr(stream, "close", None)
        if callable(close):
            close()
    except Exception:
        logger.debug("Closing LLM stream failed.", exc_info=True)


class OllamaLLMClient:
    """
    Streaming chat against a local Ollama server through its OpenAI-compatible API.

    Behavior:
    - Tries models in the configured order (DAYTRACK_LLM_MODELS).
    - No first content token within the first-token timeout -> next model.
    - 404 (model not pulled) -> next model, skipped for an hour.
    - Network/timeout issues -> next model.
    - Auth issues -> fail fast.
    """

    def __init__(self, settings: Any) -> None:
        base_url = str(getattr(settings, "ollama_base_url", "") or "").strip()
        if not base_url:
            raise RuntimeError("LLM base URL is not set. Set DAYTRACK_OLLAMA_BASE_URL in your .env.")

        self._models: List[str] = [m.strip() for m in getattr(settings, "llm_models", []) or [] if m.strip()]
        self._timeouts = _timeouts_from_env()
        self._timeout_obj = httpx.Timeout(
            connect=self._timeouts["connect"],
            read=self._timeouts["read"],
            write=10.0,
            pool=self._timeouts["connect"],
        )
        # Automatic retries are off so a dead server fails over quickly.
        self._client = OpenAI(
            base_url=base_url,
            api_key=str(getattr(settings, "ollama_api_key", None) or "ollama"),
            timeout=self._timeout_obj,
            max_retries=0,
        )
        self._bad_models: Dict[str, float] = {}  # model -> retry_at (monotonic)

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        if not self._models:
            raise RuntimeError("LLM model list is empty. Set DAYTRACK_LLM_MODELS in your .env.")

        first_token_timeout = float(self._timeouts["first_token"])
        last_error: Optional[Exception] = None
        now = time.monotonic()

        for model in self._models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            logger.info("LLM: trying model=%s (first_token_timeout=%.1fs)", model, first_token_timeout)
            t0 = time.monotonic()
            deadline = t0 + first_token_timeout

            stream = None
            used_any = False

            try:
                stream = self._client.chat.completions.create(
                    model=model,
                    stream=True,
                    messages=[{"role": "system", "content": system_prompt}, *messages],
                    timeout=self._timeout_obj,
                )

                for chunk in stream:
                    if not used_any and time.monotonic() > deadline:
                        last_error = TimeoutError(f"First token timeout on model: {model}")
                        logger.info("LLM: first token timeout on model=%s -> trying next", model)
                        break

                    try:
                        delta = chunk.choices[0].delta
                        content = getattr(delta, "content", None)
                    except (AttributeError, IndexError):
                        content = None

                    if content:
                        if not used_any:
                            logger.info("LLM: first token from model=%s (%.2fs)", model, time.monotonic() - t0)
                        used_any = True
                        yield content

                if used_any:
                    logger.debug("LLM: completed with model=%s", model)
                    return

                if last_error is None:
                    last_error = RuntimeError(f"Model returned no content: {model}")

            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise RuntimeError("LLM authentication failed. Check DAYTRACK_OLLAMA_API_KEY.") from e

                if _is_not_found_error(e):
                    self._bad_models[model] = time.monotonic() + 3600.0
                    logger.info("LLM: model not available (404): %s", model)
                    continue

                if _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                    continue

                logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            finally:
                if stream is not None:
                    _close_stream(stream)

        if last_error is not None:
            if _is_connection_error(last_error) or isinstance(last_error, TimeoutError):
                raise RuntimeError("LLM network/timeout error. Is Ollama running?") from last_error
            raise RuntimeError("All LLM models failed.") from last_error

        raise RuntimeError("All LLM models failed.")


def collect_text(chunks: Iterable[str]) -> str:
    """Join a streamed reply into one string."""
    return "".join(c for c in chunks if c).strip()
