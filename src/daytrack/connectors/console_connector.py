# src/daytrack/connectors/console_connector.py

from __future__ import annotations

import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.prompts import build_chat_system_prompt
from ..core.state import TrackerState
from ..llm.client import friendly_llm_error_message
from ..tasks.task_api import list_open_tasks
from ..tasks.task_models import LocalTask

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def handle_line(state: TrackerState, line: str, emit=None) -> str | None:
    """
    Run one console line as a command.

    Returns the reply, or None when the line is not a command (free chat).
    """
    try:
        with state.lock:
            return command_registry.handle(state, line, emit=emit)
    except Exception:
        logger.exception("Command handler crashed.")
        return "Internal error while handling a command."


def _stream_chat(state: TrackerState, user_input: str, app_name: str) -> None:
    open_tasks = [t for t in list_open_tasks(state) if isinstance(t, LocalTask)]
    system_prompt = build_chat_system_prompt(open_tasks, state.today())
    printed = False

    try:
        for piece in state.llm.stream_chat([{"role": "user", "content": user_input}], system_prompt):
            if not piece:
                continue
            if not printed:
                print(f"[{_ts_local()}] <<< {app_name}: ", end="", flush=True)
                printed = True
            print(piece, end="", flush=True)
    except RuntimeError as e:
        msg = friendly_llm_error_message(e)
        logger.info("LLM runtime error: %s", msg)
        _print_ts(f"[LLM] {msg}")
        return
    except Exception:
        logger.exception("Console chat handler crashed.")
        _print_ts("Internal error while generating a reply.")
        return

    if not printed:
        _print_ts("[LLM] No output (model produced no content).")
        return
    print("\n")


def run_console_loop(state: TrackerState) -> None:
    logger.info("Console connector started (authority=%s).", state.authority)
    _print_ts("[CONSOLE] Use /help for commands, /list for your tasks, /exit to quit.\n")

    app_name = str(getattr(state.settings, "app_name", "daytrack"))

    def emit(text: str) -> None:
        # Immediate feedback for slow operations (LLM calls).
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = input(">>> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        reply = handle_line(state, user_input, emit=emit)
        if reply is not None:
            _print_ts(reply)
            continue

        _stream_chat(state, user_input, app_name)

    logger.info("Console connector finished.")
