# src/daytrack/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds TrackerState, runs the day-rollover check
(the equivalent of "app load"), then starts the console REPL.
"""

from __future__ import annotations

import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging
from ..tasks.task_api import run_carry_over
from ..tasks.task_store import TaskStoreError

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)

    if settings.check_on_start:
        try:
            result = run_carry_over(state)
            if result.carried_ids:
                print(f"Carried over {len(result.carried_ids)} task(s) from {result.previous_date}.")
        except TaskStoreError as e:
            # Marker is unchanged, so the next start (or /rollover) retries.
            logger.warning("Carry-over check failed: %s", e)
            print(f"Could not carry over yesterday's tasks: {e}. Use /rollover to retry.")

    try:
        run_console_loop(state)
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()
