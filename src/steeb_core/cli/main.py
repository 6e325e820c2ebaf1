# src/steeb_core/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the adaptive push scheduler in a background thread (optional),
- the operator console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging
from ..push.push_scheduler import (
    SchedulerBackgroundRunner,
    build_push_scheduler,
    start_scheduler_in_background,
)

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/steeb")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "steeb"))

    state = create_initial_state(settings=settings)

    scheduler_runner: SchedulerBackgroundRunner | None = None
    if settings.push_enabled:
        scheduler_runner = start_scheduler_in_background(
            build_push_scheduler(state),
            interval_seconds=settings.push_tick_seconds,
        )
    else:
        logger.info("Push scheduler disabled via settings.")

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except Exception:
        # Some platforms may not support SIGTERM, etc.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running the push scheduler only. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        if scheduler_runner is not None:
            scheduler_runner.stop()
            scheduler_runner.join(timeout=10.0)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
