# src/taskpix/cli/console.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..core.state import AppState
from .commands import registry as command_registry

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


async def run_console_loop(state: AppState) -> None:
    """
    Interactive loop. Input is read in a worker thread so generations started by
    one command keep the event loop free for progress output.
    """
    logger.info("Console started (provider=%s).", state.orchestrator.provider_name)
    _print_ts("Type /help for commands. Use /exit to quit.\n")

    while True:
        try:
            line = (await asyncio.to_thread(input, ">>> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            reply = await command_registry.handle(state, line, emit=_print_ts)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is None:
            reply = "Not a command. Use /help to list available commands."
        _print_ts(reply)

    logger.info("Console finished.")
