# src/stash/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.notifications import LogNotifier
from ..core.state import AppState, StateChange

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def _prompt(state: AppState) -> str:
    return f"[{state.input_tier.short_label}] > "


def _flush_notices(notifier: LogNotifier | None) -> None:
    if notifier is None:
        return
    for notice in notifier.drain():
        _print_ts(f"[{notice.title}] {notice.body}")


def handle_line(state: AppState, line: str, notifier: LogNotifier | None = None) -> str | None:
    """
    Process one line of console input.

    Slash-commands go to the command registry; anything else becomes a task
    in the current input tier. Returns the text to show, or None.
    """
    text = line.strip()
    if not text:
        return None

    with state.lock:
        try:
            response = command_registry.handle(state, text, emit=_print_ts)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is None:
            task = state.add_task(text)
            if task is None:
                response = "Could not add the task (see log)."
            else:
                response = f"Added to {task.tier.short_label}: {task.title}"

        _flush_notices(notifier)
    return response


def run_console_loop(state: AppState, notifier: LogNotifier | None = None) -> None:
    logger.info("Console connector started (tier=%s).", state.input_tier.value)
    _print_ts("[CONSOLE] Type a task to add it. Use /help for commands. Use /exit to quit.\n")

    def on_change(change: StateChange) -> None:
        # Escalations happen on the scheduler thread; surface them right away.
        if change.kind == "escalation":
            print()
            _flush_notices(notifier)
            sys.stdout.write(_prompt(state))
            sys.stdout.flush()

    unsubscribe = state.subscribe(on_change)

    try:
        while True:
            try:
                user_input = input(_prompt(state)).strip()
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

            response = handle_line(state, user_input, notifier)
            if response is not None:
                _print_ts(response)
    finally:
        unsubscribe()

    logger.info("Console connector finished.")
