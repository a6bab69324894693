# src/taskhub/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..notifications.relay import RecipientUnavailable

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleMessenger:
    """
    OutboundMessenger for the console: notifications for the logged-in user are
    printed, everyone else's stay queued until that user logs in.
    """

    def __init__(self, state: AppState) -> None:
        self._state = state

    def present_user_ids(self) -> list[str]:
        actor = self._state.actor
        return [actor.id] if actor is not None else []

    async def send_text(self, *, text: str, to_user_id: str | None = None) -> None:
        actor = self._state.actor
        if actor is None or to_user_id != actor.id:
            # Not at the console; the relay leaves it queued
            raise RecipientUnavailable(to_user_id)
        sys.stdout.write(f"\n[{_ts_local()}] [NOTIFY] {text}\n")
        sys.stdout.flush()


def _prompt(state: AppState) -> str:
    actor = state.actor
    who = actor.id if actor is not None else "anonymous"
    return f"[{who}]>>> "


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Type /help for commands. Use /exit to quit.\n")

    lock = getattr(state, "lock", None)

    def emit(text: str) -> None:
        # Immediate user-visible feedback for multi-step operations
        _print_ts(text)

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

        try:
            if lock:
                with lock:
                    response = command_registry.handle(state, user_input, emit=emit)
            else:
                response = command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is None:
            response = "Commands start with '/'. Use /help to list available commands."

        _print_ts(response)

    logger.info("Console connector finished.")
