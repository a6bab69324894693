# src/taskhub/connectors/relay_runner.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.ports import OutboundMessenger
from ..core.state import AppState
from ..notifications.relay import run_notification_relay

logger = logging.getLogger(__name__)


async def _run_relay(state: AppState, messenger: OutboundMessenger, stop_event: asyncio.Event) -> None:
    """
    Relay loop with a cooperative stop:
    - main thread sets stop_event via loop.call_soon_threadsafe(stop_event.set)
    - the polling task is cancelled once the event fires.
    """
    settings = state.settings
    relay_task = asyncio.create_task(
        run_notification_relay(
            state.notifications,
            messenger,
            interval_seconds=float(getattr(settings, "relay_interval_seconds", 5.0)),
            batch_limit=int(getattr(settings, "relay_batch_limit", 32)),
            recipients=getattr(messenger, "present_user_ids", None),
        )
    )
    try:
        await stop_event.wait()
    finally:
        relay_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await relay_task
        logger.info("Notification relay stopped.")


@dataclass
class RelayBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Relay loop already closed.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_relay_in_background(state: AppState, messenger: OutboundMessenger) -> RelayBackgroundRunner | None:
    """
    Start the notification relay in a background thread (so the console REPL can run in parallel).

    The console REPL blocks on input(); the relay is async and wants its own event loop.
    """
    if not getattr(state.settings, "relay_enabled", False):
        logger.info("Notification relay disabled, not starting.")
        return None

    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_relay(state, messenger, stop_event))
        except Exception:
            logger.exception("Notification relay crashed.")
        finally:
            loop.close()

    t = threading.Thread(target=runner, name="notification-relay", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Relay thread did not initialize properly.")
        return None

    logger.info("Notification relay thread started.")
    return RelayBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
