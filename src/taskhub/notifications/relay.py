# src/taskhub/notifications/relay.py

from __future__ import annotations

"""
Notification relay.

A small polling loop that:
- fetches undelivered notifications,
- renders them to text,
- pushes them via an injected messenger port,
- marks them delivered (or leaves them for the next tick on failure).

Transport routing (where a user's text actually goes) belongs to the connector, not the relay.
"""

import asyncio
import logging
from collections.abc import Callable, Collection, Iterable
from typing import Protocol

from ..core.ports import OutboundMessenger
from .models import Notification

logger = logging.getLogger(__name__)

Recipients = Callable[[], Iterable[str]]
# Users the messenger can reach right now.


class RecipientUnavailable(Exception):
    """
    Raised by a messenger when the addressee cannot be reached right now.

    The notification stays queued and is retried on a later tick.
    """


class NotificationQueue(Protocol):
    def list_undelivered(
            self, limit: int = 32, user_ids: Collection[str] | None = None
    ) -> list[Notification]: ...
    def mark_delivered(self, notification_id: int, now_ts: float | None = None) -> bool: ...


def render_notification(n: Notification) -> str:
    text = f"[{n.title}] {n.message}".strip()
    if n.related_task_id is not None:
        text += f" (task #{n.related_task_id})"
    return text


async def relay_once(
        queue: NotificationQueue,
        messenger: OutboundMessenger,
        *,
        batch_limit: int = 32,
        recipients: Recipients | None = None,
) -> int:
    """
    One relay tick. Returns the number of notifications delivered.

    A failed send leaves the notification undelivered; later ones in the batch still go out.
    With `recipients`, only notifications for the users it currently returns are fetched,
    so a queue full of mail for absent users does not hold back everyone else.
    """
    if recipients is not None:
        user_ids = list(recipients())
        if not user_ids:
            return 0
    else:
        user_ids = None

    try:
        if user_ids is None:
            pending = queue.list_undelivered(limit=int(batch_limit))
        else:
            pending = queue.list_undelivered(limit=int(batch_limit), user_ids=user_ids)
    except Exception:
        logger.exception("list_undelivered failed")
        return 0

    delivered = 0
    for n in pending:
        try:
            await messenger.send_text(text=render_notification(n), to_user_id=n.user_id)
        except RecipientUnavailable:
            logger.debug("Recipient %s unavailable; notification %s stays queued", n.user_id, n.id)
            continue
        except Exception:
            logger.exception("notification send failed id=%s user=%s", n.id, n.user_id)
            continue

        try:
            if queue.mark_delivered(n.id):
                delivered += 1
                logger.debug("Notification %s delivered to %s", n.id, n.user_id)
        except Exception:
            logger.exception("mark_delivered failed id=%s", n.id)

    return delivered


async def run_notification_relay(
        queue: NotificationQueue,
        messenger: OutboundMessenger,
        *,
        interval_seconds: float = 5.0,
        batch_limit: int = 32,
        recipients: Recipients | None = None,
) -> None:
    """
    Simple polling relay.

    Every interval_seconds: deliver up to batch_limit pending notifications, oldest first.
    Undelivered ones (send failed, recipient away) are retried on the next tick.

    To stop the relay, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))

    while True:
        sent = await relay_once(queue, messenger, batch_limit=batch_limit, recipients=recipients)
        if sent:
            logger.info("Relayed %d notification(s)", sent)
        await asyncio.sleep(sleep_s)
