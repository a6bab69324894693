# tests/test_notification_relay.py

from __future__ import annotations

import asyncio
import time

import pytest

from taskhub.connectors.console_connector import ConsoleMessenger
from taskhub.connectors.relay_runner import start_relay_in_background
from taskhub.core.identity import Actor, Role
from taskhub.notifications.models import DomainEvent, Notification, NotificationKind
from taskhub.notifications.relay import (
    RecipientUnavailable,
    relay_once,
    render_notification,
    run_notification_relay,
)
from taskhub.notifications.store import NotificationStore

from .fakes import FakeMessenger


def _event(user_id: str, title: str, task_id: int | None = 7) -> DomainEvent:
    return DomainEvent(
        kind=NotificationKind.COMMENT_ADDED,
        target_user_id=user_id,
        title=title,
        message="Eve commented on task: T",
        related_task_id=task_id,
    )


class BrokenQueue:
    def list_undelivered(self, limit: int = 32, user_ids=None) -> list[Notification]:
        raise RuntimeError("db locked")

    def mark_delivered(self, notification_id: int, now_ts: float | None = None) -> bool:
        raise AssertionError("not reached")


def test_render_notification_mentions_task() -> None:
    n = Notification(
        id=1,
        user_id="e1",
        kind=NotificationKind.TASK_DELETED,
        title="Task Deleted",
        message="Max deleted task: T",
        related_task_id=None,
        related_project_id="p1",
        metadata={},
        is_read=False,
        created_at=0.0,
    )
    assert render_notification(n) == "[Task Deleted] Max deleted task: T"

    n.related_task_id = 3
    assert render_notification(n).endswith("(task #3)")


@pytest.mark.asyncio
async def test_relay_once_delivers_and_marks(notifications: NotificationStore) -> None:
    notifications.emit(_event("e1", "New Comment"))
    notifications.emit(_event("m1", "New Comment"))
    messenger = FakeMessenger()

    sent = await relay_once(notifications, messenger, batch_limit=10)

    assert sent == 2
    assert [m.to_user_id for m in messenger.sent] == ["e1", "m1"]
    assert messenger.sent[0].text == "[New Comment] Eve commented on task: T (task #7)"
    assert notifications.list_undelivered() == []

    assert await relay_once(notifications, messenger, batch_limit=10) == 0
    assert len(messenger.sent) == 2


@pytest.mark.asyncio
async def test_failed_send_stays_queued_and_others_go_out(notifications: NotificationStore) -> None:
    notifications.emit(_event("e1", "first"))
    notifications.emit(_event("m1", "second"))
    messenger = FakeMessenger(fail_for={"e1"})

    sent = await relay_once(notifications, messenger)

    assert sent == 1
    assert [m.to_user_id for m in messenger.sent] == ["m1"]
    assert [n.user_id for n in notifications.list_undelivered()] == ["e1"]

    messenger.fail_for.clear()
    assert await relay_once(notifications, messenger) == 1
    assert notifications.list_undelivered() == []


@pytest.mark.asyncio
async def test_recipients_filter_skips_absent_users_backlog(notifications: NotificationStore) -> None:
    for i in range(5):
        notifications.emit(_event("e2", f"backlog {i}"))
    notifications.emit(_event("e1", "for me"))
    messenger = FakeMessenger()

    sent = await relay_once(notifications, messenger, batch_limit=2, recipients=lambda: ["e1"])

    assert sent == 1
    assert [m.to_user_id for m in messenger.sent] == ["e1"]
    assert messenger.sent[0].text.startswith("[for me]")
    assert await relay_once(notifications, messenger, recipients=lambda: []) == 0
    assert len(notifications.list_undelivered()) == 5


class AwayMessenger:
    async def send_text(self, *, text: str, to_user_id: str | None = None) -> None:
        raise RecipientUnavailable(to_user_id)


@pytest.mark.asyncio
async def test_unavailable_recipient_stays_queued(
        notifications: NotificationStore, caplog: pytest.LogCaptureFixture
) -> None:
    notifications.emit(_event("e1", "New Comment"))

    with caplog.at_level("WARNING"):
        assert await relay_once(notifications, AwayMessenger()) == 0

    assert [n.user_id for n in notifications.list_undelivered()] == ["e1"]
    assert caplog.records == []


@pytest.mark.asyncio
async def test_console_messenger_holds_notifications_until_login(
        state, capsys: pytest.CaptureFixture[str]
) -> None:
    messenger = ConsoleMessenger(state)
    state.notifications.emit(_event("e1", "New Comment"))
    state.notifications.emit(_event("m1", "Other"))

    assert await relay_once(state.notifications, messenger, recipients=messenger.present_user_ids) == 0
    assert await relay_once(state.notifications, messenger) == 0
    assert len(state.notifications.list_undelivered()) == 2

    state.actor = Actor(id="e1", role=Role.EMPLOYEE, name="Eve")
    assert await relay_once(state.notifications, messenger, recipients=messenger.present_user_ids) == 1

    assert "[NOTIFY] [New Comment]" in capsys.readouterr().out
    assert [n.user_id for n in state.notifications.list_undelivered()] == ["m1"]
    assert state.notifications.list_for_user("e1")[0].is_read is False


@pytest.mark.asyncio
async def test_relay_once_survives_queue_errors() -> None:
    assert await relay_once(BrokenQueue(), FakeMessenger()) == 0


@pytest.mark.asyncio
async def test_run_notification_relay_loops_until_cancelled(notifications: NotificationStore) -> None:
    messenger = FakeMessenger()
    notifications.emit(_event("e1", "New Comment"))

    task = asyncio.create_task(
        run_notification_relay(notifications, messenger, interval_seconds=0.01, batch_limit=5)
    )
    try:
        await asyncio.sleep(0.05)
        notifications.emit(_event("e2", "Later"))
        await asyncio.sleep(0.05)
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert [m.to_user_id for m in messenger.sent] == ["e1", "e2"]


def test_relay_runner_disabled_returns_none(state) -> None:
    assert start_relay_in_background(state, FakeMessenger()) is None


def test_relay_runner_delivers_in_background_thread(state) -> None:
    state.settings.relay_enabled = True
    messenger = FakeMessenger()
    state.notifications.emit(_event("e1", "New Comment"))

    runner = start_relay_in_background(state, messenger)
    assert runner is not None
    try:
        deadline = time.monotonic() + 2.0
        while not messenger.sent and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        runner.stop()
        runner.join(timeout=2.0)

    assert not runner.thread.is_alive()
    assert [m.to_user_id for m in messenger.sent] == ["e1"]
