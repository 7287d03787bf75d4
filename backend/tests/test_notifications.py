# tests/test_notifications.py

from __future__ import annotations

from datetime import date
from types import SimpleNamespace

import pytest
from sqlmodel import Session, select

from todocal.core.config import settings
from todocal.models import Notification
from todocal.services import memberships, notifications, task_store
from todocal.tasks import notifications as notification_tasks


@pytest.fixture()
def shared(session, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    calendar = memberships.create_calendar(session, alice.id, "Home")
    pending = memberships.invite(session, calendar.id, alice.id, "bob")
    memberships.approve(session, pending.id, bob.id)
    return alice, bob, calendar


def test_recipients_are_creator_and_active_members(session, shared, make_user) -> None:
    alice, bob, calendar = shared
    make_user("carol")
    memberships.invite(session, calendar.id, alice.id, "carol")
    task = task_store.create_task(session, calendar.id, bob.id, title="Fix sink", day=date(2025, 3, 14))

    recipients = notifications.recipients_for(session, task)

    assert sorted(map(str, recipients)) == sorted([str(alice.id), str(bob.id)])
    assert recipients[0] == bob.id


def test_task_action_message() -> None:
    class Row:
        title = "Fix sink"
        date = date(2025, 3, 14)
        priority = "high"

    assert notifications.task_action_message(notifications.ACTION_CREATED, Row, "bob") == (
        "bob added “Fix sink” on 2025-03-14"
    )
    assert notifications.task_action_message(notifications.ACTION_PRIORITY_CHANGED, Row, "bob") == (
        "bob changed the priority of “Fix sink” to high"
    )


def test_deliver_uses_celery_when_enabled(session, shared, monkeypatch) -> None:
    alice, bob, _ = shared
    queued = []

    class FakeTask:
        name = "fake"

        def delay(self, *args):
            queued.append(args)
            return SimpleNamespace(id="task-1")

    monkeypatch.setattr(settings, "NOTIFICATIONS_VIA_CELERY", True)
    monkeypatch.setattr(notification_tasks, "fan_out_notification_task", FakeTask())

    notifications.deliver(session, [alice.id, bob.id], "hello")

    assert queued == [([str(alice.id), str(bob.id)], "hello")]
    assert session.exec(select(Notification)).all() == []


def test_deliver_falls_back_inline_when_broker_fails(session, shared, monkeypatch) -> None:
    alice, _, _ = shared

    class BrokenTask:
        name = "broken"

        def delay(self, *args):
            raise ConnectionError("broker down")

    monkeypatch.setattr(settings, "NOTIFICATIONS_VIA_CELERY", True)
    monkeypatch.setattr(notification_tasks, "fan_out_notification_task", BrokenTask())

    notifications.deliver(session, [alice.id], "hello")

    assert [n.message for n in session.exec(select(Notification)).all()] == ["hello"]


def test_fan_out_task_writes_rows(engine, shared, monkeypatch) -> None:
    alice, bob, _ = shared
    monkeypatch.setattr(notification_tasks, "engine", engine)

    result = notification_tasks.fan_out_notification_task([str(alice.id), str(bob.id)], "hello")

    assert result == {"success": True, "created": 2}
    with Session(engine) as session:
        assert len(session.exec(select(Notification).where(Notification.message == "hello")).all()) == 2
