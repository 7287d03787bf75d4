from __future__ import annotations

import logging
from uuid import UUID

from sqlmodel import Session

from todocal.core.celery_utils import safe_celery_delay
from todocal.core.config import settings
from todocal.models import Notification, Task
from todocal.services.permissions import active_member_ids

logger = logging.getLogger(__name__)

ACTION_CREATED = "created"
ACTION_COMPLETED = "completed"
ACTION_UNCOMPLETED = "uncompleted"
ACTION_DELETED = "deleted"
ACTION_PRIORITY_CHANGED = "priority_changed"

_ACTION_TEMPLATES = {
    ACTION_CREATED: "{actor} added “{title}” on {date}",
    ACTION_COMPLETED: "{actor} completed “{title}”",
    ACTION_UNCOMPLETED: "{actor} reopened “{title}”",
    ACTION_DELETED: "{actor} deleted “{title}”",
    ACTION_PRIORITY_CHANGED: "{actor} changed the priority of “{title}” to {priority}",
}


def create_notification(session: Session, user_id: UUID, message: str) -> Notification:
    """Create a notification for a user."""
    notification = Notification(user_id=user_id, message=message)
    session.add(notification)
    return notification


def recipients_for(session: Session, task: Task) -> list[UUID]:
    """Task creator plus every active member of its calendar, without duplicates."""
    recipients = [task.user_id]
    for user_id in active_member_ids(session, task.calendar_id):
        if user_id not in recipients:
            recipients.append(user_id)
    return recipients


def task_action_message(action: str, task: Task, actor_username: str) -> str:
    return _ACTION_TEMPLATES[action].format(
        actor=actor_username,
        title=task.title,
        date=f"{task.date:%Y-%m-%d}",
        priority=task.priority,
    )


def fan_out(session: Session, user_ids: list[UUID], message: str) -> int:
    for user_id in user_ids:
        create_notification(session, user_id, message)
    session.commit()
    return len(user_ids)


def prepare_task_action(
    session: Session,
    task: Task,
    action: str,
    actor_username: str,
) -> tuple[list[UUID], str]:
    return recipients_for(session, task), task_action_message(action, task, actor_username)


def deliver(session: Session, user_ids: list[UUID], message: str) -> None:
    """Write the log rows, through Celery when enabled.

    Runs after the mutation itself committed; failures here never undo it.
    """
    if settings.NOTIFICATIONS_VIA_CELERY:
        from todocal.tasks.notifications import fan_out_notification_task

        if safe_celery_delay(fan_out_notification_task, [str(u) for u in user_ids], message):
            return

    try:
        fan_out(session, user_ids, message)
    except Exception as exc:
        session.rollback()
        logger.error("Notification fan-out failed (%s): %s", message, exc, exc_info=True)


def notify_task_action(
    session: Session,
    task: Task,
    action: str,
    actor_username: str,
) -> None:
    """Log a task mutation for everyone who can see the task."""
    user_ids, message = prepare_task_action(session, task, action, actor_username)
    deliver(session, user_ids, message)
