"""
Task store: CRUD over a calendar's tasks.

Every write commits before local state changes, then fans out a
notification log entry and publishes a change event for the calendar.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Optional
from uuid import UUID

from sqlmodel import Session, select

from todocal.core.errors import NotFoundError
from todocal.models import Task
from todocal.models.task import PRIORITY_MEDIUM
from todocal.services import notifications
from todocal.services.change_feed import TABLE_TODOS, EventType, publish_row_change, row_snapshot
from todocal.services.permissions import ensure_calendar_access, ensure_task_access
from todocal.services.profiles import require_profile
from todocal.services.recurrence import next_monthly_date, next_occurrence_of, spawn_next_instance
from todocal.services.reminders import MonthlyOnDay, NoReminder, ReminderKind, apply_reminder_kind

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToggleOutcome:
    task: Task
    spawned: Optional[Task] = None


@dataclass(slots=True)
class ReorderOutcome:
    persisted: list[UUID] = field(default_factory=list)
    skipped: list[UUID] = field(default_factory=list)


def list_tasks(session: Session, calendar_id: UUID, user_id: UUID) -> list[Task]:
    ensure_calendar_access(session, calendar_id, user_id)
    return list(
        session.exec(
            select(Task)
            .where(Task.calendar_id == calendar_id)
            .order_by(Task.date, Task.created_at)
        ).all()
    )


def create_task(
    session: Session,
    calendar_id: UUID,
    user_id: UUID,
    *,
    title: str,
    day: date | None,
    priority: str = PRIORITY_MEDIUM,
    reminder: ReminderKind | None = None,
    today: Callable[[], date] = date.today,
) -> Task:
    """Insert a task at the top of its day (position 0, siblings untouched).

    A monthly reminder places the task on the next occurrence of its day.
    """
    ensure_calendar_access(session, calendar_id, user_id)
    profile = require_profile(session, user_id)

    title = title.strip()
    if not title:
        raise ValueError("title must not be empty")
    if isinstance(reminder, MonthlyOnDay):
        day = next_occurrence_of(reminder.day, today())
    if day is None:
        raise ValueError("date is required")

    task = Task(
        calendar_id=calendar_id,
        user_id=user_id,
        created_by_username=profile.username,
        title=title,
        date=day,
        priority=priority,
        position=0,
    )
    apply_reminder_kind(task, reminder or NoReminder())
    session.add(task)
    session.commit()
    session.refresh(task)
    # Snapshot now: the notification commit below expires the instance
    new = row_snapshot(task)

    logger.info("Task created id=%s calendar=%s date=%s", task.id, calendar_id, task.date)
    notifications.notify_task_action(session, task, notifications.ACTION_CREATED, profile.username)
    publish_row_change(TABLE_TODOS, EventType.INSERT, new=new, actor_id=user_id)
    return task


def _has_next_instance(session: Session, task: Task) -> bool:
    """A re-completed monthly task already spawned its next instance."""
    return session.exec(
        select(Task.id).where(
            Task.calendar_id == task.calendar_id,
            Task.title == task.title,
            Task.date == next_monthly_date(task.date),
            Task.is_monthly_recurring == True,
            Task.id != task.id,
        )
    ).first() is not None


def toggle_completed(session: Session, task_id: UUID, user_id: UUID) -> ToggleOutcome:
    task = ensure_task_access(session, task_id, user_id)
    actor = require_profile(session, user_id)

    old = row_snapshot(task)
    task.completed = not task.completed
    task.touch()
    session.add(task)

    spawned: Optional[Task] = None
    if task.completed and task.is_monthly_recurring and not _has_next_instance(session, task):
        spawned = spawn_next_instance(task)
        session.add(spawned)

    session.commit()
    session.refresh(task)
    new = row_snapshot(task)
    spawned_row = None
    if spawned is not None:
        session.refresh(spawned)
        spawned_row = row_snapshot(spawned)
        logger.info("Monthly task %s recurs as %s on %s", task.id, spawned.id, spawned.date)

    action = notifications.ACTION_COMPLETED if task.completed else notifications.ACTION_UNCOMPLETED
    notifications.notify_task_action(session, task, action, actor.username)
    publish_row_change(TABLE_TODOS, EventType.UPDATE, new=new, old=old, actor_id=user_id)
    if spawned_row is not None:
        publish_row_change(TABLE_TODOS, EventType.INSERT, new=spawned_row, actor_id=user_id)
    return ToggleOutcome(task=task, spawned=spawned)


def update_fields(
    session: Session,
    task_id: UUID,
    user_id: UUID,
    *,
    title: str | None = None,
    priority: str | None = None,
    reminder: ReminderKind | None = None,
    today: Callable[[], date] = date.today,
) -> Task:
    task = ensure_task_access(session, task_id, user_id)
    actor = require_profile(session, user_id)

    old = row_snapshot(task)
    priority_changed = priority is not None and priority != task.priority

    if title is not None:
        title = title.strip()
        if not title:
            raise ValueError("title must not be empty")
        task.title = title
    if priority is not None:
        task.priority = priority
    if reminder is not None:
        if isinstance(reminder, MonthlyOnDay):
            task.date = next_occurrence_of(reminder.day, today())
        apply_reminder_kind(task, reminder)

    task.touch()
    session.add(task)
    session.commit()
    session.refresh(task)
    new = row_snapshot(task)

    if priority_changed:
        notifications.notify_task_action(
            session, task, notifications.ACTION_PRIORITY_CHANGED, actor.username
        )
    publish_row_change(TABLE_TODOS, EventType.UPDATE, new=new, old=old, actor_id=user_id)
    return task


def delete_task(session: Session, task_id: UUID, user_id: UUID) -> None:
    task = ensure_task_access(session, task_id, user_id)
    actor = require_profile(session, user_id)

    old = row_snapshot(task)
    recipients, message = notifications.prepare_task_action(
        session, task, notifications.ACTION_DELETED, actor.username
    )
    session.delete(task)
    session.commit()

    logger.info("Task deleted id=%s by=%s", task_id, user_id)
    notifications.deliver(session, recipients, message)
    publish_row_change(TABLE_TODOS, EventType.DELETE, old=old, actor_id=user_id)


def reorder(
    session: Session,
    calendar_id: UUID,
    user_id: UUID,
    day: date,
    ordered_ids: Sequence[UUID],
) -> ReorderOutcome:
    """Persist position = index for the acting user's own rows of one day.

    Rows owned by other members keep their stored position until their
    owner reorders; they are reported as skipped.
    """
    ensure_calendar_access(session, calendar_id, user_id)
    rows = {
        task.id: task
        for task in session.exec(
            select(Task).where(Task.calendar_id == calendar_id, Task.date == day)
        ).all()
    }

    for task_id in ordered_ids:
        if task_id not in rows:
            raise NotFoundError(f"Task {task_id} is not on {day:%Y-%m-%d} in this calendar")

    outcome = ReorderOutcome()
    changed: list[tuple[Task, dict]] = []
    for index, task_id in enumerate(ordered_ids):
        task = rows[task_id]
        if task.user_id != user_id:
            outcome.skipped.append(task_id)
            continue
        outcome.persisted.append(task_id)
        if task.position != index:
            changed.append((task, row_snapshot(task)))
            task.position = index
            task.touch()
            session.add(task)

    session.commit()
    for task, old in changed:
        session.refresh(task)
        publish_row_change(TABLE_TODOS, EventType.UPDATE, new=task, old=old, actor_id=user_id)

    if outcome.skipped:
        logger.debug(
            "Reorder on %s skipped %s rows owned by other members", day, len(outcome.skipped)
        )
    return outcome
