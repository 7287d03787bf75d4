"""
Reminder scheduling.

A task carries at most one reminder kind. The row stores it as three
nullable columns; ReminderKind is the explicit variant derived from them,
with monthly taking precedence over a time of day, and a time of day over
a fixed date.

ReminderScheduler is a per-session periodic scan over the in-memory task
list. Nothing is persisted: reminders that fall due while no session is
open are not replayed.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional, Protocol, Union
from uuid import UUID

from todocal.models import Task
from todocal.services.recurrence import is_last_day_of_month

logger = logging.getLogger(__name__)

PERMISSION_GRANTED = "granted"
PERMISSION_DENIED = "denied"
PERMISSION_DEFAULT = "default"


@dataclass(frozen=True, slots=True)
class NoReminder:
    pass


@dataclass(frozen=True, slots=True)
class TimeOfDay:
    at: time


@dataclass(frozen=True, slots=True)
class FixedDate:
    on: date


@dataclass(frozen=True, slots=True)
class MonthlyOnDay:
    # 0 means the last day of the month
    day: int
    at: Optional[time] = None


ReminderKind = Union[NoReminder, TimeOfDay, FixedDate, MonthlyOnDay]


def reminder_kind_of(task: Task) -> ReminderKind:
    if task.is_monthly_recurring:
        day = 0 if is_last_day_of_month(task.date) else task.date.day
        return MonthlyOnDay(day=day, at=task.reminder_time)
    if task.reminder_time is not None:
        return TimeOfDay(at=task.reminder_time)
    if task.reminder_date is not None:
        return FixedDate(on=task.reminder_date)
    return NoReminder()


def apply_reminder_kind(task: Task, kind: ReminderKind) -> None:
    """Write a reminder variant back onto the row columns.

    For MonthlyOnDay the caller has already placed task.date on the
    requested day of month.
    """
    if isinstance(kind, MonthlyOnDay):
        task.is_monthly_recurring = True
        task.reminder_time = kind.at
        task.reminder_date = task.date
    elif isinstance(kind, TimeOfDay):
        task.is_monthly_recurring = False
        task.reminder_time = kind.at
        task.reminder_date = None
    elif isinstance(kind, FixedDate):
        task.is_monthly_recurring = False
        task.reminder_time = None
        task.reminder_date = kind.on
    elif isinstance(kind, NoReminder):
        task.is_monthly_recurring = False
        task.reminder_time = None
        task.reminder_date = None
    else:
        raise TypeError(f"Unknown reminder kind: {kind!r}")


def reminder_due_at(task: Task, default_hour: int = 9) -> Optional[datetime]:
    kind = reminder_kind_of(task)
    default_time = time(hour=default_hour)
    if isinstance(kind, TimeOfDay):
        return datetime.combine(task.date, kind.at)
    if isinstance(kind, FixedDate):
        return datetime.combine(kind.on, default_time)
    if isinstance(kind, MonthlyOnDay):
        return datetime.combine(task.date, kind.at or default_time)
    return None


class LocalNotifier(Protocol):
    """Best-effort user-facing notification channel."""

    async def request_permission(self) -> str:
        ...

    async def show(self, title: str, body: str) -> None:
        ...


@dataclass(frozen=True, slots=True)
class FiredReminder:
    task_id: UUID
    kind: str  # "reminder" or "overdue"
    title: str
    body: str


class ReminderScheduler:
    """Periodic scan of the session's tasks for due reminders and overdue tasks.

    Each (task, day) reminder fires at most once per session; the overdue
    alert fires at most once per task per session.
    """

    def __init__(
        self,
        tasks_provider: Callable[[], Iterable[Task]],
        notifier: LocalNotifier,
        *,
        interval_seconds: float = 60.0,
        default_hour: int = 9,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._tasks_provider = tasks_provider
        self._notifier = notifier
        self._interval = interval_seconds
        self._default_hour = default_hour
        self._clock = clock
        self._notified: set[str] = set()
        self._overdue_notified: set[UUID] = set()
        self._runner: Optional[asyncio.Task] = None
        self.permission = PERMISSION_DEFAULT

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    async def request_permission(self) -> str:
        try:
            self.permission = await self._notifier.request_permission()
        except Exception as exc:
            logger.warning("Notification permission request failed: %s", exc)
            self.permission = PERMISSION_DENIED
        return self.permission

    async def start(self) -> None:
        if self.running:
            return
        await self.request_permission()
        self._runner = asyncio.create_task(self._run())
        logger.debug("Reminder scheduler started permission=%s", self.permission)

    async def stop(self) -> None:
        if self._runner is None:
            return
        self._runner.cancel()
        try:
            await self._runner
        except asyncio.CancelledError:
            pass
        self._runner = None

    async def _run(self) -> None:
        while True:
            try:
                await self.scan()
            except Exception as exc:
                logger.error("Reminder scan failed: %s", exc, exc_info=True)
            await asyncio.sleep(self._interval)

    def _due(self, now: datetime) -> list[FiredReminder]:
        today = now.date()
        fired: list[FiredReminder] = []
        for task in self._tasks_provider():
            if task.completed:
                continue

            due_at = reminder_due_at(task, self._default_hour)
            if due_at is not None and now >= due_at:
                key = f"{task.id}:{today.isoformat()}"
                if key not in self._notified:
                    self._notified.add(key)
                    fired.append(
                        FiredReminder(
                            task_id=task.id,
                            kind="reminder",
                            title=f"Reminder: {task.title}",
                            body=f"{task.date:%Y-%m-%d} {due_at:%H:%M}",
                        )
                    )

            if task.date <= today and task.id not in self._overdue_notified:
                self._overdue_notified.add(task.id)
                fired.append(
                    FiredReminder(
                        task_id=task.id,
                        kind="overdue",
                        title="You have an unfinished task",
                        body=f"{task.date:%Y-%m-%d}: {task.title}",
                    )
                )
        return fired

    async def scan(self) -> list[FiredReminder]:
        if self.permission != PERMISSION_GRANTED:
            return []

        fired = self._due(self._clock())
        for reminder in fired:
            try:
                await self._notifier.show(reminder.title, reminder.body)
            except Exception as exc:
                logger.warning("Could not show reminder for task %s: %s", reminder.task_id, exc)
            else:
                logger.info("Reminder fired task=%s kind=%s", reminder.task_id, reminder.kind)
        return fired
