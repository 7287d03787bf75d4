"""Monthly recurrence of tasks and day-of-month scheduling."""
from __future__ import annotations

from calendar import monthrange
from collections.abc import Iterable
from datetime import date

from todocal.models import Task


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def end_of_month(value: date) -> date:
    return value.replace(day=days_in_month(value.year, value.month))


def is_last_day_of_month(value: date) -> bool:
    return value.day == days_in_month(value.year, value.month)


def add_months(base: date, months: int) -> date:
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


def next_monthly_date(current: date) -> date:
    """Next due date of a monthly task.

    Month-end anchored dates stay on month end (Jan 31 -> Feb 28 -> Mar 31);
    any other day keeps its day-of-month, clamped to the next month's length.
    """
    if is_last_day_of_month(current):
        return end_of_month(add_months(current.replace(day=1), 1))
    return add_months(current, 1)


def next_occurrence_of(day: int, from_date: date) -> date:
    """First date strictly after from_date falling on the given day of month.

    day <= 0 means the last day of the month; days past the end of a short
    month clamp to its last day.
    """
    if day <= 0:
        this_month_end = end_of_month(from_date)
        if this_month_end > from_date:
            return this_month_end
        return end_of_month(add_months(from_date.replace(day=1), 1))

    first = from_date.replace(day=1)
    candidate = first.replace(day=min(day, days_in_month(first.year, first.month)))
    if candidate > from_date:
        return candidate

    following = add_months(first, 1)
    return following.replace(day=min(day, days_in_month(following.year, following.month)))


def spawn_next_instance(task: Task) -> Task:
    """Build (without persisting) the next instance of a completed monthly task."""
    next_date = next_monthly_date(task.date)
    return Task(
        calendar_id=task.calendar_id,
        user_id=task.user_id,
        created_by_username=task.created_by_username,
        title=task.title,
        date=next_date,
        completed=False,
        priority=task.priority,
        position=0,
        reminder_time=task.reminder_time,
        reminder_date=task.reminder_date or next_date,
        is_monthly_recurring=True,
    )


def _reminder_anchor(task: Task) -> date:
    if task.is_monthly_recurring:
        return task.date
    return task.reminder_date or task.date


def has_reminder(task: Task) -> bool:
    return bool(task.is_monthly_recurring or task.reminder_time or task.reminder_date)


def collapse_monthly(tasks: Iterable[Task]) -> list[Task]:
    """Reminder list: one entry per monthly title (its latest instance).

    Other tasks carrying a reminder are listed while still open.
    """
    latest_by_title: dict[str, Task] = {}
    others: list[Task] = []
    for task in tasks:
        if task.is_monthly_recurring:
            current = latest_by_title.get(task.title)
            if current is None or task.date > current.date:
                latest_by_title[task.title] = task
        elif has_reminder(task) and not task.completed:
            others.append(task)

    collapsed = list(latest_by_title.values()) + others
    collapsed.sort(key=lambda t: (_reminder_anchor(t), t.title))
    return collapsed
