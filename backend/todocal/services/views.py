"""
Derived views over a calendar's loaded task list.
Everything here is a pure function of the tasks passed in.
"""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional, Protocol
from uuid import UUID

from todocal.models import Task

logger = logging.getLogger(__name__)

PRIORITIES = ("high", "medium", "low")
PRIORITY_RANK = {priority: rank for rank, priority in enumerate(PRIORITIES)}

USERNAME_COLORS = ("#2563eb", "#db2777", "#16a34a", "#d97706", "#7c3aed")

SELF_LABEL = "self"


def priority_rank(priority: str) -> int:
    return PRIORITY_RANK.get(priority, len(PRIORITIES))


def day_sort_key(task: Task) -> tuple[int, int]:
    return priority_rank(task.priority), task.position


def day_view(tasks: Iterable[Task], day: date) -> list[Task]:
    """Tasks of one day: high before medium before low, then manual position."""
    return sorted((t for t in tasks if t.date == day), key=day_sort_key)


def username_color_map(tasks: Iterable[Task]) -> Optional[dict[str, str]]:
    """Color per creator, or None while only one creator is present.

    The mapping depends only on the sorted set of creator names, so it can
    shift when members join or leave.
    """
    names = sorted({t.created_by_username for t in tasks if t.created_by_username})
    if len(names) < 2:
        return None
    return {name: USERNAME_COLORS[index % len(USERNAME_COLORS)] for index, name in enumerate(names)}


def task_counts_by_date(tasks: Iterable[Task]) -> dict[date, int]:
    return dict(Counter(t.date for t in tasks))


def week_bounds(now: date | datetime) -> tuple[date, date]:
    """Monday and Sunday of the week containing now."""
    today = now.date() if isinstance(now, datetime) else now
    monday = today - timedelta(days=today.weekday())
    return monday, monday + timedelta(days=6)


@dataclass(slots=True)
class ReportGroup:
    label: str
    is_self: bool = False
    tasks: list[Task] = field(default_factory=list)


@dataclass(slots=True)
class ReportDay:
    date: date
    groups: list[ReportGroup] = field(default_factory=list)


@dataclass(slots=True)
class WeeklyReport:
    week_start: date
    week_end: date
    total: int
    by_priority: dict[str, int]
    days: list[ReportDay]


def weekly_report(tasks: Iterable[Task], me: UUID, now: date | datetime) -> WeeklyReport:
    """Completed tasks of the current Monday-start week.

    Grouped by date, then by creator. The viewer's own tasks form a separate
    group labelled SELF_LABEL, even if a partner is named the same.
    """
    week_start, week_end = week_bounds(now)
    done = [t for t in tasks if t.completed and week_start <= t.date <= week_end]

    by_priority = {priority: 0 for priority in PRIORITIES}
    grouped: dict[date, dict[tuple[bool, str], list[Task]]] = defaultdict(lambda: defaultdict(list))
    for task in done:
        if task.priority in by_priority:
            by_priority[task.priority] += 1
        is_self = task.user_id == me
        key = (is_self, SELF_LABEL if is_self else task.created_by_username)
        grouped[task.date][key].append(task)

    days: list[ReportDay] = []
    for day in sorted(grouped):
        keys = sorted(grouped[day], key=lambda key: (not key[0], key[1]))
        days.append(
            ReportDay(
                date=day,
                groups=[
                    ReportGroup(
                        label=label,
                        is_self=is_self,
                        tasks=sorted(grouped[day][(is_self, label)], key=day_sort_key),
                    )
                    for is_self, label in keys
                ],
            )
        )

    return WeeklyReport(
        week_start=week_start,
        week_end=week_end,
        total=len(done),
        by_priority=by_priority,
        days=days,
    )


def render_weekly_report(report: WeeklyReport) -> str:
    """Copy-ready transcript; the self label line is implicit and omitted."""
    counts = " / ".join(f"{p} {report.by_priority.get(p, 0)}" for p in PRIORITIES)
    lines = [
        f"Weekly report {report.week_start:%Y-%m-%d} - {report.week_end:%Y-%m-%d}",
        f"Completed: {report.total} ({counts})",
    ]
    for day in report.days:
        lines.append("")
        lines.append(f"{day.date:%Y-%m-%d} ({day.date:%a})")
        for group in day.groups:
            if not group.is_self:
                lines.append(f"[{group.label}]")
            lines.extend(f"- {task.title} [{task.priority}]" for task in group.tasks)
    return "\n".join(lines)


class Clipboard(Protocol):
    async def write_text(self, text: str) -> bool:
        ...


async def export_weekly_report(report: WeeklyReport, clipboard: Clipboard) -> str:
    """Copy the report; returns the toast text, failures are not errors."""
    text = render_weekly_report(report)
    try:
        copied = await clipboard.write_text(text)
    except Exception as exc:
        logger.warning("Clipboard write failed: %s", exc)
        copied = False
    return "Weekly report copied" if copied else "Could not copy the weekly report"
