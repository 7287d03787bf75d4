from __future__ import annotations

import datetime as dt
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query

from todocal.api.deps import CurrentProfileDep
from todocal.db import SessionDep
from todocal.models import Task
from todocal.schemas import (
    ColorMapRead,
    ReportCreatorGroup,
    ReportDay,
    ReportTaskLine,
    TaskRead,
    WeeklyReportRead,
)
from todocal.services import task_store, views
from todocal.services.recurrence import collapse_monthly

router = APIRouter()


@router.get("/{calendar_id}/views/day", response_model=List[TaskRead], summary="Tasks of one day")
def day_view(
    calendar_id: UUID,
    session: SessionDep,
    profile: CurrentProfileDep,
    day: dt.date = Query(alias="date"),
) -> List[Task]:
    tasks = task_store.list_tasks(session, calendar_id, profile.user_id)
    return views.day_view(tasks, day)


@router.get("/{calendar_id}/views/colors", response_model=ColorMapRead, summary="Creator colors")
def color_map(calendar_id: UUID, session: SessionDep, profile: CurrentProfileDep) -> ColorMapRead:
    tasks = task_store.list_tasks(session, calendar_id, profile.user_id)
    return ColorMapRead(colors=views.username_color_map(tasks))


@router.get("/{calendar_id}/views/counts", summary="Task count per date")
def task_counts(calendar_id: UUID, session: SessionDep, profile: CurrentProfileDep) -> dict[str, int]:
    tasks = task_store.list_tasks(session, calendar_id, profile.user_id)
    return {day.isoformat(): count for day, count in sorted(views.task_counts_by_date(tasks).items())}


@router.get(
    "/{calendar_id}/views/reminders",
    response_model=List[TaskRead],
    summary="Reminder list with monthly tasks collapsed",
)
def reminder_list(calendar_id: UUID, session: SessionDep, profile: CurrentProfileDep) -> List[Task]:
    tasks = task_store.list_tasks(session, calendar_id, profile.user_id)
    return collapse_monthly(tasks)


@router.get(
    "/{calendar_id}/views/weekly-report",
    response_model=WeeklyReportRead,
    summary="Completed tasks of the current week",
)
def weekly_report(
    calendar_id: UUID,
    session: SessionDep,
    profile: CurrentProfileDep,
    on: Optional[dt.date] = Query(default=None, description="Any day inside the wanted week"),
) -> WeeklyReportRead:
    tasks = task_store.list_tasks(session, calendar_id, profile.user_id)
    report = views.weekly_report(tasks, profile.user_id, on or dt.date.today())
    return WeeklyReportRead(
        week_start=report.week_start,
        week_end=report.week_end,
        total=report.total,
        by_priority=report.by_priority,
        days=[
            ReportDay(
                date=day.date,
                groups=[
                    ReportCreatorGroup(
                        label=group.label,
                        is_self=group.is_self,
                        tasks=[ReportTaskLine(title=t.title, priority=t.priority) for t in group.tasks],
                    )
                    for group in day.groups
                ],
            )
            for day in report.days
        ],
        text=views.render_weekly_report(report),
    )
