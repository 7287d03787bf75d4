from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, status

from todocal.api.deps import CurrentProfileDep
from todocal.db import SessionDep
from todocal.models import Task
from todocal.schemas import (
    FixedDateReminderSpec,
    MonthlyReminderSpec,
    ReminderSpec,
    ReorderRequest,
    ReorderResult,
    TaskCreate,
    TaskRead,
    TaskUpdate,
    TimeOfDayReminderSpec,
    ToggleResult,
)
from todocal.services import task_store
from todocal.services.reminders import FixedDate, MonthlyOnDay, NoReminder, ReminderKind, TimeOfDay

router = APIRouter()


def _reminder_kind(payload: Optional[ReminderSpec]) -> Optional[ReminderKind]:
    if payload is None:
        return None
    if isinstance(payload, TimeOfDayReminderSpec):
        return TimeOfDay(at=payload.time)
    if isinstance(payload, FixedDateReminderSpec):
        return FixedDate(on=payload.date)
    if isinstance(payload, MonthlyReminderSpec):
        return MonthlyOnDay(day=payload.day, at=payload.time)
    return NoReminder()


@router.get(
    "/calendars/{calendar_id}/tasks",
    response_model=List[TaskRead],
    summary="List tasks of a calendar",
)
def list_tasks(calendar_id: UUID, session: SessionDep, profile: CurrentProfileDep) -> List[Task]:
    return task_store.list_tasks(session, calendar_id, profile.user_id)


@router.post(
    "/calendars/{calendar_id}/tasks",
    response_model=TaskRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create task",
)
def create_task(
    calendar_id: UUID,
    payload: TaskCreate,
    session: SessionDep,
    profile: CurrentProfileDep,
) -> Task:
    return task_store.create_task(
        session,
        calendar_id,
        profile.user_id,
        title=payload.title,
        day=payload.date,
        priority=payload.priority,
        reminder=_reminder_kind(payload.reminder),
    )


@router.post(
    "/calendars/{calendar_id}/tasks/reorder",
    response_model=ReorderResult,
    summary="Persist manual order of the current user's tasks on one day",
)
def reorder_tasks(
    calendar_id: UUID,
    payload: ReorderRequest,
    session: SessionDep,
    profile: CurrentProfileDep,
) -> ReorderResult:
    outcome = task_store.reorder(session, calendar_id, profile.user_id, payload.date, payload.task_ids)
    return ReorderResult(persisted=outcome.persisted, skipped=outcome.skipped)


@router.patch("/tasks/{task_id}", response_model=TaskRead, summary="Update task")
def update_task(
    task_id: UUID,
    payload: TaskUpdate,
    session: SessionDep,
    profile: CurrentProfileDep,
) -> Task:
    return task_store.update_fields(
        session,
        task_id,
        profile.user_id,
        title=payload.title,
        priority=payload.priority,
        reminder=_reminder_kind(payload.reminder),
    )


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete task")
def delete_task(task_id: UUID, session: SessionDep, profile: CurrentProfileDep) -> None:
    task_store.delete_task(session, task_id, profile.user_id)


@router.post("/tasks/{task_id}/toggle", response_model=ToggleResult, summary="Toggle completion")
def toggle_task(task_id: UUID, session: SessionDep, profile: CurrentProfileDep) -> ToggleResult:
    outcome = task_store.toggle_completed(session, task_id, profile.user_id)
    return ToggleResult(
        task=TaskRead.model_validate(outcome.task),
        spawned=TaskRead.model_validate(outcome.spawned) if outcome.spawned else None,
    )
