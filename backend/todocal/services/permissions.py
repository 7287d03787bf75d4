from __future__ import annotations

from uuid import UUID

from sqlalchemy import select as sql_select
from sqlmodel import Session, select

from todocal.core.errors import AccessDeniedError, NotFoundError
from todocal.models import Calendar, CalendarMembership, Task
from todocal.models.calendar_membership import STATUS_ACTIVE


def calendar_access_condition(user_id: UUID):
    """Calendars the user can see: those with an active membership."""
    member_subquery = sql_select(CalendarMembership.calendar_id).where(
        CalendarMembership.user_id == user_id,
        CalendarMembership.status == STATUS_ACTIVE,
    )
    return Calendar.id.in_(member_subquery)


def get_active_membership(
    session: Session,
    calendar_id: UUID,
    user_id: UUID,
) -> CalendarMembership | None:
    return session.exec(
        select(CalendarMembership).where(
            CalendarMembership.calendar_id == calendar_id,
            CalendarMembership.user_id == user_id,
            CalendarMembership.status == STATUS_ACTIVE,
        )
    ).one_or_none()


def ensure_calendar_access(
    session: Session,
    calendar_id: UUID,
    user_id: UUID,
    required_role: str | None = None,
) -> Calendar:
    calendar = session.get(Calendar, calendar_id)
    if not calendar:
        raise NotFoundError("Calendar not found")

    membership = get_active_membership(session, calendar_id, user_id)
    if membership is None:
        raise AccessDeniedError()

    if required_role and membership.role != required_role:
        raise AccessDeniedError(
            f"Required role: {required_role}, but user has: {membership.role}"
        )

    return calendar


def ensure_task_access(session: Session, task_id: UUID, user_id: UUID) -> Task:
    """Load a task visible to the user (active member of its calendar)."""
    task = session.get(Task, task_id)
    if not task:
        raise NotFoundError("Task not found")
    if get_active_membership(session, task.calendar_id, user_id) is None:
        raise AccessDeniedError("Access to task denied")
    return task


def active_member_ids(session: Session, calendar_id: UUID) -> list[UUID]:
    return list(
        session.exec(
            select(CalendarMembership.user_id).where(
                CalendarMembership.calendar_id == calendar_id,
                CalendarMembership.status == STATUS_ACTIVE,
            )
        ).all()
    )
