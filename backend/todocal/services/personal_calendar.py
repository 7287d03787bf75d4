"""
Personal calendar provisioning.
Every user owns a default calendar, created the first time their calendar
list comes back empty.
"""
from __future__ import annotations

import logging
from uuid import UUID

from sqlmodel import Session, select

from todocal.core.config import settings
from todocal.models import Calendar, CalendarMembership, User
from todocal.models.calendar_membership import ROLE_OWNER, STATUS_ACTIVE
from todocal.services.change_feed import TABLE_MEMBERSHIPS, EventType, publish_row_change

logger = logging.getLogger(__name__)


def create_owned_calendar(session: Session, owner_id: UUID, name: str) -> Calendar:
    """Create a calendar together with the owner's active membership and announce it."""
    calendar = Calendar(name=name, created_by=owner_id)
    session.add(calendar)
    session.flush()

    owner_row = CalendarMembership(
        calendar_id=calendar.id,
        user_id=owner_id,
        role=ROLE_OWNER,
        status=STATUS_ACTIVE,
        invited_by=None,
    )
    session.add(owner_row)
    session.commit()
    session.refresh(calendar)
    session.refresh(owner_row)
    logger.info("Calendar created id=%s owner=%s", calendar.id, owner_id)
    publish_row_change(TABLE_MEMBERSHIPS, EventType.INSERT, new=owner_row, actor_id=owner_id)
    return calendar


def get_personal_calendar(session: Session, user_id: UUID) -> Calendar | None:
    return session.exec(
        select(Calendar)
        .join(CalendarMembership, CalendarMembership.calendar_id == Calendar.id)
        .where(
            Calendar.created_by == user_id,
            Calendar.name == settings.DEFAULT_CALENDAR_NAME,
            CalendarMembership.user_id == user_id,
            CalendarMembership.status == STATUS_ACTIVE,
        )
    ).first()


def ensure_personal_calendar(session: Session, user_id: UUID) -> Calendar:
    """Return the user's personal calendar, creating it if missing."""
    existing = get_personal_calendar(session, user_id)
    if existing:
        return existing

    if not session.get(User, user_id):
        raise ValueError(f"User {user_id} not found")

    return create_owned_calendar(session, user_id, settings.DEFAULT_CALENDAR_NAME)
