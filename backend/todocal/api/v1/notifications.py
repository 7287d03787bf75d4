from __future__ import annotations

from datetime import datetime
from typing import List
from uuid import UUID

from fastapi import APIRouter, Query
from sqlalchemy import func
from sqlmodel import select

from todocal.api.deps import CurrentUserDep
from todocal.core.errors import AccessDeniedError, NotFoundError
from todocal.db import SessionDep
from todocal.models import Notification
from todocal.schemas import NotificationRead, NotificationUpdate

router = APIRouter()


@router.get("/", response_model=List[NotificationRead], summary="List notifications")
def list_notifications(
    session: SessionDep,
    current_user: CurrentUserDep,
    unread_only: bool = Query(default=False, description="Show only unread notifications"),
    limit: int = Query(default=50, ge=1, le=100, description="Maximum number of notifications"),
) -> List[Notification]:
    statement = select(Notification).where(Notification.user_id == current_user.id)
    if unread_only:
        statement = statement.where(Notification.is_read == False)  # noqa: E712
    statement = statement.order_by(Notification.created_at.desc()).limit(limit)
    return list(session.exec(statement).all())


@router.get("/unread-count", summary="Get unread notifications count")
def get_unread_count(session: SessionDep, current_user: CurrentUserDep) -> dict[str, int]:
    count = session.exec(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == current_user.id, Notification.is_read == False)  # noqa: E712
    ).one()
    return {"count": count}


@router.patch("/mark-all-read", summary="Mark all notifications as read")
def mark_all_read(session: SessionDep, current_user: CurrentUserDep) -> dict[str, int]:
    notifications = session.exec(
        select(Notification).where(
            Notification.user_id == current_user.id,
            Notification.is_read == False,  # noqa: E712
        )
    ).all()

    now = datetime.utcnow()
    for notification in notifications:
        notification.is_read = True
        notification.read_at = now
        session.add(notification)
    session.commit()
    return {"marked": len(notifications)}


@router.patch("/{notification_id}", response_model=NotificationRead, summary="Update notification")
def update_notification(
    notification_id: UUID,
    data: NotificationUpdate,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> Notification:
    notification = session.get(Notification, notification_id)
    if not notification:
        raise NotFoundError("Notification not found")
    if notification.user_id != current_user.id:
        raise AccessDeniedError("Not your notification")

    notification.is_read = data.is_read
    if data.is_read and not notification.read_at:
        notification.read_at = datetime.utcnow()
    elif not data.is_read:
        notification.read_at = None

    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification
