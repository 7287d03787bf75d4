"""
Calendar membership state machine.

    (none) --invite--> pending --approve--> active
    pending --reject--> (none)
    active  --unshare--> (none)

Invitations are scoped per calendar, so the same two users can be pending
on one shared calendar and active on another.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import select as sql_select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased
from sqlmodel import Session, select

from todocal.core.errors import (
    AccessDeniedError,
    DuplicateError,
    InvalidTransitionError,
    NotFoundError,
    SelfInviteError,
)
from todocal.models import Calendar, CalendarMembership
from todocal.models.calendar_membership import (
    ROLE_MEMBER,
    ROLE_OWNER,
    STATUS_ACTIVE,
    STATUS_PENDING,
)
from todocal.services.change_feed import (
    TABLE_MEMBERSHIPS,
    EventType,
    publish_row_change,
    row_snapshot,
)
from todocal.services.permissions import calendar_access_condition, ensure_calendar_access
from todocal.services.personal_calendar import create_owned_calendar, ensure_personal_calendar
from todocal.services.profiles import get_profile_by_username, usernames_for

logger = logging.getLogger(__name__)

DUPLICATE_INVITE_MESSAGE = "Already requested or already shared"


@dataclass(frozen=True, slots=True)
class MemberView:
    membership: CalendarMembership
    username: Optional[str]


@dataclass(frozen=True, slots=True)
class PendingRequest:
    membership: CalendarMembership
    calendar_name: str
    inviter_username: Optional[str]


def _get_membership(session: Session, membership_id: UUID) -> CalendarMembership:
    membership = session.get(CalendarMembership, membership_id)
    if membership is None:
        raise NotFoundError("Membership not found")
    return membership


def _get_row(session: Session, calendar_id: UUID, user_id: UUID) -> CalendarMembership | None:
    return session.exec(
        select(CalendarMembership).where(
            CalendarMembership.calendar_id == calendar_id,
            CalendarMembership.user_id == user_id,
        )
    ).one_or_none()


def create_calendar(session: Session, owner_id: UUID, name: str) -> Calendar:
    return create_owned_calendar(session, owner_id, name.strip())


def invite(
    session: Session,
    calendar_id: UUID,
    inviter_id: UUID,
    invitee_username: str,
) -> CalendarMembership:
    ensure_calendar_access(session, calendar_id, inviter_id)

    invitee = get_profile_by_username(session, invitee_username)
    if invitee is None:
        raise NotFoundError(f"No user named {invitee_username.strip()!r}")
    if invitee.user_id == inviter_id:
        raise SelfInviteError()

    if _get_row(session, calendar_id, invitee.user_id) is not None:
        raise DuplicateError(DUPLICATE_INVITE_MESSAGE)

    membership = CalendarMembership(
        calendar_id=calendar_id,
        user_id=invitee.user_id,
        role=ROLE_MEMBER,
        status=STATUS_PENDING,
        invited_by=inviter_id,
    )
    session.add(membership)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateError(DUPLICATE_INVITE_MESSAGE) from None
    session.refresh(membership)

    logger.info(
        "Invite created membership=%s calendar=%s invitee=%s inviter=%s",
        membership.id,
        calendar_id,
        invitee.user_id,
        inviter_id,
    )
    publish_row_change(TABLE_MEMBERSHIPS, EventType.INSERT, new=membership, actor_id=inviter_id)
    return membership


def approve(session: Session, membership_id: UUID, acting_user_id: UUID) -> CalendarMembership:
    membership = _get_membership(session, membership_id)
    if membership.user_id != acting_user_id:
        raise AccessDeniedError("Only the invited user can accept an invitation")
    if membership.status != STATUS_PENDING:
        raise InvalidTransitionError("Invitation is not pending")

    old = row_snapshot(membership)
    membership.status = STATUS_ACTIVE
    membership.touch()
    session.add(membership)
    session.commit()
    session.refresh(membership)

    logger.info("Invite accepted membership=%s calendar=%s", membership.id, membership.calendar_id)
    publish_row_change(
        TABLE_MEMBERSHIPS, EventType.UPDATE, new=membership, old=old, actor_id=acting_user_id
    )
    return membership


def _delete(session: Session, membership: CalendarMembership, acting_user_id: UUID) -> None:
    old = row_snapshot(membership)
    session.delete(membership)
    session.commit()
    publish_row_change(TABLE_MEMBERSHIPS, EventType.DELETE, old=old, actor_id=acting_user_id)


def reject(session: Session, membership_id: UUID, acting_user_id: UUID) -> None:
    """Decline (invitee) or retract (inviter) a pending invitation."""
    membership = _get_membership(session, membership_id)
    if acting_user_id not in (membership.user_id, membership.invited_by):
        raise AccessDeniedError("Only the invitee or the inviter can reject an invitation")
    if membership.status != STATUS_PENDING:
        raise InvalidTransitionError("Invitation is not pending")

    _delete(session, membership, acting_user_id)
    logger.info("Invite rejected membership=%s by=%s", membership_id, acting_user_id)


def unshare(session: Session, membership_id: UUID, acting_user_id: UUID) -> None:
    """Remove an active membership; either side of the sharing pair may do it."""
    membership = _get_membership(session, membership_id)
    if membership.status != STATUS_ACTIVE:
        raise InvalidTransitionError("Calendar is not shared with this user yet")
    if membership.role == ROLE_OWNER:
        raise InvalidTransitionError("Cannot remove calendar owner")

    allowed = acting_user_id in (membership.user_id, membership.invited_by)
    if not allowed:
        actor_row = _get_row(session, membership.calendar_id, acting_user_id)
        allowed = (
            actor_row is not None
            and actor_row.status == STATUS_ACTIVE
            and actor_row.role == ROLE_OWNER
        )
    if not allowed:
        raise AccessDeniedError("Only members of this share can remove it")

    _delete(session, membership, acting_user_id)
    logger.info("Calendar unshared membership=%s by=%s", membership_id, acting_user_id)


def pending_requests_for(
    session: Session,
    user_id: UUID,
    calendar_id: UUID | None = None,
) -> list[PendingRequest]:
    statement = (
        select(CalendarMembership, Calendar)
        .join(Calendar, Calendar.id == CalendarMembership.calendar_id)
        .where(
            CalendarMembership.user_id == user_id,
            CalendarMembership.status == STATUS_PENDING,
        )
        .order_by(CalendarMembership.created_at)
    )
    if calendar_id is not None:
        statement = statement.where(CalendarMembership.calendar_id == calendar_id)
    rows = session.exec(statement).all()

    inviter_names = usernames_for(
        session, {m.invited_by for m, _ in rows if m.invited_by is not None}
    )
    return [
        PendingRequest(
            membership=membership,
            calendar_name=calendar.name,
            inviter_username=inviter_names.get(membership.invited_by),
        )
        for membership, calendar in rows
    ]


def sent_requests_of(session: Session, calendar_id: UUID, user_id: UUID) -> list[MemberView]:
    ensure_calendar_access(session, calendar_id, user_id)
    rows = session.exec(
        select(CalendarMembership)
        .where(
            CalendarMembership.calendar_id == calendar_id,
            CalendarMembership.invited_by == user_id,
            CalendarMembership.status == STATUS_PENDING,
        )
        .order_by(CalendarMembership.created_at)
    ).all()
    names = usernames_for(session, {m.user_id for m in rows})
    return [MemberView(membership=m, username=names.get(m.user_id)) for m in rows]


def active_members_of(
    session: Session,
    calendar_id: UUID,
    user_id: UUID,
    *,
    exclude_self: bool = True,
) -> list[MemberView]:
    ensure_calendar_access(session, calendar_id, user_id)
    statement = select(CalendarMembership).where(
        CalendarMembership.calendar_id == calendar_id,
        CalendarMembership.status == STATUS_ACTIVE,
    )
    if exclude_self:
        statement = statement.where(CalendarMembership.user_id != user_id)
    rows = session.exec(statement.order_by(CalendarMembership.created_at)).all()
    names = usernames_for(session, {m.user_id for m in rows})
    return [MemberView(membership=m, username=names.get(m.user_id)) for m in rows]


def partner_ids_of(session: Session, user_id: UUID) -> set[UUID]:
    """Users sharing at least one active calendar with the given user."""
    mine = aliased(CalendarMembership)
    my_calendars = sql_select(mine.calendar_id).where(
        mine.user_id == user_id,
        mine.status == STATUS_ACTIVE,
    )
    rows = session.exec(
        select(CalendarMembership.user_id).where(
            CalendarMembership.calendar_id.in_(my_calendars),
            CalendarMembership.status == STATUS_ACTIVE,
            CalendarMembership.user_id != user_id,
        )
    ).all()
    return set(rows)


def list_calendars(session: Session, user_id: UUID) -> list[Calendar]:
    return list(
        session.exec(
            select(Calendar)
            .where(calendar_access_condition(user_id))
            .order_by(Calendar.created_at)
        ).all()
    )


def all_calendars_of(session: Session, user_id: UUID) -> list[Calendar]:
    """Calendars reachable through active memberships, provisioning a default one."""
    calendars = list_calendars(session, user_id)
    if calendars:
        return calendars

    calendar = ensure_personal_calendar(session, user_id)
    logger.info("Provisioned personal calendar %s for user %s", calendar.id, user_id)
    return [calendar]


def role_map(session: Session, user_id: UUID) -> dict[UUID, str]:
    return {
        m.calendar_id: m.role
        for m in session.exec(
            select(CalendarMembership).where(
                CalendarMembership.user_id == user_id,
                CalendarMembership.status == STATUS_ACTIVE,
            )
        )
    }
