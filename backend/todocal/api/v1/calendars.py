from __future__ import annotations

import asyncio
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status

from todocal.api.deps import CurrentProfileDep
from todocal.core.config import settings
from todocal.db import SessionDep, SessionFactory, get_session_factory
from todocal.models import Calendar, CalendarMembership
from todocal.schemas import (
    BootstrapRead,
    CalendarCreate,
    CalendarRead,
    CalendarReadWithRole,
    InviteCreate,
    MembershipRead,
    PendingRequestRead,
)
from todocal.services import memberships
from todocal.services.bootstrap import CalendarBootstrap
from todocal.services.personal_calendar import ensure_personal_calendar

router = APIRouter()


def _serialize_calendar_with_role(calendar: Calendar, *, role: str | None) -> CalendarReadWithRole:
    base = CalendarReadWithRole.model_validate(calendar)
    return base.model_copy(update={"current_user_role": role})


def _serialize_membership(membership: CalendarMembership, username: str | None) -> MembershipRead:
    return MembershipRead(
        id=membership.id,
        calendar_id=membership.calendar_id,
        user_id=membership.user_id,
        username=username,
        role=membership.role,
        status=membership.status,
        invited_by=membership.invited_by,
        created_at=membership.created_at,
    )


@router.get("/", response_model=List[CalendarReadWithRole], summary="List calendars")
def list_calendars(session: SessionDep, profile: CurrentProfileDep) -> List[CalendarReadWithRole]:
    calendars = memberships.all_calendars_of(session, profile.user_id)
    roles = memberships.role_map(session, profile.user_id)
    return [_serialize_calendar_with_role(c, role=roles.get(c.id)) for c in calendars]


@router.get("/bootstrap", response_model=BootstrapRead, summary="Load calendars with fallback")
async def bootstrap_calendars(
    profile: CurrentProfileDep,
    session_factory: SessionFactory = Depends(get_session_factory),
) -> BootstrapRead:
    user_id = profile.user_id

    def load() -> list[CalendarRead]:
        with session_factory() as session:
            return [
                CalendarRead.model_validate(c)
                for c in memberships.list_calendars(session, user_id)
            ]

    def provision() -> None:
        with session_factory() as session:
            ensure_personal_calendar(session, user_id)

    bootstrap = CalendarBootstrap(
        lambda: asyncio.to_thread(load),
        lambda: asyncio.to_thread(provision),
        timeout_seconds=settings.CALENDAR_BOOTSTRAP_TIMEOUT_SECONDS,
        max_retries=settings.CALENDAR_BOOTSTRAP_MAX_RETRIES,
    )
    await bootstrap.run()
    return BootstrapRead(
        state=bootstrap.state.value,
        attempts=bootstrap.attempts,
        calendars=bootstrap.calendars,
        error=bootstrap.error,
    )


@router.post(
    "/",
    response_model=CalendarReadWithRole,
    status_code=status.HTTP_201_CREATED,
    summary="Create calendar",
)
def create_calendar(
    payload: CalendarCreate,
    session: SessionDep,
    profile: CurrentProfileDep,
) -> CalendarReadWithRole:
    calendar = memberships.create_calendar(session, profile.user_id, payload.name)
    return _serialize_calendar_with_role(calendar, role="owner")


@router.get(
    "/invites/pending",
    response_model=List[PendingRequestRead],
    summary="Invitations waiting for the current user",
)
def list_pending_invites(
    session: SessionDep,
    profile: CurrentProfileDep,
    calendar_id: UUID | None = None,
) -> List[PendingRequestRead]:
    return [
        PendingRequestRead(
            id=request.membership.id,
            calendar_id=request.membership.calendar_id,
            calendar_name=request.calendar_name,
            invited_by=request.membership.invited_by,
            inviter_username=request.inviter_username,
            created_at=request.membership.created_at,
        )
        for request in memberships.pending_requests_for(session, profile.user_id, calendar_id)
    ]


@router.post(
    "/memberships/{membership_id}/approve",
    response_model=MembershipRead,
    summary="Accept an invitation",
)
def approve_invite(
    membership_id: UUID,
    session: SessionDep,
    profile: CurrentProfileDep,
) -> MembershipRead:
    membership = memberships.approve(session, membership_id, profile.user_id)
    return _serialize_membership(membership, profile.username)


@router.post(
    "/memberships/{membership_id}/reject",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Decline or retract an invitation",
)
def reject_invite(membership_id: UUID, session: SessionDep, profile: CurrentProfileDep) -> None:
    memberships.reject(session, membership_id, profile.user_id)


@router.delete(
    "/memberships/{membership_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Stop sharing a calendar",
)
def unshare(membership_id: UUID, session: SessionDep, profile: CurrentProfileDep) -> None:
    memberships.unshare(session, membership_id, profile.user_id)


@router.get(
    "/{calendar_id}/members",
    response_model=List[MembershipRead],
    summary="Active members other than the current user",
)
def list_members(
    calendar_id: UUID,
    session: SessionDep,
    profile: CurrentProfileDep,
) -> List[MembershipRead]:
    return [
        _serialize_membership(view.membership, view.username)
        for view in memberships.active_members_of(session, calendar_id, profile.user_id)
    ]


@router.post(
    "/{calendar_id}/invites",
    response_model=MembershipRead,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a user by username",
)
def invite_member(
    calendar_id: UUID,
    payload: InviteCreate,
    session: SessionDep,
    profile: CurrentProfileDep,
) -> MembershipRead:
    membership = memberships.invite(session, calendar_id, profile.user_id, payload.username)
    return _serialize_membership(membership, payload.username.strip())


@router.get(
    "/{calendar_id}/invites/sent",
    response_model=List[MembershipRead],
    summary="Pending invitations sent by the current user",
)
def list_sent_invites(
    calendar_id: UUID,
    session: SessionDep,
    profile: CurrentProfileDep,
) -> List[MembershipRead]:
    return [
        _serialize_membership(view.membership, view.username)
        for view in memberships.sent_requests_of(session, calendar_id, profile.user_id)
    ]
