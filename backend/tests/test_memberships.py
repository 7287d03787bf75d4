# tests/test_memberships.py

from __future__ import annotations

import pytest

from todocal.core.errors import (
    AccessDeniedError,
    DuplicateError,
    InvalidTransitionError,
    NotFoundError,
    SelfInviteError,
)
from todocal.models.calendar_membership import ROLE_MEMBER, STATUS_ACTIVE, STATUS_PENDING
from todocal.services import memberships
from todocal.services.change_feed import TABLE_MEMBERSHIPS, EventType, change_feed


@pytest.fixture()
def household(session, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    calendar = memberships.create_calendar(session, alice.id, "Home")
    return alice, bob, calendar


def test_invite_approve_round_trip(session, household) -> None:
    alice, bob, calendar = household

    pending = memberships.invite(session, calendar.id, alice.id, "bob")
    assert pending.status == STATUS_PENDING
    assert pending.role == ROLE_MEMBER
    assert pending.invited_by == alice.id

    requests = memberships.pending_requests_for(session, bob.id)
    assert [r.membership.id for r in requests] == [pending.id]
    assert requests[0].calendar_name == "Home"
    assert requests[0].inviter_username == "alice"

    sent = memberships.sent_requests_of(session, calendar.id, alice.id)
    assert [view.username for view in sent] == ["bob"]

    active = memberships.approve(session, pending.id, bob.id)
    assert active.status == STATUS_ACTIVE

    assert memberships.pending_requests_for(session, bob.id) == []
    assert [v.username for v in memberships.active_members_of(session, calendar.id, alice.id)] == ["bob"]
    assert [v.username for v in memberships.active_members_of(session, calendar.id, bob.id)] == ["alice"]
    assert memberships.partner_ids_of(session, alice.id) == {bob.id}
    assert calendar.id in {c.id for c in memberships.list_calendars(session, bob.id)}


def test_second_invite_is_duplicate(session, household) -> None:
    alice, bob, calendar = household
    memberships.invite(session, calendar.id, alice.id, "bob")

    with pytest.raises(DuplicateError):
        memberships.invite(session, calendar.id, alice.id, "bob")

    memberships.approve(session, memberships.pending_requests_for(session, bob.id)[0].membership.id, bob.id)
    with pytest.raises(DuplicateError):
        memberships.invite(session, calendar.id, alice.id, "bob")


def test_invite_unknown_username(session, household) -> None:
    alice, _, calendar = household
    with pytest.raises(NotFoundError):
        memberships.invite(session, calendar.id, alice.id, "nobody")


def test_invite_self(session, household) -> None:
    alice, _, calendar = household
    with pytest.raises(SelfInviteError):
        memberships.invite(session, calendar.id, alice.id, "alice")


def test_invite_requires_active_membership(session, household, make_user) -> None:
    _, bob, calendar = household
    make_user("carol")
    with pytest.raises(AccessDeniedError):
        memberships.invite(session, calendar.id, bob.id, "carol")


def test_only_invitee_can_approve(session, household) -> None:
    alice, _, calendar = household
    pending = memberships.invite(session, calendar.id, alice.id, "bob")

    with pytest.raises(AccessDeniedError):
        memberships.approve(session, pending.id, alice.id)


def test_approve_twice_is_invalid(session, household) -> None:
    alice, bob, calendar = household
    pending = memberships.invite(session, calendar.id, alice.id, "bob")
    memberships.approve(session, pending.id, bob.id)

    with pytest.raises(InvalidTransitionError):
        memberships.approve(session, pending.id, bob.id)


def test_reject_by_invitee_or_inviter(session, household, make_user) -> None:
    alice, bob, calendar = household
    carol = make_user("carol")

    pending = memberships.invite(session, calendar.id, alice.id, "bob")
    with pytest.raises(AccessDeniedError):
        memberships.reject(session, pending.id, carol.id)
    memberships.reject(session, pending.id, bob.id)
    assert memberships.pending_requests_for(session, bob.id) == []

    # A declined invitation can be sent again
    again_id = memberships.invite(session, calendar.id, alice.id, "bob").id
    memberships.reject(session, again_id, alice.id)

    with pytest.raises(NotFoundError):
        memberships.approve(session, again_id, bob.id)


def test_unshare(session, household) -> None:
    alice, bob, calendar = household
    pending = memberships.invite(session, calendar.id, alice.id, "bob")

    with pytest.raises(InvalidTransitionError):
        memberships.unshare(session, pending.id, alice.id)

    memberships.approve(session, pending.id, bob.id)
    memberships.unshare(session, pending.id, bob.id)

    assert memberships.partner_ids_of(session, alice.id) == set()
    assert calendar.id not in {c.id for c in memberships.list_calendars(session, bob.id)}


def test_owner_row_cannot_be_removed(session, household) -> None:
    alice, bob, calendar = household
    pending = memberships.invite(session, calendar.id, alice.id, "bob")
    memberships.approve(session, pending.id, bob.id)
    owner_row = next(
        m for m in memberships.active_members_of(session, calendar.id, bob.id)
    ).membership

    with pytest.raises(InvalidTransitionError):
        memberships.unshare(session, owner_row.id, bob.id)


def test_all_calendars_of_provisions_personal_calendar(session, make_user) -> None:
    dave = make_user("dave")

    calendars = memberships.all_calendars_of(session, dave.id)
    assert [c.name for c in calendars] == ["Personal calendar"]
    # Second call reuses it
    assert [c.id for c in memberships.all_calendars_of(session, dave.id)] == [calendars[0].id]
    assert memberships.role_map(session, dave.id) == {calendars[0].id: "owner"}


def test_transitions_publish_membership_events(session, household) -> None:
    alice, bob, calendar = household
    seen = []
    unsubscribe = change_feed.subscribe(TABLE_MEMBERSHIPS, {"user_id": bob.id}, seen.append)

    pending = memberships.invite(session, calendar.id, alice.id, "bob")
    memberships.approve(session, pending.id, bob.id)
    memberships.unshare(session, pending.id, alice.id)
    unsubscribe()

    assert [e.event_type for e in seen] == [EventType.INSERT, EventType.UPDATE, EventType.DELETE]
    assert seen[0].actor_id == alice.id
    assert seen[1].new["status"] == STATUS_ACTIVE
    assert seen[2].old["calendar_id"] == str(calendar.id)


def test_provisioned_personal_calendar_publishes_owner_row(session, make_user) -> None:
    dave = make_user("dave")
    seen = []
    unsubscribe = change_feed.subscribe(TABLE_MEMBERSHIPS, {"user_id": dave.id}, seen.append)

    calendars = memberships.all_calendars_of(session, dave.id)
    memberships.all_calendars_of(session, dave.id)
    unsubscribe()

    assert [e.event_type for e in seen] == [EventType.INSERT]
    assert seen[0].new["calendar_id"] == str(calendars[0].id)
    assert seen[0].new["role"] == "owner"
    assert seen[0].new["status"] == STATUS_ACTIVE
