"""Profiles: public usernames of users inside shared calendars."""
from __future__ import annotations

import logging
import re
import secrets
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from todocal.core.errors import DuplicateError, NotFoundError
from todocal.models import Profile, Task, User
from todocal.services.change_feed import TABLE_PROFILES, EventType, publish_row_change, row_snapshot

logger = logging.getLogger(__name__)

USERNAME_MIN_LENGTH = 2
USERNAME_MAX_LENGTH = 50
USERNAME_REGEX = re.compile(r"^[a-zA-Z0-9._-]{2,50}$")
_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def validate_username(value: str) -> str | None:
    """Return a user-facing error message, or None if the username is valid."""
    trimmed = value.strip()
    if not trimmed:
        return "Enter a username"
    if len(trimmed) < USERNAME_MIN_LENGTH:
        return f"Username must be at least {USERNAME_MIN_LENGTH} characters"
    if len(trimmed) > USERNAME_MAX_LENGTH:
        return f"Username must be at most {USERNAME_MAX_LENGTH} characters"
    if not USERNAME_REGEX.match(trimmed):
        return "Only letters, digits and . _ - are allowed"
    return None


def _username_from_email(email: str) -> str:
    local_part = email.split("@", 1)[0]
    candidate = _INVALID_CHARS.sub("", local_part)[:USERNAME_MAX_LENGTH]
    if len(candidate) < USERNAME_MIN_LENGTH:
        candidate = f"user{candidate}"
    return candidate


def _free_username(session: Session, base: str) -> str:
    candidate = base
    suffix = 1
    while get_profile_by_username(session, candidate) is not None:
        tail = f"-{suffix}"
        candidate = f"{base[: USERNAME_MAX_LENGTH - len(tail)]}{tail}"
        suffix += 1
    return candidate


def get_profile(session: Session, user_id: UUID) -> Profile | None:
    return session.get(Profile, user_id)


def get_profile_by_username(session: Session, username: str) -> Profile | None:
    return session.exec(
        select(Profile).where(Profile.username == username.strip())
    ).one_or_none()


def require_profile(session: Session, user_id: UUID) -> Profile:
    profile = get_profile(session, user_id)
    if profile is None:
        raise NotFoundError("Profile not found")
    return profile


def ensure_profile(
    session: Session,
    user: User,
    username: str | None = None,
) -> Profile:
    """Return the user's profile, creating it on first use.

    A requested username that is already taken raises DuplicateError; a
    username derived from the email is made unique with a numeric suffix.
    """
    existing = get_profile(session, user.id)
    if existing:
        return existing

    if username is not None:
        username = username.strip()
        if get_profile_by_username(session, username) is not None:
            raise DuplicateError("Username is already taken")
    else:
        username = _free_username(session, _username_from_email(user.email))

    profile = Profile(
        user_id=user.id,
        username=username,
        avatar_seed=secrets.token_hex(4),
    )
    session.add(profile)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateError("Username is already taken") from None
    session.refresh(profile)
    logger.info("Profile created user_id=%s username=%s", user.id, username)
    publish_row_change(TABLE_PROFILES, EventType.INSERT, new=profile, actor_id=user.id)
    return profile


def rename_profile(session: Session, user_id: UUID, username: str) -> Profile:
    profile = require_profile(session, user_id)
    username = username.strip()
    if profile.username == username:
        return profile

    taken = get_profile_by_username(session, username)
    if taken is not None and taken.user_id != user_id:
        raise DuplicateError("Username is already taken")

    old = row_snapshot(profile)
    profile.username = username
    profile.touch()
    session.add(profile)
    # Task rows carry the creator name denormalized
    session.execute(
        update(Task).where(Task.user_id == user_id).values(created_by_username=username)
    )
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateError("Username is already taken") from None
    session.refresh(profile)

    logger.info("Profile renamed user_id=%s %s -> %s", user_id, old["username"], username)
    publish_row_change(TABLE_PROFILES, EventType.UPDATE, new=profile, old=old, actor_id=user_id)
    return profile


def usernames_for(session: Session, user_ids: set[UUID]) -> dict[UUID, str]:
    if not user_ids:
        return {}
    rows = session.exec(select(Profile).where(Profile.user_id.in_(user_ids))).all()
    return {profile.user_id: profile.username for profile in rows}
