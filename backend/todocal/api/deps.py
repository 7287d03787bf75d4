from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import select

from todocal.core.config import settings
from todocal.core.security import verify_token
from todocal.db import SessionDep
from todocal.models import Profile, User
from todocal.services.profiles import ensure_profile

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")


def user_id_from_token(token: str) -> UUID:
    """Subject of a valid access token; raises ValueError otherwise."""
    payload = verify_token(token, token_type="access")
    user_id = payload.get("sub")
    if not user_id:
        raise ValueError("Invalid authentication payload")
    return UUID(user_id)


def get_current_user(
    session: SessionDep,
    token: str = Depends(oauth2_scheme),
) -> User:
    try:
        user_id = user_id_from_token(token)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    user = session.exec(select(User).where(User.id == user_id)).one_or_none()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Inactive or missing user",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_current_profile(
    session: SessionDep,
    current_user: User = Depends(get_current_user),
) -> Profile:
    # Profiles are created lazily on first authenticated use
    return ensure_profile(session, current_user)


CurrentUserDep = Annotated[User, Depends(get_current_user)]
CurrentProfileDep = Annotated[Profile, Depends(get_current_profile)]
